"""Logging setup for coop-ledger.

Ledger call sites attach identifiers (loan id, member id, payment id) with
``extra={"ledger": {...}}``. The JSON format lifts them to top-level keys so
log shippers can index them; the standard format leaves them out.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

LEDGER_EXTRA = "ledger"

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
STANDARD_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that only speak up at WARNING and above
QUIET_LOGGERS = ("psycopg", "faker")


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: IO[str] | None = None,
) -> None:
    """Route all log records to one handler.

    Parameters
    ----------
    level : str
        Level name for the root and ``coop_ledger`` loggers. Unknown names
        fall back to INFO.
    format_type : str
        ``"json"`` for one JSON object per line, anything else for the
        human-readable format.
    stream : IO[str] | None
        Destination (default: stderr, leaving stdout to command output).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(_build_formatter(format_type))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    logging.getLogger("coop_ledger").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JsonFormatter()
    return logging.Formatter(fmt=STANDARD_FORMAT, datefmt=STANDARD_DATEFMT)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ledger identifiers as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        identifiers = getattr(record, LEDGER_EXTRA, None)
        if isinstance(identifiers, dict):
            payload.update(identifiers)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # Decimals and dates are written with str()
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)
