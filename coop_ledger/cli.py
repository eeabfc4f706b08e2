"""Command line entry point for coop-ledger.

Usage::

    coop-ledger init-db
    coop-ledger seed --members 30 --seed 42
    coop-ledger totals
    coop-ledger year-end preview --basis ACCRUED
    coop-ledger year-end close --basis ACCRUED --confirm "CLEAR YEAR DATA"
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Sequence

from coop_ledger.config import LedgerConfig, parse_basis
from coop_ledger.exceptions import LedgerError
from coop_ledger.logging import get_logger, setup_logging
from coop_ledger.models import DistributionBasis
from coop_ledger.scenarios import CooperativeYearScenario
from coop_ledger.serialization import to_dict
from coop_ledger.service import CooperativeLedger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coop-ledger",
        description="Cooperative savings-and-loan ledger",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables")

    seed = sub.add_parser("seed", help="Seed the ledger with demo data")
    seed.add_argument("--members", type=int, default=20, help="Number of members")
    seed.add_argument("--loan-penetration", type=float, default=0.40)
    seed.add_argument("--seed", type=int, default=None, help="Random seed")

    sub.add_parser("totals", help="Print dashboard totals")

    year_end = sub.add_parser("year-end", help="Year-end distribution")
    year_end_sub = year_end.add_subparsers(dest="action", required=True)
    for name, help_text in (
        ("preview", "Compute the distribution without changing anything"),
        ("close", "Compute the distribution, then clear loans, payments and contributions"),
    ):
        action = year_end_sub.add_parser(name, help=help_text)
        action.add_argument(
            "--basis",
            type=_basis_arg,
            default=None,
            help="Service-charge base: ACCRUED or PAID_ONLY (overrides YEAR_END_BASIS)",
        )
        if name == "close":
            action.add_argument(
                "--confirm",
                default=None,
                help="Confirmation phrase; prompted for when omitted",
            )
    return parser


def _basis_arg(value: str) -> DistributionBasis:
    try:
        return parse_basis(value)
    except LedgerError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def main(argv: Sequence[str] | None = None, ledger: CooperativeLedger | None = None) -> int:
    """Run the CLI.

    Parameters
    ----------
    argv : Sequence[str] | None
        Arguments (default: ``sys.argv[1:]``).
    ledger : CooperativeLedger | None
        Ledger to operate on. When omitted, one is built on PostgreSQL from
        environment configuration.

    Returns
    -------
    int
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    store = None
    try:
        config = ledger.config if ledger is not None else LedgerConfig.from_env()
        setup_logging(level=args.log_level or config.log_level, format_type=config.log_format)
        if ledger is None:
            from coop_ledger.store.postgres import PostgresLedgerStore

            store = PostgresLedgerStore.connect(config.postgres.connection_string)
            ledger = CooperativeLedger(store, config)
        return _dispatch(args, ledger)
    except LedgerError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        if store is not None:
            store.close()


def _dispatch(args: argparse.Namespace, ledger: CooperativeLedger) -> int:
    if args.command == "init-db":
        create_schema = getattr(ledger.store, "create_schema", None)
        if create_schema is None:
            logger.error("Store %s has no schema to create", type(ledger.store).__name__)
            return 1
        create_schema()
        return 0

    if args.command == "seed":
        scenario = CooperativeYearScenario(
            num_members=args.members,
            loan_penetration=args.loan_penetration,
            seed=args.seed if args.seed is not None else ledger.config.seed,
            ledger=ledger,
        )
        scenario.generate()
        _print(scenario.get_summary())
        return 0

    if args.command == "totals":
        _print(ledger.totals())
        return 0

    basis: DistributionBasis | None = args.basis
    if args.action == "preview":
        _print(ledger.preview_year_end(basis))
        return 0

    confirmation = args.confirm
    if confirmation is None:
        # Show what is about to be distributed before asking
        _print(ledger.preview_year_end(basis))
        phrase = ledger.config.year_end.confirmation_phrase
        confirmation = input(f"Type {phrase!r} to clear this year's loans and contributions: ")
    _print(ledger.close_year(confirmation, basis))
    return 0


def _print(obj: Any) -> None:
    print(json.dumps(to_dict(obj), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    sys.exit(main())
