"""Configuration management for coop-ledger."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from coop_ledger.exceptions import ConfigurationError
from coop_ledger.models.enums import DistributionBasis

DEFAULT_CONFIRMATION_PHRASE = "CLEAR YEAR DATA"


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "coop_ledger"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class AccountingConfig:
    """Loan and contribution pricing parameters."""

    service_charge_rate: Decimal = Decimal("0.02")
    share_unit_value: Decimal = Decimal("500")

    def __post_init__(self) -> None:
        if not self.service_charge_rate.is_finite() or not self.share_unit_value.is_finite():
            raise ConfigurationError("Accounting parameters must be finite numbers")
        if not Decimal("0") <= self.service_charge_rate < Decimal("1"):
            raise ConfigurationError(
                f"Service charge rate must be in [0, 1), got {self.service_charge_rate}"
            )
        if self.share_unit_value <= 0:
            raise ConfigurationError(
                f"Share unit value must be positive, got {self.share_unit_value}"
            )


@dataclass
class YearEndConfig:
    """Year-end distribution and reset settings.

    ``confirmation_phrase`` only guards against accidental clears; it is not
    a credential and must not be treated as one.
    """

    distribution_basis: DistributionBasis | None = None
    confirmation_phrase: str = DEFAULT_CONFIRMATION_PHRASE
    reset_penalties: bool = True


@dataclass
class LedgerConfig:
    """Main configuration for coop-ledger."""

    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    accounting: AccountingConfig = field(default_factory=AccountingConfig)
    year_end: YearEndConfig = field(default_factory=YearEndConfig)
    seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        import os

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env_int("POSTGRES_PORT", "5432"),
            database=os.getenv("POSTGRES_DB", "coop_ledger"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        accounting = AccountingConfig(
            service_charge_rate=_env_decimal("SERVICE_CHARGE_RATE", "0.02"),
            share_unit_value=_env_decimal("SHARE_UNIT_VALUE", "500"),
        )

        basis_str = os.getenv("YEAR_END_BASIS")
        year_end = YearEndConfig(
            distribution_basis=parse_basis(basis_str) if basis_str else None,
            confirmation_phrase=os.getenv("YEAR_END_CONFIRMATION", DEFAULT_CONFIRMATION_PHRASE),
            reset_penalties=os.getenv("YEAR_END_RESET_PENALTIES", "true").lower() == "true",
        )

        return cls(
            postgres=postgres,
            accounting=accounting,
            year_end=year_end,
            seed=_env_int("SEED", None),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


def parse_basis(value: str) -> DistributionBasis:
    """Parse a distribution basis name (case-insensitive).

    Raises
    ------
    ConfigurationError
        If the name is not a known basis.
    """
    try:
        return DistributionBasis(value.strip().upper())
    except ValueError:
        choices = ", ".join(b.value for b in DistributionBasis)
        raise ConfigurationError(
            f"Unknown distribution basis {value!r} (expected one of: {choices})"
        ) from None


def _env_decimal(name: str, default: str) -> Decimal:
    import os

    raw = os.getenv(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a decimal number, got {raw!r}") from None


def _env_int(name: str, default: str | None) -> int | None:
    import os

    raw = os.getenv(name) or default
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
