"""Pytest configuration and fixtures."""

from datetime import date

import pytest

from coop_ledger.config import LedgerConfig, YearEndConfig
from coop_ledger.models import DistributionBasis, Member
from coop_ledger.service import CooperativeLedger
from coop_ledger.store.memory import InMemoryLedgerStore


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def store() -> InMemoryLedgerStore:
    """Fresh in-memory store for each test."""
    return InMemoryLedgerStore()


@pytest.fixture
def config() -> LedgerConfig:
    """Default config with the accrued year-end basis chosen."""
    return LedgerConfig(year_end=YearEndConfig(distribution_basis=DistributionBasis.ACCRUED))


@pytest.fixture
def ledger(store: InMemoryLedgerStore, config: LedgerConfig) -> CooperativeLedger:
    """Ledger service over the in-memory store."""
    return CooperativeLedger(store, config)


@pytest.fixture
def member(ledger: CooperativeLedger) -> Member:
    """A registered member with no contributions."""
    return ledger.create_member("Maria Santos", "0917-555-0101", date(2024, 1, 15))
