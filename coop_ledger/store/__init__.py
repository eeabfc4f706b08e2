"""Ledger stores: the in-memory store and the PostgreSQL store."""

from coop_ledger.store.base import ClearedCounts, LedgerStore
from coop_ledger.store.memory import InMemoryLedgerStore

__all__ = ["ClearedCounts", "InMemoryLedgerStore", "LedgerStore"]
