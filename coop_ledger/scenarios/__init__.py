"""Scenarios for seeding demo ledgers."""

from coop_ledger.scenarios.cooperative_year import CooperativeYearScenario

__all__ = ["CooperativeYearScenario"]
