"""Member and contribution generators for demo ledgers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator

from coop_ledger.generators.base import BaseGenerator


@dataclass
class MemberProfile:
    """Inputs for ``CooperativeLedger.create_member``."""

    full_name: str
    contact_info: str | None
    join_date: date


class MemberGenerator(BaseGenerator):
    """Generate member profiles with Filipino names and phone numbers."""

    CONTACT_RATE = 0.8

    def generate(self, as_of: date | None = None) -> MemberProfile:
        """Generate a single member profile.

        Parameters
        ----------
        as_of : date | None
            Latest possible join date (default: today). Join dates fall in
            the year before it.

        Returns
        -------
        MemberProfile
            Generated profile.
        """
        as_of = as_of or date.today()
        contact = self.fake.phone_number() if self.rng.random() < self.CONTACT_RATE else None
        return MemberProfile(
            full_name=self.fake.name(),
            contact_info=contact,
            join_date=as_of - timedelta(days=self.rng.randint(0, 364)),
        )

    def generate_batch(self, count: int, as_of: date | None = None) -> Iterator[MemberProfile]:
        """Generate ``count`` member profiles."""
        for _ in range(count):
            yield self.generate(as_of)


class ContributionPlanGenerator(BaseGenerator):
    """Pick plausible share, social-fund, penalty and loan amounts."""

    SHARE_UNITS = (1, 10)
    SOCIAL_FUND_STEPS = (2, 20)  # multiples of 50
    PENALTY_AMOUNTS = (Decimal("20"), Decimal("50"), Decimal("100"))
    LOAN_THOUSANDS = (5, 50)

    def share_units(self) -> int:
        return self.rng.randint(*self.SHARE_UNITS)

    def social_fund_amount(self) -> Decimal:
        return Decimal(self.rng.randint(*self.SOCIAL_FUND_STEPS) * 50)

    def penalty_amount(self) -> Decimal:
        return self.rng.choice(self.PENALTY_AMOUNTS)

    def loan_principal(self) -> Decimal:
        return Decimal(self.rng.randint(*self.LOAN_THOUSANDS) * 1000)

    def partial_payment(self, principal: Decimal) -> Decimal:
        """A principal payment between 10% and 90% of ``principal``, in whole pesos."""
        fraction = Decimal(self.rng.randint(1, 9)) / Decimal(10)
        return (principal * fraction).quantize(Decimal("1"))
