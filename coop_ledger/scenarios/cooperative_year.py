"""Cooperative year scenario: a demo ledger with a year of activity."""

from __future__ import annotations

import logging
import random
from datetime import date
from typing import Any

from coop_ledger.config import LedgerConfig
from coop_ledger.generators import ContributionPlanGenerator, MemberGenerator
from coop_ledger.models import LoanStatus, PaymentType
from coop_ledger.service import CooperativeLedger
from coop_ledger.store.memory import InMemoryLedgerStore

logger = logging.getLogger(__name__)


class CooperativeYearScenario:
    """Seed a ledger with members, contributions, loans and repayments.

    This scenario creates:
    - Members who each buy shares and pay into the social fund
    - Penalties for a fraction of members
    - Loans for a fraction of members, released and partly or fully repaid
    - Service-charge settlements on some of those loans

    Everything goes through ``CooperativeLedger`` so the seeded data obeys
    the same rules as real entries.
    """

    def __init__(
        self,
        num_members: int = 20,
        loan_penetration: float = 0.40,
        full_repayment_rate: float = 0.30,
        service_charge_paid_rate: float = 0.60,
        penalty_rate: float = 0.20,
        seed: int | None = None,
        *,
        ledger: CooperativeLedger | None = None,
        config: LedgerConfig | None = None,
    ) -> None:
        """Initialize the scenario.

        Parameters
        ----------
        num_members : int
            Number of members to create.
        loan_penetration : float
            Fraction of members who borrow (0.0 to 1.0).
        full_repayment_rate : float
            Fraction of loans repaid in full.
        service_charge_paid_rate : float
            Fraction of loans whose service charge is settled.
        penalty_rate : float
            Fraction of members with a penalty.
        seed : int | None
            Random seed for reproducibility.
        ledger : CooperativeLedger | None
            Ledger to seed. Defaults to a fresh in-memory ledger.
        config : LedgerConfig | None
            Config for the default ledger; ignored when ``ledger`` is given.
        """
        self.num_members = num_members
        self.loan_penetration = loan_penetration
        self.full_repayment_rate = full_repayment_rate
        self.service_charge_paid_rate = service_charge_paid_rate
        self.penalty_rate = penalty_rate
        self.seed = seed

        self.ledger = ledger or CooperativeLedger(InMemoryLedgerStore(), config)
        self._rng = random.Random(seed)
        self._member_gen = MemberGenerator(seed=seed)
        self._plan_gen = ContributionPlanGenerator(seed=seed)

    def generate(self, as_of: date | None = None) -> CooperativeLedger:
        """Seed the ledger.

        Returns
        -------
        CooperativeLedger
            The seeded ledger.
        """
        logger.info(
            "Starting cooperative year scenario: %d members, %.0f%% with loans",
            self.num_members,
            self.loan_penetration * 100,
        )

        members = []
        for profile in self._member_gen.generate_batch(self.num_members, as_of):
            member = self.ledger.create_member(
                profile.full_name, profile.contact_info, profile.join_date
            )
            members.append(member)

            self.ledger.purchase_shares(member.member_id, self._plan_gen.share_units())
            self.ledger.create_contribution(
                member.member_id, "SOCIAL_FUND", self._plan_gen.social_fund_amount()
            )
            if self._rng.random() < self.penalty_rate:
                self.ledger.record_penalty(member.member_id, self._plan_gen.penalty_amount())

        num_borrowers = int(len(members) * self.loan_penetration)
        for member in self._rng.sample(members, num_borrowers):
            self._seed_loan(member.member_id)

        logger.info(
            "Seeded %d members and %d loans",
            len(members),
            num_borrowers,
        )
        return self.ledger

    def _seed_loan(self, member_id: str) -> None:
        loan = self.ledger.create_loan(member_id, self._plan_gen.loan_principal(), term_months=12)
        self.ledger.update_loan_status(loan.loan_id, LoanStatus.RELEASED)
        self.ledger.update_loan_status(loan.loan_id, LoanStatus.ONGOING)

        if self._rng.random() < self.service_charge_paid_rate:
            self.ledger.record_payment(loan.loan_id, PaymentType.SERVICE_CHARGE)

        if self._rng.random() < self.full_repayment_rate:
            amount = loan.principal_amount
        else:
            amount = self._plan_gen.partial_payment(loan.principal_amount)
        self.ledger.record_payment(loan.loan_id, PaymentType.PRINCIPAL, amount)

    def get_summary(self) -> dict[str, Any]:
        """Get summary statistics for the seeded ledger.

        Returns
        -------
        dict[str, Any]
            Counts by loan status plus the dashboard totals.
        """
        loans = self.ledger.list_loans()
        status_counts: dict[str, int] = {}
        for loan in loans:
            status_counts[loan.status.value] = status_counts.get(loan.status.value, 0) + 1

        totals = self.ledger.totals()
        return {
            "members": totals.num_members,
            "loans": totals.num_loans,
            "loan_status_distribution": status_counts,
            "total_contributions": totals.total_contributions,
            "total_outstanding_loans": totals.total_outstanding_loans,
            "grand_total_cash_on_hand": totals.grand_total_cash_on_hand,
        }
