"""Store boundary the ledger service talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from decimal import Decimal

from coop_ledger.models import Contribution, Loan, LoanPayment, Member


@dataclass(frozen=True)
class ClearedCounts:
    """Rows removed by a year-end clear."""

    loan_payments: int
    loans: int
    contributions: int


class LedgerStore(ABC):
    """Persistence for members, loans, payments and contributions.

    Every method is a single store operation. Callers that need several
    operations to succeed or fail together wrap them in ``transaction()``;
    a store error raised inside it rolls everything back and surfaces as
    ``TransactionFailureError``.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Open an all-or-nothing unit of work (re-entrant)."""

    # Members
    @abstractmethod
    def add_member(self, member: Member) -> Member:
        """Insert a member and return it as stored."""

    @abstractmethod
    def get_member(self, member_id: str) -> Member:
        """Fetch a member or raise ``EntityNotFoundError``."""

    @abstractmethod
    def list_members(self) -> list[Member]:
        """All members, oldest join date first."""

    @abstractmethod
    def save_member(self, member: Member) -> Member:
        """Persist a member's profile fields."""

    @abstractmethod
    def adjust_member_balances(
        self,
        member_id: str,
        *,
        shares: Decimal = Decimal("0"),
        social_fund: Decimal = Decimal("0"),
        penalties: Decimal = Decimal("0"),
    ) -> Member:
        """Add the given deltas to a member's running balances."""

    # Loans
    @abstractmethod
    def add_loan(self, loan: Loan) -> Loan:
        """Insert a loan and return it with its assigned id."""

    @abstractmethod
    def get_loan(self, loan_id: int, *, for_update: bool = False) -> Loan:
        """Fetch a loan or raise ``EntityNotFoundError``.

        ``for_update`` locks the loan until the enclosing transaction ends.
        """

    @abstractmethod
    def list_loans(self) -> list[Loan]:
        """All loans, most recently approved first."""

    @abstractmethod
    def save_loan(self, loan: Loan) -> Loan:
        """Persist a loan's balances, status and timestamps."""

    @abstractmethod
    def delete_loan(self, loan_id: int) -> None:
        """Hard-delete a loan and its payments."""

    # Loan payments
    @abstractmethod
    def add_loan_payment(self, payment: LoanPayment) -> LoanPayment:
        """Insert a payment and return it with its assigned id."""

    @abstractmethod
    def list_loan_payments(self, loan_id: int) -> list[LoanPayment]:
        """Payments for one loan, earliest payment date first."""

    @abstractmethod
    def list_all_loan_payments(self) -> list[LoanPayment]:
        """Every loan payment."""

    # Contributions
    @abstractmethod
    def add_contribution(self, contribution: Contribution) -> Contribution:
        """Insert a contribution and return it with its assigned id."""

    @abstractmethod
    def list_member_contributions(self, member_id: str) -> list[Contribution]:
        """Contributions for one member, earliest first."""

    @abstractmethod
    def list_contributions(self) -> list[Contribution]:
        """Every contribution."""

    # Year end
    @abstractmethod
    def clear_year_data(self, *, reset_penalties: bool = True) -> ClearedCounts:
        """Delete payments, then loans, then contributions; zero member balances."""

    @abstractmethod
    def lock_year_data(self) -> None:
        """Block writers to the year's tables until the enclosing transaction ends.

        Must be called inside ``transaction()`` so that a distribution report
        and the clear that follows it see the same rows.
        """
