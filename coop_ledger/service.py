"""Cooperative ledger service: the operations callers use.

``CooperativeLedger`` validates input, applies the accounting rules and
drives the store, wrapping every multi-step change in a single store
transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, TypeVar

from coop_ledger.accounting.aggregation import (
    LedgerTotals,
    MemberPosition,
    compute_totals,
    member_position,
)
from coop_ledger.accounting.loans import (
    compute_outstanding_balance,
    new_loan,
    new_payment,
    transition_status,
)
from coop_ledger.accounting.year_end import (
    DistributionReport,
    compute_distribution,
    confirm_clear,
)
from coop_ledger.config import LedgerConfig
from coop_ledger.exceptions import InvalidAmountError, TransactionFailureError, ValidationError
from coop_ledger.logging import get_logger
from coop_ledger.models import (
    Contribution,
    ContributionType,
    DistributionBasis,
    Loan,
    LoanPayment,
    LoanStatus,
    Member,
    PaymentType,
)
from coop_ledger.money import require_positive
from coop_ledger.store.base import ClearedCounts, LedgerStore

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)


class CooperativeLedger:
    """Members, loans, payments, contributions and the year-end close.

    Parameters
    ----------
    store : LedgerStore
        Where entities live.
    config : LedgerConfig | None
        Pricing and year-end settings (defaults when omitted).
    """

    def __init__(self, store: LedgerStore, config: LedgerConfig | None = None) -> None:
        self.store = store
        self.config = config or LedgerConfig()

    # Members
    def list_members(self) -> list[Member]:
        return self.store.list_members()

    def get_member(self, member_id: str) -> Member:
        return self.store.get_member(member_id)

    def create_member(
        self,
        full_name: str,
        contact_info: str | None = None,
        join_date: date | str | None = None,
    ) -> Member:
        """Register a member with zero balances."""
        member = self.store.add_member(
            Member(
                member_id="",
                full_name=_require_name(full_name),
                contact_info=_blank_to_none(contact_info),
                join_date=_parse_date(join_date) or date.today(),
            )
        )
        logger.info("Created member %s (%s)", member.member_id, member.full_name)
        return member

    def update_member(
        self,
        member_id: str,
        full_name: str | None = None,
        contact_info: str | None = None,
    ) -> Member:
        """Change a member's name and/or contact info; balances are untouched."""
        current = self.store.get_member(member_id)
        if full_name is not None:
            current.full_name = _require_name(full_name)
        if contact_info is not None:
            current.contact_info = _blank_to_none(contact_info)
        member = self.store.save_member(current)
        logger.info("Updated member %s", member_id)
        return member

    def member_position(self, member_id: str) -> MemberPosition:
        member = self.store.get_member(member_id)
        return member_position(member, self.store.list_loans(), self.store.list_all_loan_payments())

    # Loans
    def list_loans(self) -> list[Loan]:
        return self.store.list_loans()

    def get_loan(self, loan_id: int) -> Loan:
        return self.store.get_loan(loan_id)

    def create_loan(
        self,
        borrower_id: str,
        principal_amount: Any,
        term_months: int | None = None,
        remarks: str | None = None,
    ) -> Loan:
        """Approve a loan; the service charge is fixed now from the configured rate."""
        loan = new_loan(
            borrower_id,
            principal_amount,
            term_months=term_months,
            remarks=_blank_to_none(remarks),
            rate=self.config.accounting.service_charge_rate,
        )
        self.store.get_member(borrower_id)
        loan = self.store.add_loan(loan)
        logger.info(
            "Created loan %s for member %s: principal %s, service charge %s",
            loan.loan_id,
            borrower_id,
            loan.principal_amount,
            loan.service_charge_amount,
            extra={"ledger": {"loan_id": loan.loan_id, "member_id": borrower_id}},
        )
        return loan

    def update_loan_status(self, loan_id: int, status: LoanStatus | str) -> Loan:
        """Move a loan to another status allowed by the transition table."""
        target = _parse_enum(LoanStatus, status, "loan status")
        with self._unit_of_work(f"status change on loan {loan_id}"):
            loan = self.store.get_loan(loan_id, for_update=True)
            previous = loan.status
            loan = self.store.save_loan(transition_status(loan, target))
        logger.info("Loan %s status %s -> %s", loan_id, previous.value, loan.status.value)
        return loan

    def delete_loan(self, loan_id: int) -> None:
        """Hard-delete a loan together with its payments."""
        self.store.delete_loan(loan_id)
        logger.info("Deleted loan %s", loan_id)

    def loan_balance(self, loan_id: int) -> Decimal:
        """Outstanding principal plus service charge of one loan."""
        loan = self.store.get_loan(loan_id)
        return compute_outstanding_balance(loan, self.store.list_loan_payments(loan_id))

    # Loan payments
    def list_loan_payments(self, loan_id: int) -> list[LoanPayment]:
        return self.store.list_loan_payments(loan_id)

    def record_payment(
        self,
        loan_id: int,
        payment_type: PaymentType | str,
        amount: Any = None,
        payment_date: date | str | None = None,
        remarks: str | None = None,
    ) -> LoanPayment:
        """Record a loan payment and apply it to the loan in one transaction.

        A ``SERVICE_CHARGE`` payment always settles the loan's whole
        outstanding service charge; any ``amount`` passed is ignored. A
        ``PRINCIPAL`` payment needs a positive ``amount`` and completes the
        loan when it brings the principal to zero.

        Raises
        ------
        InvalidAmountError
            If a principal payment amount is missing or not positive.
        EntityNotFoundError
            If the loan does not exist.
        InvalidEntityStateError
            If the loan is cancelled or has nothing left to pay.
        TransactionFailureError
            If the store failed partway; nothing was written.
        """
        payment_type = _parse_enum(PaymentType, payment_type, "payment type")
        when = _parse_date(payment_date)
        if payment_type == PaymentType.PRINCIPAL:
            require_positive(amount, "Principal payment")
        elif amount is not None:
            logger.debug("Ignoring caller amount %r for service-charge payment on loan %s", amount, loan_id)
            amount = None

        with self._unit_of_work(f"payment on loan {loan_id}"):
            loan = self.store.get_loan(loan_id, for_update=True)
            payment, updated = new_payment(
                loan,
                payment_type,
                amount,
                payment_date=when,
                remarks=_blank_to_none(remarks),
            )
            payment = self.store.add_loan_payment(payment)
            updated = self.store.save_loan(updated)

        logger.info(
            "Recorded %s payment %s of %s on loan %s",
            payment.payment_type.value,
            payment.payment_id,
            payment.amount,
            loan_id,
            extra={"ledger": {"loan_id": loan_id, "payment_id": payment.payment_id}},
        )
        if updated.status == LoanStatus.COMPLETED and loan.status != LoanStatus.COMPLETED:
            logger.info("Loan %s fully paid; marked COMPLETED", loan_id)
        return payment

    create_loan_payment = record_payment

    # Contributions
    def list_member_contributions(self, member_id: str) -> list[Contribution]:
        return self.store.list_member_contributions(member_id)

    def create_contribution(
        self,
        member_id: str,
        contribution_type: ContributionType | str,
        amount: Any,
        contribution_date: date | str | None = None,
        remarks: str | None = None,
    ) -> Contribution:
        """Record a share purchase or social-fund deposit and update the member's totals."""
        contribution_type = _parse_enum(ContributionType, contribution_type, "contribution type")
        value = require_positive(amount, "Contribution")
        contribution = Contribution(
            contribution_id=0,
            member_id=member_id,
            contribution_type=contribution_type,
            amount=value,
            contribution_date=_parse_date(contribution_date) or date.today(),
            remarks=_blank_to_none(remarks),
        )

        with self._unit_of_work(f"contribution for member {member_id}"):
            self.store.get_member(member_id)
            contribution = self.store.add_contribution(contribution)
            if contribution_type == ContributionType.SHARE:
                self.store.adjust_member_balances(member_id, shares=value)
            else:
                self.store.adjust_member_balances(member_id, social_fund=value)

        logger.info(
            "Recorded %s contribution of %s for member %s",
            contribution_type.value,
            value,
            member_id,
        )
        return contribution

    def purchase_shares(
        self,
        member_id: str,
        units: int,
        contribution_date: date | str | None = None,
        remarks: str | None = None,
    ) -> Contribution:
        """Buy whole share units at the configured unit value."""
        if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
            raise InvalidAmountError(f"Share units must be a positive whole number, got {units!r}")
        amount = units * self.config.accounting.share_unit_value
        return self.create_contribution(
            member_id, ContributionType.SHARE, amount, contribution_date, remarks
        )

    def record_penalty(self, member_id: str, amount: Any) -> Member:
        """Add a penalty (e.g. for missed meetings) to the member's total."""
        value = require_positive(amount, "Penalty")
        member = self.store.adjust_member_balances(member_id, penalties=value)
        logger.info("Recorded penalty of %s for member %s", value, member_id)
        return member

    # Dashboard
    def totals(self) -> LedgerTotals:
        """Recompute the dashboard totals from the current data."""
        return compute_totals(
            self.store.list_members(),
            self.store.list_loans(),
            self.store.list_all_loan_payments(),
        )

    # Year end
    def preview_year_end(self, basis: DistributionBasis | str | None = None) -> DistributionReport:
        """Compute the year-end distribution without changing anything.

        ``basis`` overrides the configured distribution basis; one of the two
        must be set.
        """
        if basis is not None:
            basis = _parse_enum(DistributionBasis, basis, "distribution basis")
        else:
            basis = self.config.year_end.distribution_basis
        return compute_distribution(
            self.store.list_members(),
            self.store.list_loans(),
            self.store.list_all_loan_payments(),
            basis=basis,
        )

    def clear_year_data(self, confirmation: str | None) -> ClearedCounts:
        """Delete all payments, loans and contributions; members stay.

        ``confirmation`` must equal the configured phrase. The phrase only
        prevents accidental clears and is not an access control.

        Raises
        ------
        ConfirmationError
            If the phrase does not match; nothing is deleted.
        TransactionFailureError
            If the store failed partway; the clear was rolled back.
        """
        confirm_clear(confirmation, self.config.year_end.confirmation_phrase)

        logger.warning("Year-end clear starting: deleting loan payments, loans and contributions")
        with self._unit_of_work("year-end clear"):
            self.store.lock_year_data()
            counts = self._clear()
        self._log_cleared(counts)
        return counts

    def close_year(
        self,
        confirmation: str | None,
        basis: DistributionBasis | str | None = None,
    ) -> DistributionReport:
        """Compute the final distribution and clear the year's data atomically.

        The report and the clear run in one transaction with the year's
        tables locked, so a write made while the year is closing either
        waits for the clear or is part of the report. The report is
        returned so it can still be shown after the data it was computed
        from is gone.

        Raises
        ------
        ConfirmationError
            If the phrase does not match; nothing is deleted.
        ConfigurationError
            If no distribution basis is set; nothing is deleted.
        TransactionFailureError
            If the store failed partway; the close was rolled back.
        """
        confirm_clear(confirmation, self.config.year_end.confirmation_phrase)

        logger.warning("Year-end close starting: computing distribution, then clearing")
        with self._unit_of_work("year-end close"):
            self.store.lock_year_data()
            report = self.preview_year_end(basis)
            counts = self._clear()
        self._log_cleared(counts)
        return report

    def _clear(self) -> ClearedCounts:
        return self.store.clear_year_data(reset_penalties=self.config.year_end.reset_penalties)

    @staticmethod
    def _log_cleared(counts: ClearedCounts) -> None:
        logger.warning(
            "Year-end clear done: %d payments, %d loans, %d contributions deleted",
            counts.loan_payments,
            counts.loans,
            counts.contributions,
        )

    @contextmanager
    def _unit_of_work(self, description: str) -> Iterator[None]:
        try:
            with self.store.transaction():
                yield
        except TransactionFailureError:
            logger.critical("Transaction failed during %s; changes rolled back", description, exc_info=True)
            raise


def _parse_enum(enum_type: type[E], value: Any, what: str) -> E:
    try:
        return enum_type(value.upper() if isinstance(value, str) else value)
    except ValueError:
        choices = ", ".join(e.value for e in enum_type)
        raise ValidationError(f"Unknown {what} {value!r} (expected one of: {choices})") from None


def _parse_date(value: date | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Dates must be ISO formatted (YYYY-MM-DD), got {value!r}") from None


def _require_name(full_name: str | None) -> str:
    name = (full_name or "").strip()
    if not name:
        raise ValidationError("Member name is required")
    return name


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
