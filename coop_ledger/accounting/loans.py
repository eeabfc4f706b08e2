"""Loan accounting rules: service charge, payments, balances and status.

Everything here is pure: functions take entities and return new ones, and
the store decides how to persist them atomically.
"""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from coop_ledger.exceptions import (
    InvalidAmountError,
    InvalidEntityStateError,
    InvalidStatusTransitionError,
)
from coop_ledger.models import Loan, LoanPayment, LoanStatus, PaymentType
from coop_ledger.money import ZERO, require_positive, round_money

DEFAULT_SERVICE_CHARGE_RATE = Decimal("0.02")

# COMPLETED and CANCELLED are terminal.
ALLOWED_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.APPROVED: frozenset(
        {LoanStatus.RELEASED, LoanStatus.ONGOING, LoanStatus.COMPLETED, LoanStatus.CANCELLED}
    ),
    LoanStatus.RELEASED: frozenset(
        {LoanStatus.ONGOING, LoanStatus.COMPLETED, LoanStatus.CANCELLED}
    ),
    LoanStatus.ONGOING: frozenset({LoanStatus.COMPLETED, LoanStatus.CANCELLED}),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.CANCELLED: frozenset(),
}


def compute_service_charge(principal: Decimal, rate: Decimal = DEFAULT_SERVICE_CHARGE_RATE) -> Decimal:
    """Service charge levied once at loan creation: ``round(principal * rate, 2)``."""
    return round_money(principal * rate)


def new_loan(
    borrower_id: str,
    principal_amount: Any,
    *,
    term_months: int | None = None,
    remarks: str | None = None,
    rate: Decimal = DEFAULT_SERVICE_CHARGE_RATE,
    now: datetime | None = None,
) -> Loan:
    """Build an unsaved ``APPROVED`` loan with its service charge computed.

    The returned loan has ``loan_id == 0``; the store assigns the real id.

    Raises
    ------
    InvalidAmountError
        If the principal is not a finite positive number or the term is not
        a positive whole number of months.
    """
    principal = require_positive(principal_amount, "Loan principal")
    if term_months is not None and (
        isinstance(term_months, bool) or not isinstance(term_months, int) or term_months <= 0
    ):
        raise InvalidAmountError(f"Loan term must be a positive number of months, got {term_months!r}")

    service_charge = compute_service_charge(principal, rate)
    approved_at = now or datetime.now()
    return Loan(
        loan_id=0,
        borrower_id=borrower_id,
        principal_amount=principal,
        original_principal=principal,
        service_charge_rate=rate,
        service_charge_amount=service_charge,
        original_service_charge=service_charge,
        status=LoanStatus.APPROVED,
        approved_at=approved_at,
        term_months=term_months,
        remarks=remarks,
        created_at=approved_at,
    )


def resolve_payment_amount(loan: Loan, payment_type: PaymentType, amount: Any = None) -> Decimal:
    """Work out how much a payment of ``payment_type`` is for.

    A service-charge payment always settles the loan's whole outstanding
    service charge, whatever the caller passed. A principal payment needs a
    caller-supplied, finite, positive amount.

    Raises
    ------
    InvalidAmountError
        If a principal amount is missing or not positive.
    InvalidEntityStateError
        If the loan is cancelled or there is nothing left to pay.
    """
    payment_type = PaymentType(payment_type)
    if loan.status == LoanStatus.CANCELLED:
        raise InvalidEntityStateError(f"Loan {loan.loan_id} is cancelled")

    if payment_type == PaymentType.SERVICE_CHARGE:
        if loan.service_charge_amount <= ZERO:
            raise InvalidEntityStateError(
                f"Loan {loan.loan_id} has no outstanding service charge"
            )
        return loan.service_charge_amount

    resolved = require_positive(amount, "Principal payment")
    if loan.principal_amount <= ZERO:
        raise InvalidEntityStateError(f"Loan {loan.loan_id} has no outstanding principal")
    return resolved


def apply_payment(
    loan: Loan,
    payment_type: PaymentType,
    amount: Decimal,
    *,
    now: datetime | None = None,
) -> Loan:
    """Return ``loan`` with a resolved payment applied.

    Principal payments reduce the principal, floored at zero, and complete
    the loan when the principal reaches exactly zero. Service-charge
    payments reduce the outstanding service charge, floored at zero.
    """
    payment_type = PaymentType(payment_type)
    stamp = now or datetime.now()

    if payment_type == PaymentType.SERVICE_CHARGE:
        return replace(
            loan,
            service_charge_amount=max(ZERO, loan.service_charge_amount - amount),
            updated_at=stamp,
        )

    new_principal = max(ZERO, loan.principal_amount - amount)
    updated = replace(loan, principal_amount=new_principal, updated_at=stamp)
    if new_principal == ZERO:
        updated = replace(updated, status=LoanStatus.COMPLETED, completed_at=stamp)
    return updated


def new_payment(
    loan: Loan,
    payment_type: PaymentType,
    amount: Any = None,
    *,
    payment_date: date | None = None,
    remarks: str | None = None,
    now: datetime | None = None,
) -> tuple[LoanPayment, Loan]:
    """Build an unsaved payment and the loan state it leaves behind.

    Returns
    -------
    tuple[LoanPayment, Loan]
        The payment (``payment_id == 0``) with its resolved amount, and the
        updated loan.
    """
    payment_type = PaymentType(payment_type)
    resolved = resolve_payment_amount(loan, payment_type, amount)
    stamp = now or datetime.now()
    payment = LoanPayment(
        payment_id=0,
        loan_id=loan.loan_id,
        payment_type=payment_type,
        amount=resolved,
        payment_date=payment_date or stamp.date(),
        remarks=remarks,
        created_at=stamp,
    )
    return payment, apply_payment(loan, payment_type, resolved, now=stamp)


def total_paid(payments: Iterable[LoanPayment], payment_type: PaymentType) -> Decimal:
    """Sum the amounts of payments of one type."""
    return sum((p.amount for p in payments if p.payment_type == payment_type), ZERO)


def outstanding_principal(loan: Loan, payments: Iterable[LoanPayment]) -> Decimal:
    """Principal still owed, re-derived from the payment history."""
    return max(ZERO, loan.original_principal - total_paid(payments, PaymentType.PRINCIPAL))


def outstanding_service_charge(loan: Loan, payments: Iterable[LoanPayment]) -> Decimal:
    """Service charge still owed, re-derived from the payment history."""
    return max(
        ZERO, loan.original_service_charge - total_paid(payments, PaymentType.SERVICE_CHARGE)
    )


def compute_outstanding_balance(loan: Loan, payments: Iterable[LoanPayment]) -> Decimal:
    """Unpaid principal plus unpaid service charge for one loan.

    Parameters
    ----------
    loan : Loan
        The loan.
    payments : Iterable[LoanPayment]
        The loan's full payment history. Payments for other loans are
        ignored.

    Returns
    -------
    Decimal
        Outstanding balance, never negative.
    """
    own = [p for p in payments if p.loan_id == loan.loan_id]
    return outstanding_principal(loan, own) + outstanding_service_charge(loan, own)


def transition_status(loan: Loan, status: LoanStatus, *, now: datetime | None = None) -> Loan:
    """Return ``loan`` moved to ``status`` if the transition table allows it.

    Setting the status a loan already has is a no-op. ``released_at`` and
    ``completed_at`` are stamped on entry to RELEASED and COMPLETED.

    Raises
    ------
    InvalidStatusTransitionError
        If the move is not allowed.
    """
    status = LoanStatus(status)
    if status == loan.status:
        return loan
    if status not in ALLOWED_TRANSITIONS[loan.status]:
        raise InvalidStatusTransitionError(
            f"Loan {loan.loan_id} cannot move from {loan.status.value} to {status.value}"
        )

    stamp = now or datetime.now()
    updated = replace(loan, status=status, updated_at=stamp)
    if status == LoanStatus.RELEASED:
        updated = replace(updated, released_at=stamp)
    elif status == LoanStatus.COMPLETED:
        updated = replace(updated, completed_at=stamp)
    return updated
