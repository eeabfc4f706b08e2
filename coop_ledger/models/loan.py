"""Loan models."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from coop_ledger.models.enums import LoanStatus, PaymentType


@dataclass
class Loan:
    """Loan granted to a member.

    ``principal_amount`` and ``service_charge_amount`` are the balances still
    owed and shrink as payments are applied. ``original_principal`` and
    ``original_service_charge`` keep the figures fixed at creation so the
    outstanding balance can always be re-derived from the payment history.
    """

    loan_id: int
    borrower_id: str
    principal_amount: Decimal
    original_principal: Decimal
    service_charge_rate: Decimal
    service_charge_amount: Decimal
    original_service_charge: Decimal
    status: LoanStatus
    approved_at: datetime
    term_months: int | None = None
    released_at: datetime | None = None
    completed_at: datetime | None = None
    remarks: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LoanPayment:
    """Payment against a loan, either principal or the full service charge."""

    payment_id: int
    loan_id: int
    payment_type: PaymentType
    amount: Decimal
    payment_date: date
    remarks: str | None = None
    created_at: datetime | None = None
