"""Ledger-wide and per-member roll-ups.

Totals are recomputed from the full collections every time they are asked
for. Nothing is cached, so there is no invalidation to get wrong.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from coop_ledger.accounting.loans import compute_outstanding_balance
from coop_ledger.models import Loan, LoanPayment, Member, PaymentType
from coop_ledger.money import ZERO


@dataclass(frozen=True)
class LedgerTotals:
    """Dashboard totals for the whole cooperative."""

    total_shares: Decimal
    total_social_fund: Decimal
    total_penalties: Decimal
    total_contributions: Decimal
    total_service_charge_earned: Decimal
    total_outstanding_loans: Decimal
    grand_total_cash_on_hand: Decimal
    num_members: int
    num_loans: int


@dataclass(frozen=True)
class MemberPosition:
    """One member's balances and loan exposure."""

    member_id: str
    full_name: str
    total_shares: Decimal
    total_social_fund: Decimal
    total_penalties: Decimal
    outstanding_loans: Decimal
    num_loans: int


def group_payments(payments: Iterable[LoanPayment]) -> dict[int, list[LoanPayment]]:
    """Index payments by loan id."""
    by_loan: dict[int, list[LoanPayment]] = defaultdict(list)
    for payment in payments:
        by_loan[payment.loan_id].append(payment)
    return by_loan


def total_service_charge_earned(payments: Iterable[LoanPayment]) -> Decimal:
    """Service charge actually collected; unpaid charges do not count."""
    return sum(
        (p.amount for p in payments if p.payment_type == PaymentType.SERVICE_CHARGE), ZERO
    )


def total_outstanding_loans(loans: Iterable[Loan], payments: Iterable[LoanPayment]) -> Decimal:
    """Sum of every loan's outstanding balance."""
    by_loan = group_payments(payments)
    return sum(
        (compute_outstanding_balance(loan, by_loan.get(loan.loan_id, [])) for loan in loans),
        ZERO,
    )


def compute_totals(
    members: Iterable[Member],
    loans: Iterable[Loan],
    payments: Iterable[LoanPayment],
) -> LedgerTotals:
    """Fold members, loans and payments into dashboard totals.

    Parameters
    ----------
    members : Iterable[Member]
        All members.
    loans : Iterable[Loan]
        All loans.
    payments : Iterable[LoanPayment]
        Every loan payment, across all loans.

    Returns
    -------
    LedgerTotals
        Unrounded totals; presentation rounds to centavos.
    """
    members = list(members)
    loans = list(loans)
    payments = list(payments)

    total_shares = sum((m.total_shares for m in members), ZERO)
    total_social_fund = sum((m.total_social_fund_contributions for m in members), ZERO)
    total_penalties = sum((m.total_penalties for m in members), ZERO)
    total_contributions = total_shares + total_social_fund
    earned = total_service_charge_earned(payments)
    outstanding = total_outstanding_loans(loans, payments)

    return LedgerTotals(
        total_shares=total_shares,
        total_social_fund=total_social_fund,
        total_penalties=total_penalties,
        total_contributions=total_contributions,
        total_service_charge_earned=earned,
        total_outstanding_loans=outstanding,
        grand_total_cash_on_hand=total_contributions + earned - outstanding,
        num_members=len(members),
        num_loans=len(loans),
    )


def member_position(
    member: Member,
    loans: Iterable[Loan],
    payments: Iterable[LoanPayment],
) -> MemberPosition:
    """Roll up one member's balances and the loans they have borrowed."""
    own_loans = [loan for loan in loans if loan.borrower_id == member.member_id]
    return MemberPosition(
        member_id=member.member_id,
        full_name=member.full_name,
        total_shares=member.total_shares,
        total_social_fund=member.total_social_fund_contributions,
        total_penalties=member.total_penalties,
        outstanding_loans=total_outstanding_loans(own_loans, payments),
        num_loans=len(own_loans),
    )
