"""Year-end distribution of earnings and the social fund.

Each member gets back their own shares, a slice of the earnings pool in
proportion to their shares, and an equal split of the social fund. The
earnings pool is the service-charge base chosen by the operator plus all
penalties collected.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from coop_ledger.exceptions import ConfigurationError, ConfirmationError
from coop_ledger.models import DistributionBasis, Loan, LoanPayment, Member, PaymentType
from coop_ledger.money import ZERO, round_money


@dataclass(frozen=True)
class MemberDistribution:
    """Payout breakdown for one member."""

    member_id: str
    full_name: str
    total_shares: Decimal
    service_charge_earnings: Decimal
    social_fund_share: Decimal
    total_distribution: Decimal


@dataclass(frozen=True)
class DistributionSummary:
    """Pool sizes the per-member payouts were computed from."""

    basis: DistributionBasis
    total_shares: Decimal
    total_service_charge: Decimal
    total_penalties: Decimal
    total_service_charge_earnings: Decimal  # service charge + penalties
    total_social_fund: Decimal
    num_members: int


@dataclass(frozen=True)
class DistributionReport:
    """Per-member payouts plus the summary they were derived from."""

    members: tuple[MemberDistribution, ...]
    summary: DistributionSummary


def service_charge_base(
    loans: Iterable[Loan],
    payments: Iterable[LoanPayment],
    basis: DistributionBasis,
) -> Decimal:
    """Service-charge figure that feeds the earnings pool.

    Parameters
    ----------
    loans : Iterable[Loan]
        All loans of the period.
    payments : Iterable[LoanPayment]
        All payments of the period; only consulted for ``PAID_ONLY``.
    basis : DistributionBasis
        ``ACCRUED`` sums the service charge levied on each loan at creation;
        ``PAID_ONLY`` sums the service-charge payments made against them.
    """
    loans = list(loans)
    if basis == DistributionBasis.ACCRUED:
        return sum((loan.original_service_charge for loan in loans), ZERO)

    loan_ids = {loan.loan_id for loan in loans}
    return sum(
        (
            p.amount
            for p in payments
            if p.payment_type == PaymentType.SERVICE_CHARGE and p.loan_id in loan_ids
        ),
        ZERO,
    )


def compute_distribution(
    members: Iterable[Member],
    loans: Iterable[Loan],
    payments: Iterable[LoanPayment] = (),
    *,
    basis: DistributionBasis | None,
) -> DistributionReport:
    """Compute the year-end payout for every member.

    The inputs are only read, so the preview can be recomputed as often as
    needed and identical inputs always give an identical report.

    Parameters
    ----------
    members : Iterable[Member]
        All members, in the order the report should list them.
    loans : Iterable[Loan]
        All loans of the period.
    payments : Iterable[LoanPayment]
        All loan payments of the period (needed for ``PAID_ONLY``).
    basis : DistributionBasis | None
        Service-charge base. There is no default: ``None`` is rejected.

    Returns
    -------
    DistributionReport
        Per-member breakdown and summary.

    Raises
    ------
    ConfigurationError
        If no basis was chosen.
    """
    if basis is None:
        raise ConfigurationError(
            "Year-end distribution basis is not set; choose ACCRUED or PAID_ONLY"
        )
    basis = DistributionBasis(basis)

    members = list(members)
    total_shares = sum((m.total_shares for m in members), ZERO)
    total_penalties = sum((m.total_penalties for m in members), ZERO)
    total_social_fund = sum((m.total_social_fund_contributions for m in members), ZERO)
    total_service_charge = service_charge_base(loans, payments, basis)
    total_earnings = total_service_charge + total_penalties
    num_members = len(members)

    social_fund_share = total_social_fund / num_members if num_members > 0 else ZERO

    rows = []
    for member in members:
        if total_shares > ZERO:
            earnings = member.total_shares / total_shares * total_earnings
        else:
            earnings = ZERO
        rows.append(
            MemberDistribution(
                member_id=member.member_id,
                full_name=member.full_name,
                total_shares=member.total_shares,
                service_charge_earnings=round_money(earnings),
                social_fund_share=round_money(social_fund_share),
                # Rounded once from the unrounded parts
                total_distribution=round_money(
                    member.total_shares + earnings + social_fund_share
                ),
            )
        )

    return DistributionReport(
        members=tuple(rows),
        summary=DistributionSummary(
            basis=basis,
            total_shares=total_shares,
            total_service_charge=total_service_charge,
            total_penalties=total_penalties,
            total_service_charge_earnings=total_earnings,
            total_social_fund=total_social_fund,
            num_members=num_members,
        ),
    )


def confirm_clear(entered: str | None, expected: str) -> None:
    """Check the operator typed the year-end confirmation phrase.

    Raises
    ------
    ConfirmationError
        If the phrase is missing or does not match.
    """
    if not entered or entered.strip() != expected:
        raise ConfirmationError(
            f"Year-end clear not confirmed: type {expected!r} exactly to proceed"
        )
