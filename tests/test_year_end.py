"""Tests for the year-end distribution."""

import copy
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from coop_ledger.accounting import compute_distribution, confirm_clear
from coop_ledger.accounting.loans import new_loan
from coop_ledger.accounting.year_end import service_charge_base
from coop_ledger.exceptions import ConfigurationError, ConfirmationError
from coop_ledger.models import DistributionBasis, LoanPayment, Member, PaymentType


def _member(member_id: str, shares: str, social: str = "0", penalties: str = "0") -> Member:
    return Member(
        member_id=member_id,
        full_name=f"Member {member_id}",
        join_date=date(2024, 1, 1),
        total_shares=Decimal(shares),
        total_social_fund_contributions=Decimal(social),
        total_penalties=Decimal(penalties),
    )


@pytest.fixture
def members() -> list[Member]:
    return [_member("m1", "1000", "200"), _member("m2", "3000")]


@pytest.fixture
def loans():
    # 5,000 at 2% -> 100.00 service charge
    return [replace(new_loan("m1", "5000"), loan_id=1)]


class TestComputeDistribution:
    """Tests for compute_distribution."""

    def test_two_member_split(self, members, loans) -> None:
        report = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)
        first, second = report.members

        assert first.service_charge_earnings == Decimal("25.00")
        assert first.social_fund_share == Decimal("100.00")
        assert first.total_distribution == Decimal("1125.00")
        assert second.service_charge_earnings == Decimal("75.00")
        assert second.social_fund_share == Decimal("100.00")
        assert second.total_distribution == Decimal("3175.00")

    def test_summary(self, members, loans) -> None:
        summary = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED).summary

        assert summary.basis == DistributionBasis.ACCRUED
        assert summary.total_shares == Decimal("4000")
        assert summary.total_service_charge == Decimal("100.00")
        assert summary.total_penalties == Decimal("0")
        assert summary.total_service_charge_earnings == Decimal("100.00")
        assert summary.total_social_fund == Decimal("200")
        assert summary.num_members == 2

    def test_penalties_join_the_earnings_pool(self, loans) -> None:
        members = [_member("m1", "1000", penalties="100"), _member("m2", "3000")]

        report = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)

        assert report.summary.total_service_charge_earnings == Decimal("200.00")
        assert report.members[1].service_charge_earnings == Decimal("150.00")

    def test_zero_share_member_gets_social_fund_only(self, loans) -> None:
        members = [_member("m1", "1000", "300"), _member("m2", "0")]

        report = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)
        zero = report.members[1]

        assert zero.service_charge_earnings == Decimal("0.00")
        assert zero.social_fund_share == Decimal("150.00")
        assert zero.total_distribution == Decimal("150.00")

    def test_nobody_holds_shares(self, loans) -> None:
        members = [_member("m1", "0", "100"), _member("m2", "0", "100")]

        report = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)

        assert all(row.service_charge_earnings == Decimal("0.00") for row in report.members)
        assert all(row.total_distribution == Decimal("100.00") for row in report.members)

    def test_no_members(self, loans) -> None:
        report = compute_distribution([], loans, basis=DistributionBasis.ACCRUED)

        assert report.members == ()
        assert report.summary.num_members == 0

    def test_total_rounded_once(self) -> None:
        members = [_member(str(i), "1000", "100") for i in range(3)]

        report = compute_distribution(members, [], basis=DistributionBasis.ACCRUED)

        # 300 / 3 = 100 exactly; each member gets back 1000 + 100
        assert [row.total_distribution for row in report.members] == [Decimal("1100.00")] * 3

    def test_uneven_social_fund_rounds_half_up(self) -> None:
        members = [_member(str(i), "0") for i in range(3)]
        members[0] = _member("0", "0", "100")

        report = compute_distribution(members, [], basis=DistributionBasis.ACCRUED)

        assert report.members[0].social_fund_share == Decimal("33.33")

    def test_idempotent_and_non_mutating(self, members, loans) -> None:
        before = copy.deepcopy((members, loans))

        first = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)
        second = compute_distribution(members, loans, basis=DistributionBasis.ACCRUED)

        assert first == second
        assert (members, loans) == before

    def test_basis_required(self, members, loans) -> None:
        with pytest.raises(ConfigurationError, match="basis"):
            compute_distribution(members, loans, basis=None)


class TestDistributionBasis:
    """Tests for accrued versus paid-only service-charge bases."""

    def test_accrued_counts_unpaid_charges(self, loans) -> None:
        assert service_charge_base(loans, [], DistributionBasis.ACCRUED) == Decimal("100.00")

    def test_paid_only_counts_payments(self, loans) -> None:
        assert service_charge_base(loans, [], DistributionBasis.PAID_ONLY) == Decimal("0")

    def test_paid_only_report(self, members, loans) -> None:
        payments = [
            LoanPayment(
                payment_id=1,
                loan_id=1,
                payment_type=PaymentType.SERVICE_CHARGE,
                amount=Decimal("100.00"),
                payment_date=date(2024, 5, 1),
            )
        ]

        paid = compute_distribution(members, loans, payments, basis=DistributionBasis.PAID_ONLY)
        unpaid = compute_distribution(members, loans, basis=DistributionBasis.PAID_ONLY)

        assert paid.members[0].service_charge_earnings == Decimal("25.00")
        assert unpaid.members[0].service_charge_earnings == Decimal("0.00")

    def test_accrued_uses_original_charge_after_payment(self, loans) -> None:
        settled = [replace(loans[0], service_charge_amount=Decimal("0"))]

        assert service_charge_base(settled, [], DistributionBasis.ACCRUED) == Decimal("100.00")


class TestConfirmClear:
    """Tests for confirm_clear."""

    def test_exact_phrase(self) -> None:
        confirm_clear("CLEAR YEAR DATA", "CLEAR YEAR DATA")

    def test_surrounding_whitespace_ignored(self) -> None:
        confirm_clear("  CLEAR YEAR DATA\n", "CLEAR YEAR DATA")

    @pytest.mark.parametrize("entered", [None, "", "clear year data", "CLEAR"])
    def test_wrong_phrase(self, entered) -> None:
        with pytest.raises(ConfirmationError):
            confirm_clear(entered, "CLEAR YEAR DATA")
