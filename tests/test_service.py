"""Tests for the CooperativeLedger service."""

import logging
import threading
from datetime import date
from decimal import Decimal

import pytest

from coop_ledger.config import LedgerConfig, YearEndConfig
from coop_ledger.exceptions import (
    ConfigurationError,
    ConfirmationError,
    EntityNotFoundError,
    InvalidAmountError,
    InvalidEntityStateError,
    InvalidStatusTransitionError,
    StoreError,
    TransactionFailureError,
    ValidationError,
)
from coop_ledger.models import (
    ContributionType,
    DistributionBasis,
    LoanStatus,
    Member,
    PaymentType,
)
from coop_ledger.service import CooperativeLedger
from coop_ledger.store.memory import InMemoryLedgerStore


class TestMembers:
    """Tests for member operations."""

    def test_create_member(self, member: Member) -> None:
        assert member.full_name == "Maria Santos"
        assert member.join_date == date(2024, 1, 15)
        assert member.total_shares == Decimal("0")

    def test_create_member_defaults_join_date_to_today(self, ledger) -> None:
        assert ledger.create_member("Pedro Penduko").join_date == date.today()

    def test_create_member_parses_iso_date(self, ledger) -> None:
        assert ledger.create_member("Pedro", join_date="2024-02-29").join_date == date(2024, 2, 29)

    def test_create_member_bad_date(self, ledger) -> None:
        with pytest.raises(ValidationError, match="ISO"):
            ledger.create_member("Pedro", join_date="29/02/2024")

    def test_create_member_blank_name(self, ledger) -> None:
        with pytest.raises(ValidationError, match="name"):
            ledger.create_member("   ")

    def test_blank_contact_stored_as_none(self, ledger) -> None:
        assert ledger.create_member("Pedro", contact_info="  ").contact_info is None

    def test_update_member(self, ledger, member) -> None:
        updated = ledger.update_member(member.member_id, contact_info="0918-000-1111")

        assert updated.full_name == "Maria Santos"
        assert updated.contact_info == "0918-000-1111"

    def test_update_unknown_member(self, ledger) -> None:
        with pytest.raises(EntityNotFoundError):
            ledger.update_member("nobody", full_name="X")

    def test_list_members_by_join_date(self, ledger, member) -> None:
        ledger.create_member("Early Bird", join_date=date(2023, 6, 1))

        assert [m.full_name for m in ledger.list_members()] == ["Early Bird", "Maria Santos"]


class TestContributions:
    """Tests for contributions, share purchases and penalties."""

    def test_share_contribution_updates_totals(self, ledger, member) -> None:
        contribution = ledger.create_contribution(member.member_id, "SHARE", "1000")

        assert contribution.contribution_id == 1
        assert contribution.contribution_type == ContributionType.SHARE
        assert ledger.get_member(member.member_id).total_shares == Decimal("1000")

    def test_social_fund_contribution(self, ledger, member) -> None:
        ledger.create_contribution(member.member_id, ContributionType.SOCIAL_FUND, 300)

        refreshed = ledger.get_member(member.member_id)
        assert refreshed.total_social_fund_contributions == Decimal("300")
        assert refreshed.total_shares == Decimal("0")

    @pytest.mark.parametrize("amount", [0, -10, None, "NaN"])
    def test_invalid_amount(self, ledger, member, amount) -> None:
        with pytest.raises(InvalidAmountError):
            ledger.create_contribution(member.member_id, "SHARE", amount)

        assert ledger.list_member_contributions(member.member_id) == []


    def test_oversized_contribution_is_a_ledger_error(self, ledger, member) -> None:
        with pytest.raises(InvalidAmountError, match="too large"):
            ledger.create_contribution(member.member_id, "SHARE", "1e30")

        assert ledger.get_member(member.member_id).total_shares == Decimal("0")
    def test_unknown_type(self, ledger, member) -> None:
        with pytest.raises(ValidationError, match="contribution type"):
            ledger.create_contribution(member.member_id, "DONATION", 100)

    def test_unknown_member(self, ledger) -> None:
        with pytest.raises(EntityNotFoundError):
            ledger.create_contribution("ghost", "SHARE", 100)

    def test_purchase_shares(self, ledger, member) -> None:
        contribution = ledger.purchase_shares(member.member_id, 2)

        assert contribution.amount == Decimal("1000")
        assert ledger.get_member(member.member_id).total_shares == Decimal("1000")

    @pytest.mark.parametrize("units", [0, -1, 1.5])
    def test_purchase_shares_requires_whole_units(self, ledger, member, units) -> None:
        with pytest.raises(InvalidAmountError):
            ledger.purchase_shares(member.member_id, units)

    def test_record_penalty(self, ledger, member) -> None:
        updated = ledger.record_penalty(member.member_id, "50")

        assert updated.total_penalties == Decimal("50")

    def test_contribution_rolled_back_when_balance_update_fails(
        self, ledger, member, monkeypatch
    ) -> None:
        def fail(*args, **kwargs):
            raise StoreError("disk full")

        monkeypatch.setattr(ledger.store, "adjust_member_balances", fail)

        with pytest.raises(TransactionFailureError):
            ledger.create_contribution(member.member_id, "SHARE", 500)

        assert ledger.list_member_contributions(member.member_id) == []


class TestLoans:
    """Tests for loan operations."""

    def test_create_loan(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, "10000", term_months=12, remarks="Sari-sari store")

        assert loan.loan_id == 1
        assert loan.status == LoanStatus.APPROVED
        assert loan.service_charge_amount == Decimal("200.00")
        assert loan.term_months == 12

    def test_create_loan_uses_configured_rate(self, store, member) -> None:
        config = LedgerConfig()
        config.accounting.service_charge_rate = Decimal("0.05")
        ledger = CooperativeLedger(store, config)

        assert ledger.create_loan(member.member_id, 1000).service_charge_amount == Decimal("50.00")

    def test_create_loan_does_not_touch_member(self, ledger, member) -> None:
        ledger.create_loan(member.member_id, "10000")

        assert ledger.get_member(member.member_id) == member

    def test_create_loan_unknown_member(self, ledger) -> None:
        with pytest.raises(EntityNotFoundError):
            ledger.create_loan("ghost", 1000)

    @pytest.mark.parametrize("principal", [0, -5000, "inf", "1e30"])
    def test_create_loan_invalid_principal(self, ledger, member, principal) -> None:
        with pytest.raises(InvalidAmountError):
            ledger.create_loan(member.member_id, principal)

        assert ledger.list_loans() == []

    def test_update_status(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, 1000)

        released = ledger.update_loan_status(loan.loan_id, "released")

        assert released.status == LoanStatus.RELEASED
        assert released.released_at is not None

    def test_update_status_rejects_reopening(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, 1000)
        ledger.update_loan_status(loan.loan_id, LoanStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransitionError):
            ledger.update_loan_status(loan.loan_id, LoanStatus.APPROVED)

    def test_update_status_unknown_value(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, 1000)

        with pytest.raises(ValidationError, match="loan status"):
            ledger.update_loan_status(loan.loan_id, "WRITTEN_OFF")

    def test_delete_loan_cascades(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, 1000)
        ledger.record_payment(loan.loan_id, "PRINCIPAL", 100)

        ledger.delete_loan(loan.loan_id)

        assert ledger.list_loans() == []
        assert ledger.list_loan_payments(loan.loan_id) == []


class TestPayments:
    """Tests for recording loan payments."""

    def test_repayment_scenario(self, ledger, member) -> None:
        ledger.purchase_shares(member.member_id, 2)
        ledger.create_contribution(member.member_id, "SOCIAL_FUND", 300)
        loan = ledger.create_loan(member.member_id, "10000")
        assert loan.service_charge_amount == Decimal("200.00")

        ledger.record_payment(loan.loan_id, PaymentType.PRINCIPAL, "10000")

        settled = ledger.get_loan(loan.loan_id)
        assert settled.principal_amount == Decimal("0")
        assert settled.status == LoanStatus.COMPLETED
        assert ledger.loan_balance(loan.loan_id) == Decimal("200.00")

        charge = ledger.record_payment(loan.loan_id, PaymentType.SERVICE_CHARGE)

        assert charge.amount == Decimal("200.00")
        assert ledger.loan_balance(loan.loan_id) == Decimal("0")

    def test_service_charge_ignores_caller_amount(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, "10000")

        payment = ledger.record_payment(loan.loan_id, "SERVICE_CHARGE", "5")

        assert payment.amount == Decimal("200.00")

    def test_second_service_charge_payment_rejected(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, "10000")
        ledger.record_payment(loan.loan_id, "SERVICE_CHARGE")

        with pytest.raises(InvalidEntityStateError):
            ledger.record_payment(loan.loan_id, "SERVICE_CHARGE")

        assert len(ledger.list_loan_payments(loan.loan_id)) == 1

    @pytest.mark.parametrize("amount", [None, 0, -100, "abc", "1e30"])
    def test_invalid_principal_payment(self, ledger, member, amount) -> None:
        loan = ledger.create_loan(member.member_id, "10000")

        with pytest.raises(InvalidAmountError):
            ledger.record_payment(loan.loan_id, "PRINCIPAL", amount)

        assert ledger.list_loan_payments(loan.loan_id) == []

    def test_payment_on_unknown_loan(self, ledger) -> None:
        with pytest.raises(EntityNotFoundError):
            ledger.record_payment(404, "PRINCIPAL", 100)

    def test_payment_date_and_remarks(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, "10000")

        payment = ledger.create_loan_payment(
            loan.loan_id, "PRINCIPAL", 2500, payment_date="2024-05-15", remarks=" May "
        )

        assert payment.payment_date == date(2024, 5, 15)
        assert payment.remarks == "May"

    def test_payments_listed_by_date(self, ledger, member) -> None:
        loan = ledger.create_loan(member.member_id, "10000")
        ledger.record_payment(loan.loan_id, "PRINCIPAL", 300, payment_date="2024-06-01")
        ledger.record_payment(loan.loan_id, "PRINCIPAL", 100, payment_date="2024-05-01")

        amounts = [p.amount for p in ledger.list_loan_payments(loan.loan_id)]

        assert amounts == [Decimal("100"), Decimal("300")]

    def test_failed_loan_update_rolls_back_payment(
        self, ledger, member, monkeypatch, caplog
    ) -> None:
        loan = ledger.create_loan(member.member_id, "10000")

        def fail(*args, **kwargs):
            raise StoreError("connection reset")

        monkeypatch.setattr(ledger.store, "save_loan", fail)

        with caplog.at_level(logging.CRITICAL, logger="coop_ledger"):
            with pytest.raises(TransactionFailureError):
                ledger.record_payment(loan.loan_id, "PRINCIPAL", "10000")

        assert ledger.list_loan_payments(loan.loan_id) == []
        assert ledger.get_loan(loan.loan_id).principal_amount == Decimal("10000")
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)


class TestTotalsAndPositions:
    """Tests for dashboard totals and member positions."""

    def test_totals(self, ledger, member) -> None:
        ledger.purchase_shares(member.member_id, 2)
        ledger.create_contribution(member.member_id, "SOCIAL_FUND", 300)
        loan = ledger.create_loan(member.member_id, "10000")
        ledger.record_payment(loan.loan_id, "PRINCIPAL", "4000")
        ledger.record_payment(loan.loan_id, "SERVICE_CHARGE")

        totals = ledger.totals()

        assert totals.total_contributions == Decimal("1300")
        assert totals.total_service_charge_earned == Decimal("200.00")
        assert totals.total_outstanding_loans == Decimal("6000.00")
        assert totals.grand_total_cash_on_hand == Decimal("-4500.00")

    def test_member_position(self, ledger, member) -> None:
        ledger.purchase_shares(member.member_id, 1)
        ledger.create_loan(member.member_id, "5000")

        position = ledger.member_position(member.member_id)

        assert position.total_shares == Decimal("500")
        assert position.outstanding_loans == Decimal("5100.00")
        assert position.num_loans == 1


class TestYearEnd:
    """Tests for year-end preview, clear and close."""

    @pytest.fixture
    def two_members(self, ledger) -> tuple[Member, Member]:
        first = ledger.create_member("First", join_date=date(2024, 1, 1))
        second = ledger.create_member("Second", join_date=date(2024, 2, 1))
        ledger.purchase_shares(first.member_id, 2)
        ledger.purchase_shares(second.member_id, 6)
        ledger.create_contribution(first.member_id, "SOCIAL_FUND", 200)
        ledger.create_loan(first.member_id, "5000")
        return first, second

    def test_preview(self, ledger, two_members) -> None:
        report = ledger.preview_year_end()

        totals = [row.total_distribution for row in report.members]
        assert totals == [Decimal("1125.00"), Decimal("3175.00")]

    def test_preview_is_read_only(self, ledger, two_members) -> None:
        before = ledger.list_members()

        ledger.preview_year_end()
        ledger.preview_year_end()

        assert ledger.list_members() == before
        assert len(ledger.list_loans()) == 1

    def test_preview_basis_override(self, ledger, two_members) -> None:
        report = ledger.preview_year_end("paid_only")

        assert report.summary.basis == DistributionBasis.PAID_ONLY
        assert report.summary.total_service_charge == Decimal("0")

    def test_preview_without_basis(self, store) -> None:
        ledger = CooperativeLedger(store, LedgerConfig(year_end=YearEndConfig()))

        with pytest.raises(ConfigurationError):
            ledger.preview_year_end()

    def test_clear_requires_phrase(self, ledger, two_members) -> None:
        with pytest.raises(ConfirmationError):
            ledger.clear_year_data("yes")

        assert len(ledger.list_loans()) == 1

    def test_clear_keeps_members(self, ledger, two_members) -> None:
        member_ids = [m.member_id for m in ledger.list_members()]

        counts = ledger.clear_year_data("CLEAR YEAR DATA")

        assert counts.loans == 1
        assert counts.contributions == 3
        assert ledger.list_loans() == []
        assert [m.member_id for m in ledger.list_members()] == member_ids
        for member_id in member_ids:
            assert ledger.list_member_contributions(member_id) == []
            assert ledger.get_member(member_id).total_shares == Decimal("0")

    def test_close_year_returns_report(self, ledger, two_members) -> None:
        report = ledger.close_year("CLEAR YEAR DATA")

        assert report.summary.num_members == 2
        assert report.members[0].total_distribution == Decimal("1125.00")
        assert ledger.list_loans() == []
        assert ledger.totals().total_shares == Decimal("0")

    def test_close_year_wrong_phrase_changes_nothing(self, ledger, two_members) -> None:
        with pytest.raises(ConfirmationError):
            ledger.close_year("CLEAR")

        assert ledger.totals().total_shares == Decimal("4000")

    def test_clear_failure_is_reported(self, ledger, two_members, monkeypatch) -> None:
        store = ledger.store
        original = store.clear_year_data

        def clear_then_fail(**kwargs):
            original(**kwargs)
            raise StoreError("lost connection after deletes")

        monkeypatch.setattr(store, "clear_year_data", clear_then_fail)

        with pytest.raises(TransactionFailureError):
            ledger.clear_year_data("CLEAR YEAR DATA")

        assert len(ledger.list_loans()) == 1
        assert ledger.totals().total_shares == Decimal("4000")

    def test_close_year_is_one_transaction(self, ledger, two_members, monkeypatch) -> None:
        store = ledger.store
        depths = []
        original = store.clear_year_data

        def recording_clear(**kwargs):
            depths.append(store._depth)
            return original(**kwargs)

        monkeypatch.setattr(store, "clear_year_data", recording_clear)

        ledger.close_year("CLEAR YEAR DATA")

        assert depths == [1]

    def test_write_during_close_waits_for_clear(self, ledger, two_members, monkeypatch) -> None:
        first, _ = two_members
        store = ledger.store
        original = store.clear_year_data
        writer = threading.Thread(target=ledger.record_penalty, args=(first.member_id, 50))
        blocked = []

        def clear_with_concurrent_write(**kwargs):
            writer.start()
            writer.join(timeout=0.2)
            blocked.append(writer.is_alive())
            return original(**kwargs)

        monkeypatch.setattr(store, "clear_year_data", clear_with_concurrent_write)

        report = ledger.close_year("CLEAR YEAR DATA")
        writer.join(timeout=5)

        assert blocked == [True]
        assert report.summary.num_members == 2
        assert ledger.get_member(first.member_id).total_penalties == Decimal("50")

    def test_close_failure_rolls_back_everything(self, ledger, two_members, monkeypatch) -> None:
        def fail(**kwargs):
            raise StoreError("disk full")

        monkeypatch.setattr(ledger.store, "clear_year_data", fail)

        with pytest.raises(TransactionFailureError):
            ledger.close_year("CLEAR YEAR DATA")

        assert len(ledger.list_loans()) == 1
        assert ledger.totals().total_shares == Decimal("4000")

    def test_lock_year_data_requires_transaction(self, store) -> None:
        with pytest.raises(StoreError, match="inside a transaction"):
            store.lock_year_data()
