"""In-memory ledger store with referential integrity."""

from __future__ import annotations

import copy
import itertools
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterator

from coop_ledger.exceptions import (
    EntityNotFoundError,
    ReferentialIntegrityError,
    StoreError,
    TransactionFailureError,
)
from coop_ledger.models import Contribution, Loan, LoanPayment, Member
from coop_ledger.money import ZERO
from coop_ledger.store.base import ClearedCounts, LedgerStore


@dataclass
class _Tables:
    members: dict[str, Member] = field(default_factory=dict)
    loans: dict[int, Loan] = field(default_factory=dict)
    loan_payments: dict[int, LoanPayment] = field(default_factory=dict)
    contributions: dict[int, Contribution] = field(default_factory=dict)

    # Relationship indexes
    _member_loans: dict[str, list[int]] = field(default_factory=dict)
    _member_contributions: dict[str, list[int]] = field(default_factory=dict)
    _loan_payments: dict[int, list[int]] = field(default_factory=dict)


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed store for tests, demos and single-process use.

    Entities are copied on the way in and out, so callers never hold a
    reference into the store. ``transaction()`` snapshots the tables and
    restores them if the block raises; a re-entrant lock serializes
    transactions, which gives ``get_loan(for_update=True)`` its meaning.
    """

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = threading.RLock()
        self._depth = 0
        self._loan_ids = itertools.count(1)
        self._payment_ids = itertools.count(1)
        self._contribution_ids = itertools.count(1)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy(self._tables)
            self._depth = 1
            try:
                yield
            except StoreError as exc:
                self._tables = snapshot
                if isinstance(exc, TransactionFailureError):
                    raise
                raise TransactionFailureError(f"Transaction rolled back: {exc}") from exc
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._depth = 0

    # Members
    def add_member(self, member: Member) -> Member:
        with self._lock:
            now = datetime.now()
            stored = replace(
                member,
                member_id=member.member_id or str(uuid.uuid4()),
                created_at=member.created_at or now,
                updated_at=member.updated_at or now,
            )
            if stored.member_id in self._tables.members:
                raise StoreError(f"Member {stored.member_id} already exists")
            self._tables.members[stored.member_id] = stored
            self._tables._member_loans[stored.member_id] = []
            self._tables._member_contributions[stored.member_id] = []
            return replace(stored)

    def get_member(self, member_id: str) -> Member:
        with self._lock:
            return replace(self._member(member_id))

    def list_members(self) -> list[Member]:
        with self._lock:
            # dicts keep insertion order, so equal join dates stay in creation order
            members = sorted(self._tables.members.values(), key=lambda m: m.join_date)
            return [replace(m) for m in members]

    def save_member(self, member: Member) -> Member:
        with self._lock:
            current = self._member(member.member_id)
            stored = replace(
                current,
                full_name=member.full_name,
                contact_info=member.contact_info,
                updated_at=datetime.now(),
            )
            self._tables.members[stored.member_id] = stored
            return replace(stored)

    def adjust_member_balances(
        self,
        member_id: str,
        *,
        shares: Decimal = ZERO,
        social_fund: Decimal = ZERO,
        penalties: Decimal = ZERO,
    ) -> Member:
        with self._lock:
            current = self._member(member_id)
            stored = replace(
                current,
                total_shares=current.total_shares + shares,
                total_social_fund_contributions=current.total_social_fund_contributions + social_fund,
                total_penalties=current.total_penalties + penalties,
                updated_at=datetime.now(),
            )
            if min(stored.total_shares, stored.total_social_fund_contributions, stored.total_penalties) < ZERO:
                raise StoreError(f"Member {member_id} balances cannot go negative")
            self._tables.members[member_id] = stored
            return replace(stored)

    # Loans
    def add_loan(self, loan: Loan) -> Loan:
        with self._lock:
            if loan.borrower_id not in self._tables.members:
                raise ReferentialIntegrityError(f"Member {loan.borrower_id} not found")
            self._check_non_negative(loan)

            stored = replace(loan, loan_id=next(self._loan_ids), updated_at=loan.updated_at or datetime.now())
            self._tables.loans[stored.loan_id] = stored
            self._tables._member_loans[stored.borrower_id].append(stored.loan_id)
            self._tables._loan_payments[stored.loan_id] = []
            return replace(stored)

    def get_loan(self, loan_id: int, *, for_update: bool = False) -> Loan:
        with self._lock:
            return replace(self._loan(loan_id))

    def list_loans(self) -> list[Loan]:
        with self._lock:
            loans = sorted(
                self._tables.loans.values(),
                key=lambda l: (l.approved_at, l.loan_id),
                reverse=True,
            )
            return [replace(l) for l in loans]

    def save_loan(self, loan: Loan) -> Loan:
        with self._lock:
            self._loan(loan.loan_id)
            self._check_non_negative(loan)
            self._tables.loans[loan.loan_id] = replace(loan)
            return replace(loan)

    def delete_loan(self, loan_id: int) -> None:
        with self._lock:
            loan = self._loan(loan_id)
            for payment_id in self._tables._loan_payments.pop(loan_id, []):
                del self._tables.loan_payments[payment_id]
            self._tables._member_loans[loan.borrower_id].remove(loan_id)
            del self._tables.loans[loan_id]

    # Loan payments
    def add_loan_payment(self, payment: LoanPayment) -> LoanPayment:
        with self._lock:
            if payment.loan_id not in self._tables.loans:
                raise ReferentialIntegrityError(f"Loan {payment.loan_id} not found")
            if payment.amount <= ZERO:
                raise StoreError(f"Payment amount must be positive, got {payment.amount}")

            stored = replace(
                payment,
                payment_id=next(self._payment_ids),
                created_at=payment.created_at or datetime.now(),
            )
            self._tables.loan_payments[stored.payment_id] = stored
            self._tables._loan_payments[stored.loan_id].append(stored.payment_id)
            return replace(stored)

    def list_loan_payments(self, loan_id: int) -> list[LoanPayment]:
        with self._lock:
            ids = self._tables._loan_payments.get(loan_id, [])
            payments = [self._tables.loan_payments[i] for i in ids]
            payments.sort(key=lambda p: (p.payment_date, p.payment_id))
            return [replace(p) for p in payments]

    def list_all_loan_payments(self) -> list[LoanPayment]:
        with self._lock:
            return [replace(p) for p in self._tables.loan_payments.values()]

    # Contributions
    def add_contribution(self, contribution: Contribution) -> Contribution:
        with self._lock:
            if contribution.member_id not in self._tables.members:
                raise ReferentialIntegrityError(f"Member {contribution.member_id} not found")
            if contribution.amount <= ZERO:
                raise StoreError(f"Contribution amount must be positive, got {contribution.amount}")

            stored = replace(
                contribution,
                contribution_id=next(self._contribution_ids),
                created_at=contribution.created_at or datetime.now(),
            )
            self._tables.contributions[stored.contribution_id] = stored
            self._tables._member_contributions[stored.member_id].append(stored.contribution_id)
            return replace(stored)

    def list_member_contributions(self, member_id: str) -> list[Contribution]:
        with self._lock:
            ids = self._tables._member_contributions.get(member_id, [])
            contributions = [self._tables.contributions[i] for i in ids]
            contributions.sort(key=lambda c: (c.contribution_date, c.contribution_id))
            return [replace(c) for c in contributions]

    def list_contributions(self) -> list[Contribution]:
        with self._lock:
            return [replace(c) for c in self._tables.contributions.values()]

    # Year end
    def lock_year_data(self) -> None:
        # Writers already queue on the lock held by transaction()
        if not self._depth:
            raise StoreError("lock_year_data must run inside a transaction")

    def clear_year_data(self, *, reset_penalties: bool = True) -> ClearedCounts:
        with self.transaction():
            tables = self._tables
            counts = ClearedCounts(
                loan_payments=len(tables.loan_payments),
                loans=len(tables.loans),
                contributions=len(tables.contributions),
            )

            tables.loan_payments.clear()
            tables._loan_payments.clear()
            tables.loans.clear()
            tables.contributions.clear()
            now = datetime.now()
            for member_id, member in list(tables.members.items()):
                tables._member_loans[member_id] = []
                tables._member_contributions[member_id] = []
                tables.members[member_id] = replace(
                    member,
                    total_shares=ZERO,
                    total_social_fund_contributions=ZERO,
                    total_penalties=ZERO if reset_penalties else member.total_penalties,
                    updated_at=now,
                )
            return counts

    def summary(self) -> dict[str, int]:
        """Return row counts per table."""
        with self._lock:
            return {
                "members": len(self._tables.members),
                "loans": len(self._tables.loans),
                "loan_payments": len(self._tables.loan_payments),
                "contributions": len(self._tables.contributions),
            }

    def _member(self, member_id: str) -> Member:
        try:
            return self._tables.members[member_id]
        except KeyError:
            raise EntityNotFoundError(f"Member {member_id} not found") from None

    def _loan(self, loan_id: int) -> Loan:
        try:
            return self._tables.loans[loan_id]
        except KeyError:
            raise EntityNotFoundError(f"Loan {loan_id} not found") from None

    @staticmethod
    def _check_non_negative(loan: Loan) -> None:
        if loan.principal_amount < ZERO or loan.service_charge_amount < ZERO:
            raise StoreError(f"Loan {loan.loan_id} balances cannot be negative")
