"""PostgreSQL ledger store backed by psycopg."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator

import psycopg
from psycopg.rows import dict_row

from coop_ledger.exceptions import (
    EntityNotFoundError,
    LedgerError,
    ReferentialIntegrityError,
    StoreError,
    TransactionFailureError,
    ValidationError,
)
from coop_ledger.models import (
    Contribution,
    ContributionType,
    Loan,
    LoanPayment,
    LoanStatus,
    Member,
    PaymentType,
)
from coop_ledger.money import ZERO
from coop_ledger.store.base import ClearedCounts, LedgerStore

logger = logging.getLogger(__name__)

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS members (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  full_name text NOT NULL,
  contact_info text,
  join_date date NOT NULL DEFAULT CURRENT_DATE,
  total_shares numeric NOT NULL DEFAULT 0 CHECK (total_shares >= 0),
  total_social_fund_contributions numeric NOT NULL DEFAULT 0
    CHECK (total_social_fund_contributions >= 0),
  total_penalties numeric NOT NULL DEFAULT 0 CHECK (total_penalties >= 0),
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS loans (
  id bigserial PRIMARY KEY,
  borrower_id uuid NOT NULL REFERENCES members(id),
  principal_amount numeric NOT NULL CHECK (principal_amount >= 0),
  original_principal numeric NOT NULL CHECK (original_principal > 0),
  term_months integer CHECK (term_months > 0),
  service_charge_rate numeric NOT NULL DEFAULT 0.02,
  service_charge_amount numeric NOT NULL CHECK (service_charge_amount >= 0),
  original_service_charge numeric NOT NULL CHECK (original_service_charge >= 0),
  status text NOT NULL DEFAULT 'APPROVED'
    CHECK (status IN ('APPROVED', 'RELEASED', 'ONGOING', 'COMPLETED', 'CANCELLED')),
  approved_at timestamptz NOT NULL DEFAULT now(),
  released_at timestamptz,
  completed_at timestamptz,
  remarks text,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS loan_payments (
  id bigserial PRIMARY KEY,
  loan_id bigint NOT NULL REFERENCES loans(id) ON DELETE CASCADE,
  payment_type text NOT NULL CHECK (payment_type IN ('PRINCIPAL', 'SERVICE_CHARGE')),
  amount numeric NOT NULL CHECK (amount > 0),
  payment_date date NOT NULL DEFAULT CURRENT_DATE,
  remarks text,
  created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS contributions (
  id bigserial PRIMARY KEY,
  member_id uuid NOT NULL REFERENCES members(id),
  type text NOT NULL CHECK (type IN ('SHARE', 'SOCIAL_FUND')),
  amount numeric NOT NULL CHECK (amount > 0),
  contribution_date date NOT NULL DEFAULT CURRENT_DATE,
  remarks text,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""

MEMBER_COLUMNS = (
    "id::text AS member_id, full_name, contact_info, join_date, total_shares, "
    "total_social_fund_contributions, total_penalties, created_at, updated_at"
)
LOAN_COLUMNS = (
    "id AS loan_id, borrower_id::text AS borrower_id, principal_amount, original_principal, "
    "service_charge_rate, service_charge_amount, original_service_charge, status, "
    "approved_at, term_months, released_at, completed_at, remarks, created_at, updated_at"
)
PAYMENT_COLUMNS = "id AS payment_id, loan_id, payment_type, amount, payment_date, remarks, created_at"
CONTRIBUTION_COLUMNS = (
    "id AS contribution_id, member_id::text AS member_id, type AS contribution_type, "
    "amount, contribution_date, remarks, created_at"
)


class PostgresLedgerStore(LedgerStore):
    """Ledger store on a PostgreSQL database.

    The connection should be in autocommit mode; every multi-statement unit
    of work runs inside ``transaction()``, which maps to
    ``Connection.transaction()`` (a savepoint when nested).
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn
        self._depth = 0

    @classmethod
    def connect(cls, conninfo: str) -> "PostgresLedgerStore":
        """Open an autocommit connection and wrap it in a store."""
        try:
            conn = psycopg.connect(conninfo, autocommit=True)
        except psycopg.Error as exc:
            raise StoreError(f"Could not connect to PostgreSQL: {exc}") from exc
        return cls(conn)

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def create_schema(self) -> None:
        """Create the ledger tables if they do not exist."""
        with self.transaction():
            self._execute(SCHEMA_DDL)
        logger.info("Ledger schema ready")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            with self.conn.transaction():
                yield
        except TransactionFailureError:
            raise
        except (StoreError, psycopg.Error) as exc:
            raise TransactionFailureError(f"Transaction rolled back: {exc}") from exc
        finally:
            self._depth = 0

    # Members
    def add_member(self, member: Member) -> Member:
        if member.member_id and not _is_uuid(member.member_id):
            raise ValidationError(f"Member ids must be UUIDs, got {member.member_id!r}")
        row = self._fetchone(
            f"INSERT INTO members (id, full_name, contact_info, join_date) "
            f"VALUES (COALESCE(%s::uuid, gen_random_uuid()), %s, %s, %s) "
            f"RETURNING {MEMBER_COLUMNS}",
            (member.member_id or None, member.full_name, member.contact_info, member.join_date),
        )
        return _member_from_row(row)

    def get_member(self, member_id: str) -> Member:
        _require_member_id(member_id)
        row = self._fetchone(f"SELECT {MEMBER_COLUMNS} FROM members WHERE id = %s", (member_id,))
        if row is None:
            raise EntityNotFoundError(f"Member {member_id} not found")
        return _member_from_row(row)

    def list_members(self) -> list[Member]:
        rows = self._fetchall(f"SELECT {MEMBER_COLUMNS} FROM members ORDER BY join_date, created_at")
        return [_member_from_row(r) for r in rows]

    def save_member(self, member: Member) -> Member:
        _require_member_id(member.member_id)
        row = self._fetchone(
            f"UPDATE members SET full_name = %s, contact_info = %s, updated_at = now() "
            f"WHERE id = %s RETURNING {MEMBER_COLUMNS}",
            (member.full_name, member.contact_info, member.member_id),
        )
        if row is None:
            raise EntityNotFoundError(f"Member {member.member_id} not found")
        return _member_from_row(row)

    def adjust_member_balances(
        self,
        member_id: str,
        *,
        shares: Decimal = ZERO,
        social_fund: Decimal = ZERO,
        penalties: Decimal = ZERO,
    ) -> Member:
        _require_member_id(member_id)
        # Single UPDATE so concurrent contributions cannot lose each other's delta
        row = self._fetchone(
            f"UPDATE members SET total_shares = total_shares + %s, "
            f"total_social_fund_contributions = total_social_fund_contributions + %s, "
            f"total_penalties = total_penalties + %s, updated_at = now() "
            f"WHERE id = %s RETURNING {MEMBER_COLUMNS}",
            (shares, social_fund, penalties, member_id),
        )
        if row is None:
            raise EntityNotFoundError(f"Member {member_id} not found")
        return _member_from_row(row)

    # Loans
    def add_loan(self, loan: Loan) -> Loan:
        _require_member_id(loan.borrower_id, ReferentialIntegrityError)
        row = self._fetchone(
            f"INSERT INTO loans (borrower_id, principal_amount, original_principal, "
            f"service_charge_rate, service_charge_amount, original_service_charge, status, "
            f"approved_at, term_months, remarks) "
            f"VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s) RETURNING {LOAN_COLUMNS}",
            (
                loan.borrower_id,
                loan.principal_amount,
                loan.original_principal,
                loan.service_charge_rate,
                loan.service_charge_amount,
                loan.original_service_charge,
                loan.status.value,
                loan.approved_at,
                loan.term_months,
                loan.remarks,
            ),
        )
        return _loan_from_row(row)

    def get_loan(self, loan_id: int, *, for_update: bool = False) -> Loan:
        query = f"SELECT {LOAN_COLUMNS} FROM loans WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._fetchone(query, (loan_id,))
        if row is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return _loan_from_row(row)

    def list_loans(self) -> list[Loan]:
        rows = self._fetchall(f"SELECT {LOAN_COLUMNS} FROM loans ORDER BY approved_at DESC, id DESC")
        return [_loan_from_row(r) for r in rows]

    def save_loan(self, loan: Loan) -> Loan:
        row = self._fetchone(
            f"UPDATE loans SET principal_amount = %s, service_charge_amount = %s, status = %s, "
            f"released_at = %s, completed_at = %s, updated_at = now() "
            f"WHERE id = %s RETURNING {LOAN_COLUMNS}",
            (
                loan.principal_amount,
                loan.service_charge_amount,
                loan.status.value,
                loan.released_at,
                loan.completed_at,
                loan.loan_id,
            ),
        )
        if row is None:
            raise EntityNotFoundError(f"Loan {loan.loan_id} not found")
        return _loan_from_row(row)

    def delete_loan(self, loan_id: int) -> None:
        if self._rowcount("DELETE FROM loans WHERE id = %s", (loan_id,)) == 0:
            raise EntityNotFoundError(f"Loan {loan_id} not found")

    # Loan payments
    def add_loan_payment(self, payment: LoanPayment) -> LoanPayment:
        row = self._fetchone(
            f"INSERT INTO loan_payments (loan_id, payment_type, amount, payment_date, remarks) "
            f"VALUES (%s, %s, %s, %s, %s) RETURNING {PAYMENT_COLUMNS}",
            (
                payment.loan_id,
                payment.payment_type.value,
                payment.amount,
                payment.payment_date,
                payment.remarks,
            ),
        )
        return _payment_from_row(row)

    def list_loan_payments(self, loan_id: int) -> list[LoanPayment]:
        rows = self._fetchall(
            f"SELECT {PAYMENT_COLUMNS} FROM loan_payments WHERE loan_id = %s ORDER BY payment_date, id",
            (loan_id,),
        )
        return [_payment_from_row(r) for r in rows]

    def list_all_loan_payments(self) -> list[LoanPayment]:
        rows = self._fetchall(f"SELECT {PAYMENT_COLUMNS} FROM loan_payments ORDER BY id")
        return [_payment_from_row(r) for r in rows]

    # Contributions
    def add_contribution(self, contribution: Contribution) -> Contribution:
        _require_member_id(contribution.member_id, ReferentialIntegrityError)
        row = self._fetchone(
            f"INSERT INTO contributions (member_id, type, amount, contribution_date, remarks) "
            f"VALUES (%s, %s, %s, %s, %s) RETURNING {CONTRIBUTION_COLUMNS}",
            (
                contribution.member_id,
                contribution.contribution_type.value,
                contribution.amount,
                contribution.contribution_date,
                contribution.remarks,
            ),
        )
        return _contribution_from_row(row)

    def list_member_contributions(self, member_id: str) -> list[Contribution]:
        if not _is_uuid(member_id):
            return []
        rows = self._fetchall(
            f"SELECT {CONTRIBUTION_COLUMNS} FROM contributions WHERE member_id = %s "
            f"ORDER BY contribution_date, id",
            (member_id,),
        )
        return [_contribution_from_row(r) for r in rows]

    def list_contributions(self) -> list[Contribution]:
        rows = self._fetchall(f"SELECT {CONTRIBUTION_COLUMNS} FROM contributions ORDER BY id")
        return [_contribution_from_row(r) for r in rows]

    # Year end
    def lock_year_data(self) -> None:
        if not self._depth:
            raise StoreError("lock_year_data must run inside a transaction")
        self._execute(
            "LOCK TABLE members, loans, loan_payments, contributions IN EXCLUSIVE MODE"
        )

    def clear_year_data(self, *, reset_penalties: bool = True) -> ClearedCounts:
        with self.transaction():
            # Delete in order of FK dependencies: loan_payments -> loans -> contributions
            payments = self._rowcount("DELETE FROM loan_payments")
            loans = self._rowcount("DELETE FROM loans")
            contributions = self._rowcount("DELETE FROM contributions")
            penalties_sql = "0" if reset_penalties else "total_penalties"
            self._rowcount(
                f"UPDATE members SET total_shares = 0, total_social_fund_contributions = 0, "
                f"total_penalties = {penalties_sql}, updated_at = now()"
            )
        return ClearedCounts(loan_payments=payments, loans=loans, contributions=contributions)

    # Helpers
    def _execute(self, query: str, params: tuple[Any, ...] | None = None) -> None:
        self._run(query, params, lambda cur: None)

    def _fetchone(self, query: str, params: tuple[Any, ...] | None = None) -> dict[str, Any] | None:
        return self._run(query, params, lambda cur: cur.fetchone())

    def _fetchall(self, query: str, params: tuple[Any, ...] | None = None) -> list[dict[str, Any]]:
        return self._run(query, params, lambda cur: cur.fetchall())

    def _rowcount(self, query: str, params: tuple[Any, ...] | None = None) -> int:
        return self._run(query, params, lambda cur: cur.rowcount)

    def _run(self, query: str, params: tuple[Any, ...] | None, fetch: Any) -> Any:
        try:
            with self.conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return fetch(cur)
        except psycopg.errors.ForeignKeyViolation as exc:
            raise ReferentialIntegrityError(str(exc)) from exc
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _require_member_id(member_id: str, error: type[LedgerError] = EntityNotFoundError) -> None:
    # Malformed ids cannot match any row
    if not _is_uuid(member_id):
        raise error(f"Member {member_id} not found")


def _member_from_row(row: dict[str, Any]) -> Member:
    return Member(**row)


def _loan_from_row(row: dict[str, Any]) -> Loan:
    return Loan(**{**row, "status": LoanStatus(row["status"])})


def _payment_from_row(row: dict[str, Any]) -> LoanPayment:
    return LoanPayment(**{**row, "payment_type": PaymentType(row["payment_type"])})


def _contribution_from_row(row: dict[str, Any]) -> Contribution:
    return Contribution(**{**row, "contribution_type": ContributionType(row["contribution_type"])})
