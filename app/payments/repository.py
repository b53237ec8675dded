
# app/payments/repository.py
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional
from uuid import UUID

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import RealDictCursor

from db import close_pool, create_pool, get_conn
from app.payments.errors import InsufficientFunds, LedgerMutationFailed
from app.payments.model import Balance, Transaction, TransactionKind, TransactionStatus

_TXN_COLUMNS = """
  id, user_id, amount, kind, status, reference,
  gateway_transaction_id, settled_at, failure_reason,
  created_at, updated_at
"""


def _row_to_transaction(row: dict[str, Any]) -> Transaction:
    return Transaction(
        id=row["id"] if isinstance(row["id"], UUID) else UUID(str(row["id"])),
        user_id=row["user_id"] if isinstance(row["user_id"], UUID) else UUID(str(row["user_id"])),
        amount=Decimal(row["amount"]),
        kind=TransactionKind(row["kind"]),
        status=TransactionStatus(row["status"]),
        reference=row["reference"],
        gateway_transaction_id=row.get("gateway_transaction_id"),
        settled_at=row.get("settled_at"),
        failure_reason=row.get("failure_reason"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ==========================================================
# Transactions
# ==========================================================

def insert_transaction(conn: PGConn, txn: Transaction) -> Transaction:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            INSERT INTO app.payment_transactions (
              id, user_id, amount, kind, status, reference, created_at, updated_at
            )
            VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s)
            RETURNING {_TXN_COLUMNS}
            """,
            (
                str(txn.id),
                str(txn.user_id),
                txn.amount,
                txn.kind.value,
                txn.status.value,
                txn.reference,
                txn.created_at,
                txn.updated_at,
            ),
        )
        return _row_to_transaction(cur.fetchone())


def get_by_reference(conn: PGConn, *, reference: str) -> Optional[Transaction]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {_TXN_COLUMNS}
            FROM app.payment_transactions
            WHERE reference = %s
            LIMIT 1
            """,
            (reference,),
        )
        row = cur.fetchone()
        return _row_to_transaction(row) if row else None


def transition_if_pending(
    conn: PGConn,
    *,
    reference: str,
    target_status: TransactionStatus,
    gateway_transaction_id: Optional[str],
    settled_at: Optional[datetime],
    failure_reason: Optional[str] = None,
    kind: Optional[TransactionKind] = None,
) -> Optional[Transaction]:
    """
    Compare-and-set on status. The row lock taken by UPDATE serializes racing
    deliveries of the same reference; the loser re-evaluates the WHERE after the
    winner commits and updates nothing.
    """
    kind_guard_sql = ""
    params: list[Any] = [
        target_status.value,
        gateway_transaction_id,
        settled_at,
        failure_reason,
        reference,
    ]
    if kind is not None:
        kind_guard_sql = "AND kind = %s"
        params.append(kind.value)

    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            UPDATE app.payment_transactions
            SET
              status = %s,
              gateway_transaction_id = %s,
              settled_at = %s,
              failure_reason = %s,
              updated_at = now()
            WHERE reference = %s
              AND status = 'PENDING'
              {kind_guard_sql}
            RETURNING {_TXN_COLUMNS}
            """,
            tuple(params),
        )
        row = cur.fetchone()
        return _row_to_transaction(row) if row else None


def list_stale_pending(conn: PGConn, *, older_than: datetime, limit: int) -> list[Transaction]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {_TXN_COLUMNS}
            FROM app.payment_transactions
            WHERE status = 'PENDING'
              AND created_at <= %s
            ORDER BY created_at ASC
            LIMIT %s
            """,
            (older_than, int(limit)),
        )
        return [_row_to_transaction(r) for r in cur.fetchall()]


# ==========================================================
# Balances
# ==========================================================

def get_balance(conn: PGConn, *, user_id: UUID) -> Balance:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT user_id, balance, total_credited, total_withdrawn, updated_at
            FROM app.user_balances
            WHERE user_id = %s::uuid
            """,
            (str(user_id),),
        )
        row = cur.fetchone()
    if not row:
        return Balance(user_id=user_id)
    return Balance(
        user_id=user_id,
        balance=Decimal(row["balance"]),
        total_credited=Decimal(row["total_credited"]),
        total_withdrawn=Decimal(row["total_withdrawn"]),
        updated_at=row["updated_at"],
    )


def credit_balance(conn: PGConn, *, user_id: UUID, amount: Decimal, count_as_credit: bool = True) -> Decimal:
    credited = amount if count_as_credit else Decimal("0")
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.user_balances (user_id, balance, total_credited, total_withdrawn, updated_at)
            VALUES (%s::uuid, %s, %s, 0, now())
            ON CONFLICT (user_id) DO UPDATE
              SET balance = app.user_balances.balance + EXCLUDED.balance,
                  total_credited = app.user_balances.total_credited + EXCLUDED.total_credited,
                  updated_at = now()
            RETURNING balance
            """,
            (str(user_id), amount, credited),
        )
        row = cur.fetchone()
    if not row:
        raise LedgerMutationFailed(str(user_id), "credit returned no row")
    return Decimal(row[0])


def debit_balance(conn: PGConn, *, user_id: UUID, amount: Decimal) -> Decimal:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.user_balances
            SET balance = balance - %s,
                updated_at = now()
            WHERE user_id = %s::uuid
              AND balance >= %s
            RETURNING balance
            """,
            (amount, str(user_id), amount),
        )
        row = cur.fetchone()
    if not row:
        raise InsufficientFunds(f"Insufficient funds for user {user_id}")
    return Decimal(row[0])


def record_withdrawal(conn: PGConn, *, user_id: UUID, amount: Decimal) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.user_balances
            SET total_withdrawn = total_withdrawn + %s,
                updated_at = now()
            WHERE user_id = %s::uuid
            """,
            (amount, str(user_id)),
        )
        if cur.rowcount != 1:
            raise LedgerMutationFailed(str(user_id), "balance row missing for withdrawal")


# ==========================================================
# Store
# ==========================================================

class PostgresUnitOfWork:
    def __init__(self, conn: PGConn):
        self.conn = conn

    def insert_transaction(self, txn: Transaction) -> Transaction:
        return insert_transaction(self.conn, txn)

    def get_by_reference(self, reference: str) -> Optional[Transaction]:
        return get_by_reference(self.conn, reference=reference)

    def transition_if_pending(self, **kwargs: Any) -> Optional[Transaction]:
        return transition_if_pending(self.conn, **kwargs)

    def list_stale_pending(self, *, older_than: datetime, limit: int) -> list[Transaction]:
        return list_stale_pending(self.conn, older_than=older_than, limit=limit)

    def get_balance(self, user_id: UUID) -> Balance:
        return get_balance(self.conn, user_id=user_id)

    def credit_balance(self, *, user_id: UUID, amount: Decimal, count_as_credit: bool = True) -> Decimal:
        return credit_balance(self.conn, user_id=user_id, amount=amount, count_as_credit=count_as_credit)

    def debit_balance(self, *, user_id: UUID, amount: Decimal) -> Decimal:
        return debit_balance(self.conn, user_id=user_id, amount=amount)

    def record_withdrawal(self, *, user_id: UUID, amount: Decimal) -> None:
        record_withdrawal(self.conn, user_id=user_id, amount=amount)


class PostgresTransactionStore:
    def __init__(self, dsn: str, *, maxconn: int = 10, statement_timeout_ms: int = 5000, pool=None):
        self._pool = pool if pool is not None else create_pool(dsn, maxconn=maxconn)
        self._statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def unit_of_work(self) -> Iterator[PostgresUnitOfWork]:
        with get_conn(self._pool, statement_timeout_ms=self._statement_timeout_ms) as conn:
            yield PostgresUnitOfWork(conn)

    def ping(self) -> None:
        with get_conn(self._pool, statement_timeout_ms=self._statement_timeout_ms) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()

    def close(self) -> None:
        close_pool(self._pool)
        self._pool = None
