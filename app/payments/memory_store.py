from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

from app.payments.errors import InsufficientFunds, LedgerMutationFailed
from app.payments.model import Balance, Transaction, TransactionKind, TransactionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryTransactionStore:
    """
    Process-local store for dev runs and tests.

    Mirrors the row-locking behaviour the PostgreSQL store gets for free: a unit
    that touches a reference (or a user's balance) holds that key's lock until it
    commits or rolls back. Different keys never block each other; the structural
    lock is only held for dict reads/writes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._transactions: dict[str, Transaction] = {}
        self._balances: dict[UUID, Balance] = {}
        # key -> [lock, holders + waiters]; dropped when the count reaches zero
        self._key_locks: dict[tuple[str, str], list] = {}

    def _lock_key(self, key: tuple[str, str]) -> None:
        with self._lock:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = self._key_locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        entry[0].acquire()

    def _unlock_key(self, key: tuple[str, str]) -> None:
        with self._lock:
            entry = self._key_locks[key]
            entry[0].release()
            entry[1] -= 1
            if entry[1] == 0:
                del self._key_locks[key]

    @contextmanager
    def unit_of_work(self) -> Iterator["_MemoryUnitOfWork"]:
        uow = _MemoryUnitOfWork(self)
        try:
            yield uow
            uow._commit()
        finally:
            uow._release()

    # Test/dev helpers; they bypass units of work.
    def seed_balance(self, user_id: UUID, amount: Decimal) -> None:
        with self._lock:
            current = self._balances.get(user_id) or Balance(user_id=user_id)
            self._balances[user_id] = replace(current, balance=current.balance + Decimal(amount), updated_at=_utcnow())

    def snapshot(self, reference: str) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(reference)

    def balance_of(self, user_id: UUID) -> Balance:
        with self._lock:
            return self._balances.get(user_id) or Balance(user_id=user_id)


class _MemoryUnitOfWork:
    def __init__(self, store: InMemoryTransactionStore):
        self._store = store
        self._held: set[tuple[str, str]] = set()
        self._txn_writes: dict[str, Transaction] = {}
        self._balance_writes: dict[UUID, Balance] = {}

    # -- locking --------------------------------------------------------

    def _acquire(self, namespace: str, key: str) -> None:
        if (namespace, key) in self._held:
            return
        self._store._lock_key((namespace, key))
        self._held.add((namespace, key))

    def _release(self) -> None:
        for key in self._held:
            self._store._unlock_key(key)
        self._held.clear()
        self._txn_writes.clear()
        self._balance_writes.clear()

    def _commit(self) -> None:
        with self._store._lock:
            self._store._transactions.update(self._txn_writes)
            self._store._balances.update(self._balance_writes)

    # -- reads ----------------------------------------------------------

    def _read_txn(self, reference: str) -> Optional[Transaction]:
        if reference in self._txn_writes:
            return self._txn_writes[reference]
        with self._store._lock:
            return self._store._transactions.get(reference)

    def _read_balance(self, user_id: UUID) -> Optional[Balance]:
        if user_id in self._balance_writes:
            return self._balance_writes[user_id]
        with self._store._lock:
            return self._store._balances.get(user_id)

    # -- transactions ---------------------------------------------------

    def insert_transaction(self, txn: Transaction) -> Transaction:
        self._acquire("ref", txn.reference)
        if self._read_txn(txn.reference) is not None:
            raise ValueError(f"Duplicate reference: {txn.reference}")
        self._txn_writes[txn.reference] = txn
        return txn

    def get_by_reference(self, reference: str) -> Optional[Transaction]:
        return self._read_txn(reference)

    def transition_if_pending(
        self,
        *,
        reference: str,
        target_status: TransactionStatus,
        gateway_transaction_id: Optional[str],
        settled_at: Optional[datetime],
        failure_reason: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
    ) -> Optional[Transaction]:
        self._acquire("ref", reference)
        current = self._read_txn(reference)
        if current is None or current.status != TransactionStatus.PENDING:
            return None
        if kind is not None and current.kind != kind:
            return None
        updated = replace(
            current,
            status=target_status,
            gateway_transaction_id=gateway_transaction_id,
            settled_at=settled_at,
            failure_reason=failure_reason,
            updated_at=_utcnow(),
        )
        self._txn_writes[reference] = updated
        return updated

    def list_stale_pending(self, *, older_than: datetime, limit: int) -> list[Transaction]:
        with self._store._lock:
            rows = [
                t
                for t in self._store._transactions.values()
                if t.status == TransactionStatus.PENDING and t.created_at <= older_than
            ]
        rows.sort(key=lambda t: t.created_at)
        return rows[: int(limit)]

    # -- balances -------------------------------------------------------

    def get_balance(self, user_id: UUID) -> Balance:
        return self._read_balance(user_id) or Balance(user_id=user_id)

    def credit_balance(self, *, user_id: UUID, amount: Decimal, count_as_credit: bool = True) -> Decimal:
        self._acquire("user", str(user_id))
        current = self.get_balance(user_id)
        updated = replace(
            current,
            balance=current.balance + amount,
            total_credited=current.total_credited + (amount if count_as_credit else Decimal("0")),
            updated_at=_utcnow(),
        )
        self._balance_writes[user_id] = updated
        return updated.balance

    def debit_balance(self, *, user_id: UUID, amount: Decimal) -> Decimal:
        self._acquire("user", str(user_id))
        current = self._read_balance(user_id)
        if current is None or current.balance < amount:
            raise InsufficientFunds(f"Insufficient funds for user {user_id}")
        updated = replace(current, balance=current.balance - amount, updated_at=_utcnow())
        self._balance_writes[user_id] = updated
        return updated.balance

    def record_withdrawal(self, *, user_id: UUID, amount: Decimal) -> None:
        self._acquire("user", str(user_id))
        current = self._read_balance(user_id)
        if current is None:
            raise LedgerMutationFailed(str(user_id), "balance row missing for withdrawal")
        self._balance_writes[user_id] = replace(
            current,
            total_withdrawn=current.total_withdrawn + amount,
            updated_at=_utcnow(),
        )
