from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ContextManager, Optional, Protocol
from uuid import UUID

from app.payments.model import Balance, Transaction, TransactionKind, TransactionStatus


class UnitOfWork(Protocol):
    """
    One atomic unit against the backing store.
    Everything done through a unit commits together or not at all.
    """

    def insert_transaction(self, txn: Transaction) -> Transaction: ...

    def get_by_reference(self, reference: str) -> Optional[Transaction]: ...

    def transition_if_pending(
        self,
        *,
        reference: str,
        target_status: TransactionStatus,
        gateway_transaction_id: Optional[str],
        settled_at: Optional[datetime],
        failure_reason: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
    ) -> Optional[Transaction]: ...

    def list_stale_pending(self, *, older_than: datetime, limit: int) -> list[Transaction]: ...

    def get_balance(self, user_id: UUID) -> Balance: ...

    def credit_balance(self, *, user_id: UUID, amount: Decimal, count_as_credit: bool = True) -> Decimal: ...

    def debit_balance(self, *, user_id: UUID, amount: Decimal) -> Decimal: ...

    def record_withdrawal(self, *, user_id: UUID, amount: Decimal) -> None: ...


class TransactionStore(Protocol):
    def unit_of_work(self) -> ContextManager[UnitOfWork]: ...
