

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

CENTS = Decimal("0.01")


class TransactionKind(str, Enum):
    PAYMENT = "PAYMENT"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.FAILED})


class TransitionResult(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOT_FOUND = "NOT_FOUND"


_REFERENCE_PREFIX = {
    TransactionKind.PAYMENT: "rwd",
    TransactionKind.WITHDRAWAL: "wdr",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_reference(kind: TransactionKind) -> str:
    return f"{_REFERENCE_PREFIX[kind]}_{secrets.token_hex(12)}"


def normalize_amount(value: Any) -> Decimal:
    """Coerce to a positive 2dp Decimal; floats go through str() to avoid binary noise."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"Amount must be positive: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Transaction:
    id: UUID
    user_id: UUID
    amount: Decimal
    kind: TransactionKind
    status: TransactionStatus
    reference: str
    gateway_transaction_id: Optional[str] = None
    settled_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def new_pending(
        cls,
        *,
        user_id: UUID,
        amount: Any,
        kind: TransactionKind,
        reference: str | None = None,
    ) -> "Transaction":
        now = _utcnow()
        return cls(
            id=uuid4(),
            user_id=user_id,
            amount=normalize_amount(amount),
            kind=kind,
            status=TransactionStatus.PENDING,
            reference=reference or new_reference(kind),
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "amount": str(self.amount),
            "kind": self.kind.value,
            "status": self.status.value,
            "reference": self.reference,
            "gateway_transaction_id": self.gateway_transaction_id,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
            "failure_reason": self.failure_reason,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Balance:
    user_id: UUID
    balance: Decimal = Decimal("0.00")
    total_credited: Decimal = Decimal("0.00")
    total_withdrawn: Decimal = Decimal("0.00")
    updated_at: datetime = field(default_factory=_utcnow)
