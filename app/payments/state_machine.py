
# app/payments/state_machine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.payments.model import (
    Transaction,
    TransactionKind,
    TransactionStatus,
    TransitionResult,
)
from app.payments.store import UnitOfWork

logger = logging.getLogger("paystack.payments")


class InvalidTransition(Exception):
    pass


ALLOWED = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED, TransactionStatus.FAILED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.FAILED: set(),
}


def is_allowed(old: TransactionStatus, new: TransactionStatus) -> bool:
    return new in ALLOWED.get(old, set())


def assert_transition(old: TransactionStatus, new: TransactionStatus) -> None:
    if not is_allowed(old, new):
        raise InvalidTransition(f"Illegal transaction transition: {old.value} -> {new.value}")


def assert_completed_invariant(new_status: TransactionStatus, gateway_transaction_id: str | None) -> None:
    """
    Invariant: a COMPLETED transaction MUST carry the gateway's transaction id.
    """
    if new_status == TransactionStatus.COMPLETED and not (gateway_transaction_id or "").strip():
        raise ValueError("Invariant violation: status=COMPLETED requires gateway_transaction_id")


@dataclass(frozen=True)
class TransitionOutcome:
    result: TransitionResult
    transaction: Optional[Transaction] = None
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.result == TransitionResult.APPLIED


def transition(
    uow: UnitOfWork,
    *,
    reference: str,
    target_status: TransactionStatus,
    gateway_transaction_id: str | None = None,
    failure_reason: str | None = None,
    expected_kind: TransactionKind | None = None,
    now: datetime | None = None,
) -> TransitionOutcome:
    """
    Move a PENDING transaction to a terminal status, at most once.

    The guard lives in the store's conditional update (status = PENDING), so two
    concurrent callers on the same reference cannot both observe APPLIED. A miss
    is then classified with a plain read: absent -> NOT_FOUND, otherwise
    ALREADY_TERMINAL. Contradictory or repeated events after settlement land in
    ALREADY_TERMINAL and never raise.
    """
    # Only PENDING rows are ever updated, so the edge must leave PENDING.
    assert_transition(TransactionStatus.PENDING, target_status)
    assert_completed_invariant(target_status, gateway_transaction_id)

    completed = target_status == TransactionStatus.COMPLETED
    settled_at = (now or datetime.now(timezone.utc)) if completed else None

    updated = uow.transition_if_pending(
        reference=reference,
        target_status=target_status,
        gateway_transaction_id=gateway_transaction_id.strip() if completed else None,
        settled_at=settled_at,
        failure_reason=None if completed else failure_reason,
        kind=expected_kind,
    )
    if updated is not None:
        return TransitionOutcome(result=TransitionResult.APPLIED, transaction=updated)

    existing = uow.get_by_reference(reference)
    if existing is None:
        return TransitionOutcome(result=TransitionResult.NOT_FOUND, reason="REFERENCE_NOT_FOUND")

    if expected_kind is not None and existing.kind != expected_kind:
        # A charge event can never settle a payout (and vice versa).
        return TransitionOutcome(result=TransitionResult.NOT_FOUND, transaction=existing, reason="KIND_MISMATCH")

    if existing.status == target_status:
        reason = f"ALREADY_{existing.status.value}"
    else:
        reason = f"CONFLICTING_{existing.status.value}"
        logger.warning(
            "contradictory_event reference=%s current=%s requested=%s",
            reference,
            existing.status.value,
            target_status.value,
        )
    return TransitionOutcome(result=TransitionResult.ALREADY_TERMINAL, transaction=existing, reason=reason)
