
# app/webhooks/router.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.payments.model import TransactionStatus, TransitionResult
from app.payments.service import PaymentService
from app.webhooks.events import UnknownEvent, WebhookEvent

logger = logging.getLogger("paystack.webhooks")


class RouteResult(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOT_FOUND = "NOT_FOUND"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class RouteOutcome:
    result: RouteResult
    event_type: str
    reference: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"result": self.result.value, "event": self.event_type}
        if self.reference is not None:
            out["reference"] = self.reference
        if self.status is not None:
            out["status"] = self.status
        if self.reason is not None:
            out["reason"] = self.reason
        return out


class WebhookEventRouter:
    """
    Dispatch verified events to settlement. Every outcome here is an
    acknowledgement; unknown event types are no-ops so new gateway events
    never trigger redelivery storms.
    """

    def __init__(self, service: PaymentService):
        self.service = service

    def route(self, event: WebhookEvent) -> RouteOutcome:
        if isinstance(event, UnknownEvent) or event.target_status is None:
            logger.info("webhook_ignored event=%s reason=UNHANDLED_EVENT_TYPE", event.event_type)
            return RouteOutcome(RouteResult.IGNORED, event.event_type, event.reference, reason="UNHANDLED_EVENT_TYPE")

        if not event.reference:
            logger.warning("webhook_ignored event=%s reason=MISSING_REFERENCE", event.event_type)
            return RouteOutcome(RouteResult.IGNORED, event.event_type, reason="MISSING_REFERENCE")

        if event.target_status == TransactionStatus.COMPLETED and not event.gateway_transaction_id:
            logger.warning(
                "webhook_ignored event=%s reference=%s reason=MISSING_GATEWAY_ID",
                event.event_type,
                event.reference,
            )
            return RouteOutcome(RouteResult.IGNORED, event.event_type, event.reference, reason="MISSING_GATEWAY_ID")

        outcome = self.service.settle(
            event.reference,
            event.target_status,
            event.gateway_transaction_id,
            failure_reason=event.failure_reason,
            expected_kind=event.kind,
            source="webhook",
        )

        txn = outcome.transaction
        if outcome.result == TransitionResult.APPLIED and txn is not None and event.amount_minor is not None:
            expected_minor = int(txn.amount * 100)
            if event.amount_minor != expected_minor:
                logger.warning(
                    "webhook_amount_mismatch reference=%s expected_minor=%s event_minor=%s",
                    event.reference,
                    expected_minor,
                    event.amount_minor,
                )

        return RouteOutcome(
            result=RouteResult(outcome.result.value),
            event_type=event.event_type,
            reference=event.reference,
            status=txn.status.value if txn is not None else None,
            reason=outcome.reason,
        )
