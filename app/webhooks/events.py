
# app/webhooks/events.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from app.payments.model import TransactionKind, TransactionStatus


class MalformedPayload(ValueError):
    pass


class WebhookEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")
    event: str
    data: dict[str, Any] = {}


@dataclass(frozen=True)
class WebhookEvent:
    event_type: str
    reference: Optional[str]
    gateway_transaction_id: Optional[str]
    raw_payload: bytes = field(repr=False)
    signature: Optional[str] = field(default=None, repr=False)
    data: dict[str, Any] = field(default_factory=dict, repr=False)

    # Set on the known variants only.
    kind: ClassVar[Optional[TransactionKind]] = None
    target_status: ClassVar[Optional[TransactionStatus]] = None

    @property
    def amount_minor(self) -> Optional[int]:
        value = self.data.get("amount")
        return value if isinstance(value, int) else None

    @property
    def failure_reason(self) -> Optional[str]:
        for key in ("gateway_response", "reason", "message"):
            value = self.data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


@dataclass(frozen=True)
class ChargeSuccess(WebhookEvent):
    kind: ClassVar[Optional[TransactionKind]] = TransactionKind.PAYMENT
    target_status: ClassVar[Optional[TransactionStatus]] = TransactionStatus.COMPLETED


@dataclass(frozen=True)
class ChargeFailed(WebhookEvent):
    kind: ClassVar[Optional[TransactionKind]] = TransactionKind.PAYMENT
    target_status: ClassVar[Optional[TransactionStatus]] = TransactionStatus.FAILED


@dataclass(frozen=True)
class TransferSuccess(WebhookEvent):
    kind: ClassVar[Optional[TransactionKind]] = TransactionKind.WITHDRAWAL
    target_status: ClassVar[Optional[TransactionStatus]] = TransactionStatus.COMPLETED


@dataclass(frozen=True)
class TransferFailed(WebhookEvent):
    kind: ClassVar[Optional[TransactionKind]] = TransactionKind.WITHDRAWAL
    target_status: ClassVar[Optional[TransactionStatus]] = TransactionStatus.FAILED


@dataclass(frozen=True)
class UnknownEvent(WebhookEvent):
    """Any event type we do not act on; acknowledged and ignored."""


EVENT_TYPES: dict[str, type[WebhookEvent]] = {
    "charge.success": ChargeSuccess,
    "charge.failed": ChargeFailed,
    "transfer.success": TransferSuccess,
    "transfer.failed": TransferFailed,
    "transfer.reversed": TransferFailed,
}


def _as_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def parse_event(raw_body: bytes, signature: str | None = None) -> WebhookEvent:
    """
    Parse the raw envelope into its variant. Only call on already-verified bytes.
    Raises MalformedPayload when the body is not a JSON object with an event name.
    """
    try:
        parsed = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedPayload("INVALID_JSON") from exc

    if not isinstance(parsed, dict):
        raise MalformedPayload("INVALID_JSON_OBJECT")

    try:
        envelope = WebhookEnvelope.model_validate(parsed)
    except ValidationError as exc:
        raise MalformedPayload("INVALID_ENVELOPE") from exc

    event_type = envelope.event.strip().lower()
    data = envelope.data
    variant = EVENT_TYPES.get(event_type, UnknownEvent)

    gateway_id = _as_str(data.get("id"))
    if variant in (TransferSuccess, TransferFailed):
        gateway_id = gateway_id or _as_str(data.get("transfer_code"))

    return variant(
        event_type=event_type,
        reference=_as_str(data.get("reference")),
        gateway_transaction_id=gateway_id,
        raw_payload=bytes(raw_body),
        signature=signature,
        data=data,
    )
