
# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol

from app.payments.model import TransactionStatus


@dataclass(frozen=True)
class InitializeResult:
    authorization_url: str
    access_code: str
    reference: str


@dataclass(frozen=True)
class GatewayVerification:
    """
    What the gateway says about one reference.
    terminal_status is None while the gateway still considers it in flight.
    """

    reference: str
    gateway_status: str
    terminal_status: Optional[TransactionStatus] = None
    gateway_transaction_id: Optional[str] = None
    amount_minor: Optional[int] = None
    failure_reason: Optional[str] = None
    response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    reference: str
    transfer_code: Optional[str]
    gateway_status: str
    response: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    def initialize(
        self,
        *,
        email: str,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitializeResult: ...

    def verify(self, reference: str) -> GatewayVerification: ...

    def verify_transfer(self, reference: str) -> GatewayVerification: ...

    def transfer(
        self,
        *,
        amount: Decimal,
        recipient_code: str,
        reason: str | None,
        reference: str,
    ) -> TransferResult: ...

    def subscribe(self, *, email: str, plan_code: str) -> dict[str, Any]: ...

    def create_plan(self, *, name: str, amount: Decimal, interval: str) -> dict[str, Any]: ...
