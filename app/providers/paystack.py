
# app/providers/paystack.py
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from urllib.parse import quote

import httpx

from app.payments.errors import GatewayError
from app.payments.model import TransactionStatus
from app.providers.base import GatewayVerification, InitializeResult, TransferResult
from app.providers.http import HttpClient, HttpResponse, is_retryable_http
from services.metrics import increment_gateway_call

logger = logging.getLogger("paystack.gateway")

MINOR_UNITS_PER_MAJOR = 100
PLAN_INTERVALS = ("hourly", "daily", "weekly", "monthly", "quarterly", "biannually", "annually")

_CHARGE_SUCCESS = ("success",)
_CHARGE_FAILED = ("failed", "reversed")
_TRANSFER_SUCCESS = ("success",)
_TRANSFER_FAILED = ("failed", "reversed", "rejected")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def map_charge_status(status_raw: str | None) -> Optional[TransactionStatus]:
    """
    Paystack charge statuses -> terminal local status, None while in flight.
    'abandoned' stays in flight: the customer can still come back and pay.
    """
    status = (status_raw or "").strip().lower()
    if status in _CHARGE_SUCCESS:
        return TransactionStatus.COMPLETED
    if status in _CHARGE_FAILED:
        return TransactionStatus.FAILED
    return None


def map_transfer_status(status_raw: str | None) -> Optional[TransactionStatus]:
    status = (status_raw or "").strip().lower()
    if status in _TRANSFER_SUCCESS:
        return TransactionStatus.COMPLETED
    if status in _TRANSFER_FAILED:
        return TransactionStatus.FAILED
    return None


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class PaystackClient:
    """
    Request/response shim over the Paystack REST API.
    Every failure (transport, timeout, non-2xx, status=false) becomes GatewayError;
    nothing is retried here.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout_s: float = 15.0,
        currency: str = "NGN",
        http: HttpClient | None = None,
    ):
        self.secret_key = (secret_key or "").strip()
        self.base_url = (base_url or "").strip().rstrip("/")
        self.currency = (currency or "NGN").strip().upper()
        self.http = http or HttpClient(timeout_s=timeout_s)

    def close(self) -> None:
        self.http.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _call(self, operation: str, method: str, path: str, json_body: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.request(
                method,
                url,
                headers=self._headers(),
                json_body=json_body,
                debug=logger.isEnabledFor(logging.DEBUG),
            )
        except httpx.TimeoutException as exc:
            increment_gateway_call(operation, "timeout")
            logger.warning("gateway_timeout operation=%s path=%s", operation, path)
            raise GatewayError(f"Paystack {operation} timed out", operation=operation, retryable=True) from exc
        except httpx.HTTPError as exc:
            increment_gateway_call(operation, "transport_error")
            logger.warning("gateway_transport_error operation=%s path=%s error=%s", operation, path, type(exc).__name__)
            raise GatewayError(
                f"Paystack {operation} failed: {type(exc).__name__}",
                operation=operation,
                retryable=True,
            ) from exc

        return self._unwrap(operation, resp)

    @staticmethod
    def _unwrap(operation: str, resp: HttpResponse) -> dict[str, Any]:
        body = resp.json or {}
        message = _as_str(body.get("message")) or resp.text[:200]

        if resp.status_code >= 400:
            increment_gateway_call(operation, f"http_{resp.status_code}")
            raise GatewayError(
                f"Paystack {operation} returned HTTP {resp.status_code}: {message}",
                operation=operation,
                status_code=resp.status_code,
                retryable=is_retryable_http(resp.status_code),
            )

        if body.get("status") is not True:
            increment_gateway_call(operation, "rejected")
            raise GatewayError(
                f"Paystack {operation} rejected: {message}",
                operation=operation,
                status_code=resp.status_code,
                retryable=False,
            )

        increment_gateway_call(operation, "ok")
        data = body.get("data")
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def initialize(
        self,
        *,
        email: str,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitializeResult:
        payload: dict[str, Any] = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "reference": reference,
        }
        if metadata:
            payload["metadata"] = metadata

        data = self._call("initialize", "POST", "/transaction/initialize", payload)
        authorization_url = _as_str(data.get("authorization_url"))
        access_code = _as_str(data.get("access_code"))
        if not authorization_url or not access_code:
            raise GatewayError("Paystack initialize response missing authorization data", operation="initialize", retryable=False)

        return InitializeResult(
            authorization_url=authorization_url,
            access_code=access_code,
            reference=_as_str(data.get("reference")) or reference,
        )

    def verify(self, reference: str) -> GatewayVerification:
        data = self._call("verify", "GET", f"/transaction/verify/{quote(reference, safe='')}")
        status_raw = _as_str(data.get("status")) or ""
        terminal = map_charge_status(status_raw)
        return GatewayVerification(
            reference=_as_str(data.get("reference")) or reference,
            gateway_status=status_raw,
            terminal_status=terminal,
            gateway_transaction_id=_as_str(data.get("id")),
            amount_minor=data.get("amount") if isinstance(data.get("amount"), int) else None,
            failure_reason=_as_str(data.get("gateway_response")) if terminal == TransactionStatus.FAILED else None,
            response=data,
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(
        self,
        *,
        amount: Decimal,
        recipient_code: str,
        reason: str | None,
        reference: str,
    ) -> TransferResult:
        payload: dict[str, Any] = {
            "source": "balance",
            "amount": to_minor_units(amount),
            "recipient": recipient_code,
            "reference": reference,
            "currency": self.currency,
        }
        if reason:
            payload["reason"] = reason

        data = self._call("transfer", "POST", "/transfer", payload)
        return TransferResult(
            reference=_as_str(data.get("reference")) or reference,
            transfer_code=_as_str(data.get("transfer_code")),
            gateway_status=_as_str(data.get("status")) or "",
            response=data,
        )

    def verify_transfer(self, reference: str) -> GatewayVerification:
        data = self._call("verify_transfer", "GET", f"/transfer/verify/{quote(reference, safe='')}")
        status_raw = _as_str(data.get("status")) or ""
        terminal = map_transfer_status(status_raw)
        return GatewayVerification(
            reference=_as_str(data.get("reference")) or reference,
            gateway_status=status_raw,
            terminal_status=terminal,
            gateway_transaction_id=_as_str(data.get("id")) or _as_str(data.get("transfer_code")),
            amount_minor=data.get("amount") if isinstance(data.get("amount"), int) else None,
            failure_reason=_as_str(data.get("reason")) if terminal == TransactionStatus.FAILED else None,
            response=data,
        )

    # ------------------------------------------------------------------
    # Plans / subscriptions (pass-through)
    # ------------------------------------------------------------------

    def create_plan(self, *, name: str, amount: Decimal, interval: str) -> dict[str, Any]:
        interval_n = (interval or "").strip().lower()
        if interval_n not in PLAN_INTERVALS:
            raise ValueError(f"Unsupported plan interval: {interval!r}")
        return self._call(
            "create_plan",
            "POST",
            "/plan",
            {"name": name, "amount": to_minor_units(amount), "interval": interval_n, "currency": self.currency},
        )

    def subscribe(self, *, email: str, plan_code: str) -> dict[str, Any]:
        return self._call("subscribe", "POST", "/subscription", {"customer": email, "plan": plan_code})
