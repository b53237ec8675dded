
# app/payments/errors.py
from __future__ import annotations


class PaymentsError(Exception):
    pass


class ConfigurationError(RuntimeError):
    """Deployment misconfiguration detected at startup."""


class SignatureInvalid(PaymentsError):
    pass


class ReferenceNotFound(PaymentsError):
    def __init__(self, reference: str):
        super().__init__(f"Unknown transaction reference: {reference}")
        self.reference = reference


class LedgerMutationFailed(PaymentsError):
    """
    Balance update failed inside the settlement unit.
    The unit is rolled back, so the transaction stays PENDING.
    """

    def __init__(self, reference: str, reason: str | None = None):
        msg = f"Ledger mutation failed for {reference}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.reference = reference
        self.reason = reason


class InsufficientFunds(PaymentsError):
    pass


class GatewayError(PaymentsError):
    """Outbound gateway call failed or timed out. Never retried inside the core."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.retryable = retryable
