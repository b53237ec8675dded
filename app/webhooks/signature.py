
# app/webhooks/signature.py
from __future__ import annotations

import hashlib
import hmac
import string

from app.payments.errors import ConfigurationError, SignatureInvalid

SIGNATURE_HEADER = "x-paystack-signature"

_HEX_DIGITS = frozenset(string.hexdigits)
_SHA512_HEX_LEN = hashlib.sha512().digest_size * 2


def compute_signature(raw_body: bytes, secret: bytes) -> str:
    return hmac.new(secret, raw_body, hashlib.sha512).hexdigest()


def verify(raw_body: bytes, signature_header: str | None, secret: bytes) -> bool:
    """
    HMAC-SHA512 over the exact transport bytes, constant-time compare.
    Never raises: anything missing or malformed is simply not authentic.
    """
    if not secret:
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False
    if not signature_header or not isinstance(signature_header, str):
        return False

    sig = signature_header.strip().lower()
    if len(sig) != _SHA512_HEX_LEN or not set(sig) <= _HEX_DIGITS:
        return False

    expected = compute_signature(bytes(raw_body), secret)
    return hmac.compare_digest(expected, sig)


class SignatureVerifier:
    def __init__(self, secret: str | bytes):
        key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret or b"")
        if not key.strip():
            raise ConfigurationError("Webhook secret is not configured")
        self._secret = key

    def verify(self, raw_body: bytes, signature_header: str | None) -> bool:
        return verify(raw_body, signature_header, self._secret)

    def require_valid(self, raw_body: bytes, signature_header: str | None) -> None:
        if not self.verify(raw_body, signature_header):
            raise SignatureInvalid("x-paystack-signature does not match the request body")
