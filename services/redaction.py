from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
_SECRET_KEY_RE = re.compile(r"\b(sk|pk)_(test|live)_[A-Za-z0-9]+\b")
_CARD_RE = re.compile(r"\b\d{12,19}\b")

# Payload keys whose values never reach a log line.
_SENSITIVE_KEY_MARKERS = (
    "authorization",
    "signature",
    "secret",
    "token",
    "password",
    "access_code",
    "account_number",
    "bin",
)


def _mask_email(match: re.Match) -> str:
    return f"{match.group(1)}***{match.group(2)}"


def _mask_card(match: re.Match) -> str:
    digits = match.group(0)
    return f"{'*' * (len(digits) - 4)}{digits[-4:]}"


def redact_text(value: str) -> str:
    if not value:
        return value
    masked = _SECRET_KEY_RE.sub("[REDACTED]", value)
    masked = _EMAIL_RE.sub(_mask_email, masked)
    masked = _CARD_RE.sub(_mask_card, masked)
    if "bearer " in masked.lower():
        return "[REDACTED]"
    return masked


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        k: ("[REDACTED]" if _is_sensitive_key(k) else redact_value(v))
        for k, v in payload.items()
    }
