from __future__ import annotations

import logging
from contextvars import ContextVar


_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"


def set_request_id(value: str | None) -> None:
    _request_id.set(value)


def get_request_id() -> str | None:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install one stderr handler on the service's logger tree. Idempotent."""
    root = logging.getLogger("paystack")
    root.setLevel((level or "INFO").upper())
    if any(getattr(h, "_paystack_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._paystack_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
