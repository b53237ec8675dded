
# app/providers/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from services.redaction import redact_value

logger = logging.getLogger("paystack.http")

_REDACTED_HEADERS = ("authorization", "x-api-key")


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[dict[str, Any]]
    text: str


class HttpClient:
    def __init__(
        self,
        timeout_s: float = 15.0,
        follow_redirects: bool = True,
        transport: httpx.BaseTransport | None = None,
    ):
        # Bounded timeout on every call; a hung gateway must surface, not block a worker thread.
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects, transport=transport)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
        debug: bool = False,
    ) -> HttpResponse:
        r = self._client.request(method, url, headers=headers, json=json_body)
        if debug:
            self._debug_dump(method, url, headers, json_body, r)
        return self._wrap(r)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _debug_dump(method: str, url: str, headers: dict[str, str], json_body: Any, r: httpx.Response) -> None:
        # Don't log secrets
        safe_headers = {
            k: ("REDACTED" if k.lower() in _REDACTED_HEADERS else v) for k, v in (headers or {}).items()
        }
        logger.debug(
            "http_debug method=%s url=%s headers=%s json=%s status=%s text=%s",
            method,
            url,
            safe_headers,
            redact_value(json_body),
            r.status_code,
            redact_value(r.text[:300]),
        )


def is_retryable_http(code: int) -> bool:
    # Retry transient / throttling / gateway issues
    return code in (408, 425, 429, 500, 502, 503, 504)
