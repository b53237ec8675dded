


# routes/webhooks.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from app.payments.errors import SignatureInvalid
from app.webhooks.events import MalformedPayload, UnknownEvent, parse_event
from app.webhooks.router import RouteResult, WebhookEventRouter
from app.webhooks.signature import SIGNATURE_HEADER, SignatureVerifier
from deps.payments import get_signature_verifier, get_webhook_router
from services.metrics import increment_webhook_event
from services.redaction import redact_text


router = APIRouter(prefix="/payments", tags=["webhooks"])
logger = logging.getLogger("paystack.webhooks")


def _resolve_request_id(req: Request) -> str | None:
    candidates = (
        req.headers.get("X-Request-ID"),
        req.headers.get("X-Correlation-ID"),
    )
    for value in candidates:
        if value and value.strip():
            return value.strip()
    return getattr(req.state, "request_id", None)


@router.post("/webhook")
async def paystack_webhook(
    req: Request,
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    event_router: WebhookEventRouter = Depends(get_webhook_router),
):
    # Raw transport bytes: the signature covers these, not a re-serialized body.
    raw = await req.body()
    sig_header = req.headers.get(SIGNATURE_HEADER)
    request_id = _resolve_request_id(req)

    try:
        verifier.require_valid(raw, sig_header)
    except SignatureInvalid:
        logger.warning(
            "webhook_rejected request_id=%s reason=INVALID_SIGNATURE has_signature=%s bytes=%s",
            request_id,
            bool(sig_header),
            len(raw),
        )
        increment_webhook_event("unverified", signature_valid=False, result="REJECTED")
        raise HTTPException(status_code=403, detail={"error": "INVALID_SIGNATURE"})

    try:
        event = parse_event(raw, sig_header)
    except MalformedPayload as exc:
        # Authentic but unusable; acknowledge so the gateway stops retrying.
        reason = str(exc)
        logger.warning("webhook_ignored request_id=%s reason=%s", request_id, reason)
        increment_webhook_event("malformed", signature_valid=True, result=RouteResult.IGNORED.value)
        return {"ok": True, "result": RouteResult.IGNORED.value, "reason": reason}

    # Store calls block; keep them off the event loop.
    outcome = await run_in_threadpool(event_router.route, event)

    logger.info(
        "webhook_received request_id=%s event=%s reference=%s gateway_id=%s result=%s reason=%s",
        request_id,
        event.event_type,
        redact_text(event.reference or ""),
        event.gateway_transaction_id,
        outcome.result.value,
        outcome.reason,
    )
    # Unknown event names are sender-controlled; keep the label set bounded.
    event_label = "unknown" if isinstance(event, UnknownEvent) else event.event_type
    increment_webhook_event(event_label, signature_valid=True, result=outcome.result.value)

    return {"ok": True, **outcome.to_dict()}
