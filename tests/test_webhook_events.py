from __future__ import annotations

import json

import pytest

from app.payments.model import TransactionKind, TransactionStatus
from app.webhooks.events import (
    ChargeFailed,
    ChargeSuccess,
    MalformedPayload,
    TransferFailed,
    TransferSuccess,
    UnknownEvent,
    parse_event,
)


def _raw(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


def test_charge_success_parsed():
    raw = _raw({"event": "charge.success", "data": {"reference": "R-1", "id": 4099260516, "amount": 50000}})
    event = parse_event(raw, "sig")

    assert isinstance(event, ChargeSuccess)
    assert event.kind == TransactionKind.PAYMENT
    assert event.target_status == TransactionStatus.COMPLETED
    assert event.reference == "R-1"
    assert event.gateway_transaction_id == "4099260516"
    assert event.amount_minor == 50000
    assert event.raw_payload == raw
    assert event.signature == "sig"


def test_event_name_is_case_insensitive():
    event = parse_event(_raw({"event": " Charge.Failed ", "data": {"reference": "R-1"}}))
    assert isinstance(event, ChargeFailed)
    assert event.event_type == "charge.failed"


def test_failure_reason_from_gateway_response():
    event = parse_event(
        _raw({"event": "charge.failed", "data": {"reference": "R-1", "gateway_response": " Insufficient Funds "}})
    )
    assert event.failure_reason == "Insufficient Funds"


def test_transfer_falls_back_to_transfer_code():
    event = parse_event(_raw({"event": "transfer.success", "data": {"reference": "W-1", "transfer_code": "TRF_x"}}))
    assert isinstance(event, TransferSuccess)
    assert event.gateway_transaction_id == "TRF_x"


def test_transfer_reversed_is_a_failure():
    event = parse_event(_raw({"event": "transfer.reversed", "data": {"reference": "W-1"}}))
    assert isinstance(event, TransferFailed)
    assert event.target_status == TransactionStatus.FAILED


def test_unknown_event_type():
    event = parse_event(_raw({"event": "subscription.disable", "data": {"subscription_code": "SUB_1"}}))
    assert isinstance(event, UnknownEvent)
    assert event.target_status is None
    assert event.reference is None


def test_blank_or_nested_reference_is_missing():
    blank = parse_event(_raw({"event": "charge.success", "data": {"reference": "  ", "id": 1}}))
    nested = parse_event(_raw({"event": "charge.success", "data": {"reference": {"x": 1}, "id": 1}}))
    assert blank.reference is None
    assert nested.reference is None


def test_non_integer_amount_is_ignored():
    event = parse_event(_raw({"event": "charge.success", "data": {"reference": "R-1", "amount": "500"}}))
    assert event.amount_minor is None


@pytest.mark.parametrize(
    "raw, reason",
    [
        (b"", "INVALID_JSON"),
        (b"{oops", "INVALID_JSON"),
        (b"\xff\xfe", "INVALID_JSON"),
        (b"[1, 2]", "INVALID_JSON_OBJECT"),
        (b'{"data": {}}', "INVALID_ENVELOPE"),
        (b'{"event": "charge.success", "data": []}', "INVALID_ENVELOPE"),
    ],
)
def test_malformed_payloads(raw, reason):
    with pytest.raises(MalformedPayload) as exc:
        parse_event(raw)
    assert str(exc.value) == reason
