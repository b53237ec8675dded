from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.payments.errors import GatewayError
from app.payments.model import Transaction, TransactionKind, TransactionStatus
from app.providers.base import GatewayVerification
from services import metrics
from tests.conftest import seed_pending


def _seed_stale(store, user_id, reference, minutes_old=120):
    txn = Transaction.new_pending(user_id=user_id, amount="100.00", kind=TransactionKind.PAYMENT, reference=reference)
    txn = replace(txn, created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_old))
    with store.unit_of_work() as uow:
        uow.insert_transaction(txn)
    return txn


def test_reconcile_settles_stale_pending(service, store, gateway, notifier, user):
    _seed_stale(store, user.user_id, "OLD-PAID")
    _seed_stale(store, user.user_id, "OLD-OPEN")
    _seed_stale(store, user.user_id, "OLD-ERR")
    seed_pending(store, user_id=user.user_id, reference="FRESH")

    gateway.verifications["OLD-PAID"] = GatewayVerification(
        reference="OLD-PAID",
        gateway_status="success",
        terminal_status=TransactionStatus.COMPLETED,
        gateway_transaction_id="G-1",
    )
    gateway.errors["OLD-ERR"] = GatewayError("timed out", operation="verify")

    result = service.reconcile_pending(older_than_minutes=30, limit=50)

    assert result["summary"] == {"checked": 3, "applied": 1, "already_terminal": 0, "in_flight": 1, "errors": 1}
    categories = {item["reference"]: item["category"] for item in result["items"]}
    assert categories == {"OLD-PAID": "applied", "OLD-ERR": "gateway_error"}

    assert store.snapshot("OLD-PAID").status == TransactionStatus.COMPLETED
    assert store.snapshot("OLD-OPEN").status == TransactionStatus.PENDING
    assert store.snapshot("FRESH").status == TransactionStatus.PENDING
    assert store.balance_of(user.user_id).balance == Decimal("100.00")
    assert len(notifier.calls) == 1
    assert metrics.get_counter("payment_transitions_total", {"result": "APPLIED", "source": "verify"}) == 1
    assert "FRESH" not in [kw["reference"] for _, kw in gateway.calls]


def test_reconcile_respects_limit_oldest_first(service, store, gateway, user):
    _seed_stale(store, user.user_id, "OLDEST", minutes_old=300)
    _seed_stale(store, user.user_id, "OLDER", minutes_old=200)
    _seed_stale(store, user.user_id, "OLD", minutes_old=100)

    result = service.reconcile_pending(older_than_minutes=30, limit=2)

    assert result["summary"]["checked"] == 2
    assert [kw["reference"] for _, kw in gateway.calls] == ["OLDEST", "OLDER"]


def test_reconcile_with_nothing_pending(service, gateway):
    result = service.reconcile_pending()
    assert result["summary"]["checked"] == 0
    assert result["items"] == []
    assert gateway.calls == []


def test_reconcile_success_without_gateway_id_does_not_stop_batch(service, store, gateway, user):
    _seed_stale(store, user.user_id, "OLD-NO-ID", minutes_old=200)
    _seed_stale(store, user.user_id, "OLD-PAID", minutes_old=100)
    gateway.verifications["OLD-NO-ID"] = GatewayVerification(
        reference="OLD-NO-ID",
        gateway_status="success",
        terminal_status=TransactionStatus.COMPLETED,
    )
    gateway.verifications["OLD-PAID"] = GatewayVerification(
        reference="OLD-PAID",
        gateway_status="success",
        terminal_status=TransactionStatus.COMPLETED,
        gateway_transaction_id="G-B",
    )

    result = service.reconcile_pending(older_than_minutes=30, limit=10)

    assert result["summary"] == {"checked": 2, "applied": 1, "already_terminal": 0, "in_flight": 1, "errors": 0}
    assert store.snapshot("OLD-NO-ID").status == TransactionStatus.PENDING
    assert store.snapshot("OLD-PAID").status == TransactionStatus.COMPLETED


def test_reconcile_records_unexpected_errors_and_continues(service, store, gateway, user):
    _seed_stale(store, user.user_id, "OLD-BROKEN", minutes_old=200)
    _seed_stale(store, user.user_id, "OLD-PAID", minutes_old=100)
    gateway.errors["OLD-BROKEN"] = RuntimeError("unexpected payload")
    gateway.verifications["OLD-PAID"] = GatewayVerification(
        reference="OLD-PAID",
        gateway_status="success",
        terminal_status=TransactionStatus.COMPLETED,
        gateway_transaction_id="G-B",
    )

    result = service.reconcile_pending(older_than_minutes=30, limit=10)

    assert result["summary"]["errors"] == 1
    assert result["summary"]["applied"] == 1
    items = {item["reference"]: item for item in result["items"]}
    assert items["OLD-BROKEN"]["category"] == "unexpected_error"
    assert items["OLD-BROKEN"]["error"] == "unexpected payload"
    assert store.snapshot("OLD-PAID").status == TransactionStatus.COMPLETED
