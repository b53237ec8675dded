from __future__ import annotations

import uuid
from dataclasses import replace
from decimal import Decimal

import pytest

from app.payments.errors import LedgerMutationFailed
from app.payments.ledger import LedgerUpdater
from app.payments.model import Transaction, TransactionKind, TransactionStatus, TransitionResult
from services import metrics


def _settled(kind: TransactionKind, status: TransactionStatus, user_id, amount="250.00") -> Transaction:
    txn = Transaction.new_pending(user_id=user_id, amount=amount, kind=kind)
    return replace(txn, status=status)


def test_completed_payment_credits_balance(store):
    user_id = uuid.uuid4()
    txn = _settled(TransactionKind.PAYMENT, TransactionStatus.COMPLETED, user_id)

    with store.unit_of_work() as uow:
        LedgerUpdater().apply_ledger_effect(uow, txn, TransitionResult.APPLIED)

    bal = store.balance_of(user_id)
    assert bal.balance == Decimal("250.00")
    assert bal.total_credited == Decimal("250.00")
    assert bal.total_withdrawn == Decimal("0.00")


@pytest.mark.parametrize("result", [TransitionResult.ALREADY_TERMINAL, TransitionResult.NOT_FOUND])
def test_non_applied_results_touch_nothing(store, result):
    user_id = uuid.uuid4()
    txn = _settled(TransactionKind.PAYMENT, TransactionStatus.COMPLETED, user_id)

    with store.unit_of_work() as uow:
        LedgerUpdater().apply_ledger_effect(uow, txn, result)

    assert store.balance_of(user_id).balance == Decimal("0.00")


def test_failed_payment_has_no_ledger_effect(store):
    user_id = uuid.uuid4()
    txn = _settled(TransactionKind.PAYMENT, TransactionStatus.FAILED, user_id)

    with store.unit_of_work() as uow:
        LedgerUpdater().apply_ledger_effect(uow, txn, TransitionResult.APPLIED)

    assert store.balance_of(user_id).balance == Decimal("0.00")


def test_completed_withdrawal_only_counts(store):
    user_id = uuid.uuid4()
    store.seed_balance(user_id, Decimal("100.00"))
    txn = _settled(TransactionKind.WITHDRAWAL, TransactionStatus.COMPLETED, user_id, amount="40.00")

    with store.unit_of_work() as uow:
        LedgerUpdater().apply_ledger_effect(uow, txn, TransitionResult.APPLIED)

    bal = store.balance_of(user_id)
    assert bal.balance == Decimal("100.00")
    assert bal.total_withdrawn == Decimal("40.00")


def test_completed_withdrawal_without_balance_row_fails(store):
    txn = _settled(TransactionKind.WITHDRAWAL, TransactionStatus.COMPLETED, uuid.uuid4())

    with pytest.raises(LedgerMutationFailed):
        with store.unit_of_work() as uow:
            LedgerUpdater().apply_ledger_effect(uow, txn, TransitionResult.APPLIED)


def test_failed_withdrawal_refund_toggle(store):
    user_id = uuid.uuid4()
    store.seed_balance(user_id, Decimal("60.00"))
    txn = _settled(TransactionKind.WITHDRAWAL, TransactionStatus.FAILED, user_id, amount="40.00")

    with store.unit_of_work() as uow:
        LedgerUpdater(refund_failed_withdrawals=False).apply_ledger_effect(uow, txn, TransitionResult.APPLIED)
    assert store.balance_of(user_id).balance == Decimal("60.00")

    with store.unit_of_work() as uow:
        LedgerUpdater(refund_failed_withdrawals=True).apply_ledger_effect(uow, txn, TransitionResult.APPLIED)
    bal = store.balance_of(user_id)
    assert bal.balance == Decimal("100.00")
    # Refunds are not new credits.
    assert bal.total_credited == Decimal("0.00")


def test_unexpected_store_error_is_wrapped():
    class BrokenUnit:
        def credit_balance(self, **kwargs):
            raise KeyError("user_balances")

    txn = _settled(TransactionKind.PAYMENT, TransactionStatus.COMPLETED, uuid.uuid4())
    with pytest.raises(LedgerMutationFailed) as exc:
        LedgerUpdater().apply_ledger_effect(BrokenUnit(), txn, TransitionResult.APPLIED)

    assert exc.value.reference == txn.reference
    assert isinstance(exc.value.__cause__, KeyError)


def test_settle_rolls_back_transition_when_ledger_fails(service, store, notifier, user, pending_payment, monkeypatch):
    def broken(uow, transaction, result):
        raise LedgerMutationFailed(transaction.reference, "disk full")

    monkeypatch.setattr(service.ledger, "apply_ledger_effect", broken)

    with pytest.raises(LedgerMutationFailed):
        service.settle("R-1", TransactionStatus.COMPLETED, "G-9", expected_kind=TransactionKind.PAYMENT)

    assert store.snapshot("R-1").status == TransactionStatus.PENDING
    assert store.balance_of(user.user_id).balance == Decimal("0.00")
    assert notifier.calls == []
    assert metrics.get_counter("ledger_failures_total", {"kind": "PAYMENT"}) == 1
