import uuid
from decimal import Decimal

import pytest

from app.payments.model import Transaction, TransactionKind, TransactionStatus, new_reference, normalize_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("500", Decimal("500.00")),
        (12.345, Decimal("12.35")),
        (Decimal("0.1"), Decimal("0.10")),
        (1, Decimal("1.00")),
    ],
)
def test_normalize_amount(raw, expected):
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", [0, "-1", "abc", None, "NaN", "Infinity"])
def test_normalize_amount_rejects(raw):
    with pytest.raises(ValueError):
        normalize_amount(raw)


def test_new_reference_prefix_and_uniqueness():
    refs = {new_reference(TransactionKind.PAYMENT) for _ in range(50)}
    assert len(refs) == 50
    assert all(r.startswith("rwd_") for r in refs)
    assert new_reference(TransactionKind.WITHDRAWAL).startswith("wdr_")


def test_new_pending_transaction():
    user_id = uuid.uuid4()
    txn = Transaction.new_pending(user_id=user_id, amount="99.999", kind=TransactionKind.PAYMENT)
    assert txn.status == TransactionStatus.PENDING
    assert txn.amount == Decimal("100.00")
    assert txn.gateway_transaction_id is None
    assert txn.settled_at is None
    assert not txn.is_terminal

    data = txn.to_dict()
    assert data["user_id"] == str(user_id)
    assert data["amount"] == "100.00"
    assert data["settled_at"] is None
