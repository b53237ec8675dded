
# tests/conftest.py

import json
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.payments.errors import GatewayError
from app.payments.memory_store import InMemoryTransactionStore
from app.payments.model import Transaction, TransactionKind
from app.providers.base import GatewayVerification, InitializeResult, TransferResult
from app.webhooks.signature import compute_signature
from main import build_app
from security import create_access_token
from services import metrics
from settings import Settings


WEBHOOK_SECRET = "sk_test_webhook_secret_0123456789"


@dataclass
class AuthedUser:
    user_id: uuid.UUID
    token: str


# ---------------------------
# Fakes
# ---------------------------

class FakeGateway:
    """
    Records calls; verify answers come from `verifications` (reference -> GatewayVerification).
    Set `fail_with` to make every call raise, or `errors` to fail single references.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.verifications: Dict[str, GatewayVerification] = {}
        self.errors: Dict[str, Exception] = {}
        self.fail_with: Optional[GatewayError] = None

    def _record(self, _op: str, /, **kwargs):
        self.calls.append((_op, kwargs))
        if self.fail_with is not None:
            raise self.fail_with
        if kwargs.get("reference") in self.errors:
            raise self.errors[kwargs["reference"]]

    def initialize(self, *, email, amount, reference, metadata=None):
        self._record("initialize", email=email, amount=amount, reference=reference, metadata=metadata)
        return InitializeResult(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            access_code=f"ac_{reference}",
            reference=reference,
        )

    def verify(self, reference):
        self._record("verify", reference=reference)
        return self.verifications.get(reference) or GatewayVerification(reference=reference, gateway_status="ongoing")

    def verify_transfer(self, reference):
        self._record("verify_transfer", reference=reference)
        return self.verifications.get(reference) or GatewayVerification(reference=reference, gateway_status="pending")

    def transfer(self, *, amount, recipient_code, reason, reference):
        self._record("transfer", amount=amount, recipient_code=recipient_code, reason=reason, reference=reference)
        return TransferResult(reference=reference, transfer_code=f"TRF_{reference}", gateway_status="pending")

    def subscribe(self, *, email, plan_code):
        self._record("subscribe", email=email, plan_code=plan_code)
        return {"subscription_code": "SUB_test", "status": "active"}

    def create_plan(self, *, name, amount, interval):
        self._record("create_plan", name=name, amount=amount, interval=interval)
        return {"plan_code": "PLN_test", "name": name, "interval": interval}

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[tuple] = []

    def notify(self, user_id, kind, amount):
        self.calls.append((user_id, kind, amount))
        if self.fail:
            raise RuntimeError("smtp down")


# ---------------------------
# Helpers
# ---------------------------

def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "x-paystack-signature": compute_signature(body, secret.encode("utf-8")),
    }


def webhook_body(event: str, reference: Optional[str], gateway_id: Any = None, **data: Any) -> bytes:
    payload: Dict[str, Any] = {"event": event, "data": dict(data)}
    if reference is not None:
        payload["data"]["reference"] = reference
    if gateway_id is not None:
        payload["data"]["id"] = gateway_id
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def seed_pending(
    store: InMemoryTransactionStore,
    *,
    user_id: uuid.UUID,
    reference: str,
    amount: str = "500.00",
    kind: TransactionKind = TransactionKind.PAYMENT,
) -> Transaction:
    txn = Transaction.new_pending(user_id=user_id, amount=Decimal(amount), kind=kind, reference=reference)
    with store.unit_of_work() as uow:
        uow.insert_transaction(txn)
    return txn


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------
# Fixtures
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENV="test",
        STORE_BACKEND="memory",
        PAYSTACK_SECRET_KEY=WEBHOOK_SECRET,
        JWT_SECRET="test-jwt-secret-0123456789",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture()
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def app(settings, store, gateway, notifier):
    return build_app(settings, store=store, gateway=gateway, notifier=notifier)


@pytest.fixture()
def client(app) -> TestClient:
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def service(app):
    return app.state.payment_service


@pytest.fixture()
def user(settings) -> AuthedUser:
    user_id = uuid.uuid4()
    return AuthedUser(user_id=user_id, token=create_access_token(str(user_id), settings))


@pytest.fixture()
def other_user(settings) -> AuthedUser:
    user_id = uuid.uuid4()
    return AuthedUser(user_id=user_id, token=create_access_token(str(user_id), settings))


@pytest.fixture()
def pending_payment(store, user) -> Transaction:
    return seed_pending(store, user_id=user.user_id, reference="R-1", amount="500.00")

