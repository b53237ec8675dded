from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.notifications.dispatcher import LoggingNotifier, NotificationDispatcher, Notifier
from app.payments.ledger import LedgerUpdater
from app.payments.memory_store import InMemoryTransactionStore
from app.payments.repository import PostgresTransactionStore
from app.payments.service import PaymentService
from app.payments.store import TransactionStore
from app.providers.base import PaymentGateway
from app.providers.paystack import PaystackClient
from app.webhooks.router import WebhookEventRouter
from app.webhooks.signature import SignatureVerifier
from middleware import RequestContextMiddleware
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.payments import router as payments_router
from routes.webhooks import router as webhooks_router
from services.observability import configure_logging
from settings import Settings, validate_env_settings

logger = logging.getLogger("paystack.http")


def build_store(settings: Settings) -> TransactionStore:
    if settings.STORE_BACKEND == "memory":
        return InMemoryTransactionStore()
    return PostgresTransactionStore(
        settings.DATABASE_URL,
        maxconn=settings.DB_POOL_MAX,
        statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
    )


def build_gateway(settings: Settings) -> PaymentGateway:
    return PaystackClient(
        secret_key=settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        timeout_s=settings.PAYSTACK_HTTP_TIMEOUT_S,
        currency=settings.PAYMENTS_CURRENCY,
    )


def build_service(
    settings: Settings,
    *,
    store: TransactionStore,
    gateway: PaymentGateway,
    notifier: Notifier,
) -> PaymentService:
    return PaymentService(
        store=store,
        gateway=gateway,
        dispatcher=NotificationDispatcher(notifier),
        ledger=LedgerUpdater(refund_failed_withdrawals=settings.REFUND_FAILED_WITHDRAWALS),
    )


def build_app(
    settings: Settings | None = None,
    *,
    store: TransactionStore | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """
    Wire every component from one explicit Settings object.
    Injected collaborators win over the ones derived from settings.
    """
    settings = settings or Settings()
    validate_env_settings(settings)
    configure_logging(settings.LOG_LEVEL)

    store = store or build_store(settings)
    gateway = gateway or build_gateway(settings)
    service = build_service(settings, store=store, gateway=gateway, notifier=notifier or LoggingNotifier())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Pool and HTTP client are owned by the app once wired here.
        for component in (gateway, store):
            close = getattr(component, "close", None)
            if close is not None:
                close()
        logger.info("app_shutdown store=%s", settings.STORE_BACKEND)

    app = FastAPI(title="Paystack Payments API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.payment_service = service
    app.state.webhook_router = WebhookEventRouter(service)
    app.state.signature_verifier = SignatureVerifier(settings.PAYSTACK_SECRET_KEY)

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(webhooks_router)
    app.include_router(payments_router)
    app.include_router(health_router)
    app.include_router(metrics_router)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


def create_app() -> FastAPI:
    """Entry point for `uvicorn main:create_app --factory`."""
    return build_app(Settings())
