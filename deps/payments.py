
# deps/payments.py
from fastapi import Request

from app.payments.service import PaymentService
from app.webhooks.router import WebhookEventRouter
from app.webhooks.signature import SignatureVerifier
from settings import Settings


# Components are wired once in main.build_app() and hung on app.state;
# nothing here constructs clients.

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_webhook_router(request: Request) -> WebhookEventRouter:
    return request.app.state.webhook_router


def get_signature_verifier(request: Request) -> SignatureVerifier:
    return request.app.state.signature_verifier
