
# settings.py
from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.payments.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # Storage
    # -----------------------
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DATABASE_URL: str = ""
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_STATEMENT_TIMEOUT_MS: int = Field(default=5000, ge=100)

    # -----------------------
    # JWT (tokens are minted by the user service; we only decode)
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Paystack
    # -----------------------
    # Secret key doubles as the webhook HMAC key.
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_HTTP_TIMEOUT_S: float = Field(default=15.0, gt=0)
    PAYMENTS_CURRENCY: str = Field(default="NGN", min_length=3, max_length=3)

    # Failed payouts put the debited amount back on the balance.
    REFUND_FAILED_WITHDRAWALS: bool = True

    # -----------------------
    # Reconciliation
    # -----------------------
    RECONCILE_STALE_MINUTES: int = Field(default=30, ge=0)
    RECONCILE_BATCH_SIZE: int = Field(default=100, ge=1, le=1000)


def validate_env_settings(settings: Settings) -> None:
    """
    Fail fast on deployment misconfiguration.
    Called once from build_app(); a missing secret is never a per-request error.
    """
    missing: list[str] = []

    if not (settings.PAYSTACK_SECRET_KEY or "").strip():
        missing.append("PAYSTACK_SECRET_KEY")

    if settings.STORE_BACKEND == "postgres" and not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")

    env = (settings.ENV or "").strip().lower()
    if env in ("staging", "prod", "production") and settings.JWT_SECRET == "dev-secret-change-me":
        missing.append("JWT_SECRET")

    if missing:
        raise ConfigurationError("Missing required settings: " + ", ".join(missing))
