from __future__ import annotations

import pytest

from app.payments.errors import ConfigurationError
from main import build_app
from settings import Settings, validate_env_settings


def _settings(**overrides) -> Settings:
    values = {
        "ENV": "dev",
        "STORE_BACKEND": "memory",
        "PAYSTACK_SECRET_KEY": "sk_test_x",
        "DATABASE_URL": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_validate_env_allows_memory_backend_without_database():
    validate_env_settings(_settings())


def test_missing_paystack_secret_fails_fast():
    with pytest.raises(ConfigurationError) as exc:
        validate_env_settings(_settings(PAYSTACK_SECRET_KEY="  "))
    assert "PAYSTACK_SECRET_KEY" in str(exc.value)


def test_postgres_backend_requires_database_url():
    with pytest.raises(RuntimeError) as exc:
        validate_env_settings(_settings(STORE_BACKEND="postgres"))
    assert "DATABASE_URL" in str(exc.value)


def test_validate_env_prod_fails_on_default_jwt_secret():
    with pytest.raises(ConfigurationError) as exc:
        validate_env_settings(_settings(ENV="prod", PAYSTACK_SECRET_KEY="", STORE_BACKEND="postgres"))

    message = str(exc.value)
    assert "JWT_SECRET" in message
    assert "PAYSTACK_SECRET_KEY" in message
    assert "DATABASE_URL" in message


def test_validate_env_prod_ok_when_configured():
    validate_env_settings(
        _settings(
            ENV="prod",
            STORE_BACKEND="postgres",
            DATABASE_URL="postgresql://example",
            JWT_SECRET="a" * 32,
        )
    )


def test_build_app_refuses_missing_secret():
    with pytest.raises(ConfigurationError):
        build_app(_settings(PAYSTACK_SECRET_KEY=""))


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", "sk_test_from_env")
    monkeypatch.setenv("REFUND_FAILED_WITHDRAWALS", "false")
    monkeypatch.setenv("STORE_BACKEND", "memory")

    s = Settings(_env_file=None)
    assert s.PAYSTACK_SECRET_KEY == "sk_test_from_env"
    assert s.REFUND_FAILED_WITHDRAWALS is False
    assert s.STORE_BACKEND == "memory"
