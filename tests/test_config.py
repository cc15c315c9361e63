"""
Tests for `config.py`.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config import Settings


def test_defaults(monkeypatch) -> None:
    for name in ("MARKETPLACE_STORE", "STORE_RETRY_ATTEMPTS", "STORE_RETRY_BACKOFF_SECONDS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.store_backend == "supabase"
    assert settings.store_retry_attempts == 3
    assert settings.store_retry_backoff_seconds == 0.05
    assert settings.log_level == "INFO"


def test_reads_typed_values_from_the_environment(monkeypatch) -> None:
    monkeypatch.setenv("MARKETPLACE_STORE", " Memory ")
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("STORE_RETRY_BACKOFF_SECONDS", "0.2")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")

    settings = Settings(_env_file=None)

    assert settings.store_backend == "memory"
    assert settings.store_retry_attempts == 5
    assert settings.store_retry_backoff_seconds == 0.2
    assert settings.log_level == "DEBUG"
    assert settings.stripe_webhook_secret == "whsec_env"


def test_unknown_store_backend_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("MARKETPLACE_STORE", "mysql")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_settings_are_immutable() -> None:
    settings = Settings(_env_file=None, store_backend="memory")

    with pytest.raises(ValidationError):
        settings.store_backend = "supabase"
