"""
Runtime configuration.

Values are read from the environment, optionally populated from a .env file
next to this module. Nothing here talks to the network; credentials are only
required when the component that needs them is created.

Environment variables:
- MARKETPLACE_STORE: "supabase" (default) or "memory"
- SUPABASE_URL / SUPABASE_KEY: Supabase project URL and server-side key
- STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET: payment provider credentials
- STORE_RETRY_ATTEMPTS: attempts for operations that hit a StoreConflict (default 3)
- STORE_RETRY_BACKOFF_SECONDS: base delay for exponential backoff (default 0.05)
- LOG_LEVEL: logging level name (default INFO)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

env_path = Path(__file__).parent / ".env"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=env_path,
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Store
    store_backend: Literal["supabase", "memory"] = Field("supabase", validation_alias="MARKETPLACE_STORE")
    store_retry_attempts: int = Field(3, ge=1)
    store_retry_backoff_seconds: float = Field(0.05, ge=0)

    # Supabase
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # Service
    log_level: str = "INFO"

    @field_validator("store_backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
