"""Application configuration via pydantic-settings.

Reads from a .env file or environment variables. Settings are validated
once at startup, so a malformed value stops the service before it takes
any traffic.

Usage:
    from project_escrow.config import get_settings
    settings = get_settings()
    print(settings.escrow_currency)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the project escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/project_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Identity (JWT bearer tokens) ---
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24 * 7

    # --- Escrow ---
    escrow_currency: str = "INR"
    escrow_platform_commission_percent: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    escrow_transactions_page_cap: int = Field(default=200, ge=1)

    # --- Email (Brevo transactional API) ---
    email_enabled: bool = False
    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"
    email_from_address: str = "no-reply@proworkers.com"
    email_from_name: str = "ProWorkers"
    frontend_url: str = "http://localhost:3000"

    # --- Push (Firebase Cloud Messaging) ---
    push_enabled: bool = False
    # Raw JSON or base64-encoded JSON of a service account.
    firebase_service_account_json: str = ""
    google_application_credentials: str = ""
    push_default_title: str = "ProWorkers"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def push_configured(self) -> bool:
        return self.push_enabled and bool(
            self.firebase_service_account_json or self.google_application_credentials
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
