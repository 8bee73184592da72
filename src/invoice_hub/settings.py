"""
invoice_hub.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the API, the worker and the CLI.
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single settings object shared by the API process, the reminder worker and the CLI.
    Defaults are safe for local dev.
    """

    model_config = SettingsConfigDict(env_prefix="INVH_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "invoice-hub"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "invoice-hub"
    jwt_audience: str = "invoice-hub-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./invoice_hub.db"

    # Reminder worker (ARQ)
    redis_url: str = "redis://localhost:6379/0"
    reminder_job_timeout_s: int = Field(default=600, ge=1, lt=86_400)

    # Outbound webhooks to service providers
    webhook_timeout_s: float = Field(default=10.0, gt=0)

    # Paid invoices older than this are stamped as archived.
    archive_after_months: int = Field(default=6, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# --- Module Notes -----------------------------------------------------------
# The worker builds its cron table at import time, so anything it reads from here
# must be resolvable from env vars alone.
