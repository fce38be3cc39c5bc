from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("formrelay.config")


class Settings(BaseSettings):
    """
    Central configuration for the formrelay backend.

    - Reads from .env (local) and process environment.
    - Every value has a default so a bare checkout starts against SQLite.
    - Ignores extra env vars so adding new ones doesn't break startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Core app
    # -------------------------------------------------------------------------
    app_name: str = Field(default="formrelay", alias="APP_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    environment: str = Field(default="local", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///./formrelay.db",
        alias="DATABASE_URL",
    )

    # -------------------------------------------------------------------------
    # Intake throttling
    # -------------------------------------------------------------------------
    # 60s / 5 requests = one accepted submission every 12s per IP.
    rate_limit_window_ms: int = Field(default=60_000, alias="RATE_LIMIT_WINDOW_MS")
    rate_limit_max_requests: int = Field(default=5, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_max_entries: int = Field(default=5000, alias="RATE_LIMIT_MAX_ENTRIES")
    # Only honour X-Forwarded-For when running behind a proxy that sets it.
    trust_forwarded_for: bool = Field(default=False, alias="TRUST_FORWARDED_FOR")

    # -------------------------------------------------------------------------
    # Outbound SMTP pooling (per tenant SMTP target)
    # -------------------------------------------------------------------------
    smtp_pool_max_connections: int = Field(default=5, alias="SMTP_POOL_MAX_CONNECTIONS")
    smtp_pool_max_messages: int = Field(default=100, alias="SMTP_POOL_MAX_MESSAGES")
    smtp_timeout_seconds: float = Field(default=30.0, alias="SMTP_TIMEOUT_SECONDS")

    # -------------------------------------------------------------------------
    # CORS
    # -------------------------------------------------------------------------
    # CORS_ALLOW_ORIGINS=https://a.com,https://b.com  (default "*")
    cors_allow_origins_raw: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")

    @field_validator(
        "rate_limit_window_ms",
        "rate_limit_max_requests",
        "rate_limit_max_entries",
        "smtp_pool_max_connections",
        "smtp_pool_max_messages",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @property
    def cors_allow_origins(self) -> list[str]:
        """
        Returns a list of origins from the comma-separated env string.
        Safe if env is missing or empty.
        """
        if not self.cors_allow_origins_raw:
            return []
        return [
            origin.strip()
            for origin in self.cors_allow_origins_raw.split(",")
            if origin.strip()
        ]


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader so config is evaluated once per process.
    """
    settings = Settings()
    logger.info(
        "Settings loaded (env=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )
    return settings
