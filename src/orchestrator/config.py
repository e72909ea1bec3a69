"""
Application configuration with environment-driven settings.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "voice-orchestrator"
    app_env: Literal["dev", "qa", "uat", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"
    port: int = 8080

    # Crisis escalation
    hotline_number: str = Field(
        default="",
        description="E.164 number that crisis calls are bridged to",
    )

    # Knowledge base collaborator
    kb_url: str = Field(
        default="http://localhost:8081/kb/search",
        description="KB search endpoint",
    )
    kb_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        le=30,
        description="Upper bound for a single KB request, connect included.",
    )
    kb_result_count: int = Field(
        default=4,
        ge=1,
        le=4,
        description="Number of passages requested per kb_search",
    )

    # Webhook authentication. Empty disables the check.
    vapi_webhook_secret: str = Field(
        default="",
        description="Shared secret expected in the x-vapi-secret header",
    )

    # Session store
    session_store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    session_ttl_seconds: int = Field(
        default=4 * 60 * 60,
        ge=60,
        description="Expiry of a session key in Redis (stale calls never ended).",
    )
    session_key_prefix: str = "voice:session:"

    # Call metadata persistence
    persistence_backend: Literal["database", "memory"] = "database"
    database_url: str = Field(
        default="sqlite+aiosqlite:///./orchestrator.db",
        description="SQLAlchemy async connection URL",
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def webhook_auth_enabled(self) -> bool:
        return bool(self.vapi_webhook_secret)


@lru_cache(maxsize=1)
def _get_settings_cached() -> Settings:
    return Settings()


def get_settings() -> Settings:
    # Under pytest env vars are monkeypatched per test: never hand out a frozen copy.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return Settings()
    return _get_settings_cached()
