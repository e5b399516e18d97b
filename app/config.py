"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Environnement d'exécution: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()


class Settings(BaseSettings):
    """Environment configuration for the subscription backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///surebets.db"
    SECRET_KEY: str = "change-me"
    ALLOW_DB_CREATE_ALL: bool = False
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3002",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False

    # --- Billing ---------------------------------------------------------
    CURRENCY: str = "BRL"
    APP_URL: str = "http://localhost:3002"
    PAGBANK_TOKEN: str | None = None
    PAGBANK_ENVIRONMENT: str = "sandbox"
    PAGBANK_TIMEOUT_SECONDS: float = 15.0

    # --- Outbound webhooks -----------------------------------------------
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_USER_AGENT: str = "Painel-Surebets-Webhook/1.0"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("PAGBANK_TOKEN", "SENTRY_DSN")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("PAGBANK_ENVIRONMENT")
    @classmethod
    def _normalise_environment(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def pagbank_production(self) -> bool:
        return self.PAGBANK_ENVIRONMENT == "production"


class AppInfo(BaseModel):
    name: str = "surebets-panel-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
