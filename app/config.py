"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Environnement d'exécution: "dev" | "staging" | "prod"
ENV = os.getenv("GREENLENS_ENV", "dev").lower()

# Scheduler (optionnel)
SCHEDULER_ENABLED = os.getenv("GREENLENS_SCHEDULER_ENABLED", "0") in {
    "1",
    "true",
    "yes",
    "True",
    "YES",
}

_CREDENTIAL_FIELDS = (
    "CASHFREE_APP_ID",
    "CASHFREE_SECRET_KEY",
    "RAZORPAY_KEY_ID",
    "RAZORPAY_KEY_SECRET",
    "RAZORPAY_WEBHOOK_SECRET",
    "PAYPAL_CLIENT_ID",
    "PAYPAL_CLIENT_SECRET",
    "PAYPAL_WEBHOOK_ID",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
)


class Settings(BaseSettings):
    """Environment configuration for the GreenLens billing backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///greenlens.db"
    APP_URL: str = "http://localhost:5000"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://greenlens.app",
        "http://localhost:5000",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    ALLOW_DB_CREATE_ALL: bool = False

    # --- Payment gateways ------------------------------------------------
    CASHFREE_APP_ID: str | None = None
    CASHFREE_SECRET_KEY: str | None = None
    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_WEBHOOK_SECRET: str | None = None
    PAYPAL_CLIENT_ID: str | None = None
    PAYPAL_CLIENT_SECRET: str | None = None
    PAYPAL_WEBHOOK_ID: str | None = None
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None

    PAYMENT_PRIMARY_PROVIDER: str = "cashfree"
    PSP_HTTP_TIMEOUT_SECONDS: float = 15.0
    PSP_WEBHOOK_MAX_DRIFT_SECONDS: int = 300
    SYSTEM_ACTOR_IDS: set[str] = {"admin-system", "999"}

    # --- Scheduler -------------------------------------------------------
    SCHEDULER_ENABLED: bool = SCHEDULER_ENABLED
    SUBSCRIPTION_SWEEP_HOUR: int = 9

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator(*_CREDENTIAL_FIELDS)
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty credentials to ``None`` so presence checks stay simple."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"prod", "production"}


class AppInfo(BaseModel):
    name: str = "greenlens-billing"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "SCHEDULER_ENABLED",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
