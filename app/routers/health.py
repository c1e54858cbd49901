"""Health check endpoint."""
from __future__ import annotations

import logging

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from sqlalchemy import text

from app.core.runtime_state import get_last_sweep, is_scheduler_active
from app.config import get_settings
from app.db import get_engine
from app.services.gateways import GATEWAY_CONFIGS, check_configuration

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _db_status() -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error"


def _expected_migration_head() -> str | None:
    try:
        config = Config("alembic.ini")
        script = ScriptDirectory.from_config(config)
        return script.get_current_head()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to load Alembic head revision")
        return None


def _migrations_status() -> tuple[bool, str]:
    expected_head = _expected_migration_head()
    try:
        engine = get_engine()
        with engine.connect() as conn:
            current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
        if expected_head is None:
            return False, "unknown"
        if current == expected_head:
            return True, "up_to_date"
        return False, "out_of_date"
    except Exception:  # noqa: BLE001
        logger.exception("Migration check failed")
        return False, "unknown"


def _gateway_configuration() -> dict[str, str]:
    """Credential presence per vendor; never the credentials themselves."""

    return {
        provider: "configured" if check_configuration(config).is_configured else "missing"
        for provider, config in GATEWAY_CONFIGS.items()
    }


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    settings = get_settings()
    db_status = _db_status()
    db_ok = db_status == "ok"
    if db_ok:
        migration_ok, migration_status = _migrations_status()
    else:
        migration_ok, migration_status = False, "unknown"
    degraded = not (db_ok and migration_ok)
    last_sweep = get_last_sweep()
    return {
        "status": "degraded" if degraded else "ok",
        "env": settings.app_env,
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_ok": migration_ok,
        "migrations_status": migration_status,
        "gateways": _gateway_configuration(),
        "primary_provider": settings.PAYMENT_PRIMARY_PROVIDER,
        "webhook_secrets": {
            "razorpay": bool(settings.RAZORPAY_WEBHOOK_SECRET),
            "paypal": bool(settings.PAYPAL_WEBHOOK_ID),
            "stripe": bool(settings.STRIPE_WEBHOOK_SECRET),
        },
        "scheduler_config_enabled": bool(settings.SCHEDULER_ENABLED),
        "scheduler_running": is_scheduler_active(),
        "last_subscription_sweep": last_sweep.isoformat() if last_sweep else None,
    }
