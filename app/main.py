from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import db  # moteur/metadata centralisés
from app.config import AppInfo, get_settings
from app.core.logging import get_logger, setup_logging
from app.core.runtime_state import set_scheduler_active
import app.models  # enregistre les tables
from app.routers import get_api_router
from app.services.cron import expire_subscriptions_once
from app.services.gateways import initialize_gateways
from app.services.psp_providers import reset_providers
from app.utils.errors import PaymentError, error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _current_settings():
    return get_settings()


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    """Configure middleware using a fresh snapshot of the settings."""

    runtime_settings = _current_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Actor-Id"],
    )

    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _log_gateway_credentials(settings: Any) -> None:
    """Warn about vendors running in demo mode; production without any live vendor is fatal."""

    from app.services.gateways import GATEWAY_CONFIGS, check_configuration

    configured = []
    for provider, config in GATEWAY_CONFIGS.items():
        check = check_configuration(config)
        if check.is_configured:
            configured.append(provider)
        else:
            logger.warning(
                "Payment gateway credentials missing; demo checkouts only.",
                extra={"provider": provider, "detail": check.message},
            )
    if settings.is_production and not configured:
        logger.error("No payment gateway is configured in production.", extra={"env": settings.app_env})
        raise RuntimeError("No payment gateway credentials configured in production.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = _current_settings()
    logger.info("Application startup", extra={"env": settings.app_env})
    _log_gateway_credentials(settings)

    db.init_engine()  # sync, idempotent
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because APP_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info(
            "Skipping create_all(); use Alembic migrations. APP_ENV=%s, ALLOW_DB_CREATE_ALL=%s",
            settings.app_env,
            settings.ALLOW_DB_CREATE_ALL,
        )

    with db.session_scope() as session:
        initialize_gateways(session)

    # Single process: enable SCHEDULER_ENABLED on one runner only.
    set_scheduler_active(False)
    global scheduler
    if settings.SCHEDULER_ENABLED:
        scheduler = AsyncIOScheduler()
        scheduler.start()
        scheduler.add_job(
            expire_subscriptions_once,
            "cron",
            hour=settings.SUBSCRIPTION_SWEEP_HOUR,
            id="expire-subscriptions",
            replace_existing=True,
        )
        scheduler.add_job(expire_subscriptions_once, id="expire-subscriptions-startup", replace_existing=True)
        set_scheduler_active(True)
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None
        set_scheduler_active(False)
        reset_providers()
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(PaymentError)
async def payment_exception_handler(request: Request, exc: PaymentError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
