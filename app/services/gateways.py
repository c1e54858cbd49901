"""Gateway registry: persisted per-vendor configuration and status."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.gateway import GatewayConfigStatus, PaymentGateway
from app.schemas.gateway import ConfigurationCheck, ConnectionTestResult, GatewayUpdate
from app.services.psp_providers import PROVIDER_CLASSES
from app.utils.audit import log_audit
from app.utils.errors import PaymentError, PaymentErrorCode
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayConfig:
    provider: str
    display_name: str
    supported_currencies: tuple[str, ...]
    supported_countries: tuple[str, ...]
    required_env_vars: tuple[str, ...]


GATEWAY_CONFIGS: dict[str, GatewayConfig] = {
    name: GatewayConfig(
        provider=name,
        display_name=cls.display_name,
        supported_currencies=tuple(sorted(cls.supported_currencies)),
        supported_countries=tuple(sorted(cls.supported_regions)),
        required_env_vars=cls.credential_settings,
    )
    for name, cls in PROVIDER_CLASSES.items()
}


def check_configuration(config: GatewayConfig) -> ConfigurationCheck:
    """Report whether every credential the gateway needs is present."""

    settings = get_settings()
    missing = [var for var in config.required_env_vars if not getattr(settings, var, None)]
    if missing:
        return ConfigurationCheck(is_configured=False, message=f"Missing environment variables: {', '.join(missing)}")
    return ConfigurationCheck(is_configured=True, message="All required credentials configured")


def _config_for(provider: str) -> GatewayConfig:
    config = GATEWAY_CONFIGS.get(provider)
    if config is None:
        raise PaymentError(PaymentErrorCode.GATEWAY_NOT_FOUND, f"Unknown payment gateway: {provider}", provider=provider)
    return config


def initialize_gateways(db: Session) -> list[PaymentGateway]:
    """Insert a row for every known vendor that has none yet.

    Existing rows are left alone so admin choices survive restarts.
    """

    settings = get_settings()
    existing = {row.provider for row in db.scalars(select(PaymentGateway)).all()}
    has_primary = db.scalar(select(PaymentGateway.id).where(PaymentGateway.is_primary.is_(True)).limit(1)) is not None

    created: list[PaymentGateway] = []
    now = utcnow()
    for provider, config in GATEWAY_CONFIGS.items():
        if provider in existing:
            continue
        check = check_configuration(config)
        make_primary = not has_primary and provider == settings.PAYMENT_PRIMARY_PROVIDER
        gateway = PaymentGateway(
            provider=provider,
            display_name=config.display_name,
            is_enabled=check.is_configured,
            is_test_mode=True,
            is_primary=make_primary,
            supported_currencies=list(config.supported_currencies),
            supported_countries=list(config.supported_countries),
            config_status=GatewayConfigStatus.CONFIGURED if check.is_configured else GatewayConfigStatus.NOT_CONFIGURED,
            status_message=check.message,
            last_status_check=now,
        )
        has_primary = has_primary or make_primary
        db.add(gateway)
        created.append(gateway)
        logger.info(
            "Payment gateway seeded",
            extra={"provider": provider, "configured": check.is_configured, "is_primary": make_primary},
        )

    db.commit()
    return created


def get_gateway(db: Session, provider: str) -> PaymentGateway | None:
    stmt = select(PaymentGateway).where(PaymentGateway.provider == provider.lower())
    return db.scalars(stmt).one_or_none()


def require_gateway(db: Session, provider: str) -> PaymentGateway:
    gateway = get_gateway(db, provider)
    if gateway is None:
        raise PaymentError(PaymentErrorCode.GATEWAY_NOT_FOUND, f"Unknown payment gateway: {provider}", provider=provider)
    return gateway


def list_gateways(db: Session) -> list[PaymentGateway]:
    stmt = select(PaymentGateway).order_by(PaymentGateway.is_primary.desc(), PaymentGateway.provider)
    return list(db.scalars(stmt).all())


def _is_real_actor(actor_id: str | None) -> bool:
    return bool(actor_id) and actor_id not in get_settings().SYSTEM_ACTOR_IDS


def update_gateway(
    db: Session,
    provider: str,
    updates: GatewayUpdate,
    *,
    actor_id: str | None = None,
) -> PaymentGateway:
    """Apply a partial update; promoting a gateway demotes every other primary."""

    gateway = require_gateway(db, provider)
    changes = updates.model_dump(exclude_unset=True)

    if changes.get("is_primary"):
        db.execute(
            update(PaymentGateway)
            .where(PaymentGateway.is_primary.is_(True), PaymentGateway.id != gateway.id)
            .values(is_primary=False)
        )

    for field in ("is_enabled", "is_test_mode", "is_primary", "webhook_url"):
        if field in changes and (changes[field] is not None or field == "webhook_url"):
            setattr(gateway, field, changes[field])
    if "metadata" in changes:
        gateway.metadata_json = changes["metadata"]

    if _is_real_actor(actor_id):
        gateway.last_configured_by = actor_id

    db.flush()
    log_audit(
        db,
        actor=actor_id or "system",
        action="GATEWAY_UPDATED",
        entity="PaymentGateway",
        entity_id=gateway.id,
        data={"provider": gateway.provider, "changes": changes},
    )
    db.commit()
    db.refresh(gateway)
    logger.info(
        "Payment gateway updated",
        extra={"provider": gateway.provider, "fields": sorted(changes), "actor_id": actor_id},
    )
    return gateway


def refresh_gateway_status(db: Session, provider: str) -> PaymentGateway:
    """Re-check credentials; a gateway that lost them is disabled, others keep their flag."""

    gateway = require_gateway(db, provider)
    check = check_configuration(_config_for(gateway.provider))

    gateway.config_status = GatewayConfigStatus.CONFIGURED if check.is_configured else GatewayConfigStatus.NOT_CONFIGURED
    gateway.status_message = check.message
    gateway.last_status_check = utcnow()
    if not check.is_configured and gateway.is_enabled:
        gateway.is_enabled = False
        logger.warning("Payment gateway disabled; credentials missing", extra={"provider": gateway.provider})

    db.commit()
    db.refresh(gateway)
    return gateway


def test_connection(db: Session, provider: str) -> ConnectionTestResult:
    """Configuration-only check; no call leaves the process."""

    gateway = require_gateway(db, provider)
    check = check_configuration(_config_for(gateway.provider))
    if not check.is_configured:
        return ConnectionTestResult(success=False, message=check.message)
    return ConnectionTestResult(success=True, message=f"{gateway.display_name} credentials configured")


__all__ = [
    "GATEWAY_CONFIGS",
    "GatewayConfig",
    "check_configuration",
    "get_gateway",
    "initialize_gateways",
    "list_gateways",
    "refresh_gateway_status",
    "require_gateway",
    "test_connection",
    "update_gateway",
]
