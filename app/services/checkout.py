"""Checkout orchestration: pick a gateway, open a vendor checkout, record it."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.gateway import PaymentGateway
from app.models.pricing_plan import BillingInterval
from app.schemas.checkout import CheckoutRead, CheckoutRequest
from app.services import pricing_plans, subscriptions
from app.services.gateways import get_gateway
from app.services.psp_base import CheckoutParams
from app.services.psp_providers import get_provider
from app.utils.errors import PaymentError, PaymentErrorCode

logger = logging.getLogger(__name__)

INTERVALS = {BillingInterval.MONTHLY: "month", BillingInterval.YEARLY: "year"}


def _enabled_gateways(db: Session, provider: str | None) -> list[PaymentGateway]:
    if provider:
        gateway = get_gateway(db, provider)
        if gateway is None:
            raise PaymentError(PaymentErrorCode.GATEWAY_NOT_FOUND, f"Unknown payment gateway: {provider}", provider=provider)
        if not gateway.is_enabled:
            raise PaymentError(
                PaymentErrorCode.GATEWAY_NOT_FOUND, f"Payment gateway {provider} is not enabled", provider=provider
            )
        return [gateway]
    stmt = (
        select(PaymentGateway)
        .where(PaymentGateway.is_enabled.is_(True))
        .order_by(PaymentGateway.is_primary.desc(), PaymentGateway.provider)
    )
    return list(db.scalars(stmt).all())


def select_gateway(
    db: Session, currency: str, region: str | None = None, provider: str | None = None
) -> PaymentGateway:
    """Primary first, then by provider name, among enabled gateways that can take the payment."""

    currency = currency.upper()
    candidates = [
        gateway for gateway in _enabled_gateways(db, provider) if get_provider(gateway.provider).supports_currency(currency)
    ]
    if not candidates:
        raise PaymentError(
            PaymentErrorCode.CURRENCY_NOT_SUPPORTED,
            f"No enabled payment gateway supports {currency}",
            provider=provider,
        )
    if region:
        candidates = [g for g in candidates if get_provider(g.provider).supports_region(region)]
        if not candidates:
            raise PaymentError(
                PaymentErrorCode.REGION_NOT_SUPPORTED,
                f"No enabled payment gateway supports {currency} in {region.upper()}",
                provider=provider,
            )
    return candidates[0]


def create_checkout(db: Session, request: CheckoutRequest) -> CheckoutRead:
    settings = get_settings()
    plan = pricing_plans.get_active_plan(db, request.plan_id)
    currency = (request.currency or plan.currency).upper()
    amount = request.amount if request.amount is not None else plan.price

    gateway = select_gateway(db, currency, request.region, request.provider)
    adapter = get_provider(gateway.provider)
    params = CheckoutParams(
        amount=amount,
        currency=currency,
        customer_email=request.customer_email,
        customer_name=request.customer_name,
        customer_phone=request.customer_phone,
        product_name=plan.name,
        subscription_type=plan.plan_id,
        interval=INTERVALS[plan.billing_interval],
        return_url=request.return_url or f"{settings.APP_URL}/payment/success",
        cancel_url=request.cancel_url or f"{settings.APP_URL}/payment/cancel",
        metadata={"plan_id": plan.plan_id},
    )

    try:
        response = adapter.create_checkout(params)
    except PaymentError:
        logger.error(
            "Checkout creation failed",
            extra={"provider": gateway.provider, "plan_id": plan.plan_id, "currency": currency},
        )
        raise

    # Ledger rows are written by the vendor webhook once money moves.
    subscriptions.record_checkout(
        db,
        provider=gateway.provider,
        checkout=response,
        plan=plan,
        amount=amount,
        currency=currency,
        customer_id=request.customer_email,
        customer_name=request.customer_name,
    )
    db.commit()

    logger.info(
        "Checkout created",
        extra={
            "provider": gateway.provider,
            "plan_id": plan.plan_id,
            "payment_id": response.payment_id,
            "demo": response.demo,
        },
    )
    return CheckoutRead(provider=gateway.provider, **response.model_dump())


__all__ = ["create_checkout", "select_gateway"]
