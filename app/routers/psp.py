"""Routes for payment provider callbacks and status lookups."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.db import get_db
from app.models.subscription import Subscription
from app.schemas.subscription import PaymentVerificationRead, SubscriptionRead, WebhookAck
from app.services import psp_webhooks
from app.services import subscriptions as subscription_service
from app.services.gateways import require_gateway

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/{provider}/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def provider_webhook(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
) -> WebhookAck:
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    return await run_in_threadpool(psp_webhooks.handle_webhook, db, provider.lower(), raw_body, headers)


@router.get("/{provider}/subscriptions/{subscription_id}", response_model=SubscriptionRead)
def subscription_status(provider: str, subscription_id: str, db: Session = Depends(get_db)) -> Subscription:
    """Poll the vendor and return the refreshed local subscription."""

    gateway = require_gateway(db, provider)
    return subscription_service.refresh_subscription_status(db, gateway.provider, subscription_id)


@router.get("/{provider}/verify/{payment_id}", response_model=PaymentVerificationRead)
def verify_payment(provider: str, payment_id: str, db: Session = Depends(get_db)) -> PaymentVerificationRead:
    gateway = require_gateway(db, provider)
    verification = subscription_service.verify_payment(gateway.provider, payment_id)
    return PaymentVerificationRead(provider=gateway.provider, payment_id=payment_id, **verification.model_dump())


__all__ = ["router"]
