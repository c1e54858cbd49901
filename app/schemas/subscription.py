"""Subscription and webhook acknowledgement schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.models.subscription import SubscriptionStatus


class SubscriptionRead(BaseModel):
    id: int
    provider: str
    provider_subscription_id: str
    customer_id: str | None = None
    plan_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookAck(BaseModel):
    received: bool = True
    processed: bool
    duplicate: bool = False
    event_type: str | None = None
    status: SubscriptionStatus | None = None
    subscription_id: str | None = None


class PaymentVerificationRead(BaseModel):
    provider: str
    payment_id: str
    is_valid: bool
    subscription_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str | None = None
