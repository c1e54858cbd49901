"""Pricing plan schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.pricing_plan import BillingInterval


def _upper(value):
    return value.upper() if isinstance(value, str) else value


class PricingPlanBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    price: Decimal = Field(ge=Decimal("0"), max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    description: str | None = None
    features: list[str] = Field(default_factory=list)
    is_popular: bool = False
    is_active: bool = True
    display_order: int = 0

    _normalise_currency = field_validator("currency", mode="before")(_upper)


class PricingPlanCreate(PricingPlanBase):
    plan_id: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_\-]+$")


class PricingPlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    price: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=10, decimal_places=2)
    currency: str | None = Field(default=None, pattern=r"^[A-Z]{3}$")
    billing_interval: BillingInterval | None = None
    description: str | None = None
    features: list[str] | None = None
    is_popular: bool | None = None
    is_active: bool | None = None
    display_order: int | None = None

    model_config = ConfigDict(extra="forbid")

    _normalise_currency = field_validator("currency", mode="before")(_upper)


class PricingPlanRead(PricingPlanBase):
    id: int
    plan_id: str
    last_updated_by: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
