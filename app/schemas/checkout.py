"""Checkout request/response schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class CheckoutRequest(BaseModel):
    plan_id: str = Field(min_length=1, max_length=64)
    customer_email: EmailStr
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str | None = Field(default=None, max_length=20)
    provider: str | None = None
    region: str | None = Field(default=None, pattern=r"^[A-Z]{2}$")
    currency: str | None = Field(default=None, pattern=r"^[A-Z]{3}$")
    amount: Decimal | None = Field(default=None, gt=Decimal("0"))
    return_url: str | None = None
    cancel_url: str | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("currency", "region", mode="before")
    @classmethod
    def _upper(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("provider", mode="before")
    @classmethod
    def _lower(cls, value):
        return value.lower() if isinstance(value, str) else value


class CheckoutRead(BaseModel):
    provider: str
    checkout_url: str
    session_id: str
    payment_id: str
    expires_at: datetime
    demo: bool = False
