"""Ledger transaction schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.gateway_transaction import TransactionStatus


class TransactionCreate(BaseModel):
    gateway_id: int
    transaction_id: str = Field(min_length=1, max_length=128)
    amount: Decimal = Field(ge=Decimal("0"))
    currency: str = Field(pattern=r"^[A-Z]{3}$")
    status: TransactionStatus
    payment_method: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    response_data: dict[str, Any] | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def _normalise_currency(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


class TransactionRead(BaseModel):
    id: int
    gateway_id: int
    transaction_id: str
    amount: Decimal
    currency: str
    status: TransactionStatus
    payment_method: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
