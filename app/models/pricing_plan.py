"""Pricing plan model."""
import enum
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Enum as SqlEnum, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class BillingInterval(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PricingPlan(Base):
    """Sellable plan; checkout resolves its amount and interval from here."""

    __tablename__ = "pricing_plans"
    __table_args__ = (CheckConstraint("price >= 0", name="non_negative_price"),)

    plan_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    billing_interval: Mapped[BillingInterval] = mapped_column(
        SqlEnum(BillingInterval, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BillingInterval.MONTHLY,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_popular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
