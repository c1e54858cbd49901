"""Payment gateway configuration model."""
import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum as SqlEnum, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class GatewayConfigStatus(str, enum.Enum):
    """Whether the credentials a gateway needs are present."""

    CONFIGURED = "configured"
    NOT_CONFIGURED = "not_configured"


class PaymentGateway(Base):
    """One row per payment vendor, seeded at startup and never deleted.

    The aggregate counters are maintained additively by the transaction
    ledger; nothing else writes them.
    """

    __tablename__ = "payment_gateways"

    provider: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_test_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    supported_currencies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    supported_countries: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    config_status: Mapped[GatewayConfigStatus] = mapped_column(
        SqlEnum(GatewayConfigStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=GatewayConfigStatus.NOT_CONFIGURED,
    )
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_status_check: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    webhook_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_configured_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    transactions = relationship("GatewayTransaction", back_populates="gateway", lazy="noload")
