"""Gateway transaction ledger model."""
import enum
from decimal import Decimal

from sqlalchemy import Enum as SqlEnum, ForeignKey, Index, JSON, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class TransactionStatus(str, enum.Enum):
    """Outcome of a checkout or webhook attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class GatewayTransaction(Base):
    """Append-only ledger entry for one vendor round trip."""

    __tablename__ = "gateway_transactions"
    __table_args__ = (
        UniqueConstraint(
            "gateway_id",
            "transaction_id",
            "status",
            name="uq_gateway_transactions_gateway_txn_status",
        ),
        Index("ix_gateway_transactions_created_at", "created_at"),
        Index("ix_gateway_transactions_status", "status"),
    )

    gateway_id: Mapped[int] = mapped_column(ForeignKey("payment_gateways.id"), nullable=False, index=True)
    transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SqlEnum(TransactionStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    gateway = relationship("PaymentGateway", back_populates="transactions")
