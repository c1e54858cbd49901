"""Append-only transaction ledger with per-gateway aggregate counters."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.gateway import PaymentGateway
from app.models.gateway_transaction import GatewayTransaction, TransactionStatus
from app.schemas.gateway import GatewayStats
from app.schemas.transaction import TransactionCreate
from app.services.gateways import get_gateway

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 10


def _find_existing(db: Session, data: TransactionCreate) -> GatewayTransaction | None:
    stmt = select(GatewayTransaction).where(
        GatewayTransaction.gateway_id == data.gateway_id,
        GatewayTransaction.transaction_id == data.transaction_id,
        GatewayTransaction.status == data.status,
    )
    return db.scalars(stmt).first()


def _counter_increments(data: TransactionCreate) -> dict:
    values: dict = {"total_transactions": PaymentGateway.total_transactions + 1}
    if data.status == TransactionStatus.SUCCESS:
        values["successful_transactions"] = PaymentGateway.successful_transactions + 1
        values["total_revenue"] = PaymentGateway.total_revenue + data.amount
    elif data.status == TransactionStatus.FAILED:
        values["failed_transactions"] = PaymentGateway.failed_transactions + 1
    return values


def log_transaction(db: Session, data: TransactionCreate) -> tuple[GatewayTransaction, bool]:
    """Record a vendor round trip and bump the gateway counters once.

    Returns the ledger row and whether it was newly created. A redelivered
    (gateway, transaction id, status) triple returns the stored row and leaves
    the counters alone. The caller commits.
    """

    existing = _find_existing(db, data)
    if existing is not None:
        logger.info(
            "Duplicate ledger transaction ignored",
            extra={"gateway_id": data.gateway_id, "transaction_id": data.transaction_id, "status": data.status.value},
        )
        return existing, False

    entry = GatewayTransaction(**data.model_dump())
    try:
        # Savepoint: a lost insert race must not discard the caller's pending work.
        with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        existing = _find_existing(db, data)
        if existing is None:
            raise
        logger.info(
            "Concurrent ledger insert resolved to existing row",
            extra={"gateway_id": data.gateway_id, "transaction_id": data.transaction_id},
        )
        return existing, False

    db.execute(
        update(PaymentGateway)
        .where(PaymentGateway.id == data.gateway_id)
        .values(**_counter_increments(data))
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "Ledger transaction recorded",
        extra={
            "gateway_id": data.gateway_id,
            "transaction_id": data.transaction_id,
            "status": data.status.value,
            "amount": str(data.amount),
            "currency": data.currency,
        },
    )
    return entry, True


def get_transactions(db: Session, gateway_id: int | None = None, limit: int = 50) -> list[GatewayTransaction]:
    stmt = select(GatewayTransaction).order_by(GatewayTransaction.created_at.desc(), GatewayTransaction.id.desc())
    if gateway_id is not None:
        stmt = stmt.where(GatewayTransaction.gateway_id == gateway_id)
    return list(db.scalars(stmt.limit(limit)).all())


def compute_stats(gateway: PaymentGateway) -> GatewayStats:
    total = gateway.total_transactions or 0
    successful = gateway.successful_transactions or 0
    rate = round(successful / total * 100, 2) if total else 0.0
    return GatewayStats(
        total=total,
        successful=successful,
        failed=gateway.failed_transactions or 0,
        revenue=Decimal(gateway.total_revenue or 0),
        success_rate=rate,
    )


def get_gateway_stats(db: Session, provider: str) -> dict | None:
    """Gateway row, its ten latest transactions and derived rates; ``None`` if unknown."""

    gateway = get_gateway(db, provider)
    if gateway is None:
        return None
    db.refresh(gateway)
    return {
        "gateway": gateway,
        "recent_transactions": get_transactions(db, gateway.id, limit=RECENT_TRANSACTIONS),
        "stats": compute_stats(gateway),
    }


__all__ = ["compute_stats", "get_gateway_stats", "get_transactions", "log_transaction"]
