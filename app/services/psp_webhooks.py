"""Services handling payment provider webhook callbacks."""
from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy.orm import Session

from app.models.subscription import Subscription
from app.schemas.subscription import WebhookAck
from app.schemas.transaction import TransactionCreate
from app.services import ledger, subscriptions
from app.services.gateways import require_gateway
from app.services.psp_base import WebhookResult
from app.services.psp_providers import get_provider
from app.utils.errors import PaymentError, PaymentErrorCode

logger = logging.getLogger(__name__)


def _ledger_entry(gateway_id: int, result: WebhookResult, subscription: Subscription | None) -> TransactionCreate | None:
    if not result.transaction_id or result.payment_status is None:
        return None
    amount = result.amount if result.amount is not None else (subscription.amount if subscription else None)
    currency = result.currency or (subscription.currency if subscription else None)
    if amount is None or not currency:
        logger.warning(
            "Webhook payment without amount; ledger entry skipped",
            extra={"gateway_id": gateway_id, "transaction_id": result.transaction_id},
        )
        return None
    return TransactionCreate(
        gateway_id=gateway_id,
        transaction_id=result.transaction_id,
        amount=amount,
        currency=currency,
        status=result.payment_status,
        payment_method=result.payment_method,
        customer_email=result.customer_id if result.customer_id and "@" in result.customer_id else None,
        customer_name=result.metadata.get("customer_name"),
        error_code=result.error_code,
        error_message=result.error_message,
        response_data={"event_type": result.event_type, "subscription_id": result.subscription_id},
    )


def handle_webhook(db: Session, provider: str, raw_body: bytes, headers: Mapping[str, str]) -> WebhookAck:
    """Authenticate a vendor callback, then apply it to the ledger and subscription cache.

    Nothing is written when the signature is rejected or the event is not
    one the vendor table knows.
    """

    gateway = require_gateway(db, provider)
    adapter = get_provider(gateway.provider)

    try:
        result = adapter.handle_webhook(raw_body, headers)
    except PaymentError as exc:
        if exc.code == PaymentErrorCode.INVALID_SIGNATURE:
            logger.warning("Webhook rejected", extra={"provider": gateway.provider, "reason": exc.message})
        raise

    if not result.success:
        logger.info(
            "Webhook event not handled",
            extra={"provider": gateway.provider, "event_type": result.event_type},
        )
        return WebhookAck(processed=False, event_type=result.event_type)

    existing = None
    if result.subscription_id:
        existing = subscriptions.get_subscription(db, gateway.provider, result.subscription_id)

    duplicate = False
    entry = _ledger_entry(gateway.id, result, existing)
    if entry is not None:
        _, created = ledger.log_transaction(db, entry)
        duplicate = not created

    status = None
    if result.subscription_id and result.status is not None:
        subscription, _ = subscriptions.apply_status(
            db,
            gateway.provider,
            result.subscription_id,
            result.status,
            customer_id=result.customer_id,
            period_end=result.expires_at,
            actor=f"webhook:{gateway.provider}",
        )
        status = subscription.status
    else:
        logger.warning(
            "Webhook event without subscription reference",
            extra={"provider": gateway.provider, "event_type": result.event_type},
        )

    db.commit()
    logger.info(
        "Webhook processed",
        extra={
            "provider": gateway.provider,
            "event_type": result.event_type,
            "subscription_id": result.subscription_id,
            "status": status.value if status else None,
            "duplicate": duplicate,
        },
    )
    return WebhookAck(
        processed=True,
        duplicate=duplicate,
        event_type=result.event_type,
        status=status,
        subscription_id=result.subscription_id,
    )


__all__ = ["handle_webhook"]
