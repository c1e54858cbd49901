"""Local subscription cache and its guarded state machine."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.pricing_plan import PricingPlan
from app.models.subscription import Subscription, SubscriptionStatus, TERMINAL_STATUSES
from app.services.psp_base import CheckoutResponse, PaymentVerification
from app.services.psp_providers import get_provider
from app.utils.audit import log_audit
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.PENDING: frozenset(
        {SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}
    ),
    SubscriptionStatus.ACTIVE: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED}
    ),
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def get_subscription(db: Session, provider: str, subscription_id: str) -> Subscription | None:
    stmt = select(Subscription).where(
        Subscription.provider == provider,
        Subscription.provider_subscription_id == subscription_id,
    )
    return db.scalars(stmt).one_or_none()


def record_checkout(
    db: Session,
    *,
    provider: str,
    checkout: CheckoutResponse,
    plan: PricingPlan,
    amount: Decimal,
    currency: str,
    customer_id: str,
    customer_name: str | None = None,
) -> Subscription:
    """Create the pending row a later webhook will move forward. The caller commits."""

    existing = get_subscription(db, provider, checkout.payment_id)
    if existing is not None:
        return existing
    subscription = Subscription(
        provider=provider,
        provider_subscription_id=checkout.payment_id,
        customer_id=customer_id,
        customer_name=customer_name,
        plan_id=plan.plan_id,
        amount=amount,
        currency=currency,
        status=SubscriptionStatus.PENDING,
    )
    db.add(subscription)
    db.flush()
    return subscription


def apply_status(
    db: Session,
    provider: str,
    subscription_id: str,
    status: SubscriptionStatus,
    *,
    customer_id: str | None = None,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    cancel_at_period_end: bool | None = None,
    actor: str = "webhook",
) -> tuple[Subscription, bool]:
    """Move a subscription to ``status`` if the transition is allowed.

    Returns the row and whether anything was applied. Unknown ids get a new
    row. Terminal rows and backwards moves are left untouched. The caller
    commits.
    """

    subscription = get_subscription(db, provider, subscription_id)
    if subscription is None:
        subscription = Subscription(
            provider=provider,
            provider_subscription_id=subscription_id,
            customer_id=customer_id,
            status=status,
            current_period_start=period_start or (utcnow() if status == SubscriptionStatus.ACTIVE else None),
            current_period_end=period_end,
            cancel_at_period_end=bool(cancel_at_period_end),
        )
        db.add(subscription)
        db.flush()
        _audit_transition(db, subscription, None, actor)
        return subscription, True

    previous = subscription.status
    if not can_transition(previous, status):
        logger.info(
            "Subscription transition ignored",
            extra={
                "provider": provider,
                "subscription_id": subscription_id,
                "current": previous.value,
                "requested": status.value,
            },
        )
        return subscription, False

    subscription.status = status
    if customer_id and not subscription.customer_id:
        subscription.customer_id = customer_id
    if period_start is not None:
        subscription.current_period_start = period_start
    elif status == SubscriptionStatus.ACTIVE and previous != SubscriptionStatus.ACTIVE:
        subscription.current_period_start = utcnow()
    if period_end is not None:
        subscription.current_period_end = period_end
    if cancel_at_period_end is not None:
        subscription.cancel_at_period_end = cancel_at_period_end
    db.flush()

    if previous != status:
        _audit_transition(db, subscription, previous, actor)
    return subscription, True


def _audit_transition(
    db: Session, subscription: Subscription, previous: SubscriptionStatus | None, actor: str
) -> None:
    log_audit(
        db,
        actor=actor,
        action="SUBSCRIPTION_STATUS_CHANGED",
        entity="Subscription",
        entity_id=subscription.id,
        data={
            "provider": subscription.provider,
            "subscription_id": subscription.provider_subscription_id,
            "from": previous.value if previous else None,
            "to": subscription.status.value,
        },
    )
    logger.info(
        "Subscription transition applied",
        extra={
            "provider": subscription.provider,
            "subscription_id": subscription.provider_subscription_id,
            "from": previous.value if previous else None,
            "to": subscription.status.value,
        },
    )


def refresh_subscription_status(db: Session, provider: str, subscription_id: str) -> Subscription:
    """Poll the vendor and fold the answer into the local row."""

    info = get_provider(provider).get_subscription_status(subscription_id)
    subscription, _ = apply_status(
        db,
        provider,
        subscription_id,
        info.status,
        customer_id=info.customer_id,
        period_start=info.current_period_start,
        period_end=info.current_period_end,
        cancel_at_period_end=info.cancel_at_period_end,
        actor="status_poll",
    )
    db.commit()
    db.refresh(subscription)
    return subscription


def verify_payment(provider: str, payment_id: str) -> PaymentVerification:
    return get_provider(provider).verify_payment(payment_id)


def expire_due_subscriptions(db: Session, now: datetime | None = None) -> int:
    """Expire active subscriptions whose current period has ended; one audit row per subscription."""

    now = now or utcnow()
    due = db.execute(
        select(Subscription.id, Subscription.provider, Subscription.provider_subscription_id).where(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.current_period_end.is_not(None),
            Subscription.current_period_end <= now,
        )
    ).all()
    if not due:
        return 0

    db.execute(
        update(Subscription)
        .where(Subscription.id.in_([row.id for row in due]), Subscription.status == SubscriptionStatus.ACTIVE)
        .values(status=SubscriptionStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    for row in due:
        log_audit(
            db,
            actor="expiry_sweep",
            action="SUBSCRIPTION_STATUS_CHANGED",
            entity="Subscription",
            entity_id=row.id,
            data={
                "provider": row.provider,
                "subscription_id": row.provider_subscription_id,
                "from": SubscriptionStatus.ACTIVE.value,
                "to": SubscriptionStatus.EXPIRED.value,
            },
        )
    db.commit()
    logger.info("Expired lapsed subscriptions", extra={"count": len(due)})
    return len(due)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "apply_status",
    "can_transition",
    "expire_due_subscriptions",
    "get_subscription",
    "record_checkout",
    "refresh_subscription_status",
    "verify_payment",
]
