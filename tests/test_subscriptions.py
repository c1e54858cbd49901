from contextlib import contextmanager
from datetime import timedelta

import httpx
import pytest

from app.core import runtime_state
from app.models import AuditLog, Subscription, SubscriptionStatus
from app.services import cron, subscriptions
from app.utils.time import utcnow

PENDING = SubscriptionStatus.PENDING
ACTIVE = SubscriptionStatus.ACTIVE
CANCELLED = SubscriptionStatus.CANCELLED
EXPIRED = SubscriptionStatus.EXPIRED


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (PENDING, ACTIVE, True),
        (PENDING, CANCELLED, True),
        (PENDING, EXPIRED, False),
        (ACTIVE, ACTIVE, True),
        (ACTIVE, PENDING, False),
        (ACTIVE, EXPIRED, True),
        (CANCELLED, ACTIVE, False),
        (EXPIRED, ACTIVE, False),
        (EXPIRED, EXPIRED, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert subscriptions.can_transition(current, target) is allowed


def _subscription(db_session, sub_id: str, status: SubscriptionStatus, period_end=None) -> Subscription:
    row = Subscription(
        provider="razorpay",
        provider_subscription_id=sub_id,
        status=status,
        current_period_end=period_end,
    )
    db_session.add(row)
    db_session.commit()
    return row


def test_apply_status_ignores_backwards_move(db_session):
    _subscription(db_session, "sub_a", ACTIVE)

    subscription, applied = subscriptions.apply_status(db_session, "razorpay", "sub_a", PENDING)

    assert applied is False
    assert subscription.status == ACTIVE


def test_apply_status_keeps_existing_customer(db_session):
    row = _subscription(db_session, "sub_b", PENDING)
    row.customer_id = "fern@example.com"
    db_session.commit()

    subscription, applied = subscriptions.apply_status(
        db_session, "razorpay", "sub_b", ACTIVE, customer_id="cust_other", cancel_at_period_end=True
    )

    assert applied is True
    assert subscription.customer_id == "fern@example.com"
    assert subscription.cancel_at_period_end is True
    assert subscription.current_period_start is not None


def test_expiry_sweep_only_touches_lapsed_active_rows(db_session):
    now = utcnow()
    _subscription(db_session, "lapsed", ACTIVE, now - timedelta(days=1))
    _subscription(db_session, "current", ACTIVE, now + timedelta(days=10))
    _subscription(db_session, "open_ended", ACTIVE)
    _subscription(db_session, "pending_lapsed", PENDING, now - timedelta(days=1))

    expired = subscriptions.expire_due_subscriptions(db_session, now=now)

    assert expired == 1
    statuses = {}
    for row in db_session.query(Subscription).all():
        db_session.refresh(row)
        statuses[row.provider_subscription_id] = row.status
    assert statuses == {
        "lapsed": EXPIRED,
        "current": ACTIVE,
        "open_ended": ACTIVE,
        "pending_lapsed": PENDING,
    }


def test_expiry_sweep_audits_each_expired_row(db_session):
    now = utcnow()
    first = _subscription(db_session, "lapsed_1", ACTIVE, now - timedelta(days=2))
    second = _subscription(db_session, "lapsed_2", ACTIVE, now - timedelta(minutes=5))
    _subscription(db_session, "current", ACTIVE, now + timedelta(days=3))

    assert subscriptions.expire_due_subscriptions(db_session, now=now) == 2

    audits = db_session.query(AuditLog).filter_by(action="SUBSCRIPTION_STATUS_CHANGED").all()
    assert {audit.entity_id for audit in audits} == {first.id, second.id}
    for audit in audits:
        assert audit.actor == "expiry_sweep"
        assert audit.entity == "Subscription"
        assert audit.data_json["from"] == "active"
        assert audit.data_json["to"] == "expired"
    assert {audit.data_json["subscription_id"] for audit in audits} == {"lapsed_1", "lapsed_2"}


def test_expiry_sweep_with_nothing_due_writes_no_audit(db_session):
    _subscription(db_session, "current", ACTIVE, utcnow() + timedelta(days=3))

    assert subscriptions.expire_due_subscriptions(db_session) == 0
    assert db_session.query(AuditLog).count() == 0


def test_cron_sweep_records_run(db_session, monkeypatch):
    _subscription(db_session, "old", ACTIVE, utcnow() - timedelta(hours=1))

    @contextmanager
    def _scope():
        yield db_session

    monkeypatch.setattr(cron, "session_scope", _scope)
    monkeypatch.setattr(runtime_state, "_last_sweep_at", None)

    assert cron.expire_subscriptions_once() == 1
    assert runtime_state.get_last_sweep() is not None


def _razorpay_subscription_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/v1/subscriptions/sub_live":
        return httpx.Response(
            200,
            json={
                "id": "sub_live",
                "status": "active",
                "current_start": 1792300000,
                "current_end": 1823836000,
                "customer_id": "cust_1",
            },
        )
    return httpx.Response(
        400, json={"error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}}
    )


@pytest.mark.anyio
async def test_status_poll_refreshes_local_row(client, db_session, gateways, configure, stub_vendor):
    configure(RAZORPAY_KEY_ID="rzp_key", RAZORPAY_KEY_SECRET="rzp_secret")
    stub_vendor("razorpay", _razorpay_subscription_handler)
    _subscription(db_session, "sub_live", PENDING)

    response = await client.get("/api/payments/razorpay/subscriptions/sub_live")

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "active"
    assert body["customer_id"] == "cust_1"
    assert body["current_period_end"] is not None


@pytest.mark.anyio
async def test_status_poll_unknown_subscription(client, gateways, configure, stub_vendor):
    configure(RAZORPAY_KEY_ID="rzp_key", RAZORPAY_KEY_SECRET="rzp_secret")
    stub_vendor("razorpay", _razorpay_subscription_handler)

    response = await client.get("/api/payments/razorpay/subscriptions/sub_gone")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SUBSCRIPTION_NOT_FOUND"


@pytest.mark.anyio
async def test_status_poll_in_demo_mode_stays_pending(client, db_session, gateways):
    response = await client.get("/api/payments/cashfree/subscriptions/garden_sub_1")

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert db_session.query(Subscription).filter_by(provider_subscription_id="garden_sub_1").count() == 1


@pytest.mark.anyio
async def test_verify_endpoint_in_demo_mode(client, gateways):
    response = await client.get("/api/payments/paypal/verify/ORDER-1")

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "paypal"
    assert body["payment_id"] == "ORDER-1"
    assert body["is_valid"] is False
    assert body["status"] == "demo"
