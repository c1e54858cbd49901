"""Webhook endpoint: signature gate, ledger dedup, subscription transitions."""
import base64
import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest

from app.models import AuditLog, GatewayTransaction, Subscription, SubscriptionStatus, TransactionStatus

RZP_SECRET = "rzp_whsec"


def _razorpay_post(client, payload: dict, secret: str = RZP_SECRET):
    body = json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return client.post(
        "/api/payments/razorpay/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
    )


def _captured(payment_id: str = "pay_123", order_id: str = "order_9", **notes) -> dict:
    return {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": 49900,
                    "currency": "INR",
                    "method": "upi",
                    "email": "fern@example.com",
                    "notes": notes,
                }
            }
        },
    }


@pytest.fixture
def razorpay_secret(configure):
    configure(RAZORPAY_WEBHOOK_SECRET=RZP_SECRET)


@pytest.mark.anyio
async def test_captured_payment_activates_subscription(client, db_session, gateways, razorpay_secret):
    response = await _razorpay_post(client, _captured(customer_name="Fern"))

    assert response.status_code == 200, response.text
    assert response.json() == {
        "received": True,
        "processed": True,
        "duplicate": False,
        "event_type": "payment.captured",
        "status": "active",
        "subscription_id": "order_9",
    }

    subscription = db_session.query(Subscription).filter_by(provider="razorpay", provider_subscription_id="order_9").one()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.current_period_start is not None

    entry = db_session.query(GatewayTransaction).filter_by(transaction_id="pay_123").one()
    assert entry.status == TransactionStatus.SUCCESS
    assert entry.amount == Decimal("499.00")
    assert entry.customer_name == "Fern"
    assert entry.payment_method == "upi"

    gateway = gateways["razorpay"]
    db_session.refresh(gateway)
    assert gateway.successful_transactions == 1
    assert gateway.total_revenue == Decimal("499.00")

    audit = db_session.query(AuditLog).filter_by(action="SUBSCRIPTION_STATUS_CHANGED").one()
    assert audit.actor == "webhook:razorpay"


@pytest.mark.anyio
async def test_redelivered_webhook_is_duplicate(client, db_session, gateways, razorpay_secret):
    await _razorpay_post(client, _captured())
    response = await _razorpay_post(client, _captured())

    assert response.status_code == 200
    assert response.json()["duplicate"] is True

    gateway = gateways["razorpay"]
    db_session.refresh(gateway)
    assert gateway.total_transactions == 1
    assert gateway.total_revenue == Decimal("499.00")
    assert db_session.query(GatewayTransaction).count() == 1


@pytest.mark.anyio
async def test_bad_signature_writes_nothing(client, db_session, gateways, razorpay_secret):
    response = await _razorpay_post(client, _captured(), secret="wrong")

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "INVALID_SIGNATURE"
    assert error["details"]["provider"] == "razorpay"
    assert db_session.query(GatewayTransaction).count() == 0
    assert db_session.query(Subscription).count() == 0


@pytest.mark.anyio
async def test_missing_secret_rejects_webhook(client, gateways):
    response = await _razorpay_post(client, _captured())
    assert response.status_code == 401


@pytest.mark.anyio
async def test_unknown_event_is_acknowledged_but_not_processed(client, db_session, gateways, razorpay_secret):
    response = await _razorpay_post(client, {"event": "refund.created", "payload": {}})

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] is False
    assert body["event_type"] == "refund.created"
    assert db_session.query(Subscription).count() == 0


@pytest.mark.anyio
async def test_cancelled_subscription_ignores_later_activation(client, db_session, gateways, razorpay_secret):
    cancelled = {
        "event": "subscription.cancelled",
        "payload": {"subscription": {"entity": {"id": "sub_T", "status": "cancelled"}}},
    }
    assert (await _razorpay_post(client, cancelled)).json()["status"] == "cancelled"

    response = await _razorpay_post(client, _captured(payment_id="pay_late", subscription_id="sub_T"))

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    subscription = db_session.query(Subscription).filter_by(provider_subscription_id="sub_T").one()
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert db_session.query(GatewayTransaction).filter_by(transaction_id="pay_late").count() == 1


@pytest.mark.anyio
async def test_failed_payment_keeps_pending_and_counts_failure(client, db_session, gateways, razorpay_secret):
    payload = {
        "event": "payment.failed",
        "payload": {
            "payment": {
                "entity": {
                    "id": "pay_bad",
                    "order_id": "order_fail",
                    "amount": 49900,
                    "currency": "INR",
                    "error_code": "BAD_REQUEST_ERROR",
                    "error_description": "Card declined",
                }
            }
        },
    }

    response = await _razorpay_post(client, payload)

    assert response.json()["status"] == "pending"
    entry = db_session.query(GatewayTransaction).filter_by(transaction_id="pay_bad").one()
    assert entry.status == TransactionStatus.FAILED
    assert entry.error_message == "Card declined"
    gateway = gateways["razorpay"]
    db_session.refresh(gateway)
    assert gateway.failed_transactions == 1


@pytest.mark.anyio
async def test_cashfree_success_sets_period_end(client, db_session, gateways, configure):
    configure(CASHFREE_SECRET_KEY="cf_secret")
    body = json.dumps(
        {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {
                "order": {"order_id": "garden_sub_77", "order_amount": 4.99, "order_currency": "USD",
                          "order_tags": {"interval": "month"}},
                "payment": {"cf_payment_id": 5501, "payment_status": "SUCCESS", "payment_amount": 4.99,
                            "payment_currency": "USD", "payment_group": "upi",
                            "payment_time": "2026-10-18T08:00:00Z"},
                "customer_details": {"customer_email": "fern@example.com"},
            },
        }
    ).encode()
    timestamp = str(int(time.time() * 1000))
    signature = base64.b64encode(
        hmac.new(b"cf_secret", timestamp.encode() + body, hashlib.sha256).digest()
    ).decode()

    response = await client.post(
        "/api/payments/cashfree/webhook",
        content=body,
        headers={"x-webhook-signature": signature, "x-webhook-timestamp": timestamp},
    )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "active"
    subscription = db_session.query(Subscription).filter_by(provider_subscription_id="garden_sub_77").one()
    assert subscription.current_period_end is not None
    assert subscription.current_period_end.day == 17
    assert subscription.current_period_end.month == 11


@pytest.mark.anyio
async def test_webhook_for_unknown_provider(client, gateways):
    response = await client.post("/api/payments/venmo/webhook", content=b"{}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "GATEWAY_NOT_FOUND"
