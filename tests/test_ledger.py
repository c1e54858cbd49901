from decimal import Decimal

import pytest

from app.models import GatewayTransaction, Subscription, SubscriptionStatus, TransactionStatus
from app.schemas.transaction import TransactionCreate
from app.services import ledger


def _entry(gateway, transaction_id: str, status: TransactionStatus, amount: str = "49.99") -> TransactionCreate:
    return TransactionCreate(
        gateway_id=gateway.id,
        transaction_id=transaction_id,
        amount=Decimal(amount),
        currency="usd",
        status=status,
        customer_email="fern@example.com",
    )


def test_counters_follow_status(db_session, gateways):
    gateway = gateways["razorpay"]

    ledger.log_transaction(db_session, _entry(gateway, "pay_1", TransactionStatus.SUCCESS))
    ledger.log_transaction(db_session, _entry(gateway, "pay_2", TransactionStatus.FAILED))
    ledger.log_transaction(db_session, _entry(gateway, "pay_3", TransactionStatus.PENDING))
    db_session.commit()
    db_session.refresh(gateway)

    assert gateway.total_transactions == 3
    assert gateway.successful_transactions == 1
    assert gateway.failed_transactions == 1
    assert gateway.total_revenue == Decimal("49.99")


def test_redelivered_transaction_counts_once(db_session, gateways):
    gateway = gateways["cashfree"]

    first, created = ledger.log_transaction(db_session, _entry(gateway, "order_9", TransactionStatus.SUCCESS))
    again, created_again = ledger.log_transaction(db_session, _entry(gateway, "order_9", TransactionStatus.SUCCESS))
    db_session.commit()
    db_session.refresh(gateway)

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert gateway.total_transactions == 1
    assert gateway.total_revenue == Decimal("49.99")
    assert db_session.query(GatewayTransaction).filter_by(transaction_id="order_9").count() == 1


def test_pending_then_success_are_separate_rows(db_session, gateways):
    gateway = gateways["paypal"]

    ledger.log_transaction(db_session, _entry(gateway, "ORDER-5", TransactionStatus.PENDING))
    ledger.log_transaction(db_session, _entry(gateway, "ORDER-5", TransactionStatus.SUCCESS))
    db_session.commit()

    rows = db_session.query(GatewayTransaction).filter_by(transaction_id="ORDER-5").all()
    assert sorted(row.status.value for row in rows) == ["pending", "success"]
    assert all(row.currency == "USD" for row in rows)


def test_success_rate_is_rounded(db_session, gateways):
    gateway = gateways["stripe"]
    for idx, status in enumerate([TransactionStatus.SUCCESS, TransactionStatus.SUCCESS, TransactionStatus.FAILED]):
        ledger.log_transaction(db_session, _entry(gateway, f"cs_{idx}", status, amount="10.00"))
    db_session.commit()
    db_session.refresh(gateway)

    stats = ledger.compute_stats(gateway)

    assert stats.success_rate == pytest.approx(66.67)
    assert stats.revenue == Decimal("20.00")


def test_success_rate_without_traffic_is_zero(gateways):
    assert ledger.compute_stats(gateways["stripe"]).success_rate == 0.0


def test_transactions_newest_first_with_filter_and_limit(db_session, gateways):
    cashfree, razorpay = gateways["cashfree"], gateways["razorpay"]
    for idx in range(3):
        ledger.log_transaction(db_session, _entry(cashfree, f"cf_{idx}", TransactionStatus.PENDING))
    ledger.log_transaction(db_session, _entry(razorpay, "rzp_0", TransactionStatus.PENDING))
    db_session.commit()

    latest = ledger.get_transactions(db_session, limit=2)
    assert [row.transaction_id for row in latest] == ["rzp_0", "cf_2"]

    filtered = ledger.get_transactions(db_session, gateway_id=cashfree.id)
    assert [row.transaction_id for row in filtered] == ["cf_2", "cf_1", "cf_0"]


def test_stats_for_unknown_gateway_is_none(db_session, gateways):
    assert ledger.get_gateway_stats(db_session, "venmo") is None


@pytest.mark.anyio
async def test_stats_endpoint(client, db_session, gateways):
    gateway = gateways["razorpay"]
    ledger.log_transaction(db_session, _entry(gateway, "pay_ok", TransactionStatus.SUCCESS))
    ledger.log_transaction(db_session, _entry(gateway, "pay_ko", TransactionStatus.FAILED))
    db_session.commit()

    response = await client.get("/api/admin/pricing/razorpay/stats")

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["gateway"]["provider"] == "razorpay"
    assert body["stats"]["total"] == 2
    assert body["stats"]["success_rate"] == 50.0
    assert {row["transaction_id"] for row in body["recent_transactions"]} == {"pay_ok", "pay_ko"}


@pytest.mark.anyio
async def test_stats_endpoint_unknown_gateway(client, gateways):
    response = await client.get("/api/admin/pricing/venmo/stats")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "GATEWAY_NOT_FOUND"


@pytest.mark.anyio
async def test_transactions_endpoint_filters_by_gateway(client, db_session, gateways):
    ledger.log_transaction(db_session, _entry(gateways["paypal"], "ORDER-1", TransactionStatus.PENDING))
    ledger.log_transaction(db_session, _entry(gateways["stripe"], "cs_1", TransactionStatus.PENDING))
    db_session.commit()

    response = await client.get("/api/admin/pricing/transactions", params={"gateway_id": gateways["stripe"].id})

    assert response.status_code == 200
    assert [row["transaction_id"] for row in response.json()] == ["cs_1"]


def test_lost_insert_race_keeps_callers_pending_work(db_session, gateways, monkeypatch):
    gateway = gateways["razorpay"]
    stored, _ = ledger.log_transaction(db_session, _entry(gateway, "pay_race", TransactionStatus.SUCCESS))
    db_session.commit()

    db_session.add(Subscription(provider="razorpay", provider_subscription_id="sub_race", status=SubscriptionStatus.PENDING))
    db_session.flush()

    real_lookup = ledger._find_existing
    calls: list[str] = []

    def _stale_then_real(db, data):
        calls.append(data.transaction_id)
        # The first lookup misses the row a concurrent writer just committed.
        return None if len(calls) == 1 else real_lookup(db, data)

    monkeypatch.setattr(ledger, "_find_existing", _stale_then_real)

    entry, created = ledger.log_transaction(db_session, _entry(gateway, "pay_race", TransactionStatus.SUCCESS))
    db_session.commit()
    db_session.refresh(gateway)

    assert created is False
    assert entry.id == stored.id
    assert len(calls) == 2
    assert db_session.query(Subscription).filter_by(provider_subscription_id="sub_race").count() == 1
    assert gateway.total_transactions == 1
    assert db_session.query(GatewayTransaction).filter_by(transaction_id="pay_race").count() == 1


def test_committed_rows_do_not_outlive_their_test(db_session, gateways):
    ledger.log_transaction(db_session, _entry(gateways["stripe"], "cs_isolated", TransactionStatus.SUCCESS))
    db_session.commit()

    assert db_session.query(GatewayTransaction).count() == 1


def test_previous_test_commits_were_rolled_back(db_session, gateways):
    assert db_session.query(GatewayTransaction).filter_by(transaction_id="cs_isolated").count() == 0
    assert db_session.query(Subscription).filter_by(provider_subscription_id="sub_race").count() == 0
    assert gateways["stripe"].total_transactions == 0
