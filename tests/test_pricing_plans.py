import pytest

from app.models import AuditLog, PricingPlan

PLAN = {
    "plan_id": "garden_monthly",
    "name": "Garden Monthly",
    "price": "4.99",
    "currency": "usd",
    "billing_interval": "monthly",
    "features": ["plant identification", "care reminders"],
    "display_order": 2,
}


@pytest.mark.anyio
async def test_create_and_fetch_plan(client, db_session):
    response = await client.post("/api/admin/pricing-plans", json=PLAN, headers={"X-Actor-Id": "admin-1"})

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["currency"] == "USD"
    assert body["price"] == "4.99"
    assert body["last_updated_by"] == "admin-1"

    fetched = await client.get("/api/admin/pricing-plans/garden_monthly")
    assert fetched.status_code == 200
    assert fetched.json()["features"] == ["plant identification", "care reminders"]

    audit = db_session.query(AuditLog).filter_by(action="PRICING_PLAN_CREATED").one()
    assert audit.actor == "admin-1"
    assert audit.data_json["plan_id"] == "garden_monthly"


@pytest.mark.anyio
async def test_duplicate_plan_id_conflicts(client, make_plan):
    make_plan("garden_monthly")

    response = await client.post("/api/admin/pricing-plans", json=PLAN)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "PLAN_EXISTS"


@pytest.mark.anyio
async def test_invalid_plan_payload(client):
    response = await client.post("/api/admin/pricing-plans", json={**PLAN, "plan_id": "Has Spaces", "price": "-1"})
    assert response.status_code == 422


@pytest.mark.anyio
async def test_update_plan_is_partial(client, make_plan):
    make_plan()

    response = await client.patch(
        "/api/admin/pricing-plans/pro_yearly",
        json={"price": "59.99", "is_popular": True},
        headers={"X-Actor-Id": "admin-2"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["price"] == "59.99"
    assert body["is_popular"] is True
    assert body["billing_interval"] == "yearly"
    assert body["last_updated_by"] == "admin-2"


@pytest.mark.anyio
async def test_update_rejects_unknown_fields(client, make_plan):
    make_plan()
    response = await client.patch("/api/admin/pricing-plans/pro_yearly", json={"plan_id": "renamed"})
    assert response.status_code == 422


@pytest.mark.anyio
async def test_delete_deactivates_plan(client, db_session, make_plan):
    make_plan()
    make_plan("basic_monthly")

    response = await client.delete("/api/admin/pricing-plans/pro_yearly")

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert db_session.query(PricingPlan).filter_by(plan_id="pro_yearly").count() == 1

    active = (await client.get("/api/admin/pricing-plans")).json()
    assert [plan["plan_id"] for plan in active] == ["basic_monthly"]

    everything = (await client.get("/api/admin/pricing-plans", params={"include_inactive": True})).json()
    assert {plan["plan_id"] for plan in everything} == {"pro_yearly", "basic_monthly"}


@pytest.mark.anyio
async def test_missing_plan_is_404(client):
    response = await client.get("/api/admin/pricing-plans/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PLAN_NOT_FOUND"
