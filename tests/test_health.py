import pytest


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] in {"ok", "degraded"}
    assert payload["env"] == "test"
    assert isinstance(payload["scheduler_config_enabled"], bool)
    assert isinstance(payload["scheduler_running"], bool)
    assert payload.get("db_status") in {"ok", "error"}
    assert payload.get("migrations_status") in {"up_to_date", "out_of_date", "unknown"}
    assert isinstance(payload.get("db_ok"), bool)
    assert isinstance(payload.get("migrations_ok"), bool)
    assert "last_subscription_sweep" in payload


@pytest.mark.anyio("asyncio")
async def test_health_reports_gateway_credentials_without_values(client, configure):
    configure(RAZORPAY_KEY_ID="rzp_key", RAZORPAY_KEY_SECRET="rzp_secret", STRIPE_WEBHOOK_SECRET="whsec_test")

    response = await client.get("/health")
    payload = response.json()

    assert payload["gateways"] == {
        "cashfree": "missing",
        "razorpay": "configured",
        "paypal": "missing",
        "stripe": "missing",
    }
    assert payload["primary_provider"] == "cashfree"
    assert payload["webhook_secrets"] == {"razorpay": False, "paypal": False, "stripe": True}
    assert "rzp_secret" not in response.text
    assert "whsec_test" not in response.text


@pytest.mark.anyio("asyncio")
async def test_health_degrades_on_db_failure(monkeypatch, client):
    class BrokenEngine:
        def connect(self):  # pragma: no cover - simple stub
            raise RuntimeError("DB down")

    monkeypatch.setattr("app.routers.health.get_engine", lambda: BrokenEngine())

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
    assert payload["migrations_status"] == "unknown"
    assert payload["db_ok"] is False
    assert payload["migrations_ok"] is False


@pytest.mark.anyio("asyncio")
async def test_health_status_degraded_when_db_status_error(monkeypatch, client):
    from app.routers import health as health_module

    monkeypatch.setattr(health_module, "_db_status", lambda: "error")

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
