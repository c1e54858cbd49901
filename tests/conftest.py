"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./greenlens_test.db")
os.environ.setdefault("GREENLENS_ENV", "test")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from app.config import get_settings  # noqa: E402
from app.main import app  # noqa: E402
from app.db import enable_sqlite_savepoints, get_db  # noqa: E402
from app.models import BillingInterval, PaymentGateway, PricingPlan  # noqa: E402
from app.services import psp_providers  # noqa: E402
from app.services.gateways import initialize_gateways  # noqa: E402
from app.services.psp_providers import PROVIDER_CLASSES  # noqa: E402

DB_PATH = Path("./greenlens_test.db")

CREDENTIAL_FIELDS = (
    "CASHFREE_APP_ID",
    "CASHFREE_SECRET_KEY",
    "RAZORPAY_KEY_ID",
    "RAZORPAY_KEY_SECRET",
    "RAZORPAY_WEBHOOK_SECRET",
    "PAYPAL_CLIENT_ID",
    "PAYPAL_CLIENT_SECRET",
    "PAYPAL_WEBHOOK_ID",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
)


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file per session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)
# Each test runs in an outer transaction; session commits only release savepoints.
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False,
    join_transaction_mode="create_savepoint",
)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch) -> Iterator[None]:
    """Every test starts without vendor credentials (demo mode)."""

    settings = get_settings()
    for field in CREDENTIAL_FIELDS:
        monkeypatch.setattr(settings, field, None)
    monkeypatch.setattr(settings, "PAYMENT_PRIMARY_PROVIDER", "cashfree")
    psp_providers.reset_providers()
    yield
    psp_providers.reset_providers()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def gateways(db_session: Session) -> dict[str, PaymentGateway]:
    """Seed the registry the way startup does."""

    initialize_gateways(db_session)
    rows = db_session.query(PaymentGateway).all()
    return {row.provider: row for row in rows}


@pytest.fixture
def enable_gateway(db_session: Session, gateways: dict[str, PaymentGateway]) -> Callable[..., PaymentGateway]:
    def _enable(provider: str, *, primary: bool | None = None) -> PaymentGateway:
        gateway = gateways[provider]
        gateway.is_enabled = True
        if primary is not None:
            gateway.is_primary = primary
        db_session.commit()
        return gateway

    return _enable


@pytest.fixture
def configure(monkeypatch) -> Callable[..., None]:
    """Set settings fields for the duration of a test."""

    def _configure(**values: object) -> None:
        settings = get_settings()
        for field, value in values.items():
            monkeypatch.setattr(settings, field, value)

    return _configure


@pytest.fixture
def stub_vendor(monkeypatch) -> Callable[..., object]:
    """Replace a cached adapter with one whose HTTP calls hit ``handler``."""

    def _stub(provider: str, handler: Callable[[httpx.Request], httpx.Response]):
        adapter = PROVIDER_CLASSES[provider](get_settings(), transport=httpx.MockTransport(handler))
        monkeypatch.setitem(psp_providers._provider_cache, provider, adapter)
        return adapter

    return _stub


@pytest.fixture
def make_plan(db_session: Session) -> Callable[..., PricingPlan]:
    def _factory(
        plan_id: str = "pro_yearly",
        *,
        price: Decimal = Decimal("49.99"),
        currency: str = "USD",
        interval: BillingInterval = BillingInterval.YEARLY,
        is_active: bool = True,
    ) -> PricingPlan:
        plan = PricingPlan(
            plan_id=plan_id,
            name=f"GreenLens {plan_id.replace('_', ' ').title()}",
            price=price,
            currency=currency,
            billing_interval=interval,
            features=["unlimited identifications"],
            is_active=is_active,
        )
        db_session.add(plan)
        db_session.commit()
        db_session.refresh(plan)
        return plan

    return _factory
