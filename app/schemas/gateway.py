"""Gateway registry schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.gateway import GatewayConfigStatus
from app.schemas.transaction import TransactionRead


class GatewayRead(BaseModel):
    id: int
    provider: str
    display_name: str
    is_enabled: bool
    is_test_mode: bool
    is_primary: bool
    supported_currencies: list[str]
    supported_countries: list[str]
    config_status: GatewayConfigStatus
    status_message: str | None = None
    last_status_check: datetime | None = None
    webhook_url: str | None = None
    metadata_json: dict | None = Field(default=None, serialization_alias="metadata")
    last_configured_by: str | None = None
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    total_revenue: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GatewayUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""

    is_enabled: bool | None = None
    is_test_mode: bool | None = None
    is_primary: bool | None = None
    webhook_url: str | None = Field(default=None, max_length=512)
    metadata: dict | None = None

    model_config = ConfigDict(extra="forbid")


class ConfigurationCheck(BaseModel):
    is_configured: bool
    message: str


class ConnectionTestResult(BaseModel):
    success: bool
    message: str


class GatewayStats(BaseModel):
    total: int
    successful: int
    failed: int
    revenue: Decimal
    success_rate: float


class GatewayStatsRead(BaseModel):
    gateway: GatewayRead
    recent_transactions: list[TransactionRead]
    stats: GatewayStats
