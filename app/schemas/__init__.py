"""Schema package exports."""
from .checkout import CheckoutRead, CheckoutRequest
from .gateway import (
    ConfigurationCheck,
    ConnectionTestResult,
    GatewayRead,
    GatewayStats,
    GatewayStatsRead,
    GatewayUpdate,
)
from .pricing_plan import PricingPlanCreate, PricingPlanRead, PricingPlanUpdate
from .subscription import PaymentVerificationRead, SubscriptionRead, WebhookAck
from .transaction import TransactionCreate, TransactionRead

__all__ = [
    "CheckoutRead",
    "CheckoutRequest",
    "ConfigurationCheck",
    "ConnectionTestResult",
    "GatewayRead",
    "GatewayStats",
    "GatewayStatsRead",
    "GatewayUpdate",
    "PaymentVerificationRead",
    "PricingPlanCreate",
    "PricingPlanRead",
    "PricingPlanUpdate",
    "SubscriptionRead",
    "TransactionCreate",
    "TransactionRead",
    "WebhookAck",
]
