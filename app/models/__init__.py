"""ORM models package."""
from .audit import AuditLog
from .base import Base
from .gateway import GatewayConfigStatus, PaymentGateway
from .gateway_transaction import GatewayTransaction, TransactionStatus
from .pricing_plan import BillingInterval, PricingPlan
from .subscription import TERMINAL_STATUSES, Subscription, SubscriptionStatus

__all__ = [
    "AuditLog",
    "Base",
    "BillingInterval",
    "GatewayConfigStatus",
    "GatewayTransaction",
    "PaymentGateway",
    "PricingPlan",
    "Subscription",
    "SubscriptionStatus",
    "TERMINAL_STATUSES",
    "TransactionStatus",
]
