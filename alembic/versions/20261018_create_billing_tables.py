"""create billing tables"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_create_billing_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "payment_gateways",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("is_test_mode", sa.Boolean(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("supported_currencies", sa.JSON(), nullable=False),
        sa.Column("supported_countries", sa.JSON(), nullable=False),
        sa.Column(
            "config_status",
            sa.Enum("configured", "not_configured", name="gatewayconfigstatus"),
            nullable=False,
        ),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("last_status_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("webhook_url", sa.String(length=512), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("last_configured_by", sa.String(length=100), nullable=True),
        sa.Column("total_transactions", sa.Integer(), nullable=False),
        sa.Column("successful_transactions", sa.Integer(), nullable=False),
        sa.Column("failed_transactions", sa.Integer(), nullable=False),
        sa.Column("total_revenue", sa.Numeric(18, 2), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("provider", name="uq_payment_gateways_provider"),
    )
    op.create_index("ix_payment_gateways_is_primary", "payment_gateways", ["is_primary"])

    op.create_table(
        "gateway_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "gateway_id",
            sa.Integer(),
            sa.ForeignKey("payment_gateways.id", name="fk_gateway_transactions_gateway_id_payment_gateways"),
            nullable=False,
        ),
        sa.Column("transaction_id", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.Enum("pending", "success", "failed", name="transactionstatus"), nullable=False),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("error_code", sa.String(length=100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("response_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "gateway_id",
            "transaction_id",
            "status",
            name="uq_gateway_transactions_gateway_txn_status",
        ),
    )
    op.create_index("ix_gateway_transactions_gateway_id", "gateway_transactions", ["gateway_id"])
    op.create_index("ix_gateway_transactions_created_at", "gateway_transactions", ["created_at"])
    op.create_index("ix_gateway_transactions_status", "gateway_transactions", ["status"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_subscription_id", sa.String(length=128), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("plan_id", sa.String(length=64), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "active", "cancelled", "expired", name="subscriptionstatus"),
            nullable=False,
        ),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "provider",
            "provider_subscription_id",
            name="uq_subscriptions_provider_subscription_id",
        ),
    )
    op.create_index(
        "ix_subscriptions_status_period_end", "subscriptions", ["status", "current_period_end"]
    )

    op.create_table(
        "pricing_plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("billing_interval", sa.Enum("monthly", "yearly", name="billinginterval"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("is_popular", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("last_updated_by", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("plan_id", name="uq_pricing_plans_plan_id"),
        sa.CheckConstraint("price >= 0", name="ck_pricing_plans_non_negative_price"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("pricing_plans")
    op.drop_index("ix_subscriptions_status_period_end", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_gateway_transactions_status", table_name="gateway_transactions")
    op.drop_index("ix_gateway_transactions_created_at", table_name="gateway_transactions")
    op.drop_index("ix_gateway_transactions_gateway_id", table_name="gateway_transactions")
    op.drop_table("gateway_transactions")
    op.drop_index("ix_payment_gateways_is_primary", table_name="payment_gateways")
    op.drop_table("payment_gateways")
