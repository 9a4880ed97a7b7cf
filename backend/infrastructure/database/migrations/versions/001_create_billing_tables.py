"""Create billing tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _fk(column: str, target: str, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        column,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("api_key", sa.String(length=255), nullable=False),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("api_key"),
    )

    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("firstname", sa.String(length=255), nullable=True),
        sa.Column("lastname", sa.String(length=255), nullable=True),
        sa.Column("legal_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("address_line1", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("state", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.Column("tax_identification_number", sa.String(length=255), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("payment_provider", sa.String(length=50), nullable=True),
        sa.Column("payment_provider_code", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "external_id", name="uq_customers_org_external_id"),
    )
    op.create_index("ix_customers_organization_id", "customers", ["organization_id"])

    op.create_table(
        "payment_providers",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        sa.Column("provider_type", sa.String(length=50), nullable=False, server_default="moneyhash"),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("encrypted_api_key", sa.Text(), nullable=False),
        sa.Column("success_redirect_url", sa.String(length=1024), nullable=True),
        sa.Column("failed_redirect_url", sa.String(length=1024), nullable=True),
        sa.Column("pending_redirect_url", sa.String(length=1024), nullable=True),
        sa.Column("webhook_redirect_url", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "code", name="uq_payment_providers_org_code"),
    )
    op.create_index("ix_payment_providers_organization_id", "payment_providers", ["organization_id"])

    op.create_table(
        "moneyhash_customers",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("customer_id", "customers.id"),
        _fk("payment_provider_id", "payment_providers.id", nullable=True, ondelete="SET NULL"),
        sa.Column("provider_customer_id", sa.String(length=255), nullable=True),
        sa.Column("payment_method_id", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("customer_id"),
    )
    op.create_index("ix_moneyhash_customers_payment_provider_id", "moneyhash_customers", ["payment_provider_id"])
    op.create_index("ix_moneyhash_customers_provider_customer_id", "moneyhash_customers", ["provider_customer_id"])

    op.create_table(
        "plans",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("interval", sa.String(length=20), nullable=False, server_default="monthly"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("amount_currency", sa.String(length=3), nullable=False, server_default="USD"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_plans_organization_id", "plans", ["organization_id"])

    op.create_table(
        "billable_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("aggregation_type", sa.String(length=50), nullable=False, server_default="count_agg"),
        sa.Column("field_name", sa.String(length=255), nullable=True),
        sa.Column("expression", sa.Text(), nullable=True),
        sa.Column("recurring", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("rounding_function", sa.String(length=20), nullable=True),
        sa.Column("rounding_precision", sa.Integer(), nullable=True),
        sa.Column("weighted_interval", sa.String(length=20), nullable=True),
        sa.Column("filters", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_billable_metrics_organization_id", "billable_metrics", ["organization_id"])
    op.create_index("ix_billable_metrics_org_code", "billable_metrics", ["organization_id", "code"])

    op.create_table(
        "charges",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("plan_id", "plans.id"),
        _fk("billable_metric_id", "billable_metrics.id"),
        sa.Column("charge_model", sa.String(length=50), nullable=False, server_default="standard"),
        sa.Column("amount_currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("properties", sa.JSON(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_charges_plan_id", "charges", ["plan_id"])
    op.create_index("ix_charges_billable_metric_id", "charges", ["billable_metric_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("customer_id", "customers.id"),
        _fk("plan_id", "plans.id"),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        _fk("previous_subscription_id", "subscriptions.id", nullable=True, ondelete="SET NULL"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])
    op.create_index("ix_subscriptions_external_id", "subscriptions", ["external_id"])

    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        _fk("subscription_id", "subscriptions.id"),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("properties", sa.JSON(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscription_id", "transaction_id", name="uq_events_subscription_transaction"),
    )
    op.create_index(
        "ix_events_subscription_code_timestamp", "events", ["subscription_id", "code", "timestamp"]
    )

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        _fk("customer_id", "customers.id"),
        _fk("subscription_id", "subscriptions.id", nullable=True, ondelete="SET NULL"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="finalized"),
        sa.Column("payment_status", sa.String(length=50), nullable=False, server_default="pending"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("fees_amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("vat_amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payment_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ready_for_payment_processing", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("from_date", sa.Date(), nullable=True),
        sa.Column("to_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoices_organization_id", "invoices", ["organization_id"])
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_index("ix_invoices_subscription_id", "invoices", ["subscription_id"])
    op.create_index("ix_invoices_org_payment_status", "invoices", ["organization_id", "payment_status"])

    op.create_table(
        "fees",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("invoice_id", "invoices.id"),
        _fk("subscription_id", "subscriptions.id", nullable=True, ondelete="SET NULL"),
        _fk("charge_id", "charges.id"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("amount_currency", sa.String(length=3), nullable=False),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("vat_amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("units", sa.Numeric(30, 10), nullable=False, server_default="0"),
        sa.Column("events_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fees_invoice_id", "fees", ["invoice_id"])
    op.create_index("ix_fees_invoice_charge", "fees", ["invoice_id", "charge_id"], unique=True)

    op.create_table(
        "payment_requests",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        _fk("customer_id", "customers.id"),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("amount_currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("payment_status", sa.String(length=50), nullable=False, server_default="pending"),
        sa.Column("payment_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ready_for_payment_processing", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payment_requests_organization_id", "payment_requests", ["organization_id"])
    op.create_index("ix_payment_requests_customer_id", "payment_requests", ["customer_id"])

    op.create_table(
        "payment_request_invoices",
        _fk("payment_request_id", "payment_requests.id"),
        _fk("invoice_id", "invoices.id"),
        sa.PrimaryKeyConstraint("payment_request_id", "invoice_id"),
    )

    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("payable_type", sa.String(length=50), nullable=False),
        sa.Column("payable_id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("payment_provider_id", "payment_providers.id", nullable=True, ondelete="SET NULL"),
        _fk("payment_provider_customer_id", "moneyhash_customers.id", nullable=True, ondelete="SET NULL"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("amount_currency", sa.String(length=3), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=True),
        sa.Column("provider_payment_id", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_payment_id"),
    )
    op.create_index("ix_payments_payable", "payments", ["payable_type", "payable_id"])

    op.create_table(
        "webhook_endpoints",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("organization_id", "organizations.id"),
        sa.Column("webhook_url", sa.String(length=1024), nullable=False),
        sa.Column("signature_algo", sa.String(length=20), nullable=False, server_default="jwt"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhook_endpoints_organization_id", "webhook_endpoints", ["organization_id"])

    op.create_table(
        "webhooks",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("webhook_endpoint_id", "webhook_endpoints.id", nullable=True),
        sa.Column("object_type", sa.String(length=100), nullable=True),
        sa.Column("object_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("webhook_type", sa.String(length=100), nullable=True),
        sa.Column("endpoint", sa.String(length=1024), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("response", sa.JSON(), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("retries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_retried_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhooks_webhook_endpoint_id", "webhooks", ["webhook_endpoint_id"])


def downgrade() -> None:
    op.drop_table("webhooks")
    op.drop_table("webhook_endpoints")
    op.drop_table("payments")
    op.drop_table("payment_request_invoices")
    op.drop_table("payment_requests")
    op.drop_table("fees")
    op.drop_table("invoices")
    op.drop_table("events")
    op.drop_table("subscriptions")
    op.drop_table("charges")
    op.drop_table("billable_metrics")
    op.drop_table("plans")
    op.drop_table("moneyhash_customers")
    op.drop_table("payment_providers")
    op.drop_table("customers")
    op.drop_table("organizations")
