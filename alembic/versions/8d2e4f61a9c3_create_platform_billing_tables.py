"""create platform billing tables

Revision ID: 8d2e4f61a9c3
Revises: 3f1c9a2b7d40
Create Date: 2026-09-28 10:41:07.915236

Tables:
- store_subscriptions: one platform subscription per store
- platform_invoices / platform_invoice_items: charges and their line items
- invoice_sequences: per-year invoice number counter
- store_transaction_fees: settled transaction fee windows
- platform_settings: admin-editable pricing values
- plugin_pricing: monthly price per plugin
- billing_audit_logs: billing event trail
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "8d2e4f61a9c3"
down_revision = "3f1c9a2b7d40"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "store_subscriptions",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=False),
    sa.Column("plan", sa.String(), nullable=False, server_default="trial"),
    sa.Column("status", sa.String(), nullable=False, server_default="trial"),
    sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
    sa.Column("activated_at", sa.DateTime(), nullable=True),
    sa.Column("current_period_start", sa.DateTime(), nullable=True),
    sa.Column("current_period_end", sa.DateTime(), nullable=True),
    sa.Column("gateway_customer_ref", sa.String(), nullable=True),
    sa.Column("gateway_token_ref", sa.String(), nullable=True),
    sa.Column("card_last_four", sa.String(4), nullable=True),
    sa.Column("card_brand", sa.String(), nullable=True),
    sa.Column("card_expiry", sa.String(), nullable=True),
    sa.Column("billing_email", sa.String(), nullable=True),
    sa.Column("billing_name", sa.String(), nullable=True),
    sa.Column("custom_monthly_price", sa.Numeric(12, 2), nullable=True),
    sa.Column("custom_fee_rate", sa.Numeric(6, 4), nullable=True),
    sa.Column("cancelled_at", sa.DateTime(), nullable=True),
    sa.Column("cancellation_reason", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.Column("updated_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("store_id"),
  )
  op.create_index("idx_store_sub_status", "store_subscriptions", ["status"])
  op.create_index(
    "idx_store_sub_period_end", "store_subscriptions", ["status", "current_period_end"]
  )
  op.create_index(
    "idx_store_sub_trial_ends", "store_subscriptions", ["status", "trial_ends_at"]
  )

  op.create_table(
    "platform_invoices",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("invoice_number", sa.String(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=False),
    sa.Column("subscription_id", sa.String(), nullable=True),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="draft"),
    sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
    sa.Column("vat_rate", sa.Numeric(6, 4), nullable=False),
    sa.Column("vat_amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("period_start", sa.DateTime(), nullable=False),
    sa.Column("period_end", sa.DateTime(), nullable=False),
    sa.Column("description", sa.String(), nullable=True),
    sa.Column("idempotency_key", sa.String(), nullable=True),
    sa.Column("gateway_transaction_ref", sa.String(), nullable=True),
    sa.Column("gateway_invoice_number", sa.String(), nullable=True),
    sa.Column("gateway_invoice_url", sa.String(), nullable=True),
    sa.Column("charge_attempts", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("last_charge_attempt", sa.DateTime(), nullable=True),
    sa.Column("last_charge_error", sa.String(), nullable=True),
    sa.Column("issued_at", sa.DateTime(), nullable=True),
    sa.Column("paid_at", sa.DateTime(), nullable=True),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.Column("updated_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.ForeignKeyConstraint(["subscription_id"], ["store_subscriptions.id"]),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("invoice_number"),
    sa.UniqueConstraint(
      "store_id", "type", "period_start", "period_end", name="uq_platform_invoice_period"
    ),
  )
  op.create_index(
    "idx_platform_invoice_store", "platform_invoices", ["store_id", "created_at"]
  )
  op.create_index("idx_platform_invoice_status", "platform_invoices", ["status"])

  op.create_table(
    "platform_invoice_items",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("invoice_id", sa.String(), nullable=False),
    sa.Column("description", sa.String(), nullable=False),
    sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
    sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
    sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
    sa.Column("reference_type", sa.String(), nullable=True),
    sa.Column("reference_id", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["invoice_id"], ["platform_invoices.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(
    "idx_platform_invoice_item_invoice", "platform_invoice_items", ["invoice_id"]
  )

  op.create_table(
    "invoice_sequences",
    sa.Column("year", sa.Integer(), autoincrement=False, nullable=False),
    sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    sa.PrimaryKeyConstraint("year"),
  )

  op.create_table(
    "store_transaction_fees",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=False),
    sa.Column("period_start", sa.DateTime(), nullable=False),
    sa.Column("period_end", sa.DateTime(), nullable=False),
    sa.Column("total_transactions_amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("total_transactions_count", sa.Integer(), nullable=False),
    sa.Column("fee_rate", sa.Numeric(6, 4), nullable=False),
    sa.Column("fee_amount", sa.Numeric(12, 2), nullable=False),
    sa.Column("invoice_id", sa.String(), nullable=True),
    sa.Column("order_ids", sa.JSON(), nullable=False),
    sa.Column("calculated_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.ForeignKeyConstraint(["invoice_id"], ["platform_invoices.id"]),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint(
      "store_id", "period_start", "period_end", name="uq_store_transaction_fee_period"
    ),
  )
  op.create_index(
    "idx_store_transaction_fee_end", "store_transaction_fees", ["store_id", "period_end"]
  )

  op.create_table(
    "platform_settings",
    sa.Column("key", sa.String(), nullable=False),
    sa.Column("value", sa.JSON(), nullable=False),
    sa.Column("category", sa.String(), nullable=False, server_default="general"),
    sa.Column("description", sa.String(), nullable=True),
    sa.Column("updated_by", sa.String(), nullable=True),
    sa.Column("updated_at", sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint("key"),
  )

  op.create_table(
    "plugin_pricing",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("plugin_slug", sa.String(), nullable=False),
    sa.Column("monthly_price", sa.Numeric(12, 2), nullable=False),
    sa.Column("trial_days", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("plugin_slug"),
  )

  op.create_table(
    "billing_audit_logs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("event_timestamp", sa.DateTime(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=True),
    sa.Column("subscription_id", sa.String(), nullable=True),
    sa.Column("invoice_id", sa.String(), nullable=True),
    sa.Column("event_data", sa.JSON(), nullable=True),
    sa.Column("description", sa.String(), nullable=False),
    sa.Column("actor_type", sa.String(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.ForeignKeyConstraint(["subscription_id"], ["store_subscriptions.id"]),
    sa.ForeignKeyConstraint(["invoice_id"], ["platform_invoices.id"]),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("idx_billing_audit_store", "billing_audit_logs", ["store_id"])
  op.create_index(
    "idx_billing_audit_subscription", "billing_audit_logs", ["subscription_id"]
  )
  op.create_index("idx_billing_audit_invoice", "billing_audit_logs", ["invoice_id"])
  op.create_index("idx_billing_audit_event_type", "billing_audit_logs", ["event_type"])
  op.create_index("idx_billing_audit_timestamp", "billing_audit_logs", ["event_timestamp"])


def downgrade() -> None:
  op.drop_table("billing_audit_logs")
  op.drop_table("plugin_pricing")
  op.drop_table("platform_settings")
  op.drop_table("store_transaction_fees")
  op.drop_table("invoice_sequences")
  op.drop_table("platform_invoice_items")
  op.drop_table("platform_invoices")
  op.drop_table("store_subscriptions")
