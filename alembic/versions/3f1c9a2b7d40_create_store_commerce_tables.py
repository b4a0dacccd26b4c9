"""create store commerce tables

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-09-28 10:12:44.381902

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "3f1c9a2b7d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "stores",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("slug", sa.String(), nullable=False),
    sa.Column("owner_email", sa.String(), nullable=True),
    sa.Column("plan", sa.String(), nullable=False, server_default="trial"),
    sa.Column("plan_expires_at", sa.DateTime(), nullable=True),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.Column("updated_at", sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("slug"),
  )
  op.create_index("idx_stores_active", "stores", ["is_active"])

  op.create_table(
    "orders",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=False),
    sa.Column("total", sa.Numeric(12, 2), nullable=False),
    sa.Column("financial_status", sa.String(), nullable=False, server_default="pending"),
    sa.Column("paid_at", sa.DateTime(), nullable=True),
    sa.Column("created_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(
    "idx_orders_store_paid", "orders", ["store_id", "financial_status", "paid_at"]
  )

  op.create_table(
    "store_plugins",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("store_id", sa.String(), nullable=False),
    sa.Column("plugin_slug", sa.String(), nullable=False),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("subscription_status", sa.String(), nullable=False, server_default="active"),
    sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
    sa.Column("last_billing_date", sa.DateTime(), nullable=True),
    sa.Column("next_billing_date", sa.DateTime(), nullable=True),
    sa.Column("installed_at", sa.DateTime(), nullable=False),
    sa.Column("updated_at", sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("store_id", "plugin_slug", name="uq_store_plugin"),
  )
  op.create_index("idx_store_plugins_active", "store_plugins", ["store_id", "is_active"])


def downgrade() -> None:
  op.drop_index("idx_store_plugins_active", table_name="store_plugins")
  op.drop_table("store_plugins")
  op.drop_index("idx_orders_store_paid", table_name="orders")
  op.drop_table("orders")
  op.drop_index("idx_stores_active", table_name="stores")
  op.drop_table("stores")
