"""Initial tierstock schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "actors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("staff_code", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("staff_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("actors", schema=None) as batch_op:
        batch_op.create_index("ix_actors_role", ["role"], unique=False)
        batch_op.create_index("ix_actors_role_active", ["role", "is_active"], unique=False)

    op.create_table(
        "actor_relationships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("master_agent_id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["master_agent_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["agent_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("master_agent_id", "agent_id", name="uq_actor_rel_pair"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("actor_relationships", schema=None) as batch_op:
        batch_op.create_index("ix_actor_relationships_master_agent_id", ["master_agent_id"], unique=False)
        batch_op.create_index("ix_actor_relationships_agent_id", ["agent_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("base_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_active", ["is_active"], unique=False)

    op.create_table(
        "bundles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(128), nullable=True),
        sa.Column("master_agent_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("agent_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "bundle_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bundle_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("units > 0", name="ck_bundle_items_units_positive"),
        sa.ForeignKeyConstraint(["bundle_id"], ["bundles.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bundle_id", "product_id", name="uq_bundle_items_bundle_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bundle_items", schema=None) as batch_op:
        batch_op.create_index("ix_bundle_items_bundle_id", ["bundle_id"], unique=False)
        batch_op.create_index("ix_bundle_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "inventory_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        sa.ForeignKeyConstraint(["actor_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("actor_id", "product_id", name="uq_inventory_actor_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_balances", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_balances_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_inventory_balances_product_id", ["product_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("counterparty_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("transfer_ref", sa.String(64), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        sa.ForeignKeyConstraint(["actor_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["counterparty_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_direction", ["direction"], unique=False)
        batch_op.create_index("ix_stock_movements_counterparty_id", ["counterparty_id"], unique=False)
        batch_op.create_index("ix_stock_movements_transfer_ref", ["transfer_ref"], unique=False)
        batch_op.create_index("ix_stock_movements_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index(
            "ix_movements_actor_product_occurred",
            ["actor_id", "product_id", "occurred_at"],
            unique=False,
        )

    op.create_table(
        "pending_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=True),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("bundle_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("bundle_quantity", sa.Integer(), nullable=True),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        sa.Column("transfer_ref", sa.String(64), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_pending_orders_quantity_positive"),
        sa.ForeignKeyConstraint(["buyer_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["bundle_id"], ["bundles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("pending_orders", schema=None) as batch_op:
        batch_op.create_index("ix_pending_orders_buyer_id", ["buyer_id"], unique=False)
        batch_op.create_index("ix_pending_orders_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_pending_orders_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_pending_orders_bundle_id", ["bundle_id"], unique=False)
        batch_op.create_index("ix_pending_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_pending_orders_payment_reference", ["payment_reference"], unique=False)
        batch_op.create_index("ix_pending_orders_transfer_ref", ["transfer_ref"], unique=False)
        batch_op.create_index("ix_pending_orders_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_pending_orders_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("transaction_type", sa.String(16), nullable=False, server_default="purchase"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["pending_orders.id"]),
        sa.ForeignKeyConstraint(["buyer_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", name="uq_transactions_order"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_buyer_id", ["buyer_id"], unique=False)
        batch_op.create_index("ix_transactions_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_transactions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_transactions_buyer_created", ["buyer_id", "created_at"], unique=False)
        batch_op.create_index("ix_transactions_seller_created", ["seller_id", "created_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "reward_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("min_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reward_description", sa.String(255), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("month >= 0 AND month <= 12", name="ck_reward_tiers_month"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reward_tiers", schema=None) as batch_op:
        batch_op.create_index("ix_reward_tiers_role_period", ["role", "year", "month"], unique=False)

    op.create_table(
        "commission_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("min_sales_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_sales_cents", sa.Integer(), nullable=True),
        sa.Column("roas_min", sa.Numeric(8, 2), nullable=True),
        sa.Column("roas_max", sa.Numeric(8, 2), nullable=True),
        sa.Column("commission_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("bonus_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("commission_tiers", schema=None) as batch_op:
        batch_op.create_index("ix_commission_tiers_role_branch", ["role", "branch_id"], unique=False)

    op.create_table(
        "customer_purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform", sa.String(32), nullable=True),
        sa.Column("customer_type", sa.String(8), nullable=True),
        sa.Column("delivery_status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("date_order", sa.Date(), nullable=True),
        sa.Column("date_processed", sa.Date(), nullable=True),
        sa.Column("date_return", sa.Date(), nullable=True),
        sa.Column("marketer_id", sa.Integer(), nullable=True),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["marketer_id"], ["actors.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customer_purchases", schema=None) as batch_op:
        batch_op.create_index("ix_customer_purchases_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_customer_purchases_platform", ["platform"], unique=False)
        batch_op.create_index("ix_customer_purchases_delivery_status", ["delivery_status"], unique=False)
        batch_op.create_index("ix_customer_purchases_date_order", ["date_order"], unique=False)
        batch_op.create_index("ix_customer_purchases_marketer_order", ["marketer_id", "date_order"], unique=False)
        batch_op.create_index("ix_customer_purchases_branch_order", ["branch_id", "date_order"], unique=False)

    op.create_table(
        "spends",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("marketer_id", sa.Integer(), nullable=False),
        sa.Column("platform", sa.String(32), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("spend_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["marketer_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("spends", schema=None) as batch_op:
        batch_op.create_index("ix_spends_marketer_date", ["marketer_id", "spend_date"], unique=False)

    op.create_table(
        "prospects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("marketer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(160), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("lead_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["marketer_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("prospects", schema=None) as batch_op:
        batch_op.create_index("ix_prospects_marketer_id", ["marketer_id"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("transfer_ref", sa.String(64), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_id"], ["actors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_ledger_events_event_category", ["event_category"], unique=False)
        batch_op.create_index("ix_ledger_events_entity_type", ["entity_type"], unique=False)
        batch_op.create_index("ix_ledger_events_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_ledger_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_ledger_events_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_ledger_events_transfer_ref", ["transfer_ref"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_actor_occurred", ["actor_id", "occurred_at"], unique=False)


def downgrade():
    for table in (
        "ledger_events",
        "prospects",
        "spends",
        "customer_purchases",
        "commission_tiers",
        "reward_tiers",
        "document_sequences",
        "transactions",
        "pending_orders",
        "stock_movements",
        "inventory_balances",
        "bundle_items",
        "bundles",
        "products",
        "actor_relationships",
        "actors",
    ):
        op.drop_table(table)
