"""Initial schema: stores, users, carrier integrations, reconciled inventory tables and sync logs.

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


revision = "initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _address(prefix: str):
    return [
        sa.Column(f"{prefix}_address_line1", sa.String(255), nullable=True),
        sa.Column(f"{prefix}_address_line2", sa.String(255), nullable=True),
        sa.Column(f"{prefix}_address_line3", sa.String(255), nullable=True),
        sa.Column(f"{prefix}_city_locality", sa.String(100), nullable=True),
        sa.Column(f"{prefix}_state_province", sa.String(50), nullable=True),
        sa.Column(f"{prefix}_postal_code", sa.String(20), nullable=True),
        sa.Column(f"{prefix}_country_code", sa.String(10), nullable=True),
        sa.Column(f"{prefix}_residential_indicator", sa.String(20), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="SET NULL"), nullable=True),
        sa.Column("role", sa.Enum("ADMIN", "STAFF", name="userrole"), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "store_integrations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("integration_type", sa.String(50), nullable=False),
        sa.Column("api_key_encrypted", sa.Text(), nullable=True),
        sa.Column("configuration", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_sync_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_sync_interval", sa.String(20), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("sync_status", sa.String(20), nullable=True),
        sa.Column("sync_error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "integration_type", name="uq_store_integrations_store_type"),
    )
    op.create_index("ix_store_integrations_store_id", "store_integrations", ["store_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_store_sku", "products", ["store_id", "sku"])

    op.create_table(
        "inventory",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku", sa.String(255), nullable=False),
        sa.Column("available", sa.Integer(), nullable=False),
        sa.Column("on_hand", sa.Integer(), nullable=False),
        sa.Column("allocated", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.String(255), nullable=True),
        sa.Column("warehouse_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "sku", name="uq_inventory_store_sku"),
    )

    op.create_table(
        "shipfroms",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("warehouse_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_address("origin"),
        *_address("return"),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "warehouse_id", name="uq_shipfroms_store_warehouse"),
    )
    op.create_index("ix_shipfroms_store_id", "shipfroms", ["store_id"])

    op.create_table(
        "inventory_warehouses",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inventory_warehouse_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "inventory_warehouse_id", name="uq_inventory_warehouses_store_warehouse"),
    )
    op.create_index("ix_inventory_warehouses_store_id", "inventory_warehouses", ["store_id"])

    op.create_table(
        "inventory_locations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inventory_location_id", sa.String(100), nullable=False),
        sa.Column("inventory_warehouse_id", sa.String(100), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "inventory_location_id", name="uq_inventory_locations_store_location"),
    )
    op.create_index("ix_inventory_locations_store_id", "inventory_locations", ["store_id"])

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=True),
        sa.Column("trigger", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("total_operations", sa.Integer(), nullable=False),
        sa.Column("successful_operations", sa.Integer(), nullable=False),
        sa.Column("failed_operations", sa.Integer(), nullable=False),
        sa.Column("total_duration", sa.Integer(), nullable=False),
        sa.Column("results", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sync_logs_store_id", "sync_logs", ["store_id"])
    op.create_index("ix_sync_logs_timestamp", "sync_logs", ["timestamp"])


def downgrade() -> None:
    for table in (
        "sync_logs",
        "inventory_locations",
        "inventory_warehouses",
        "shipfroms",
        "inventory",
        "products",
        "store_integrations",
        "users",
        "stores",
    ):
        op.drop_table(table)
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS userrole")
