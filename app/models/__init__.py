"""
SQLAlchemy models for stores, carrier integrations, the reconciled inventory tables and sync history.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, Enum as SQLEnum, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum
import uuid
from datetime import datetime, timezone


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; DateTime columns are stored as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums
class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"


class IntegrationSyncStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncTrigger(str, enum.Enum):
    SCHEDULER = "scheduler"
    ADMIN = "admin"
    AUTO = "auto"
    CLI = "cli"


# Models
class Store(Base):
    __tablename__ = "stores"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    owner_id = Column("owner_id", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    integrations = relationship("StoreIntegration", back_populates="store", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.ADMIN)
    created_at = Column("created_at", DateTime, server_default=func.now())

    store = relationship("Store")


class StoreIntegration(Base):
    """Per-store carrier credential. api_key_encrypted holds a Fernet token (or legacy base64)."""
    __tablename__ = "store_integrations"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    integration_type = Column("integration_type", String(50), nullable=False)
    api_key_encrypted = Column("api_key_encrypted", Text, nullable=True)
    configuration = Column("configuration", JSON, nullable=True)
    is_active = Column("is_active", Boolean, default=False, nullable=False)
    auto_sync_enabled = Column("auto_sync_enabled", Boolean, default=False, nullable=False)
    auto_sync_interval = Column("auto_sync_interval", String(20), default="1hour")
    last_sync_at = Column("last_sync_at", DateTime, nullable=True)
    sync_status = Column("sync_status", String(20), default=IntegrationSyncStatus.PENDING.value)
    sync_error_message = Column("sync_error_message", Text, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    store = relationship("Store", back_populates="integrations")

    __table_args__ = (
        UniqueConstraint("store_id", "integration_type", name="uq_store_integrations_store_type"),
    )


class Product(Base):
    """Catalog entry. stock_quantity mirrors the reconciled inventory row with the same SKU."""
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String, nullable=True)
    name = Column(String, nullable=False)
    stock_quantity = Column("stock_quantity", Integer, default=0)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now())

    __table_args__ = (Index("ix_products_store_sku", "store_id", "sku"),)


class InventoryItem(Base):
    __tablename__ = "inventory"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String(255), nullable=False)
    available = Column(Integer, default=0, nullable=False)
    on_hand = Column("on_hand", Integer, default=0, nullable=False)
    allocated = Column(Integer, default=0, nullable=False)
    warehouse_id = Column("warehouse_id", String(255), nullable=True)
    warehouse_name = Column("warehouse_name", String(255), nullable=True)
    created_at = Column("created_at", DateTime, nullable=False)
    updated_at = Column("updated_at", DateTime, nullable=False)

    __table_args__ = (UniqueConstraint("store_id", "sku", name="uq_inventory_store_sku"),)


class ShipFrom(Base):
    """Carrier ship-from warehouse (v2/warehouses)."""
    __tablename__ = "shipfroms"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    warehouse_id = Column("warehouse_id", String(100), nullable=False)
    name = Column(String(255), nullable=False)
    company_name = Column("company_name", String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_default = Column("is_default", Boolean, default=False, nullable=False)

    origin_address_line1 = Column(String(255), nullable=True)
    origin_address_line2 = Column(String(255), nullable=True)
    origin_address_line3 = Column(String(255), nullable=True)
    origin_city_locality = Column(String(100), nullable=True)
    origin_state_province = Column(String(50), nullable=True)
    origin_postal_code = Column(String(20), nullable=True)
    origin_country_code = Column(String(10), nullable=True)
    origin_residential_indicator = Column(String(20), nullable=True)

    return_address_line1 = Column(String(255), nullable=True)
    return_address_line2 = Column(String(255), nullable=True)
    return_address_line3 = Column(String(255), nullable=True)
    return_city_locality = Column(String(100), nullable=True)
    return_state_province = Column(String(50), nullable=True)
    return_postal_code = Column(String(20), nullable=True)
    return_country_code = Column(String(10), nullable=True)
    return_residential_indicator = Column(String(20), nullable=True)

    instructions = Column(Text, nullable=True)
    is_active = Column("is_active", Boolean, default=True, nullable=False)
    created_at = Column("created_at", DateTime, nullable=False)
    updated_at = Column("updated_at", DateTime, nullable=False)

    __table_args__ = (UniqueConstraint("store_id", "warehouse_id", name="uq_shipfroms_store_warehouse"),)


class InventoryWarehouse(Base):
    __tablename__ = "inventory_warehouses"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_warehouse_id = Column("inventory_warehouse_id", String(100), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column("is_active", Boolean, default=True, nullable=False)
    created_at = Column("created_at", DateTime, nullable=False)
    updated_at = Column("updated_at", DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("store_id", "inventory_warehouse_id", name="uq_inventory_warehouses_store_warehouse"),
    )


class InventoryLocation(Base):
    __tablename__ = "inventory_locations"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_location_id = Column("inventory_location_id", String(100), nullable=False)
    inventory_warehouse_id = Column("inventory_warehouse_id", String(100), nullable=True)
    name = Column(String(255), nullable=False)
    is_active = Column("is_active", Boolean, default=True, nullable=False)
    created_at = Column("created_at", DateTime, nullable=False)
    updated_at = Column("updated_at", DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("store_id", "inventory_location_id", name="uq_inventory_locations_store_location"),
    )


class SyncLog(Base):
    """One row per orchestrator invocation. store_id is NULL for multi-store scheduler runs."""
    __tablename__ = "sync_logs"

    id = Column(String, primary_key=True, default=_uuid)
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=True, index=True)
    trigger = Column("trigger", String(20), nullable=False, default=SyncTrigger.SCHEDULER.value)
    timestamp = Column("timestamp", DateTime, nullable=False, index=True)
    total_operations = Column("total_operations", Integer, default=0, nullable=False)
    successful_operations = Column("successful_operations", Integer, default=0, nullable=False)
    failed_operations = Column("failed_operations", Integer, default=0, nullable=False)
    total_duration = Column("total_duration", Integer, default=0, nullable=False)  # milliseconds
    results = Column("results", JSON, nullable=False, default=list)
    created_at = Column("created_at", DateTime, server_default=func.now())
