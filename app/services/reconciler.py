"""
Upsert remote carrier records into the store-scoped local tables.

Each record is its own unit: look up (store_id, natural_key), update or insert,
run the optional after_write hook, commit. A failing record is rolled back,
logged and counted; the rest of the batch carries on. Records are applied in
fetch order, so a natural key repeated inside one run resolves last-write-wins.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import InventoryItem, InventoryLocation, InventoryWarehouse, ShipFrom, utcnow
from app.services.exceptions import RecordWriteError

logger = logging.getLogger(__name__)


def _require_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        raise RecordWriteError(f"record has no {key}")
    return str(value).strip()


def _opt_str(value: Any, limit: int = 255) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text[:limit] if text else None


def _as_int(payload: dict, key: str) -> int:
    value = payload.get(key)
    if value is None or value == "":
        return 0
    if isinstance(value, float) and not value.is_integer():
        raise RecordWriteError(f"{key}={value!r} is not a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RecordWriteError(f"{key}={value!r} is not an integer")


_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no", ""}


def _as_bool(payload: dict, key: str) -> bool:
    value = payload.get(key)
    if value is None:
        return False
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise RecordWriteError(f"{key}={value!r} is not a boolean")
    return bool(value)


def _check_payload(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise RecordWriteError(f"record is a {type(payload).__name__}, not an object")
    return payload


# Remote record types ---------------------------------------------------------

@dataclass(frozen=True)
class InventoryRecord:
    sku: str
    available: int = 0
    on_hand: int = 0
    allocated: int = 0
    warehouse_id: Optional[str] = None
    warehouse_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "InventoryRecord":
        payload = _check_payload(payload)
        return cls(
            sku=_require_str(payload, "sku")[:255],
            available=_as_int(payload, "available"),
            on_hand=_as_int(payload, "on_hand"),
            allocated=_as_int(payload, "allocated"),
            warehouse_id=_opt_str(payload.get("inventory_warehouse_id") or payload.get("warehouse_id")),
            warehouse_name=_opt_str(payload.get("warehouse_name")),
        )

    @property
    def natural_key(self) -> str:
        return self.sku

    def mutable_fields(self) -> dict:
        fields = asdict(self)
        fields.pop("sku")
        return fields


def _address(payload: dict, key: str) -> dict:
    address = payload.get(key)
    return address if isinstance(address, dict) else {}


@dataclass(frozen=True)
class ShipFromRecord:
    warehouse_id: str
    name: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_default: bool = False
    origin_address_line1: Optional[str] = None
    origin_address_line2: Optional[str] = None
    origin_address_line3: Optional[str] = None
    origin_city_locality: Optional[str] = None
    origin_state_province: Optional[str] = None
    origin_postal_code: Optional[str] = None
    origin_country_code: Optional[str] = None
    origin_residential_indicator: Optional[str] = None
    return_address_line1: Optional[str] = None
    return_address_line2: Optional[str] = None
    return_address_line3: Optional[str] = None
    return_city_locality: Optional[str] = None
    return_state_province: Optional[str] = None
    return_postal_code: Optional[str] = None
    return_country_code: Optional[str] = None
    return_residential_indicator: Optional[str] = None
    instructions: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ShipFromRecord":
        payload = _check_payload(payload)
        warehouse_id = _require_str(payload, "warehouse_id")
        origin = _address(payload, "origin_address")
        ret = _address(payload, "return_address")
        fields = {
            "warehouse_id": warehouse_id[:100],
            "name": _opt_str(payload.get("name")) or warehouse_id,
            "company_name": _opt_str(payload.get("company_name") or origin.get("company_name")),
            "phone": _opt_str(payload.get("phone") or origin.get("phone"), 50),
            "email": _opt_str(payload.get("email") or origin.get("email")),
            "is_default": _as_bool(payload, "is_default"),
            "instructions": _opt_str(payload.get("instructions"), 10000),
        }
        for prefix, address in (("origin", origin), ("return", ret)):
            fields[f"{prefix}_address_line1"] = _opt_str(address.get("address_line1"))
            fields[f"{prefix}_address_line2"] = _opt_str(address.get("address_line2"))
            fields[f"{prefix}_address_line3"] = _opt_str(address.get("address_line3"))
            fields[f"{prefix}_city_locality"] = _opt_str(address.get("city_locality"), 100)
            fields[f"{prefix}_state_province"] = _opt_str(address.get("state_province"), 50)
            fields[f"{prefix}_postal_code"] = _opt_str(address.get("postal_code"), 20)
            fields[f"{prefix}_country_code"] = _opt_str(address.get("country_code"), 10)
            fields[f"{prefix}_residential_indicator"] = _opt_str(address.get("address_residential_indicator"), 20)
        return cls(**fields)

    @property
    def natural_key(self) -> str:
        return self.warehouse_id

    def mutable_fields(self) -> dict:
        fields = asdict(self)
        fields.pop("warehouse_id")
        return fields


@dataclass(frozen=True)
class InventoryWarehouseRecord:
    inventory_warehouse_id: str
    name: str

    @classmethod
    def from_payload(cls, payload: Any) -> "InventoryWarehouseRecord":
        payload = _check_payload(payload)
        warehouse_id = _require_str(payload, "inventory_warehouse_id")[:100]
        return cls(inventory_warehouse_id=warehouse_id, name=_opt_str(payload.get("name")) or warehouse_id)

    @property
    def natural_key(self) -> str:
        return self.inventory_warehouse_id

    def mutable_fields(self) -> dict:
        return {"name": self.name}


@dataclass(frozen=True)
class InventoryLocationRecord:
    inventory_location_id: str
    name: str
    inventory_warehouse_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "InventoryLocationRecord":
        payload = _check_payload(payload)
        location_id = _require_str(payload, "inventory_location_id")[:100]
        return cls(
            inventory_location_id=location_id,
            name=_opt_str(payload.get("name")) or location_id,
            inventory_warehouse_id=_opt_str(payload.get("inventory_warehouse_id"), 100),
        )

    @property
    def natural_key(self) -> str:
        return self.inventory_location_id

    def mutable_fields(self) -> dict:
        return {"name": self.name, "inventory_warehouse_id": self.inventory_warehouse_id}


# Entity registry -------------------------------------------------------------

@dataclass(frozen=True)
class EntitySpec:
    operation: str
    collection: str  # carrier collection path and envelope key
    model: type
    key_attr: str
    record_type: type


INVENTORY = EntitySpec("inventory", "inventory", InventoryItem, "sku", InventoryRecord)
WAREHOUSES = EntitySpec("warehouses", "warehouses", ShipFrom, "warehouse_id", ShipFromRecord)
INVENTORY_WAREHOUSES = EntitySpec(
    "inventory_warehouses", "inventory_warehouses", InventoryWarehouse, "inventory_warehouse_id", InventoryWarehouseRecord
)
INVENTORY_LOCATIONS = EntitySpec(
    "inventory_locations", "inventory_locations", InventoryLocation, "inventory_location_id", InventoryLocationRecord
)

ENTITY_SPECS = {spec.operation: spec for spec in (WAREHOUSES, INVENTORY_WAREHOUSES, INVENTORY_LOCATIONS, INVENTORY)}


@dataclass
class ReconcileResult:
    total: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.added + self.updated


AfterWrite = Callable[[Session, str, Any], None]


def upsert_record(db: Session, store_id: str, spec: EntitySpec, record: Any) -> tuple[Any, bool]:
    """Apply one parsed record; returns (row, created). Does not commit."""
    key_column = getattr(spec.model, spec.key_attr)
    row = (
        db.query(spec.model)
        .filter(spec.model.store_id == store_id, key_column == record.natural_key)
        .first()
    )
    now = utcnow()
    if row is not None:
        for name, value in record.mutable_fields().items():
            setattr(row, name, value)
        row.updated_at = now
        created = False
    else:
        row = spec.model(
            store_id=store_id,
            created_at=now,
            updated_at=now,
            **{spec.key_attr: record.natural_key},
            **record.mutable_fields(),
        )
        db.add(row)
        created = True
    db.flush()
    return row, created


def reconcile(
    db: Session,
    store_id: str,
    spec: EntitySpec,
    payloads: list,
    after_write: Optional[AfterWrite] = None,
) -> ReconcileResult:
    """Reconcile one entity type's full remote set for a store. Never raises per-record errors."""
    result = ReconcileResult(total=len(payloads))
    for index, payload in enumerate(payloads):
        key = payload.get(spec.key_attr) if isinstance(payload, dict) else None
        try:
            record = spec.record_type.from_payload(payload)
            key = record.natural_key
            row, created = upsert_record(db, store_id, spec, record)
            if after_write is not None:
                after_write(db, store_id, row)
            db.commit()
        except (RecordWriteError, SQLAlchemyError, ValueError, TypeError) as e:
            db.rollback()
            result.failed += 1
            logger.warning(
                "Skipping %s record #%s (key=%s) for store %s: %s", spec.operation, index, key, store_id, e
            )
            continue
        if created:
            result.added += 1
        else:
            result.updated += 1

    logger.info(
        "%s reconcile for store %s: %s total, %s added, %s updated, %s failed",
        spec.operation, store_id, result.total, result.added, result.updated, result.failed,
    )
    return result
