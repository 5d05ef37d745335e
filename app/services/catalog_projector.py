"""Copy reconciled inventory quantities onto the store's product catalog (products.stock_quantity)."""
import logging

from sqlalchemy.orm import Session

from app.models import InventoryItem, Product, utcnow

logger = logging.getLogger(__name__)


def project_stock_quantity(db: Session, store_id: str, sku: str, available: int) -> int:
    """
    Set stock_quantity on the store's products matching sku. Returns the number of
    products touched; 0 when no product carries that SKU. Does not commit.
    """
    touched = (
        db.query(Product)
        .filter(Product.store_id == store_id, Product.sku == sku)
        .update(
            {Product.stock_quantity: available, Product.updated_at: utcnow()},
            synchronize_session="fetch",
        )
    )
    if touched:
        logger.debug("Projected stock %s onto %s product(s) for sku %s", available, touched, sku)
    return touched


def project_inventory_row(db: Session, store_id: str, row: InventoryItem) -> None:
    """after_write hook for the inventory operation; runs for inserts and updates alike."""
    project_stock_quantity(db, store_id, row.sku, row.available or 0)
