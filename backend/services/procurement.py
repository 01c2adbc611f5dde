"""
B2B procurement.

Stock bought or hired from other parties is kept as B2B lots, separate from
the product catalog. A lot may be linked to a product; linked lots are the
overflow pool the allocator in backend.services.inventory draws from.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import ConflictError, DomainValidationError, NotFoundError
from backend.app.db.models.models_v1 import B2BPurchaseLog, B2BStock, DispatchAllocation, Product
from backend.services.billing import money

logger = logging.getLogger(__name__)


def _check_product(db: Session, product_id: int | None) -> None:
    if product_id is not None and not db.get(Product, product_id):
        raise DomainValidationError("Invalid product_id")


def create_lot(
    db: Session,
    *,
    item_name: str,
    quantity: int,
    price: Decimal,
    supplier_name: str,
    product_id: int | None = None,
) -> B2BStock:
    _check_product(db, product_id)
    lot = B2BStock(
        item_name=item_name,
        supplier_name=supplier_name,
        quantity_available=quantity,
        unit_price=money(price),
        product_id=product_id,
    )
    lot.purchase_logs.append(B2BPurchaseLog(quantity=quantity, price=money(price), supplier_name=supplier_name))
    db.add(lot)
    db.flush()
    logger.info("B2B lot %s created: %s x %s from %s", lot.id, quantity, item_name, supplier_name)
    return lot


def log_purchase(
    db: Session,
    *,
    lot_id: int,
    quantity: int,
    price: Decimal,
    supplier_name: str,
) -> B2BStock:
    lot = db.execute(select(B2BStock).where(B2BStock.id == lot_id).with_for_update()).scalar_one_or_none()
    if not lot:
        raise NotFoundError("B2B item not found")

    lot.quantity_available = int(lot.quantity_available) + quantity
    lot.unit_price = money(price)
    lot.supplier_name = supplier_name
    lot.purchase_logs.append(B2BPurchaseLog(quantity=quantity, price=money(price), supplier_name=supplier_name))
    db.flush()
    return lot


def delete_lot(db: Session, lot: B2BStock) -> None:
    in_use = db.execute(
        select(DispatchAllocation.id).where(DispatchAllocation.b2b_stock_id == lot.id).limit(1)
    ).first()
    if in_use:
        raise ConflictError("B2B item is referenced by event dispatches")
    db.delete(lot)
    db.flush()
