from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import B2BPurchaseLog, B2BStock, Product
from backend.services.billing import money
from backend.services.procurement import create_lot, delete_lot, log_purchase

router = APIRouter(prefix="/b2b")


class B2BCreate(BaseModel):
    item_name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    supplier_name: str = Field(min_length=1, max_length=255)
    product_id: int | None = None


class B2BUpdate(BaseModel):
    item_name: str = Field(min_length=1, max_length=255)
    supplier_name: str = Field(min_length=1, max_length=255)
    quantity_available: int = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    product_id: int | None = None


class PurchaseCreate(BaseModel):
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    supplier_name: str = Field(min_length=1, max_length=255)


def _lot_dict(lot: B2BStock) -> dict:
    return {
        "id": lot.id,
        "item_name": lot.item_name,
        "supplier_name": lot.supplier_name,
        "quantity_available": lot.quantity_available,
        "unit_price": lot.unit_price,
        "product_id": lot.product_id,
        "created_at": lot.created_at,
        "updated_at": lot.updated_at,
    }


def _get_lot(db: Session, lot_id: int) -> B2BStock:
    lot = db.get(B2BStock, lot_id)
    if not lot:
        raise HTTPException(status_code=404, detail="B2B item not found")
    return lot


@router.get("")
def list_b2b(product_id: int | None = None, db: Session = Depends(get_db)):
    stmt = select(B2BStock).order_by(B2BStock.created_at.desc(), B2BStock.id.desc())
    if product_id is not None:
        stmt = stmt.where(B2BStock.product_id == product_id)
    return [_lot_dict(lot) for lot in db.execute(stmt).scalars().all()]


@router.post("", status_code=201)
def create_b2b(payload: B2BCreate, db: Session = Depends(get_db)):
    lot = create_lot(db, **payload.model_dump())
    db.commit()
    db.refresh(lot)
    return _lot_dict(lot)


@router.put("/{lot_id}")
def update_b2b(lot_id: int, payload: B2BUpdate, db: Session = Depends(get_db)):
    lot = _get_lot(db, lot_id)
    if payload.product_id is not None and not db.get(Product, payload.product_id):
        raise HTTPException(status_code=400, detail="Invalid product_id")

    lot.item_name = payload.item_name
    lot.supplier_name = payload.supplier_name
    lot.quantity_available = payload.quantity_available
    lot.unit_price = money(payload.unit_price)
    lot.product_id = payload.product_id
    db.commit()
    db.refresh(lot)
    return _lot_dict(lot)


@router.delete("/{lot_id}")
def delete_b2b(lot_id: int, db: Session = Depends(get_db)):
    delete_lot(db, _get_lot(db, lot_id))
    db.commit()
    return {"deleted": True, "id": lot_id}


@router.post("/{lot_id}/purchase")
def purchase_b2b(lot_id: int, payload: PurchaseCreate, db: Session = Depends(get_db)):
    lot = log_purchase(db, lot_id=lot_id, **payload.model_dump())
    db.commit()
    db.refresh(lot)
    return _lot_dict(lot)


@router.get("/{lot_id}/purchases")
def list_purchases(lot_id: int, db: Session = Depends(get_db)):
    _get_lot(db, lot_id)
    rows = (
        db.execute(
            select(B2BPurchaseLog)
            .where(B2BPurchaseLog.b2b_stock_id == lot_id)
            .order_by(B2BPurchaseLog.created_at.desc(), B2BPurchaseLog.id.desc())
        )
        .scalars()
        .all()
    )
    return [
        {
            "id": r.id,
            "quantity": r.quantity,
            "price": r.price,
            "supplier_name": r.supplier_name,
            "created_at": r.created_at,
        }
        for r in rows
    ]
