from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.db.models.models_v1 import (
    EventDispatchLine,
    EventReturnLine,
    EventSelection,
    InvoiceItem,
    IssueRegister,
    Product,
    StockLedger,
)
from backend.app.db.models.core_types import UnitType

router = APIRouter(prefix="/products")

# rows that keep a product from being deleted
REFERENCING = (StockLedger, IssueRegister, EventSelection, EventDispatchLine, EventReturnLine, InvoiceItem)


class ProductUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str | None = Field(default=None, max_length=64)
    category: str = Field(min_length=1, max_length=100)
    unit_type: UnitType = UnitType.pcs
    buy_price: Decimal = Field(default=Decimal("0"), ge=0)
    sell_price: Decimal = Field(default=Decimal("0"), ge=0)
    image_url: str | None = Field(default=None, max_length=500)


class ProductCreate(ProductUpdate):
    # opening stock; later changes go through POST /stock/update
    stock_qty: int = Field(default=0, ge=0)


def product_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "sku": p.sku,
        "category": p.category,
        "unit_type": p.unit_type,
        "buy_price": p.buy_price,
        "sell_price": p.sell_price,
        "stock_qty": p.stock_qty,
        "image_url": p.image_url,
        "created_at": p.created_at,
    }


def _get_product(db: Session, product_id: int) -> Product:
    p = db.get(Product, product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return p


def _sku_taken(db: Session, sku: str | None, exclude_id: int | None = None) -> bool:
    if not sku:
        return False
    stmt = select(Product.id).where(Product.sku == sku)
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    return db.execute(stmt).first() is not None


@router.get("")
def list_products(
    search: str | None = None,
    category: str | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(Product).order_by(Product.name, Product.id)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    if category:
        stmt = stmt.where(Product.category == category)
    return paginate(db, stmt, page, product_dict)


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    return product_dict(_get_product(db, product_id))


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    sku = payload.sku or None
    if _sku_taken(db, sku):
        raise HTTPException(status_code=409, detail="SKU already exists")

    p = Product(**payload.model_dump(exclude={"sku"}), sku=sku)
    db.add(p)
    db.commit()
    db.refresh(p)
    return product_dict(p)


@router.put("/{product_id}")
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    p = _get_product(db, product_id)
    sku = payload.sku or None
    if _sku_taken(db, sku, exclude_id=product_id):
        raise HTTPException(status_code=409, detail="SKU already exists")

    for key, value in payload.model_dump(exclude={"sku"}).items():
        setattr(p, key, value)
    p.sku = sku
    db.commit()
    db.refresh(p)
    return product_dict(p)


@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    p = _get_product(db, product_id)
    for model in REFERENCING:
        if db.execute(select(model.id).where(model.product_id == product_id).limit(1)).first():
            raise HTTPException(status_code=409, detail="Product is referenced by stock history, events or invoices")

    db.delete(p)
    db.commit()
    return {"deleted": True, "id": product_id}
