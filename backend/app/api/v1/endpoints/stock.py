from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.db.models.models_v1 import Event, EventDispatch, IssueRegister, Product, StockLedger
from backend.app.db.models.core_types import LedgerReason, StockLevelFilter, StockUpdateType
from backend.app.schemas.stock import LedgerEntryRead, ProductStockRead
from backend.services.events import outstanding_units
from backend.services.inventory import consume_product_stock, lock_product, record_ledger, stock_level_bounds

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stock")

MANUAL_REF = "Manual"


class StockUpdate(BaseModel):
    product_id: int
    type: StockUpdateType
    # in/out: units moved; adjustment: the counted stock level
    quantity: int = Field(ge=0)
    reason: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _positive_move(self):
        if self.type != StockUpdateType.adjustment and self.quantity <= 0:
            raise ValueError("quantity must be greater than 0")
        return self


@router.get("", response_model=list[ProductStockRead])
def get_stock(
    search: str | None = None,
    category: str | None = None,
    stock_level: StockLevelFilter | None = None,
    db: Session = Depends(get_db),
):
    """Current stock per product, optionally filtered by level (out / low / medium / good)."""
    stmt = select(Product).order_by(Product.name, Product.id)

    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.name.ilike(like), Product.category.ilike(like)))

    if category:
        stmt = stmt.where(Product.category.ilike(f"%{category.strip()}%"))

    if stock_level is not None:
        low, high = stock_level_bounds(stock_level.value)
        if low is not None:
            stmt = stmt.where(Product.stock_qty >= low)
        if high is not None:
            stmt = stmt.where(Product.stock_qty <= high)

    return db.execute(stmt).scalars().all()


@router.get("/ledger")
def get_ledger(
    product_id: int | None = None,
    reason: LedgerReason | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(StockLedger).order_by(StockLedger.at.desc(), StockLedger.id.desc())

    if product_id is not None:
        stmt = stmt.where(StockLedger.product_id == product_id)
    if reason is not None:
        stmt = stmt.where(StockLedger.reason == reason)
    if from_date is not None:
        stmt = stmt.where(StockLedger.at >= from_date)
    if to_date is not None:
        stmt = stmt.where(StockLedger.at <= to_date)

    return paginate(db, stmt, page, LedgerEntryRead.model_validate)


@router.get("/issues")
def get_issue_register(limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)):
    rows = (
        db.execute(
            select(IssueRegister)
            .options(selectinload(IssueRegister.product), selectinload(IssueRegister.client))
            .order_by(IssueRegister.issue_date.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return [
        {
            "id": r.id,
            "product_id": r.product_id,
            "product_name": r.product.name,
            "client_id": r.client_id,
            "client_name": r.client.name,
            "qty_issued": r.qty_issued,
            "qty_returned": r.qty_returned,
            "outstanding": r.qty_issued - r.qty_returned,
            "issue_date": r.issue_date,
            "last_returned_at": r.last_returned_at,
        }
        for r in rows
    ]


@router.get("/returnable")
def get_returnable(db: Session = Depends(get_db)):
    """Open events whose latest dispatch still has units out."""
    events = (
        db.execute(
            select(Event)
            .where(Event.return_closed.is_(False))
            .options(
                selectinload(Event.client),
                selectinload(Event.dispatches).selectinload(EventDispatch.lines),
            )
            .order_by(Event.date_from.desc())
            .limit(200)
        )
        .scalars()
        .all()
    )

    result = []
    for ev in events:
        pending = outstanding_units(ev)
        if not pending:
            continue
        result.append(
            {
                "id": ev.id,
                "name": ev.name,
                "client_id": ev.client_id,
                "client_name": ev.client.name if ev.client else None,
                "date_from": ev.date_from,
                "date_to": ev.date_to,
                "status": ev.status,
                "outstanding_units": pending,
            }
        )
    return result


@router.post("/update")
def update_stock(payload: StockUpdate, db: Session = Depends(get_db)):
    product = lock_product(db, payload.product_id)
    note = payload.reason or "Manual stock update"

    allocation = None
    if payload.type == StockUpdateType.stock_in:
        product.stock_qty = int(product.stock_qty) + payload.quantity
        record_ledger(
            db,
            product_id=product.id,
            qty_change=payload.quantity,
            reason=LedgerReason.manual,
            ref_type=MANUAL_REF,
            note=note,
        )

    elif payload.type == StockUpdateType.stock_out:
        allocation = consume_product_stock(db, product=product, quantity=payload.quantity)
        if allocation.plan.from_stock:
            record_ledger(
                db,
                product_id=product.id,
                qty_change=-allocation.plan.from_stock,
                reason=LedgerReason.manual,
                ref_type=MANUAL_REF,
                note=note,
            )
        for take in allocation.plan.lots:
            record_ledger(
                db,
                product_id=product.id,
                qty_change=-take.quantity,
                reason=LedgerReason.b2b_dispatch,
                ref_type=MANUAL_REF,
                note=f"B2B lot {take.b2b_stock_id}: {note}",
            )

    else:
        delta = payload.quantity - int(product.stock_qty)
        if delta == 0:
            raise HTTPException(status_code=400, detail="Stock already at the requested level")
        product.stock_qty = payload.quantity
        record_ledger(
            db,
            product_id=product.id,
            qty_change=delta,
            reason=LedgerReason.adjustment,
            ref_type=MANUAL_REF,
            note=note,
        )

    db.commit()
    db.refresh(product)
    logger.info("manual stock %s on product %s: %s (now %s)", payload.type.value, product.id, payload.quantity, product.stock_qty)

    return {
        "product": ProductStockRead.model_validate(product),
        "allocation": (
            {
                "from_stock": allocation.plan.from_stock,
                "from_b2b": allocation.plan.from_b2b,
                "lots": [{"b2b_stock_id": t.b2b_stock_id, "quantity": t.quantity} for t in allocation.plan.lots],
            }
            if allocation
            else None
        ),
    }
