from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import InsufficientStockError, NotFoundError
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import (
    B2BStock,
    IssueRegister,
    Product,
    StockLedger,
)
from backend.app.db.models.core_types import LedgerReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LotTake:
    b2b_stock_id: int
    quantity: int


@dataclass(frozen=True)
class AllocationPlan:
    requested: int
    from_stock: int
    lots: tuple[LotTake, ...] = field(default_factory=tuple)

    @property
    def from_b2b(self) -> int:
        return sum(t.quantity for t in self.lots)


@dataclass
class Allocation:
    product: Product
    plan: AllocationPlan
    lots: list[B2BStock]


def plan_allocation(
    requested: int,
    available_primary: int,
    lots: Sequence[tuple[int, int]],
) -> AllocationPlan | None:
    """
    Split a requested quantity between primary stock and B2B lots.

    `lots` are (b2b_stock_id, quantity_available) pairs, already in
    consumption order (oldest first). Primary stock is always drained first.
    Returns None when primary + lots cannot cover the request.
    """
    if requested <= 0:
        raise ValueError("requested quantity must be positive")

    from_stock = min(requested, max(available_primary, 0))
    remaining = requested - from_stock

    takes: list[LotTake] = []
    for lot_id, qty_available in lots:
        if remaining == 0:
            break
        if qty_available <= 0:
            continue
        take = min(remaining, qty_available)
        takes.append(LotTake(b2b_stock_id=lot_id, quantity=take))
        remaining -= take

    if remaining > 0:
        return None
    return AllocationPlan(requested=requested, from_stock=from_stock, lots=tuple(takes))


def lock_product(db: Session, product_id: int) -> Product:
    product = (
        db.execute(select(Product).where(Product.id == product_id).with_for_update())
        .scalar_one_or_none()
    )
    if not product:
        raise NotFoundError(f"Product not found: {product_id}")
    return product


def _lock_b2b_lots(db: Session, product_id: int) -> list[B2BStock]:
    return list(
        db.execute(
            select(B2BStock)
            .where(B2BStock.product_id == product_id)
            .where(B2BStock.quantity_available > 0)
            .order_by(B2BStock.created_at.asc(), B2BStock.id.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )


def record_ledger(
    db: Session,
    *,
    product_id: int,
    qty_change: int,
    reason: LedgerReason,
    ref_type: str | None = None,
    ref_id: int | None = None,
    note: str | None = None,
    at: datetime | None = None,
) -> StockLedger:
    entry = StockLedger(
        product_id=product_id,
        qty_change=qty_change,
        reason=reason,
        ref_type=ref_type,
        ref_id=ref_id,
        note=note,
        at=at or utcnow(),
    )
    db.add(entry)
    return entry


def consume_product_stock(
    db: Session,
    *,
    product: Product,
    quantity: int,
    allow_b2b: bool = True,
) -> Allocation:
    """
    Take `quantity` units of a product out of inventory.

    Primary stock first, then the product's B2B lots oldest first. The caller
    owns the transaction; on shortage nothing has been written and
    InsufficientStockError is raised.
    """
    lots = _lock_b2b_lots(db, product.id) if allow_b2b else []
    plan = plan_allocation(
        quantity,
        int(product.stock_qty),
        [(lot.id, int(lot.quantity_available)) for lot in lots],
    )
    if plan is None:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            requested=quantity,
            available_primary=int(product.stock_qty),
            available_b2b=sum(int(lot.quantity_available) for lot in lots),
        )

    product.stock_qty = int(product.stock_qty) - plan.from_stock

    by_id = {lot.id: lot for lot in lots}
    used: list[B2BStock] = []
    for take in plan.lots:
        lot = by_id[take.b2b_stock_id]
        lot.quantity_available = int(lot.quantity_available) - take.quantity
        used.append(lot)

    if plan.from_b2b:
        logger.info(
            "product %s: %s from stock, %s from B2B lots %s",
            product.id,
            plan.from_stock,
            plan.from_b2b,
            [t.b2b_stock_id for t in plan.lots],
        )

    return Allocation(product=product, plan=plan, lots=used)


def restock_product(db: Session, *, product: Product, quantity: int) -> None:
    if quantity < 0:
        raise ValueError("restock quantity must be non-negative")
    product.stock_qty = int(product.stock_qty) + quantity


def bump_issue_register(
    db: Session,
    *,
    product_id: int,
    client_id: int,
    issued: int = 0,
    returned: int = 0,
) -> IssueRegister:
    reg = (
        db.execute(
            select(IssueRegister)
            .where(IssueRegister.product_id == product_id)
            .where(IssueRegister.client_id == client_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if not reg:
        reg = IssueRegister(
            product_id=product_id,
            client_id=client_id,
            qty_issued=0,
            qty_returned=0,
            issue_date=utcnow(),
        )
        db.add(reg)
        db.flush()

    # never drive the counters negative when reversing
    reg.qty_issued = max(0, int(reg.qty_issued) + issued)
    reg.qty_returned = max(0, int(reg.qty_returned) + returned)
    if returned > 0:
        reg.last_returned_at = utcnow()
    return reg


def stock_level_bounds(level: str) -> tuple[int | None, int | None]:
    """Inclusive (min, max) stock_qty for a stock-level filter."""
    return {
        "out": (0, 0),
        "low": (1, 9),
        "medium": (10, 50),
        "good": (51, None),
    }[level]


def products_by_id(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    ids = sorted({int(pid) for pid in product_ids if pid is not None})
    if not ids:
        return {}
    rows = db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
    return {int(p.id): p for p in rows}
