from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import LedgerReason, UnitType


class ProductStockRead(BaseModel):
    id: int
    name: str
    sku: str | None
    category: str
    unit_type: UnitType
    sell_price: Decimal
    stock_qty: int

    class Config:
        from_attributes = True


class LedgerEntryRead(BaseModel):
    id: int
    product_id: int
    qty_change: int
    reason: LedgerReason
    ref_type: str | None
    ref_id: int | None
    note: str | None
    at: datetime

    class Config:
        from_attributes = True
