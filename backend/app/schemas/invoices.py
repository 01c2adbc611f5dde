from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from backend.app.db.models.core_types import InvoiceStatus, Language, UnitType


class InvoiceItemIn(BaseModel):
    product_id: int | None = None
    description: str | None = Field(default=None, max_length=255)
    unit_type: UnitType
    qty: int = Field(ge=0)
    rate: Decimal = Field(ge=0)
    tax_pct: Decimal | None = Field(default=None, ge=0, le=100)
    is_adjustment: bool = False

    @model_validator(mode="after")
    def _product_unless_adjustment(self):
        if not self.is_adjustment and self.product_id is None:
            raise ValueError("product_id is required for non-adjustment lines")
        return self


class InvoiceIn(BaseModel):
    client_id: int
    event_id: int | None = None
    date: datetime | None = None
    with_gst: bool = False
    language: Language = Language.en
    items: list[InvoiceItemIn] = Field(min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    paid: Decimal = Field(default=Decimal("0"), ge=0)
    status: InvoiceStatus = InvoiceStatus.draft
