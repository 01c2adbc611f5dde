from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from backend.app.db.base import as_utc


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    client_id: int | None = None
    date_from: datetime
    date_to: datetime
    notes: str | None = None
    budget: Decimal | None = Field(default=None, ge=0)
    estimate: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _dates_ordered(self):
        if as_utc(self.date_to) < as_utc(self.date_from):
            raise ValueError("date_to must not be before date_from")
        return self


class SelectionIn(BaseModel):
    product_id: int
    qty_to_send: int = Field(ge=0)
    rate: Decimal = Field(ge=0)
    name: str | None = None
    sku: str | None = None
    unit_type: str | None = None


class AgreementIn(BaseModel):
    selections: list[SelectionIn] = Field(default_factory=list)
    advance: Decimal = Field(default=Decimal("0"), ge=0)
    security: Decimal = Field(default=Decimal("0"), ge=0)
    agreement_terms: str = ""


class DispatchItemIn(BaseModel):
    product_id: int
    qty: int = Field(gt=0)
    rate: Decimal | None = Field(default=None, ge=0)
    name: str | None = None


class DispatchIn(BaseModel):
    items: list[DispatchItemIn] = Field(min_length=1)
    dispatched_by: str | None = Field(default=None, max_length=200)
    dispatch_date: datetime | None = None
    note: str | None = None
    allow_b2b: bool = True


class ReturnItemIn(BaseModel):
    product_id: int
    qty: int = Field(ge=0)
    damaged_qty: int = Field(default=0, ge=0)
    rate: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _damaged_within_returned(self):
        if self.damaged_qty > self.qty:
            raise ValueError("damaged_qty cannot exceed qty")
        return self


class ReturnIn(BaseModel):
    items: list[ReturnItemIn] = Field(default_factory=list)
    damages: Decimal | None = Field(default=None, ge=0)
    late_fee: Decimal | None = Field(default=None, ge=0)
    returned_by: str | None = Field(default=None, max_length=200)
    return_date: datetime | None = None
    return_notes: str | None = None
    close: bool = False
