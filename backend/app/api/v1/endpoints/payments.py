from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.api.v1.endpoints.invoices import payment_dict
from backend.app.db.base import utcnow
from backend.app.db.models.core_types import PaymentMode
from backend.services.billing import record_payment

router = APIRouter(prefix="/payments")


class PaymentCreate(BaseModel):
    invoice_id: int
    amount: Decimal = Field(gt=0)
    mode: PaymentMode
    ref: str | None = Field(default=None, max_length=128)
    at: datetime | None = None


@router.post("", status_code=201)
def create_payment(payload: PaymentCreate, db: Session = Depends(get_db)):
    payment = record_payment(
        db,
        invoice_id=payload.invoice_id,
        amount=payload.amount,
        mode=payload.mode,
        ref=payload.ref,
        at=payload.at or utcnow(),
    )
    db.commit()
    db.refresh(payment)

    inv = payment.invoice
    return {
        "payment": payment_dict(payment),
        "invoice": {"id": inv.id, "number": inv.number, "paid": inv.paid, "pending": inv.pending},
    }
