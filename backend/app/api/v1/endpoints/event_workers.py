from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import Event, EventWorker, EventWorkerPayment, Worker
from backend.app.db.models.core_types import PaymentMode
from backend.services.billing import money
from backend.services.crew import record_crew_payment

router = APIRouter(prefix="/events")


class EventWorkerCreate(BaseModel):
    worker_id: int | None = None
    name: str | None = Field(default=None, max_length=200)
    role: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    pay_rate: Decimal = Field(ge=0)
    agreed_amount: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _named(self):
        if self.worker_id is None and not (self.name and self.name.strip()):
            raise ValueError("name is required unless worker_id is given")
        return self


class CrewPaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    mode: PaymentMode
    paid_at: datetime | None = None
    ref: str | None = Field(default=None, max_length=128)
    notes: str | None = None


def _payment_dict(p: EventWorkerPayment) -> dict:
    return {
        "id": p.id,
        "event_worker_id": p.event_worker_id,
        "amount": p.amount,
        "mode": p.mode,
        "ref": p.ref,
        "notes": p.notes,
        "paid_at": p.paid_at,
    }


def _crew_dict(m: EventWorker) -> dict:
    due = m.amount_due
    return {
        "id": m.id,
        "event_id": m.event_id,
        "worker_id": m.worker_id,
        "name": m.name,
        "role": m.role,
        "phone": m.phone,
        "pay_rate": m.pay_rate,
        "agreed_amount": m.agreed_amount,
        "amount_due": money(due),
        "total_paid": m.total_paid,
        "remaining": money(due - Decimal(m.total_paid)),
        "created_at": m.created_at,
    }


def _get_event(db: Session, event_id: int) -> Event:
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    return ev


def _get_member(db: Session, event_id: int, crew_id: int) -> EventWorker:
    m = db.execute(
        select(EventWorker).where(EventWorker.id == crew_id, EventWorker.event_id == event_id)
    ).scalar_one_or_none()
    if not m:
        raise HTTPException(status_code=404, detail="Event worker not found")
    return m


def _apply(db: Session, m: EventWorker, payload: EventWorkerCreate) -> None:
    worker = None
    if payload.worker_id is not None:
        worker = db.get(Worker, payload.worker_id)
        if not worker:
            raise HTTPException(status_code=400, detail="Invalid worker_id")

    m.worker_id = payload.worker_id
    m.name = (payload.name or "").strip() or worker.name
    m.phone = payload.phone or (worker.phone if worker else None)
    m.role = payload.role
    m.pay_rate = money(payload.pay_rate)
    m.agreed_amount = money(payload.agreed_amount) if payload.agreed_amount is not None else None


@router.get("/{event_id}/workers")
def list_event_workers(event_id: int, db: Session = Depends(get_db)):
    return [_crew_dict(m) for m in _get_event(db, event_id).crew]


@router.post("/{event_id}/workers", status_code=201)
def add_event_worker(event_id: int, payload: EventWorkerCreate, db: Session = Depends(get_db)):
    ev = _get_event(db, event_id)
    m = EventWorker(total_paid=0)
    _apply(db, m, payload)
    ev.crew.append(m)
    db.commit()
    db.refresh(m)
    return _crew_dict(m)


@router.put("/{event_id}/workers/{crew_id}")
def update_event_worker(event_id: int, crew_id: int, payload: EventWorkerCreate, db: Session = Depends(get_db)):
    m = _get_member(db, event_id, crew_id)
    _apply(db, m, payload)
    if m.amount_due < Decimal(m.total_paid):
        raise HTTPException(status_code=400, detail="Amount due cannot drop below what is already paid")
    db.commit()
    db.refresh(m)
    return _crew_dict(m)


@router.delete("/{event_id}/workers/{crew_id}")
def delete_event_worker(event_id: int, crew_id: int, db: Session = Depends(get_db)):
    m = _get_member(db, event_id, crew_id)
    if m.payments:
        raise HTTPException(status_code=409, detail="Event worker has payments recorded")

    db.delete(m)
    db.commit()
    return {"deleted": True, "id": crew_id}


@router.post("/{event_id}/workers/{crew_id}/payments", status_code=201)
def pay_event_worker(event_id: int, crew_id: int, payload: CrewPaymentCreate, db: Session = Depends(get_db)):
    payment = record_crew_payment(
        db,
        event_id=event_id,
        crew_id=crew_id,
        amount=payload.amount,
        mode=payload.mode,
        paid_at=payload.paid_at or utcnow(),
        ref=payload.ref,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(payment)
    return {"payment": _payment_dict(payment), "worker": _crew_dict(payment.event_worker)}


@router.get("/{event_id}/workers/{crew_id}/payments")
def list_event_worker_payments(event_id: int, crew_id: int, db: Session = Depends(get_db)):
    return [_payment_dict(p) for p in _get_member(db, event_id, crew_id).payments]
