from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.api.v1.endpoints.invoices import invoice_dict
from backend.app.db.models.models_v1 import Client, Event, EventDispatch, EventExpense, EventReturn
from backend.app.db.models.core_types import EventStatus, ExpenseCategory
from backend.app.schemas.events import AgreementIn, DispatchIn, EventCreate, ReturnIn
from backend.services.billing import money
from backend.services.events import (
    dispatch_event_stock,
    event_summary,
    invoice_from_event,
    outstanding_units,
    return_event_stock,
    save_agreement,
)
from backend.services.pdf import agreement_pdf
from backend.services.transactions import run_in_transaction

router = APIRouter(prefix="/events")


class EventUpdate(EventCreate):
    status: EventStatus | None = None

    @field_validator("status")
    @classmethod
    def _planning_status_only(cls, v):
        # dispatched/returned are reached through the dispatch and return flows
        if v in (EventStatus.dispatched, EventStatus.returned):
            raise ValueError("status can only be set to new, confirmed or reserved")
        return v


class ExpenseCreate(BaseModel):
    category: ExpenseCategory
    amount: Decimal = Field(ge=0)
    notes: str | None = None
    date: date


# ---------- Serializers ----------
def _event_dict(ev: Event) -> dict:
    return {
        "id": ev.id,
        "name": ev.name,
        "location": ev.location,
        "client_id": ev.client_id,
        "client_name": ev.client.name if ev.client else None,
        "date_from": ev.date_from,
        "date_to": ev.date_to,
        "notes": ev.notes,
        "budget": ev.budget,
        "estimate": ev.estimate,
        "status": ev.status,
        "advance": ev.advance,
        "security": ev.security,
        "dispatched_at": ev.dispatched_at,
        "dispatched_by": ev.dispatched_by,
        "returned_at": ev.returned_at,
        "returned_by": ev.returned_by,
        "return_closed": ev.return_closed,
        "created_at": ev.created_at,
    }


def _event_detail(ev: Event) -> dict:
    out = _event_dict(ev)
    out.update(
        {
            "agreement_terms": ev.agreement_terms,
            "agreement_snapshot": ev.agreement_snapshot,
            "return_notes": ev.return_notes,
            "selections": [
                {
                    "id": s.id,
                    "product_id": s.product_id,
                    "name": s.name,
                    "sku": s.sku,
                    "unit_type": s.unit_type,
                    "qty_to_send": s.qty_to_send,
                    "rate": s.rate,
                    "amount": s.amount,
                }
                for s in ev.selections
            ],
            "outstanding_units": outstanding_units(ev),
        }
    )
    return out


def _dispatch_dict(d: EventDispatch) -> dict:
    return {
        "id": d.id,
        "event_id": d.event_id,
        "date": d.date,
        "total": d.total,
        "note": d.note,
        "dispatched_by": d.dispatched_by,
        "lines": [
            {
                "id": ln.id,
                "product_id": ln.product_id,
                "name": ln.name,
                "sku": ln.sku,
                "unit_type": ln.unit_type,
                "qty_to_send": ln.qty_to_send,
                "qty_from_stock": ln.qty_from_stock,
                "qty_from_b2b": ln.qty_from_b2b,
                "returned_qty": ln.returned_qty,
                "damaged_qty": ln.damaged_qty,
                "outstanding": ln.outstanding,
                "completed": ln.completed,
                "rate": ln.rate,
                "amount": ln.amount,
                "allocations": [
                    {"b2b_stock_id": a.b2b_stock_id, "quantity": a.quantity, "returned_qty": a.returned_qty}
                    for a in ln.allocations
                ],
            }
            for ln in d.lines
        ],
    }


def _return_dict(r: EventReturn) -> dict:
    return {
        "id": r.id,
        "event_id": r.event_id,
        "dispatch_id": r.dispatch_id,
        "date": r.date,
        "returned_value": r.returned_value,
        "shortage_units": r.shortage_units,
        "shortage_charge": r.shortage_charge,
        "damages": r.damages,
        "late_fee": r.late_fee,
        "total_charges": r.total_charges,
        "closed": r.closed,
        "returned_by": r.returned_by,
        "notes": r.notes,
        "lines": [
            {
                "product_id": ln.product_id,
                "name": ln.name,
                "qty_returned": ln.qty_returned,
                "qty_damaged": ln.qty_damaged,
                "shortage_qty": ln.shortage_qty,
                "rate": ln.rate,
            }
            for ln in r.lines
        ],
    }


def _expense_dict(e: EventExpense) -> dict:
    return {
        "id": e.id,
        "event_id": e.event_id,
        "category": e.category,
        "amount": e.amount,
        "notes": e.notes,
        "date": e.expense_date,
        "created_at": e.created_at,
    }


def _get_event(db: Session, event_id: int) -> Event:
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    return ev


def _check_client(db: Session, client_id: int | None) -> None:
    if client_id is not None and not db.get(Client, client_id):
        raise HTTPException(status_code=400, detail="Invalid client_id")


# ---------- CRUD ----------
@router.get("")
def list_events(
    search: str | None = None,
    client_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(Event).order_by(Event.date_from.desc(), Event.id.desc())

    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Event.name.ilike(like), Event.location.ilike(like)))
    if client_id is not None:
        stmt = stmt.where(Event.client_id == client_id)

    # an event matches when either end of it falls inside the range
    if from_date is not None or to_date is not None:
        def in_range(col):
            conds = []
            if from_date is not None:
                conds.append(col >= from_date)
            if to_date is not None:
                conds.append(col <= to_date)
            return and_(*conds)

        stmt = stmt.where(or_(in_range(Event.date_from), in_range(Event.date_to)))

    return paginate(db, stmt, page, _event_dict)


@router.get("/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    return _event_detail(_get_event(db, event_id))


@router.post("", status_code=201)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    _check_client(db, payload.client_id)

    ev = Event(**payload.model_dump())
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return _event_detail(ev)


@router.put("/{event_id}")
def update_event(event_id: int, payload: EventUpdate, db: Session = Depends(get_db)):
    ev = _get_event(db, event_id)
    _check_client(db, payload.client_id)

    for key, value in payload.model_dump(exclude={"status"}).items():
        setattr(ev, key, value)
    if payload.status is not None:
        ev.status = payload.status
    db.commit()
    db.refresh(ev)
    return _event_detail(ev)


@router.delete("/{event_id}")
def delete_event(event_id: int, db: Session = Depends(get_db)):
    ev = _get_event(db, event_id)
    pending = outstanding_units(ev)
    if pending:
        raise HTTPException(status_code=400, detail=f"Event still has {pending} units out; record the return first")

    db.delete(ev)
    db.commit()
    return {"deleted": True, "id": event_id}


# ---------- Summary / agreement ----------
@router.get("/{event_id}/summary")
def get_event_summary(event_id: int, db: Session = Depends(get_db)):
    return event_summary(db, _get_event(db, event_id))


@router.put("/{event_id}/agreement")
def put_agreement(event_id: int, payload: AgreementIn, db: Session = Depends(get_db)):
    ev = save_agreement(db, _get_event(db, event_id), payload)
    db.commit()
    db.refresh(ev)
    return _event_detail(ev)


@router.get("/{event_id}/agreement/pdf")
def get_agreement_pdf(event_id: int, db: Session = Depends(get_db)):
    ev = _get_event(db, event_id)
    return Response(
        content=agreement_pdf(ev),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="agreement-{ev.id}.pdf"'},
    )


# ---------- Expenses ----------
@router.post("/{event_id}/expenses", status_code=201)
def add_expense(event_id: int, payload: ExpenseCreate, db: Session = Depends(get_db)):
    ev = _get_event(db, event_id)
    e = EventExpense(
        category=payload.category,
        amount=money(payload.amount),
        notes=payload.notes,
        expense_date=payload.date,
    )
    ev.expenses.append(e)
    db.commit()
    db.refresh(e)
    return _expense_dict(e)


@router.get("/{event_id}/expenses")
def list_expenses(event_id: int, db: Session = Depends(get_db)):
    return [_expense_dict(e) for e in _get_event(db, event_id).expenses]


# ---------- Dispatch / return ----------
@router.post("/{event_id}/dispatch", status_code=201)
def dispatch_event(event_id: int, payload: DispatchIn, db: Session = Depends(get_db)):
    dispatch = run_in_transaction(
        db,
        lambda s: dispatch_event_stock(
            s,
            event_id=event_id,
            items=payload.items,
            dispatched_by=payload.dispatched_by,
            dispatch_date=payload.dispatch_date,
            note=payload.note,
            allow_b2b=payload.allow_b2b,
        ),
    )
    return _dispatch_dict(dispatch)


@router.post("/{event_id}/return", status_code=201)
def return_event(event_id: int, payload: ReturnIn, db: Session = Depends(get_db)):
    ret = run_in_transaction(
        db,
        lambda s: return_event_stock(
            s,
            event_id=event_id,
            items=payload.items,
            damages=payload.damages,
            late_fee=payload.late_fee,
            returned_by=payload.returned_by,
            return_date=payload.return_date,
            return_notes=payload.return_notes,
            close=payload.close,
        ),
    )
    return _return_dict(ret)


@router.get("/{event_id}/dispatches")
def list_dispatches(event_id: int, db: Session = Depends(get_db)):
    return [_dispatch_dict(d) for d in _get_event(db, event_id).dispatches]


@router.get("/{event_id}/returns")
def list_returns(event_id: int, db: Session = Depends(get_db)):
    return [_return_dict(r) for r in _get_event(db, event_id).returns]


@router.post("/{event_id}/invoice", status_code=201)
def create_event_invoice(event_id: int, with_gst: bool = False, db: Session = Depends(get_db)):
    invoice = invoice_from_event(db, _get_event(db, event_id), with_gst=with_gst)
    db.commit()
    db.refresh(invoice)
    return invoice_dict(invoice)
