from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import Lead, LeadCallLog
from backend.app.db.models.core_types import CallOutcome, LeadStatus
from backend.services.leads import convert_lead

router = APIRouter(prefix="/leads")


class LeadCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=32)
    email: str | None = Field(default=None, max_length=255)
    source: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class LeadUpdate(LeadCreate):
    status: LeadStatus = LeadStatus.new

    @field_validator("status")
    @classmethod
    def _not_converted(cls, v):
        if v == LeadStatus.converted:
            raise ValueError("use POST /leads/{id}/convert to convert a lead")
        return v


class CallLogCreate(BaseModel):
    outcome: CallOutcome
    duration: int | None = Field(default=None, ge=0)
    note: str | None = None
    at: datetime | None = None


def _call_dict(c: LeadCallLog) -> dict:
    return {"id": c.id, "outcome": c.outcome, "duration": c.duration, "note": c.note, "at": c.at}


def _lead_dict(ld: Lead) -> dict:
    return {
        "id": ld.id,
        "name": ld.name,
        "phone": ld.phone,
        "email": ld.email,
        "source": ld.source,
        "status": ld.status,
        "notes": ld.notes,
        "client_id": ld.client_id,
        "created_at": ld.created_at,
        "updated_at": ld.updated_at,
    }


def _lead_detail(ld: Lead) -> dict:
    out = _lead_dict(ld)
    out["calls"] = [_call_dict(c) for c in ld.calls]
    return out


def _get_lead(db: Session, lead_id: int) -> Lead:
    ld = db.get(Lead, lead_id)
    if not ld:
        raise HTTPException(status_code=404, detail="Lead not found")
    return ld


def _phone_taken(db: Session, phone: str, exclude_id: int | None = None) -> bool:
    stmt = select(Lead.id).where(Lead.phone == phone)
    if exclude_id is not None:
        stmt = stmt.where(Lead.id != exclude_id)
    return db.execute(stmt).first() is not None


@router.get("")
def list_leads(
    search: str | None = None,
    status: LeadStatus | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(Lead).order_by(Lead.updated_at.desc(), Lead.id.desc())
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Lead.name.ilike(like), Lead.phone.ilike(like), Lead.email.ilike(like)))
    if status is not None:
        stmt = stmt.where(Lead.status == status)
    return paginate(db, stmt, page, _lead_dict)


@router.get("/{lead_id}")
def get_lead(lead_id: int, db: Session = Depends(get_db)):
    return _lead_detail(_get_lead(db, lead_id))


@router.post("", status_code=201)
def create_lead(payload: LeadCreate, db: Session = Depends(get_db)):
    if _phone_taken(db, payload.phone):
        raise HTTPException(status_code=409, detail="A lead with this phone already exists")

    ld = Lead(**payload.model_dump(), status=LeadStatus.new)
    db.add(ld)
    db.commit()
    db.refresh(ld)
    return _lead_detail(ld)


@router.put("/{lead_id}")
def update_lead(lead_id: int, payload: LeadUpdate, db: Session = Depends(get_db)):
    ld = _get_lead(db, lead_id)
    if ld.status == LeadStatus.converted:
        raise HTTPException(status_code=400, detail="Converted leads cannot be modified")
    if _phone_taken(db, payload.phone, exclude_id=lead_id):
        raise HTTPException(status_code=409, detail="A lead with this phone already exists")

    for key, value in payload.model_dump().items():
        setattr(ld, key, value)
    db.commit()
    db.refresh(ld)
    return _lead_detail(ld)


@router.delete("/{lead_id}")
def delete_lead(lead_id: int, db: Session = Depends(get_db)):
    db.delete(_get_lead(db, lead_id))
    db.commit()
    return {"deleted": True, "id": lead_id}


@router.post("/{lead_id}/calls", status_code=201)
def log_call(lead_id: int, payload: CallLogCreate, db: Session = Depends(get_db)):
    ld = _get_lead(db, lead_id)
    call = LeadCallLog(
        outcome=payload.outcome,
        duration=payload.duration,
        note=payload.note,
        at=payload.at or utcnow(),
    )
    ld.calls.append(call)
    ld.updated_at = utcnow()
    db.commit()
    db.refresh(ld)
    return _lead_detail(ld)


@router.post("/{lead_id}/convert")
def convert(lead_id: int, db: Session = Depends(get_db)):
    ld = _get_lead(db, lead_id)
    client = convert_lead(db, ld)
    db.commit()
    db.refresh(ld)
    return {"lead": _lead_dict(ld), "client_id": client.id}
