from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Attendance, EventWorker, Payroll, Worker

router = APIRouter(prefix="/workers")


class WorkerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=32)
    daily_rate: Decimal = Field(ge=0)
    half_day_rate: Decimal | None = Field(default=None, ge=0)


def worker_dict(w: Worker) -> dict:
    return {
        "id": w.id,
        "name": w.name,
        "phone": w.phone,
        "daily_rate": w.daily_rate,
        "half_day_rate": w.half_day_rate,
        "effective_half_day_rate": w.effective_half_day_rate,
        "created_at": w.created_at,
    }


def _get_worker(db: Session, worker_id: int) -> Worker:
    w = db.get(Worker, worker_id)
    if not w:
        raise HTTPException(status_code=404, detail="Worker not found")
    return w


@router.get("")
def list_workers(search: str | None = None, db: Session = Depends(get_db)):
    stmt = select(Worker).order_by(Worker.name, Worker.id)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Worker.name.ilike(like), Worker.phone.ilike(like)))
    return [worker_dict(w) for w in db.execute(stmt).scalars().all()]


@router.get("/{worker_id}")
def get_worker(worker_id: int, db: Session = Depends(get_db)):
    return worker_dict(_get_worker(db, worker_id))


@router.post("", status_code=201)
def create_worker(payload: WorkerCreate, db: Session = Depends(get_db)):
    w = Worker(**payload.model_dump())
    db.add(w)
    db.commit()
    db.refresh(w)
    return worker_dict(w)


@router.put("/{worker_id}")
def update_worker(worker_id: int, payload: WorkerCreate, db: Session = Depends(get_db)):
    w = _get_worker(db, worker_id)
    for key, value in payload.model_dump().items():
        setattr(w, key, value)
    db.commit()
    db.refresh(w)
    return worker_dict(w)


@router.delete("/{worker_id}")
def delete_worker(worker_id: int, db: Session = Depends(get_db)):
    w = _get_worker(db, worker_id)
    for model in (Attendance, Payroll, EventWorker):
        if db.execute(select(model.id).where(model.worker_id == worker_id).limit(1)).first():
            raise HTTPException(status_code=409, detail="Worker has attendance, payroll or event crew records")

    db.delete(w)
    db.commit()
    return {"deleted": True, "id": worker_id}
