from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Attendance, Event, Worker
from backend.app.db.models.core_types import Shift

router = APIRouter(prefix="/attendance")


class AttendanceMark(BaseModel):
    worker_id: int
    date: date
    shift: Shift
    event_id: int | None = None
    notes: str | None = None


def _attendance_dict(a: Attendance) -> dict:
    return {
        "id": a.id,
        "worker_id": a.worker_id,
        "worker_name": a.worker.name if a.worker else None,
        "date": a.work_date,
        "shift": a.shift,
        "event_id": a.event_id,
        "notes": a.notes,
    }


@router.post("")
def mark_attendance(payload: AttendanceMark, db: Session = Depends(get_db)):
    """One mark per worker and day; marking again overwrites it."""
    if not db.get(Worker, payload.worker_id):
        raise HTTPException(status_code=404, detail="Worker not found")
    if payload.event_id is not None and not db.get(Event, payload.event_id):
        raise HTTPException(status_code=400, detail="Invalid event_id")

    a = (
        db.execute(
            select(Attendance)
            .where(Attendance.worker_id == payload.worker_id)
            .where(Attendance.work_date == payload.date)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if a is None:
        a = Attendance(worker_id=payload.worker_id, work_date=payload.date)
        db.add(a)

    a.shift = payload.shift
    a.event_id = payload.event_id
    a.notes = payload.notes
    db.commit()
    db.refresh(a)
    return _attendance_dict(a)


@router.get("")
def list_attendance(
    worker_id: int | None = None,
    event_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Attendance).order_by(Attendance.work_date.desc(), Attendance.id.desc())
    if worker_id is not None:
        stmt = stmt.where(Attendance.worker_id == worker_id)
    if event_id is not None:
        stmt = stmt.where(Attendance.event_id == event_id)
    if from_date is not None:
        stmt = stmt.where(Attendance.work_date >= from_date)
    if to_date is not None:
        stmt = stmt.where(Attendance.work_date <= to_date)
    return [_attendance_dict(a) for a in db.execute(stmt).scalars().all()]


@router.delete("/{attendance_id}")
def delete_attendance(attendance_id: int, db: Session = Depends(get_db)):
    a = db.get(Attendance, attendance_id)
    if not a:
        raise HTTPException(status_code=404, detail="Attendance not found")
    db.delete(a)
    db.commit()
    return {"deleted": True, "id": attendance_id}
