from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import ConflictError, DomainValidationError, NotFoundError
from backend.app.db.models.models_v1 import Attendance, Payroll, Worker
from backend.app.db.models.core_types import PayrollStatus, Shift
from backend.services.billing import money

MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


@dataclass(frozen=True)
class PayrollFigures:
    worker_id: int
    month: str
    days_full: int
    days_half: int
    days_absent: int
    gross: Decimal
    advances: Decimal
    total_pay: Decimal


def month_bounds(month: str) -> tuple[date, date]:
    if not MONTH_RE.match(month):
        raise DomainValidationError("month must look like YYYY-MM")
    year, mon = int(month[:4]), int(month[5:])
    if not 1 <= mon <= 12:
        raise DomainValidationError("month must look like YYYY-MM")
    last = calendar.monthrange(year, mon)[1]
    return date(year, mon, 1), date(year, mon, last)


def compute_payroll(db: Session, *, worker: Worker, month: str, advances: Decimal = Decimal("0")) -> PayrollFigures:
    start, end = month_bounds(month)
    shifts = db.execute(
        select(Attendance.shift)
        .where(Attendance.worker_id == worker.id)
        .where(Attendance.work_date >= start)
        .where(Attendance.work_date <= end)
    ).scalars().all()

    full = sum(1 for s in shifts if s == Shift.full)
    half = sum(1 for s in shifts if s == Shift.half)
    absent = sum(1 for s in shifts if s == Shift.absent)

    gross = money(Decimal(full) * Decimal(worker.daily_rate) + Decimal(half) * worker.effective_half_day_rate)
    advances = money(advances)
    return PayrollFigures(
        worker_id=worker.id,
        month=month,
        days_full=full,
        days_half=half,
        days_absent=absent,
        gross=gross,
        advances=advances,
        total_pay=money(max(gross - advances, Decimal("0"))),
    )


def create_payroll(
    db: Session,
    *,
    worker_id: int,
    month: str,
    advances: Decimal = Decimal("0"),
    notes: str | None = None,
) -> Payroll:
    worker = db.get(Worker, worker_id)
    if not worker:
        raise NotFoundError("Worker not found")

    exists = db.execute(
        select(Payroll).where(Payroll.worker_id == worker_id).where(Payroll.month == month)
    ).scalar_one_or_none()
    if exists:
        raise ConflictError(f"Payroll for {month} already exists for this worker")

    figures = compute_payroll(db, worker=worker, month=month, advances=advances)
    row = Payroll(
        worker_id=worker_id,
        month=month,
        days_full=figures.days_full,
        days_half=figures.days_half,
        gross=figures.gross,
        advances=figures.advances,
        total_pay=figures.total_pay,
        status=PayrollStatus.draft,
        notes=notes,
    )
    db.add(row)
    db.flush()
    return row
