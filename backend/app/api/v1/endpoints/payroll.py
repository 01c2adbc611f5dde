from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import Payroll, Worker
from backend.app.db.models.core_types import PayrollStatus
from backend.services.payroll import compute_payroll, create_payroll, month_bounds

router = APIRouter(prefix="/payroll")


class PayrollCreate(BaseModel):
    worker_id: int
    month: str = Field(pattern=r"^\d{4}-\d{2}$")
    advances: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None


def _payroll_dict(p: Payroll) -> dict:
    return {
        "id": p.id,
        "worker_id": p.worker_id,
        "worker_name": p.worker.name if p.worker else None,
        "month": p.month,
        "days_full": p.days_full,
        "days_half": p.days_half,
        "gross": p.gross,
        "advances": p.advances,
        "total_pay": p.total_pay,
        "status": p.status,
        "paid_at": p.paid_at,
        "notes": p.notes,
    }


def _get_payroll(db: Session, payroll_id: int) -> Payroll:
    p = db.get(Payroll, payroll_id)
    if not p:
        raise HTTPException(status_code=404, detail="Payroll not found")
    return p


@router.get("/preview")
def preview_payroll(month: str, worker_id: int | None = None, db: Session = Depends(get_db)):
    """Figures per worker from attendance; nothing is saved."""
    month_bounds(month)
    stmt = select(Worker).order_by(Worker.name, Worker.id)
    if worker_id is not None:
        stmt = stmt.where(Worker.id == worker_id)
    workers = db.execute(stmt).scalars().all()
    if worker_id is not None and not workers:
        raise HTTPException(status_code=404, detail="Worker not found")

    out = []
    for w in workers:
        f = compute_payroll(db, worker=w, month=month)
        out.append(
            {
                "worker_id": w.id,
                "worker_name": w.name,
                "month": month,
                "days_full": f.days_full,
                "days_half": f.days_half,
                "days_absent": f.days_absent,
                "gross": f.gross,
                "advances": f.advances,
                "total_pay": f.total_pay,
            }
        )
    return out


@router.post("", status_code=201)
def post_payroll(payload: PayrollCreate, db: Session = Depends(get_db)):
    p = create_payroll(db, **payload.model_dump())
    db.commit()
    db.refresh(p)
    return _payroll_dict(p)


@router.get("")
def list_payroll(month: str | None = None, worker_id: int | None = None, db: Session = Depends(get_db)):
    stmt = select(Payroll).order_by(Payroll.month.desc(), Payroll.id.desc())
    if month:
        stmt = stmt.where(Payroll.month == month)
    if worker_id is not None:
        stmt = stmt.where(Payroll.worker_id == worker_id)
    return [_payroll_dict(p) for p in db.execute(stmt).scalars().all()]


@router.post("/{payroll_id}/pay")
def pay_payroll(payroll_id: int, db: Session = Depends(get_db)):
    p = _get_payroll(db, payroll_id)
    if p.status == PayrollStatus.paid:
        raise HTTPException(status_code=400, detail="Payroll already paid")
    p.status = PayrollStatus.paid
    p.paid_at = utcnow()
    db.commit()
    db.refresh(p)
    return _payroll_dict(p)


@router.delete("/{payroll_id}")
def delete_payroll(payroll_id: int, db: Session = Depends(get_db)):
    p = _get_payroll(db, payroll_id)
    if p.status == PayrollStatus.paid:
        raise HTTPException(status_code=400, detail="Paid payroll cannot be deleted")
    db.delete(p)
    db.commit()
    return {"deleted": True, "id": payroll_id}
