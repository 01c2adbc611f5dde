from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.db.models.models_v1 import Client, Invoice
from backend.app.db.models.core_types import InvoiceStatus, Language
from backend.app.schemas.invoices import InvoiceIn
from backend.services.billing import create_invoice, delete_invoice, return_invoice, update_invoice
from backend.services.pdf import invoice_pdf

router = APIRouter(prefix="/invoices")


def payment_dict(p) -> dict:
    return {
        "id": p.id,
        "invoice_id": p.invoice_id,
        "amount": p.amount,
        "mode": p.mode,
        "ref": p.ref,
        "at": p.paid_at,
        "created_at": p.created_at,
    }


def _invoice_row(inv: Invoice) -> dict:
    return {
        "id": inv.id,
        "number": inv.number,
        "client_id": inv.client_id,
        "client_name": inv.client.name if inv.client else None,
        "event_id": inv.event_id,
        "date": inv.date,
        "with_gst": inv.with_gst,
        "language": inv.language,
        "status": inv.status,
        "sub_total": inv.sub_total,
        "tax": inv.tax,
        "discount": inv.discount,
        "round_off": inv.round_off,
        "grand_total": inv.grand_total,
        "paid": inv.paid,
        "pending": inv.pending,
    }


def invoice_dict(inv: Invoice) -> dict:
    out = _invoice_row(inv)
    out["items"] = [
        {
            "id": it.id,
            "product_id": it.product_id,
            "description": it.description,
            "unit_type": it.unit_type,
            "qty": it.qty,
            "rate": it.rate,
            "tax_pct": it.tax_pct,
            "is_adjustment": it.is_adjustment,
        }
        for it in inv.items
    ]
    out["payments"] = [payment_dict(p) for p in inv.payments]
    return out


def _get_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = db.get(Invoice, invoice_id)
    if not inv:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


@router.get("")
def list_invoices(
    search: str | None = None,
    client_id: int | None = None,
    status: InvoiceStatus | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(Invoice).join(Client, Client.id == Invoice.client_id).order_by(Invoice.date.desc(), Invoice.id.desc())

    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Invoice.number.ilike(like), Client.name.ilike(like)))
    if client_id is not None:
        stmt = stmt.where(Invoice.client_id == client_id)
    if status is not None:
        stmt = stmt.where(Invoice.status == status)
    if from_date is not None:
        stmt = stmt.where(Invoice.date >= from_date)
    if to_date is not None:
        stmt = stmt.where(Invoice.date <= to_date)

    return paginate(db, stmt, page, _invoice_row)


@router.get("/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return invoice_dict(_get_invoice(db, invoice_id))


@router.post("", status_code=201)
def post_invoice(payload: InvoiceIn, db: Session = Depends(get_db)):
    inv = create_invoice(db, payload)
    db.commit()
    db.refresh(inv)
    return invoice_dict(inv)


@router.put("/{invoice_id}")
def put_invoice(invoice_id: int, payload: InvoiceIn, db: Session = Depends(get_db)):
    inv = update_invoice(db, _get_invoice(db, invoice_id), payload)
    db.commit()
    db.refresh(inv)
    return invoice_dict(inv)


@router.delete("/{invoice_id}")
def remove_invoice(invoice_id: int, db: Session = Depends(get_db)):
    delete_invoice(db, _get_invoice(db, invoice_id))
    db.commit()
    return {"deleted": True, "id": invoice_id}


@router.post("/{invoice_id}/return")
def post_invoice_return(invoice_id: int, db: Session = Depends(get_db)):
    inv = return_invoice(db, _get_invoice(db, invoice_id))
    db.commit()
    db.refresh(inv)
    return invoice_dict(inv)


@router.get("/{invoice_id}/pdf")
def get_invoice_pdf(
    invoice_id: int,
    lang: Language | None = None,
    gst: bool | None = None,
    db: Session = Depends(get_db),
):
    inv = _get_invoice(db, invoice_id)
    language = (lang or inv.language).value
    return Response(
        content=invoice_pdf(inv, language=language, with_gst=gst),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{inv.number}.pdf"'},
    )


@router.get("/{invoice_id}/payments")
def list_invoice_payments(invoice_id: int, db: Session = Depends(get_db)):
    return [payment_dict(p) for p in _get_invoice(db, invoice_id).payments]
