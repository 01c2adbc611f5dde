"""
Invoicing: totals with GST, numbering, and the stock side of finalising.

Stock moves only on status transitions:

    draft -> final       consume primary stock, bump issue register
    final -> draft       restore stock, drop the invoice's ledger rows
    final -> final       reverse, then re-apply (lines may have changed)
    final -> returned    restore stock with `return` ledger rows
    delete final         same as final -> draft

Adjustment lines (shortage, damage, late fee) never touch stock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from backend.app.core import config
from backend.app.core.errors import DomainValidationError, NotFoundError
from backend.app.db.base import utcnow
from backend.app.db.models.models_v1 import (
    Client,
    Event,
    Invoice,
    InvoiceItem,
    Payment,
    Product,
    StockLedger,
)
from backend.app.db.models.core_types import InvoiceStatus, LedgerReason, PaymentMode
from backend.app.schemas.invoices import InvoiceIn, InvoiceItemIn
from backend.services.inventory import (
    bump_issue_register,
    consume_product_stock,
    lock_product,
    record_ledger,
    restock_product,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
INVOICE_REF = "Invoice"
RETURN_REF = "Return"


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    sub_total: Decimal
    tax: Decimal
    discount: Decimal
    round_off: Decimal
    grand_total: Decimal
    paid: Decimal
    pending: Decimal


def compute_totals(
    items: Sequence[InvoiceItemIn] | Sequence[InvoiceItem],
    *,
    with_gst: bool,
    discount: Decimal = Decimal("0"),
    paid: Decimal = Decimal("0"),
    default_gst_pct: Decimal | None = None,
) -> Totals:
    gst_pct = config.DEFAULT_GST_PCT if default_gst_pct is None else default_gst_pct

    sub_total = Decimal("0")
    tax = Decimal("0")
    for it in items:
        line = Decimal(it.qty) * Decimal(it.rate)
        sub_total += line
        if with_gst:
            pct = Decimal(it.tax_pct) if it.tax_pct is not None else gst_pct
            tax += line * pct / Decimal("100")

    sub_total = money(sub_total)
    tax = money(tax)
    discount = money(discount)

    raw = sub_total + tax - discount
    if raw < 0:
        raise DomainValidationError("Discount cannot exceed the invoice total")
    grand_total = raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    round_off = money(grand_total - raw)
    grand_total = money(grand_total)

    paid = money(paid)
    if paid > grand_total:
        raise DomainValidationError("Paid amount cannot exceed the grand total")

    return Totals(
        sub_total=sub_total,
        tax=tax,
        discount=discount,
        round_off=round_off,
        grand_total=grand_total,
        paid=paid,
        pending=money(grand_total - paid),
    )


def next_invoice_number(db: Session, when: datetime | None = None) -> str:
    year = (when or utcnow()).year
    prefix = f"INV-{year}-"
    numbers = db.execute(select(Invoice.number).where(Invoice.number.like(f"{prefix}%"))).scalars().all()
    seq = 0
    for number in numbers:
        tail = number[len(prefix):]
        if tail.isdigit():
            seq = max(seq, int(tail))
    return f"{prefix}{seq + 1:05d}"


def _stock_lines(items: Iterable[InvoiceItem]) -> list[InvoiceItem]:
    return [it for it in items if not it.is_adjustment and it.product_id is not None and it.qty > 0]


def apply_invoice_stock(db: Session, invoice: Invoice) -> None:
    """Consume primary stock for a finalised invoice."""
    lines = sorted(_stock_lines(invoice.items), key=lambda it: it.product_id)
    for item in lines:
        product = lock_product(db, item.product_id)
        consume_product_stock(db, product=product, quantity=int(item.qty), allow_b2b=False)
        record_ledger(
            db,
            product_id=product.id,
            qty_change=-int(item.qty),
            reason=LedgerReason.invoice,
            ref_type=INVOICE_REF,
            ref_id=invoice.id,
        )
        bump_issue_register(db, product_id=product.id, client_id=invoice.client_id, issued=int(item.qty))


def reverse_invoice_stock(db: Session, invoice: Invoice) -> None:
    """Undo apply_invoice_stock: restore stock and drop the invoice ledger rows."""
    for item in _stock_lines(invoice.items):
        product = lock_product(db, item.product_id)
        restock_product(db, product=product, quantity=int(item.qty))
        bump_issue_register(db, product_id=product.id, client_id=invoice.client_id, issued=-int(item.qty))

    db.execute(
        delete(StockLedger)
        .where(StockLedger.ref_type == INVOICE_REF)
        .where(StockLedger.ref_id == invoice.id)
    )


def _check_refs(db: Session, payload: InvoiceIn) -> None:
    if not db.get(Client, payload.client_id):
        raise DomainValidationError("Invalid client_id")
    if payload.event_id is not None and not db.get(Event, payload.event_id):
        raise DomainValidationError("Invalid event_id")
    for it in payload.items:
        if it.product_id is not None and not db.get(Product, it.product_id):
            raise DomainValidationError(f"Invalid product_id {it.product_id}")


def _build_items(payload: InvoiceIn) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            product_id=it.product_id,
            description=it.description,
            unit_type=it.unit_type,
            qty=it.qty,
            rate=money(it.rate),
            tax_pct=it.tax_pct,
            is_adjustment=it.is_adjustment,
        )
        for it in payload.items
    ]


def _apply_totals(invoice: Invoice, totals: Totals) -> None:
    invoice.sub_total = totals.sub_total
    invoice.tax = totals.tax
    invoice.discount = totals.discount
    invoice.round_off = totals.round_off
    invoice.grand_total = totals.grand_total
    invoice.paid = totals.paid
    invoice.pending = totals.pending


def create_invoice(db: Session, payload: InvoiceIn) -> Invoice:
    if payload.status == InvoiceStatus.returned:
        raise DomainValidationError("A new invoice cannot be created as returned")
    _check_refs(db, payload)

    totals = compute_totals(payload.items, with_gst=payload.with_gst, discount=payload.discount, paid=payload.paid)
    when = payload.date or utcnow()
    invoice = Invoice(
        number=next_invoice_number(db, when),
        client_id=payload.client_id,
        event_id=payload.event_id,
        date=when,
        with_gst=payload.with_gst,
        language=payload.language,
        status=payload.status,
        items=_build_items(payload),
    )
    _apply_totals(invoice, totals)
    db.add(invoice)
    db.flush()

    if invoice.status == InvoiceStatus.final:
        apply_invoice_stock(db, invoice)

    logger.info("invoice %s created (%s, total %s)", invoice.number, invoice.status.value, invoice.grand_total)
    return invoice


def update_invoice(db: Session, invoice: Invoice, payload: InvoiceIn) -> Invoice:
    if invoice.status == InvoiceStatus.returned:
        raise DomainValidationError("Returned invoices cannot be modified")
    if payload.status == InvoiceStatus.returned:
        raise DomainValidationError("Use the return endpoint to return an invoice")
    _check_refs(db, payload)

    # payments recorded against the invoice keep counting
    paid_floor = sum((Decimal(p.amount) for p in invoice.payments), Decimal("0"))
    totals = compute_totals(
        payload.items,
        with_gst=payload.with_gst,
        discount=payload.discount,
        paid=max(payload.paid, paid_floor),
    )

    was_final = invoice.status == InvoiceStatus.final
    if was_final:
        reverse_invoice_stock(db, invoice)

    invoice.client_id = payload.client_id
    invoice.event_id = payload.event_id
    if payload.date is not None:
        invoice.date = payload.date
    invoice.with_gst = payload.with_gst
    invoice.language = payload.language
    invoice.status = payload.status
    invoice.items.clear()
    db.flush()
    invoice.items.extend(_build_items(payload))
    _apply_totals(invoice, totals)
    db.flush()

    if invoice.status == InvoiceStatus.final:
        apply_invoice_stock(db, invoice)
    return invoice


def delete_invoice(db: Session, invoice: Invoice) -> None:
    if invoice.status == InvoiceStatus.final:
        reverse_invoice_stock(db, invoice)
    db.delete(invoice)
    db.flush()


def return_invoice(db: Session, invoice: Invoice) -> Invoice:
    if invoice.status != InvoiceStatus.final:
        raise DomainValidationError("Only final invoices can be returned")

    for item in _stock_lines(invoice.items):
        product = lock_product(db, item.product_id)
        restock_product(db, product=product, quantity=int(item.qty))
        record_ledger(
            db,
            product_id=product.id,
            qty_change=int(item.qty),
            reason=LedgerReason.invoice_return,
            ref_type=RETURN_REF,
            ref_id=invoice.id,
        )
        bump_issue_register(db, product_id=product.id, client_id=invoice.client_id, returned=int(item.qty))

    invoice.status = InvoiceStatus.returned
    db.flush()
    logger.info("invoice %s returned", invoice.number)
    return invoice


def record_payment(
    db: Session,
    *,
    invoice_id: int,
    amount: Decimal,
    mode: PaymentMode,
    ref: str | None,
    at: datetime,
) -> Payment:
    invoice = (
        db.execute(select(Invoice).where(Invoice.id == invoice_id).with_for_update())
        .scalar_one_or_none()
    )
    if not invoice:
        raise NotFoundError("Invoice not found")
    if invoice.status == InvoiceStatus.returned:
        raise DomainValidationError("Returned invoices cannot take payments")
    if amount <= 0:
        raise DomainValidationError("Amount must be > 0")

    grand = Decimal(invoice.grand_total)
    paid = Decimal(invoice.paid)
    pending_before = max(Decimal("0"), grand - paid)
    if pending_before == 0:
        raise DomainValidationError("Invoice is already fully paid")

    credit = money(min(Decimal(amount), pending_before))
    payment = Payment(invoice_id=invoice.id, amount=credit, mode=mode, ref=ref or None, paid_at=at)
    db.add(payment)

    invoice.paid = money(paid + credit)
    invoice.pending = money(max(Decimal("0"), grand - invoice.paid))
    db.flush()
    return payment
