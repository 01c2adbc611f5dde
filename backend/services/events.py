"""
Event stock flow: agreement, dispatch (stock out) and return (stock in).

Dispatch takes stock through the allocator in backend.services.inventory,
primary stock first and B2B lots as overflow. Returns are reconciled against
the latest dispatch of the event:

    good units   = qty - damaged_qty   -> back to primary, then to B2B lots
    shortage     = qty_to_send - returned_qty after this return
    charges      = shortage (only when the return closes the event)
                 + damages (default: damaged_qty * rate)
                 + late fee (default: days past date_to * LATE_FEE_PER_DAY,
                   only when the return closes the event)

Callers run these inside backend.services.transactions.run_in_transaction.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.core import config
from backend.app.core.errors import DomainValidationError, NotFoundError
from backend.app.db.base import as_utc, utcnow
from backend.app.db.models.models_v1 import (
    Attendance,
    B2BStock,
    DispatchAllocation,
    Event,
    EventDispatch,
    EventDispatchLine,
    EventExpense,
    EventReturn,
    EventReturnLine,
    EventSelection,
    Invoice,
    Product,
    Worker,
)
from backend.app.db.models.core_types import (
    EventStatus,
    ExpenseCategory,
    InvoiceStatus,
    LedgerReason,
    Shift,
    UnitType,
)
from backend.app.schemas.events import AgreementIn, DispatchItemIn, ReturnItemIn
from backend.app.schemas.invoices import InvoiceIn, InvoiceItemIn
from backend.services.billing import create_invoice, money
from backend.services.crew import crew_totals
from backend.services.inventory import (
    consume_product_stock,
    lock_product,
    products_by_id,
    record_ledger,
    restock_product,
)

logger = logging.getLogger(__name__)

DISPATCH_REF = "EventDispatch"
RETURN_REF = "EventReturn"


def lock_event(db: Session, event_id: int) -> Event:
    event = db.execute(select(Event).where(Event.id == event_id).with_for_update()).scalar_one_or_none()
    if not event:
        raise NotFoundError("Event not found")
    return event


def latest_dispatch(event: Event) -> EventDispatch | None:
    return event.dispatches[-1] if event.dispatches else None


def outstanding_units(event: Event) -> int:
    dispatch = latest_dispatch(event)
    if not dispatch:
        return 0
    return sum(line.outstanding for line in dispatch.lines)


def days_late(date_to: datetime, returned_at: datetime) -> int:
    delta = as_utc(returned_at) - as_utc(date_to)
    if delta.total_seconds() <= 0:
        return 0
    return math.ceil(delta.total_seconds() / 86400)


# ---------- AGREEMENT ----------
def save_agreement(db: Session, event: Event, payload: AgreementIn) -> Event:
    products = products_by_id(db, [s.product_id for s in payload.selections])
    missing = [s.product_id for s in payload.selections if s.product_id not in products]
    if missing:
        raise DomainValidationError(f"Invalid product_id {missing[0]}")

    event.selections.clear()
    db.flush()

    subtotal = Decimal("0")
    snapshot_items = []
    for s in payload.selections:
        product = products[s.product_id]
        amount = money(Decimal(s.qty_to_send) * s.rate)
        subtotal += amount
        sel = EventSelection(
            product_id=product.id,
            name=s.name or product.name,
            sku=s.sku or product.sku,
            unit_type=s.unit_type or product.unit_type.value,
            qty_to_send=s.qty_to_send,
            rate=money(s.rate),
            amount=amount,
        )
        event.selections.append(sel)
        snapshot_items.append(
            {
                "product_id": product.id,
                "name": sel.name,
                "sku": sel.sku,
                "unit_type": sel.unit_type,
                "qty_to_send": sel.qty_to_send,
                "rate": str(sel.rate),
                "amount": str(amount),
            }
        )

    event.advance = money(payload.advance)
    event.security = money(payload.security)
    event.agreement_terms = payload.agreement_terms
    event.agreement_snapshot = {
        "items": snapshot_items,
        "advance": str(event.advance),
        "security": str(event.security),
        "terms": payload.agreement_terms,
        "grand_total": str(money(subtotal - event.advance - event.security)),
        "saved_at": utcnow().isoformat(),
    }
    db.flush()
    return event


# ---------- DISPATCH ----------
def dispatch_event_stock(
    db: Session,
    *,
    event_id: int,
    items: list[DispatchItemIn],
    dispatched_by: str | None = None,
    dispatch_date: datetime | None = None,
    note: str | None = None,
    allow_b2b: bool = True,
) -> EventDispatch:
    event = lock_event(db, event_id)
    if event.return_closed:
        raise DomainValidationError("Event is already returned and closed")
    if not items:
        raise DomainValidationError("items must not be empty")

    product_ids = [it.product_id for it in items]
    if len(set(product_ids)) != len(product_ids):
        raise DomainValidationError("Each product may appear only once per dispatch")

    pending = outstanding_units(event)
    if pending:
        raise DomainValidationError(
            f"Previous dispatch still has {pending} units outstanding; record its return first"
        )

    when = dispatch_date or utcnow()
    dispatch = EventDispatch(date=when, note=note, dispatched_by=dispatched_by, total=0)
    event.dispatches.append(dispatch)
    db.flush()

    total = Decimal("0")
    # fixed lock order across concurrent dispatches
    for item in sorted(items, key=lambda it: it.product_id):
        product = lock_product(db, item.product_id)
        allocation = consume_product_stock(db, product=product, quantity=item.qty, allow_b2b=allow_b2b)
        plan = allocation.plan

        rate = money(item.rate if item.rate is not None else product.sell_price)
        amount = money(Decimal(item.qty) * rate)
        total += amount

        line = EventDispatchLine(
            product_id=product.id,
            name=item.name or product.name,
            sku=product.sku,
            unit_type=product.unit_type.value,
            qty_to_send=item.qty,
            qty_from_stock=plan.from_stock,
            qty_from_b2b=plan.from_b2b,
            returned_qty=0,
            damaged_qty=0,
            completed=False,
            rate=rate,
            amount=amount,
        )
        for take in plan.lots:
            line.allocations.append(
                DispatchAllocation(b2b_stock_id=take.b2b_stock_id, quantity=take.quantity, returned_qty=0)
            )
        dispatch.lines.append(line)

        if plan.from_stock:
            record_ledger(
                db,
                product_id=product.id,
                qty_change=-plan.from_stock,
                reason=LedgerReason.dispatch,
                ref_type=DISPATCH_REF,
                ref_id=dispatch.id,
                at=when,
            )
        for take in plan.lots:
            record_ledger(
                db,
                product_id=product.id,
                qty_change=-take.quantity,
                reason=LedgerReason.b2b_dispatch,
                ref_type=DISPATCH_REF,
                ref_id=dispatch.id,
                note=f"B2B lot {take.b2b_stock_id}",
                at=when,
            )

    dispatch.total = money(total)
    event.status = EventStatus.dispatched
    event.dispatched_at = when
    event.dispatched_by = dispatched_by
    db.flush()

    logger.info("event %s dispatched: %s lines, total %s", event.id, len(items), dispatch.total)
    return dispatch


# ---------- RETURN ----------
def _restock_line(db: Session, line: EventDispatchLine, good: int, ref_id: int, when: datetime) -> None:
    """Put `good` units of a dispatch line back: primary first, then B2B lots in reverse order."""
    if good <= 0:
        return

    b2b_back = sum(a.returned_qty for a in line.allocations)
    primary_back = (line.returned_qty - line.damaged_qty) - b2b_back
    to_primary = min(good, line.qty_from_stock - primary_back)

    if to_primary > 0:
        product = lock_product(db, line.product_id)
        restock_product(db, product=product, quantity=to_primary)
        record_ledger(
            db,
            product_id=line.product_id,
            qty_change=to_primary,
            reason=LedgerReason.event_return,
            ref_type=RETURN_REF,
            ref_id=ref_id,
            at=when,
        )

    remaining = good - to_primary
    for alloc in reversed(line.allocations):
        if remaining == 0:
            break
        room = alloc.quantity - alloc.returned_qty
        if room <= 0:
            continue
        give = min(room, remaining)
        lot = db.execute(select(B2BStock).where(B2BStock.id == alloc.b2b_stock_id).with_for_update()).scalar_one()
        lot.quantity_available = int(lot.quantity_available) + give
        alloc.returned_qty += give
        remaining -= give
        record_ledger(
            db,
            product_id=line.product_id,
            qty_change=give,
            reason=LedgerReason.b2b_return,
            ref_type=RETURN_REF,
            ref_id=ref_id,
            note=f"B2B lot {lot.id}",
            at=when,
        )

    if remaining:
        # allocations always have room for every outstanding good unit
        raise DomainValidationError(f"Cannot place {remaining} returned units of product {line.product_id}")


def return_event_stock(
    db: Session,
    *,
    event_id: int,
    items: list[ReturnItemIn],
    damages: Decimal | None = None,
    late_fee: Decimal | None = None,
    returned_by: str | None = None,
    return_date: datetime | None = None,
    return_notes: str | None = None,
    close: bool = False,
) -> EventReturn:
    event = lock_event(db, event_id)
    if event.return_closed:
        raise DomainValidationError("Event return is already closed")
    dispatch = latest_dispatch(event)
    if not dispatch:
        raise DomainValidationError("Event has no dispatch to return against")

    lines = {line.product_id: line for line in dispatch.lines}
    seen: set[int] = set()
    for it in items:
        if it.product_id in seen:
            raise DomainValidationError("Each product may appear only once per return")
        seen.add(it.product_id)
        line = lines.get(it.product_id)
        if line is None:
            raise DomainValidationError(f"Product {it.product_id} was not dispatched for this event")
        if it.damaged_qty > it.qty:
            raise DomainValidationError("damaged_qty cannot exceed qty")
        if it.qty > line.outstanding:
            raise DomainValidationError(
                f"Return of {it.qty} exceeds outstanding {line.outstanding} for {line.name or line.product_id}"
            )

    when = return_date or utcnow()
    ret = EventReturn(
        dispatch_id=dispatch.id,
        date=when,
        returned_by=returned_by,
        notes=return_notes,
    )
    event.returns.append(ret)
    db.flush()

    # a rate on the return line overrides the dispatched rate for its charges
    rates = {line.product_id: Decimal(line.rate) for line in dispatch.lines}
    for it in items:
        if it.rate is not None:
            rates[it.product_id] = money(it.rate)

    returned_value = Decimal("0")
    damage_value = Decimal("0")
    returned_now: dict[int, tuple[int, int]] = {}
    for it in items:
        if it.qty == 0:
            continue
        line = lines[it.product_id]
        _restock_line(db, line, it.qty - it.damaged_qty, ret.id, when)
        line.returned_qty += it.qty
        line.damaged_qty += it.damaged_qty
        line.completed = line.returned_qty == line.qty_to_send
        returned_value += Decimal(it.qty) * rates[line.product_id]
        damage_value += Decimal(it.damaged_qty) * rates[line.product_id]
        returned_now[line.product_id] = (it.qty, it.damaged_qty)

    nothing_left = all(line.outstanding == 0 for line in dispatch.lines)
    closing = close or nothing_left

    shortage_units = 0
    shortage_charge = Decimal("0")
    for line in dispatch.lines:
        qty, damaged = returned_now.get(line.product_id, (0, 0))
        shortage = line.outstanding
        if qty == 0 and shortage == 0:
            continue
        shortage_units += shortage
        if closing:
            shortage_charge += Decimal(shortage) * rates[line.product_id]
        ret.lines.append(
            EventReturnLine(
                product_id=line.product_id,
                name=line.name,
                qty_returned=qty,
                qty_damaged=damaged,
                shortage_qty=shortage,
                rate=rates[line.product_id],
            )
        )

    if damages is None:
        damages = damage_value
    if late_fee is None:
        late_fee = Decimal(days_late(event.date_to, when)) * config.LATE_FEE_PER_DAY if closing else Decimal("0")

    ret.returned_value = money(returned_value)
    ret.shortage_units = shortage_units
    ret.shortage_charge = money(shortage_charge)
    ret.damages = money(damages)
    ret.late_fee = money(late_fee)
    ret.total_charges = money(ret.shortage_charge + ret.damages + ret.late_fee)
    ret.closed = closing

    if closing:
        event.status = EventStatus.returned
        event.return_closed = True
        event.returned_at = when
        event.returned_by = returned_by
        event.return_notes = return_notes or ""
    db.flush()

    logger.info(
        "event %s return recorded: value %s, shortage %s units, charges %s%s",
        event.id,
        ret.returned_value,
        shortage_units,
        ret.total_charges,
        " (closed)" if closing else "",
    )
    return ret


# ---------- SUMMARY ----------
@dataclass(frozen=True)
class LabourCost:
    days_full: int
    days_half: int
    cost: Decimal


def labour_cost_for_event(db: Session, event_id: int) -> LabourCost:
    rows = db.execute(
        select(Attendance, Worker)
        .join(Worker, Worker.id == Attendance.worker_id)
        .where(Attendance.event_id == event_id)
    ).all()
    full = half = 0
    cost = Decimal("0")
    for att, worker in rows:
        if att.shift == Shift.full:
            full += 1
            cost += Decimal(worker.daily_rate)
        elif att.shift == Shift.half:
            half += 1
            cost += worker.effective_half_day_rate
    return LabourCost(days_full=full, days_half=half, cost=money(cost))


def event_summary(db: Session, event: Event) -> dict:
    expense_rows = db.execute(
        select(EventExpense.category, func.coalesce(func.sum(EventExpense.amount), 0))
        .where(EventExpense.event_id == event.id)
        .group_by(EventExpense.category)
    ).all()
    by_category = {c.value: Decimal("0") for c in ExpenseCategory}
    for category, amount in expense_rows:
        by_category[ExpenseCategory(category).value] = money(amount)
    total_expenses = money(sum(by_category.values(), Decimal("0")))

    labour = labour_cost_for_event(db, event.id)
    dispatch = latest_dispatch(event)
    rental_value = money(dispatch.total) if dispatch else Decimal("0.00")
    return_charges = money(sum((Decimal(r.total_charges) for r in event.returns), Decimal("0")))

    budget = money(event.budget or 0)
    estimate = money(event.estimate or 0)
    crew = crew_totals(event)
    total_spent = money(total_expenses + labour.cost + crew.paid)

    invoiced = db.execute(
        select(func.coalesce(func.sum(Invoice.grand_total), 0))
        .where(Invoice.event_id == event.id)
        .where(Invoice.status != InvoiceStatus.returned)
    ).scalar_one()

    return {
        "budget": budget,
        "estimate": estimate,
        "total_expenses": total_expenses,
        "labour_cost": labour.cost,
        "total_worker_cost": crew.cost,
        "total_paid_to_workers": crew.paid,
        "remaining_worker_payments": crew.remaining,
        "total_spent": total_spent,
        "budget_balance": money(budget - total_spent),
        "estimate_balance": money(estimate - total_spent),
        "rental_value": rental_value,
        "return_charges": return_charges,
        "invoiced": money(invoiced),
        "outstanding_units": outstanding_units(event),
        "breakdown": {
            "expenses": {"total": total_expenses, "by_category": by_category},
            "labour": {"days_full": labour.days_full, "days_half": labour.days_half, "cost": labour.cost},
            "workers": {"total": crew.cost, "paid": crew.paid, "remaining": crew.remaining, "count": crew.count},
        },
    }


# ---------- INVOICE FROM EVENT ----------
def invoice_from_event(db: Session, event: Event, *, with_gst: bool = False) -> Invoice:
    """Draft invoice: rent for the latest dispatch plus return charges as adjustment lines."""
    if event.client_id is None:
        raise DomainValidationError("Event has no client to invoice")
    dispatch = latest_dispatch(event)
    if not dispatch:
        raise DomainValidationError("Event has no dispatch to invoice")

    items: list[InvoiceItemIn] = []
    for line in dispatch.lines:
        product = db.get(Product, line.product_id)
        items.append(
            InvoiceItemIn(
                product_id=line.product_id,
                description=line.name,
                unit_type=product.unit_type if product else UnitType.pcs,
                qty=line.qty_to_send,
                rate=Decimal(line.rate),
                # rented, not sold: stock already moved through the dispatch
                is_adjustment=True,
            )
        )

    charges = {
        "Shortage": sum((Decimal(r.shortage_charge) for r in event.returns), Decimal("0")),
        "Damages": sum((Decimal(r.damages) for r in event.returns), Decimal("0")),
        "Late fee": sum((Decimal(r.late_fee) for r in event.returns), Decimal("0")),
    }
    for label, amount in charges.items():
        if amount > 0:
            items.append(
                InvoiceItemIn(
                    description=label,
                    unit_type=UnitType.pcs,
                    qty=1,
                    rate=money(amount),
                    tax_pct=Decimal("0"),
                    is_adjustment=True,
                )
            )

    payload = InvoiceIn(
        client_id=event.client_id,
        event_id=event.id,
        with_gst=with_gst,
        items=items,
        paid=Decimal("0"),
        status=InvoiceStatus.draft,
    )
    return create_invoice(db, payload)
