from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import DomainValidationError, NotFoundError
from backend.app.db.models.models_v1 import Event, EventWorker, EventWorkerPayment
from backend.app.db.models.core_types import PaymentMode
from backend.services.billing import money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrewTotals:
    count: int
    cost: Decimal
    paid: Decimal

    @property
    def remaining(self) -> Decimal:
        return money(self.cost - self.paid)


def crew_totals(event: Event) -> CrewTotals:
    """Cost is the agreed amount per crew member, else their pay rate."""
    cost = sum((m.amount_due for m in event.crew), Decimal("0"))
    paid = sum((Decimal(m.total_paid) for m in event.crew), Decimal("0"))
    return CrewTotals(count=len(event.crew), cost=money(cost), paid=money(paid))


def record_crew_payment(
    db: Session,
    *,
    event_id: int,
    crew_id: int,
    amount: Decimal,
    mode: PaymentMode,
    paid_at: datetime,
    ref: str | None = None,
    notes: str | None = None,
) -> EventWorkerPayment:
    member = db.execute(
        select(EventWorker)
        .where(EventWorker.id == crew_id, EventWorker.event_id == event_id)
        .with_for_update()
    ).scalar_one_or_none()
    if not member:
        raise NotFoundError("Event worker not found")
    if amount <= 0:
        raise DomainValidationError("Amount must be > 0")

    paid = Decimal(member.total_paid)
    remaining = member.amount_due - paid
    if amount > remaining:
        raise DomainValidationError(f"Payment of {money(amount)} exceeds the {money(remaining)} still owed")

    payment = EventWorkerPayment(amount=money(amount), mode=mode, ref=ref or None, notes=notes, paid_at=paid_at)
    member.payments.append(payment)
    member.total_paid = money(paid + amount)
    db.flush()

    logger.info("event %s: paid %s to %s (%s)", event_id, payment.amount, member.name, mode.value)
    return payment
