from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    JSON,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base, BigIntPK, utcnow
from backend.app.db.models.core_types import (
    UnitType,
    LedgerReason,
    EventStatus,
    ExpenseCategory,
    InvoiceStatus,
    Language,
    PaymentMode,
    Shift,
    PayrollStatus,
    LeadStatus,
    CallOutcome,
)


def _enum(enum_cls, name: str) -> Enum:
    # persist the enum values (what the API speaks), not the member names
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


def _updated_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# ---------- MASTER DATA ----------
class Client(Base):
    __tablename__ = "clients"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    gst_number: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), unique=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    unit_type: Mapped[UnitType] = mapped_column(_enum(UnitType, "unit_type"), nullable=False)
    buy_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    sell_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    stock_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        CheckConstraint("stock_qty >= 0", name="ck_product_stock_nonneg"),
        CheckConstraint("buy_price >= 0", name="ck_product_buy_price_nonneg"),
        CheckConstraint("sell_price >= 0", name="ck_product_sell_price_nonneg"),
    )


# ---------- B2B (supplier overflow stock) ----------
class B2BStock(Base):
    __tablename__ = "b2b_stock"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    product_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"),
        index=True,
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    product: Mapped[Product | None] = relationship()
    purchase_logs: Mapped[list["B2BPurchaseLog"]] = relationship(
        back_populates="b2b_stock",
        cascade="all, delete-orphan",
        order_by="B2BPurchaseLog.id",
    )

    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name="ck_b2b_qty_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_b2b_unit_price_nonneg"),
    )


class B2BPurchaseLog(Base):
    __tablename__ = "b2b_purchase_logs"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    b2b_stock_id: Mapped[int] = mapped_column(
        ForeignKey("b2b_stock.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    b2b_stock: Mapped[B2BStock] = relationship(back_populates="purchase_logs")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_b2b_log_qty_pos"),
        CheckConstraint("price >= 0", name="ck_b2b_log_price_nonneg"),
    )


# ---------- INVENTORY ----------
class StockLedger(Base):
    __tablename__ = "stock_ledger"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    qty_change: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[LedgerReason] = mapped_column(_enum(LedgerReason, "ledger_reason"), nullable=False)
    ref_type: Mapped[str | None] = mapped_column(String(32))
    ref_id: Mapped[int | None] = mapped_column(Integer)
    note: Mapped[str | None] = mapped_column(String(255))
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()

    __table_args__ = (
        Index("ix_stock_ledger_product_at", "product_id", "at"),
        Index("ix_stock_ledger_ref", "ref_type", "ref_id"),
    )


class IssueRegister(Base):
    __tablename__ = "issue_register"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    qty_issued: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qty_returned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product: Mapped[Product] = relationship()
    client: Mapped[Client] = relationship()

    __table_args__ = (
        UniqueConstraint("product_id", "client_id", name="uq_issue_register_product_client"),
        CheckConstraint("qty_issued >= 0", name="ck_issue_issued_nonneg"),
        CheckConstraint("qty_returned >= 0", name="ck_issue_returned_nonneg"),
    )


# ---------- EVENTS ----------
class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255))
    client_id: Mapped[int | None] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), index=True)
    date_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_to: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    estimate: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    # agreement
    advance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    security: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    agreement_terms: Mapped[str | None] = mapped_column(Text)
    agreement_snapshot: Mapped[dict | None] = mapped_column(JSON)

    status: Mapped[EventStatus] = mapped_column(
        _enum(EventStatus, "event_status"),
        default=EventStatus.confirmed,
        nullable=False,
    )
    dispatched_by: Mapped[str | None] = mapped_column(String(200))
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    returned_by: Mapped[str | None] = mapped_column(String(200))
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_notes: Mapped[str | None] = mapped_column(Text)
    return_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    client: Mapped[Client | None] = relationship()
    selections: Mapped[list["EventSelection"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventSelection.id",
    )
    dispatches: Mapped[list["EventDispatch"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventDispatch.id",
    )
    returns: Mapped[list["EventReturn"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventReturn.id",
    )
    expenses: Mapped[list["EventExpense"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventExpense.id",
    )
    crew: Mapped[list["EventWorker"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventWorker.id",
    )

    __table_args__ = (
        CheckConstraint("date_to >= date_from", name="ck_event_dates_ordered"),
        CheckConstraint("advance >= 0", name="ck_event_advance_nonneg"),
        CheckConstraint("security >= 0", name="ck_event_security_nonneg"),
        Index("ix_events_date_from", "date_from"),
    )


class EventSelection(Base):
    __tablename__ = "event_selections"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    sku: Mapped[str | None] = mapped_column(String(64))
    unit_type: Mapped[str | None] = mapped_column(String(16))
    qty_to_send: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    event: Mapped[Event] = relationship(back_populates="selections")

    __table_args__ = (
        CheckConstraint("qty_to_send >= 0", name="ck_selection_qty_nonneg"),
        CheckConstraint("rate >= 0", name="ck_selection_rate_nonneg"),
    )


class EventDispatch(Base):
    __tablename__ = "event_dispatches"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    dispatched_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = _created_at()

    event: Mapped[Event] = relationship(back_populates="dispatches")
    lines: Mapped[list["EventDispatchLine"]] = relationship(
        back_populates="dispatch",
        cascade="all, delete-orphan",
        order_by="EventDispatchLine.id",
    )


class EventDispatchLine(Base):
    __tablename__ = "event_dispatch_lines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    dispatch_id: Mapped[int] = mapped_column(
        ForeignKey("event_dispatches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    sku: Mapped[str | None] = mapped_column(String(64))
    unit_type: Mapped[str | None] = mapped_column(String(16))
    qty_to_send: Mapped[int] = mapped_column(Integer, nullable=False)
    qty_from_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qty_from_b2b: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    returned_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    damaged_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    dispatch: Mapped[EventDispatch] = relationship(back_populates="lines")
    product: Mapped[Product] = relationship()
    allocations: Mapped[list["DispatchAllocation"]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="DispatchAllocation.id",
    )

    __table_args__ = (
        CheckConstraint("qty_to_send > 0", name="ck_dispatch_line_qty_pos"),
        CheckConstraint("qty_from_stock + qty_from_b2b = qty_to_send", name="ck_dispatch_line_sources"),
        CheckConstraint("returned_qty >= 0 AND returned_qty <= qty_to_send", name="ck_dispatch_line_returned"),
        CheckConstraint("damaged_qty >= 0 AND damaged_qty <= returned_qty", name="ck_dispatch_line_damaged"),
    )

    @property
    def outstanding(self) -> int:
        return self.qty_to_send - self.returned_qty


class DispatchAllocation(Base):
    __tablename__ = "dispatch_allocations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    dispatch_line_id: Mapped[int] = mapped_column(
        ForeignKey("event_dispatch_lines.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    b2b_stock_id: Mapped[int] = mapped_column(
        ForeignKey("b2b_stock.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    returned_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    line: Mapped[EventDispatchLine] = relationship(back_populates="allocations")
    b2b_stock: Mapped[B2BStock] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_allocation_qty_pos"),
        CheckConstraint("returned_qty >= 0 AND returned_qty <= quantity", name="ck_allocation_returned"),
    )


class EventReturn(Base):
    __tablename__ = "event_returns"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    dispatch_id: Mapped[int] = mapped_column(ForeignKey("event_dispatches.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    returned_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    shortage_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shortage_charge: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    damages: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    late_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total_charges: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    returned_by: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()

    event: Mapped[Event] = relationship(back_populates="returns")
    dispatch: Mapped[EventDispatch] = relationship()
    lines: Mapped[list["EventReturnLine"]] = relationship(
        back_populates="event_return",
        cascade="all, delete-orphan",
        order_by="EventReturnLine.id",
    )

    __table_args__ = (
        CheckConstraint("damages >= 0", name="ck_return_damages_nonneg"),
        CheckConstraint("late_fee >= 0", name="ck_return_late_fee_nonneg"),
        CheckConstraint("shortage_units >= 0", name="ck_return_shortage_nonneg"),
    )


class EventReturnLine(Base):
    __tablename__ = "event_return_lines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    return_id: Mapped[int] = mapped_column(ForeignKey("event_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    qty_returned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qty_damaged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shortage_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    event_return: Mapped[EventReturn] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("qty_returned >= 0", name="ck_return_line_qty_nonneg"),
        CheckConstraint("qty_damaged >= 0 AND qty_damaged <= qty_returned", name="ck_return_line_damaged"),
    )


class EventExpense(Base):
    __tablename__ = "event_expenses"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    category: Mapped[ExpenseCategory] = mapped_column(_enum(ExpenseCategory, "expense_category"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    event: Mapped[Event] = relationship(back_populates="expenses")

    __table_args__ = (CheckConstraint("amount >= 0", name="ck_expense_amount_nonneg"),)


class EventWorker(Base):
    """Crew hired for one event at an agreed amount or a pay rate."""

    __tablename__ = "event_workers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[int | None] = mapped_column(ForeignKey("workers.id", ondelete="RESTRICT"), index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32))
    pay_rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    agreed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    event: Mapped[Event] = relationship(back_populates="crew")
    worker: Mapped[Worker | None] = relationship()
    payments: Mapped[list["EventWorkerPayment"]] = relationship(
        back_populates="event_worker",
        cascade="all, delete-orphan",
        order_by="EventWorkerPayment.id",
    )

    __table_args__ = (
        CheckConstraint("pay_rate >= 0", name="ck_event_worker_pay_rate_nonneg"),
        CheckConstraint("agreed_amount IS NULL OR agreed_amount >= 0", name="ck_event_worker_agreed_nonneg"),
        CheckConstraint("total_paid >= 0", name="ck_event_worker_total_paid_nonneg"),
    )

    @property
    def amount_due(self) -> Decimal:
        if self.agreed_amount:
            return Decimal(self.agreed_amount)
        return Decimal(self.pay_rate)


class EventWorkerPayment(Base):
    __tablename__ = "event_worker_payments"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_worker_id: Mapped[int] = mapped_column(
        ForeignKey("event_workers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(_enum(PaymentMode, "payment_mode"), nullable=False)
    ref: Mapped[str | None] = mapped_column(String(128))
    notes: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    event_worker: Mapped[EventWorker] = relationship(back_populates="payments")

    __table_args__ = (CheckConstraint("amount > 0", name="ck_event_worker_payment_amount_pos"),)


# ---------- BILLING ----------
class Invoice(Base):
    __tablename__ = "invoices"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True)
    event_id: Mapped[int | None] = mapped_column(ForeignKey("events.id", ondelete="SET NULL"))
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    with_gst: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    language: Mapped[Language] = mapped_column(_enum(Language, "invoice_language"), default=Language.en, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        _enum(InvoiceStatus, "invoice_status"),
        default=InvoiceStatus.draft,
        nullable=False,
    )

    sub_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    round_off: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    pending: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    client: Mapped[Client] = relationship()
    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __table_args__ = (
        CheckConstraint("sub_total >= 0", name="ck_invoice_sub_total_nonneg"),
        CheckConstraint("tax >= 0", name="ck_invoice_tax_nonneg"),
        CheckConstraint("discount >= 0", name="ck_invoice_discount_nonneg"),
        CheckConstraint("grand_total >= 0", name="ck_invoice_grand_total_nonneg"),
        CheckConstraint("paid >= 0", name="ck_invoice_paid_nonneg"),
        CheckConstraint("pending >= 0", name="ck_invoice_pending_nonneg"),
        Index("ix_invoices_date", "date"),
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    # adjustment lines (shortage, damage, late fee) carry no product
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"))
    description: Mapped[str | None] = mapped_column(String(255))
    unit_type: Mapped[UnitType] = mapped_column(_enum(UnitType, "unit_type"), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_pct: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    is_adjustment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")
    product: Mapped[Product | None] = relationship()

    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_invoice_item_qty_nonneg"),
        CheckConstraint("rate >= 0", name="ck_invoice_item_rate_nonneg"),
        CheckConstraint("tax_pct IS NULL OR (tax_pct >= 0 AND tax_pct <= 100)", name="ck_invoice_item_tax_pct"),
    )


class Payment(Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(_enum(PaymentMode, "payment_mode"), nullable=False)
    ref: Mapped[str | None] = mapped_column(String(128))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    invoice: Mapped[Invoice] = relationship(back_populates="payments")

    __table_args__ = (CheckConstraint("amount >= 0", name="ck_payment_amount_nonneg"),)


# ---------- LABOUR ----------
class Worker(Base):
    __tablename__ = "workers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    half_day_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        CheckConstraint("daily_rate >= 0", name="ck_worker_daily_rate_nonneg"),
        CheckConstraint("half_day_rate IS NULL OR half_day_rate >= 0", name="ck_worker_half_rate_nonneg"),
    )

    @property
    def effective_half_day_rate(self) -> Decimal:
        if self.half_day_rate is not None:
            return Decimal(self.half_day_rate)
        return (Decimal(self.daily_rate) / 2).quantize(Decimal("0.01"))


class Attendance(Base):
    __tablename__ = "attendance"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift: Mapped[Shift] = mapped_column(_enum(Shift, "shift"), nullable=False)
    event_id: Mapped[int | None] = mapped_column(ForeignKey("events.id", ondelete="SET NULL"), index=True)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    worker: Mapped[Worker] = relationship()

    __table_args__ = (UniqueConstraint("worker_id", "work_date", name="uq_attendance_worker_date"),)


class Payroll(Base):
    __tablename__ = "payroll"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    days_full: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    days_half: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    advances: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    status: Mapped[PayrollStatus] = mapped_column(
        _enum(PayrollStatus, "payroll_status"),
        default=PayrollStatus.draft,
        nullable=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    worker: Mapped[Worker] = relationship()

    __table_args__ = (
        UniqueConstraint("worker_id", "month", name="uq_payroll_worker_month"),
        CheckConstraint("days_full >= 0", name="ck_payroll_days_full_nonneg"),
        CheckConstraint("days_half >= 0", name="ck_payroll_days_half_nonneg"),
        CheckConstraint("advances >= 0", name="ck_payroll_advances_nonneg"),
        CheckConstraint("total_pay >= 0", name="ck_payroll_total_pay_nonneg"),
    )


# ---------- LEADS ----------
class Lead(Base):
    __tablename__ = "leads"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    source: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[LeadStatus] = mapped_column(
        _enum(LeadStatus, "lead_status"),
        default=LeadStatus.new,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    client_id: Mapped[int | None] = mapped_column(ForeignKey("clients.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    client: Mapped[Client | None] = relationship()
    calls: Mapped[list["LeadCallLog"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadCallLog.at",
    )

    __table_args__ = (Index("ix_leads_status_updated", "status", "updated_at"),)


class LeadCallLog(Base):
    __tablename__ = "lead_call_logs"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    outcome: Mapped[CallOutcome] = mapped_column(_enum(CallOutcome, "call_outcome"), nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer)
    note: Mapped[str | None] = mapped_column(Text)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    lead: Mapped[Lead] = relationship(back_populates="calls")

    __table_args__ = (CheckConstraint("duration IS NULL OR duration >= 0", name="ck_lead_call_duration_nonneg"),)
