"""initial schema

Revision ID: 4b1f0c2a9d3e
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4b1f0c2a9d3e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    "unit_type": ("pcs", "meter", "sqft", "sqyd", "sqmt"),
    "ledger_reason": (
        "manual",
        "adjustment",
        "invoice",
        "return",
        "dispatch",
        "event_return",
        "b2b_dispatch",
        "b2b_return",
    ),
    "event_status": ("new", "confirmed", "reserved", "dispatched", "returned"),
    "expense_category": ("travel", "food", "material", "misc"),
    "invoice_status": ("draft", "final", "returned"),
    "invoice_language": ("en", "hi"),
    "payment_mode": ("cash", "bank_transfer", "upi", "cheque", "online"),
    "shift": ("full", "half", "absent"),
    "payroll_status": ("draft", "paid"),
}


def _enum(name: str) -> sa.Enum:
    # types are created once in upgrade(); unit_type is shared by two tables
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _money(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(14, 2),
        nullable=nullable,
        server_default=sa.text("0") if default else None,
    )


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    # ---------- master data ----------
    op.create_table(
        "clients",
        _pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("gst_number", sa.String(32)),
        *_timestamps(),
    )

    op.create_table(
        "products",
        _pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), unique=True),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("unit_type", _enum("unit_type"), nullable=False),
        _money("buy_price"),
        _money("sell_price"),
        sa.Column("stock_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("image_url", sa.String(500)),
        *_timestamps(),
        sa.CheckConstraint("stock_qty >= 0", name="ck_product_stock_nonneg"),
        sa.CheckConstraint("buy_price >= 0", name="ck_product_buy_price_nonneg"),
        sa.CheckConstraint("sell_price >= 0", name="ck_product_sell_price_nonneg"),
    )
    op.create_index("ix_products_category", "products", ["category"])

    # ---------- b2b ----------
    op.create_table(
        "b2b_stock",
        _pk(),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("quantity_available", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _money("unit_price"),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="SET NULL")),
        *_timestamps(),
        sa.CheckConstraint("quantity_available >= 0", name="ck_b2b_qty_nonneg"),
        sa.CheckConstraint("unit_price >= 0", name="ck_b2b_unit_price_nonneg"),
    )
    op.create_index("ix_b2b_stock_product_id", "b2b_stock", ["product_id"])

    op.create_table(
        "b2b_purchase_logs",
        _pk(),
        sa.Column(
            "b2b_stock_id",
            sa.BigInteger(),
            sa.ForeignKey("b2b_stock.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("price", default=False),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("quantity > 0", name="ck_b2b_log_qty_pos"),
        sa.CheckConstraint("price >= 0", name="ck_b2b_log_price_nonneg"),
    )
    op.create_index("ix_b2b_purchase_logs_b2b_stock_id", "b2b_purchase_logs", ["b2b_stock_id"])

    # ---------- inventory ----------
    op.create_table(
        "stock_ledger",
        _pk(),
        sa.Column(
            "product_id",
            sa.BigInteger(),
            sa.ForeignKey("products.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("qty_change", sa.Integer(), nullable=False),
        sa.Column("reason", _enum("ledger_reason"), nullable=False),
        sa.Column("ref_type", sa.String(32)),
        sa.Column("ref_id", sa.Integer()),
        sa.Column("note", sa.String(255)),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stock_ledger_product_id", "stock_ledger", ["product_id"])
    op.create_index("ix_stock_ledger_product_at", "stock_ledger", ["product_id", "at"])
    op.create_index("ix_stock_ledger_ref", "stock_ledger", ["ref_type", "ref_id"])

    op.create_table(
        "issue_register",
        _pk(),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("qty_issued", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("qty_returned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_returned_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("product_id", "client_id", name="uq_issue_register_product_client"),
        sa.CheckConstraint("qty_issued >= 0", name="ck_issue_issued_nonneg"),
        sa.CheckConstraint("qty_returned >= 0", name="ck_issue_returned_nonneg"),
    )

    # ---------- events ----------
    op.create_table(
        "events",
        _pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT")),
        sa.Column("date_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("date_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text()),
        _money("budget", nullable=True, default=False),
        _money("estimate", nullable=True, default=False),
        _money("advance"),
        _money("security"),
        sa.Column("agreement_terms", sa.Text()),
        sa.Column("agreement_snapshot", sa.JSON()),
        sa.Column("status", _enum("event_status"), nullable=False, server_default="confirmed"),
        sa.Column("dispatched_by", sa.String(200)),
        sa.Column("dispatched_at", sa.DateTime(timezone=True)),
        sa.Column("returned_by", sa.String(200)),
        sa.Column("returned_at", sa.DateTime(timezone=True)),
        sa.Column("return_notes", sa.Text()),
        sa.Column("return_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("date_to >= date_from", name="ck_event_dates_ordered"),
        sa.CheckConstraint("advance >= 0", name="ck_event_advance_nonneg"),
        sa.CheckConstraint("security >= 0", name="ck_event_security_nonneg"),
    )
    op.create_index("ix_events_client_id", "events", ["client_id"])
    op.create_index("ix_events_date_from", "events", ["date_from"])

    op.create_table(
        "event_selections",
        _pk(),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("sku", sa.String(64)),
        sa.Column("unit_type", sa.String(16)),
        sa.Column("qty_to_send", sa.Integer(), nullable=False),
        _money("rate", default=False),
        _money("amount", default=False),
        sa.CheckConstraint("qty_to_send >= 0", name="ck_selection_qty_nonneg"),
        sa.CheckConstraint("rate >= 0", name="ck_selection_rate_nonneg"),
    )
    op.create_index("ix_event_selections_event_id", "event_selections", ["event_id"])

    op.create_table(
        "event_dispatches",
        _pk(),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        _money("total"),
        sa.Column("note", sa.Text()),
        sa.Column("dispatched_by", sa.String(200)),
        *_timestamps(updated=False),
    )
    op.create_index("ix_event_dispatches_event_id", "event_dispatches", ["event_id"])

    op.create_table(
        "event_dispatch_lines",
        _pk(),
        sa.Column(
            "dispatch_id",
            sa.BigInteger(),
            sa.ForeignKey("event_dispatches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("sku", sa.String(64)),
        sa.Column("unit_type", sa.String(16)),
        sa.Column("qty_to_send", sa.Integer(), nullable=False),
        sa.Column("qty_from_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("qty_from_b2b", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("returned_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("damaged_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _money("rate", default=False),
        _money("amount", default=False),
        sa.CheckConstraint("qty_to_send > 0", name="ck_dispatch_line_qty_pos"),
        sa.CheckConstraint("qty_from_stock + qty_from_b2b = qty_to_send", name="ck_dispatch_line_sources"),
        sa.CheckConstraint("returned_qty >= 0 AND returned_qty <= qty_to_send", name="ck_dispatch_line_returned"),
        sa.CheckConstraint("damaged_qty >= 0 AND damaged_qty <= returned_qty", name="ck_dispatch_line_damaged"),
    )
    op.create_index("ix_event_dispatch_lines_dispatch_id", "event_dispatch_lines", ["dispatch_id"])

    op.create_table(
        "dispatch_allocations",
        _pk(),
        sa.Column(
            "dispatch_line_id",
            sa.BigInteger(),
            sa.ForeignKey("event_dispatch_lines.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "b2b_stock_id",
            sa.BigInteger(),
            sa.ForeignKey("b2b_stock.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("returned_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_allocation_qty_pos"),
        sa.CheckConstraint("returned_qty >= 0 AND returned_qty <= quantity", name="ck_allocation_returned"),
    )
    op.create_index("ix_dispatch_allocations_dispatch_line_id", "dispatch_allocations", ["dispatch_line_id"])
    op.create_index("ix_dispatch_allocations_b2b_stock_id", "dispatch_allocations", ["b2b_stock_id"])

    op.create_table(
        "event_returns",
        _pk(),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "dispatch_id",
            sa.BigInteger(),
            sa.ForeignKey("event_dispatches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        _money("returned_value"),
        sa.Column("shortage_units", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _money("shortage_charge"),
        _money("damages"),
        _money("late_fee"),
        _money("total_charges"),
        sa.Column("closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("returned_by", sa.String(200)),
        sa.Column("notes", sa.Text()),
        *_timestamps(updated=False),
        sa.CheckConstraint("damages >= 0", name="ck_return_damages_nonneg"),
        sa.CheckConstraint("late_fee >= 0", name="ck_return_late_fee_nonneg"),
        sa.CheckConstraint("shortage_units >= 0", name="ck_return_shortage_nonneg"),
    )
    op.create_index("ix_event_returns_event_id", "event_returns", ["event_id"])

    op.create_table(
        "event_return_lines",
        _pk(),
        sa.Column(
            "return_id",
            sa.BigInteger(),
            sa.ForeignKey("event_returns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("qty_returned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("qty_damaged", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shortage_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _money("rate", default=False),
        sa.CheckConstraint("qty_returned >= 0", name="ck_return_line_qty_nonneg"),
        sa.CheckConstraint("qty_damaged >= 0 AND qty_damaged <= qty_returned", name="ck_return_line_damaged"),
    )
    op.create_index("ix_event_return_lines_return_id", "event_return_lines", ["return_id"])

    op.create_table(
        "event_expenses",
        _pk(),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", _enum("expense_category"), nullable=False),
        _money("amount", default=False),
        sa.Column("notes", sa.Text()),
        sa.Column("expense_date", sa.Date(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("amount >= 0", name="ck_expense_amount_nonneg"),
    )
    op.create_index("ix_event_expenses_event_id", "event_expenses", ["event_id"])

    # ---------- billing ----------
    op.create_table(
        "invoices",
        _pk(),
        sa.Column("number", sa.String(32), nullable=False, unique=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="SET NULL")),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("with_gst", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("language", _enum("invoice_language"), nullable=False, server_default="en"),
        sa.Column("status", _enum("invoice_status"), nullable=False, server_default="draft"),
        _money("sub_total"),
        _money("tax"),
        _money("discount"),
        _money("round_off"),
        _money("grand_total"),
        _money("paid"),
        _money("pending"),
        *_timestamps(),
        sa.CheckConstraint("sub_total >= 0", name="ck_invoice_sub_total_nonneg"),
        sa.CheckConstraint("tax >= 0", name="ck_invoice_tax_nonneg"),
        sa.CheckConstraint("discount >= 0", name="ck_invoice_discount_nonneg"),
        sa.CheckConstraint("grand_total >= 0", name="ck_invoice_grand_total_nonneg"),
        sa.CheckConstraint("paid >= 0", name="ck_invoice_paid_nonneg"),
        sa.CheckConstraint("pending >= 0", name="ck_invoice_pending_nonneg"),
    )
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_index("ix_invoices_date", "invoices", ["date"])

    op.create_table(
        "invoice_items",
        _pk(),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT")),
        sa.Column("description", sa.String(255)),
        sa.Column("unit_type", _enum("unit_type"), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        _money("rate", default=False),
        sa.Column("tax_pct", sa.Numeric(5, 2)),
        sa.Column("is_adjustment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint("qty >= 0", name="ck_invoice_item_qty_nonneg"),
        sa.CheckConstraint("rate >= 0", name="ck_invoice_item_rate_nonneg"),
        sa.CheckConstraint("tax_pct IS NULL OR (tax_pct >= 0 AND tax_pct <= 100)", name="ck_invoice_item_tax_pct"),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "payments",
        _pk(),
        sa.Column("invoice_id", sa.BigInteger(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        _money("amount", default=False),
        sa.Column("mode", _enum("payment_mode"), nullable=False),
        sa.Column("ref", sa.String(128)),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("amount >= 0", name="ck_payment_amount_nonneg"),
    )
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])

    # ---------- labour ----------
    op.create_table(
        "workers",
        _pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        _money("daily_rate", default=False),
        _money("half_day_rate", nullable=True, default=False),
        *_timestamps(),
        sa.CheckConstraint("daily_rate >= 0", name="ck_worker_daily_rate_nonneg"),
        sa.CheckConstraint("half_day_rate IS NULL OR half_day_rate >= 0", name="ck_worker_half_rate_nonneg"),
    )

    op.create_table(
        "attendance",
        _pk(),
        sa.Column("worker_id", sa.BigInteger(), sa.ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("shift", _enum("shift"), nullable=False),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("worker_id", "work_date", name="uq_attendance_worker_date"),
    )
    op.create_index("ix_attendance_event_id", "attendance", ["event_id"])

    op.create_table(
        "payroll",
        _pk(),
        sa.Column("worker_id", sa.BigInteger(), sa.ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("days_full", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("days_half", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _money("gross"),
        _money("advances"),
        _money("total_pay"),
        sa.Column("status", _enum("payroll_status"), nullable=False, server_default="draft"),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("worker_id", "month", name="uq_payroll_worker_month"),
        sa.CheckConstraint("days_full >= 0", name="ck_payroll_days_full_nonneg"),
        sa.CheckConstraint("days_half >= 0", name="ck_payroll_days_half_nonneg"),
        sa.CheckConstraint("advances >= 0", name="ck_payroll_advances_nonneg"),
        sa.CheckConstraint("total_pay >= 0", name="ck_payroll_total_pay_nonneg"),
    )


def downgrade() -> None:
    for table in (
        "payroll",
        "attendance",
        "workers",
        "payments",
        "invoice_items",
        "invoices",
        "event_expenses",
        "event_return_lines",
        "event_returns",
        "dispatch_allocations",
        "event_dispatch_lines",
        "event_dispatches",
        "event_selections",
        "events",
        "issue_register",
        "stock_ledger",
        "b2b_purchase_logs",
        "b2b_stock",
        "products",
        "clients",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
