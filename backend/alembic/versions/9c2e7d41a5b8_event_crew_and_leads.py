"""event crew, crew payments, leads and call logs

Revision ID: 9c2e7d41a5b8
Revises: 4b1f0c2a9d3e
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "9c2e7d41a5b8"
down_revision: Union[str, Sequence[str], None] = "4b1f0c2a9d3e"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NEW_ENUMS = {
    "lead_status": ("new", "callback", "hot", "rejected", "converted"),
    "call_outcome": ("answered", "missed", "voicemail", "connected"),
}

PAYMENT_MODE = postgresql.ENUM("cash", "bank_transfer", "upi", "cheque", "online", name="payment_mode", create_type=False)


def _enum(name: str) -> sa.Enum:
    return postgresql.ENUM(*NEW_ENUMS[name], name=name, create_type=False)


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in NEW_ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "event_workers",
        _pk(),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("worker_id", sa.BigInteger(), sa.ForeignKey("workers.id", ondelete="RESTRICT")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(32)),
        sa.Column("pay_rate", sa.Numeric(14, 2), nullable=False),
        sa.Column("agreed_amount", sa.Numeric(14, 2)),
        sa.Column("total_paid", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("pay_rate >= 0", name="ck_event_worker_pay_rate_nonneg"),
        sa.CheckConstraint("agreed_amount IS NULL OR agreed_amount >= 0", name="ck_event_worker_agreed_nonneg"),
        sa.CheckConstraint("total_paid >= 0", name="ck_event_worker_total_paid_nonneg"),
    )
    op.create_index("ix_event_workers_event_id", "event_workers", ["event_id"])
    op.create_index("ix_event_workers_worker_id", "event_workers", ["worker_id"])

    op.create_table(
        "event_worker_payments",
        _pk(),
        sa.Column(
            "event_worker_id",
            sa.BigInteger(),
            sa.ForeignKey("event_workers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("mode", PAYMENT_MODE, nullable=False),
        sa.Column("ref", sa.String(128)),
        sa.Column("notes", sa.Text()),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_event_worker_payment_amount_pos"),
    )
    op.create_index("ix_event_worker_payments_event_worker_id", "event_worker_payments", ["event_worker_id"])

    op.create_table(
        "leads",
        _pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("source", sa.String(100)),
        sa.Column("status", _enum("lead_status"), nullable=False, server_default="new"),
        sa.Column("notes", sa.Text()),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="SET NULL")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_leads_status_updated", "leads", ["status", "updated_at"])

    op.create_table(
        "lead_call_logs",
        _pk(),
        sa.Column("lead_id", sa.BigInteger(), sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("outcome", _enum("call_outcome"), nullable=False),
        sa.Column("duration", sa.Integer()),
        sa.Column("note", sa.Text()),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        _created_at(),
        sa.CheckConstraint("duration IS NULL OR duration >= 0", name="ck_lead_call_duration_nonneg"),
    )
    op.create_index("ix_lead_call_logs_lead_id", "lead_call_logs", ["lead_id"])


def downgrade() -> None:
    for table in ("lead_call_logs", "leads", "event_worker_payments", "event_workers"):
        op.drop_table(table)

    bind = op.get_bind()
    for name, values in NEW_ENUMS.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
