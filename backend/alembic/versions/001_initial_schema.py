"""Initial schema: stall bookings and per-event selection guards.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def _money(name: str) -> sa.Column:
    return sa.Column(name, MONEY, nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    op.create_table(
        "stall_bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("vendor_id", sa.String(64), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("organizer_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'Unpaid'")),
        sa.Column("active_marker", sa.Boolean(), nullable=True),
        sa.Column("selected_tables", sa.JSON(), nullable=False),
        sa.Column("selected_add_ons", sa.JSON(), nullable=False),
        _money("tables_total"),
        _money("deposit_total"),
        _money("add_ons_total"),
        _money("grand_total"),
        _money("paid_amount"),
        _money("remaining_amount"),
        sa.Column("has_checked_in", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("has_checked_out", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scan_credential", sa.Text(), nullable=True),
        sa.Column("request_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("selection_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deposit_returned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deposit_returned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # ONE ACTIVE REQUEST PER VENDOR PER EVENT:
        # active_marker is true while Pending/Confirmed/Processing and NULL once
        # Completed/Cancelled. NULLs never collide in a unique constraint, so only
        # the active booking of a (vendor, event) pair competes for this slot.
        sa.UniqueConstraint("vendor_id", "event_id", "active_marker", name="uq_vendor_event_active"),
        sa.CheckConstraint("grand_total >= 0", name="check_grand_total_non_negative"),
        sa.CheckConstraint("paid_amount >= 0", name="check_paid_amount_non_negative"),
        sa.CheckConstraint("remaining_amount >= 0", name="check_remaining_amount_non_negative"),
        sa.CheckConstraint("active_marker IS NULL OR active_marker = true", name="check_active_marker"),
    )
    op.create_index("ix_stall_bookings_vendor_id", "stall_bookings", ["vendor_id"])
    op.create_index("ix_stall_bookings_organizer_id", "stall_bookings", ["organizer_id"])
    # Availability scans read every Processing/Completed booking of one event
    op.create_index("ix_stall_bookings_event_status", "stall_bookings", ["event_id", "status"])

    op.create_table(
        "selection_guards",
        sa.Column("event_id", sa.String(64), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("selection_guards")
    op.drop_index("ix_stall_bookings_event_status", table_name="stall_bookings")
    op.drop_index("ix_stall_bookings_organizer_id", table_name="stall_bookings")
    op.drop_index("ix_stall_bookings_vendor_id", table_name="stall_bookings")
    op.drop_table("stall_bookings")
