"""
Stall booking model: one vendor's stall request for one event and its
full lifecycle record.

Key design decisions:
- `active_marker` is True while the booking is Pending/Confirmed/Processing
  and NULL once terminal. The unique constraint on
  (vendor_id, event_id, active_marker) therefore allows any number of
  terminal bookings but at most one active one per vendor and event.
- `version` column enables optimistic locking for every transition
- Composite index on (event_id, status) serves availability scans
- Selected tables/add-ons are stored as JSON snapshots; prices are strings
  to keep Decimal precision across drivers
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from stallbook.db.base import Base, TimestampMixin
from stallbook.domain import (
    ACTIVE_STATUSES,
    AddOnSelection,
    BookingStatus,
    PaymentStatus,
    TableSelection,
)

MONEY = Numeric(12, 2)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def new_booking_id() -> str:
    return str(uuid.uuid4())


def active_marker_for(status: BookingStatus):
    return True if status in ACTIVE_STATUSES else None


class StallBooking(Base, TimestampMixin):
    __tablename__ = "stall_bookings"

    id = Column(String(36), primary_key=True, default=new_booking_id)
    vendor_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(64), nullable=False)
    organizer_id = Column(String(64), nullable=False, index=True)

    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    active_marker = Column(Boolean, nullable=True, default=True)

    selected_tables = Column(JSON, nullable=False, default=list)
    selected_add_ons = Column(JSON, nullable=False, default=list)

    tables_total = Column(MONEY, nullable=False, default=0)
    deposit_total = Column(MONEY, nullable=False, default=0)
    add_ons_total = Column(MONEY, nullable=False, default=0)
    grand_total = Column(MONEY, nullable=False, default=0)
    paid_amount = Column(MONEY, nullable=False, default=0)
    remaining_amount = Column(MONEY, nullable=False, default=0)

    has_checked_in = Column(Boolean, nullable=False, default=False)
    has_checked_out = Column(Boolean, nullable=False, default=False)
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)

    scan_credential = Column(Text, nullable=True)

    request_date = Column(DateTime(timezone=True), nullable=False)
    confirmation_date = Column(DateTime(timezone=True), nullable=True)
    selection_date = Column(DateTime(timezone=True), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    completion_date = Column(DateTime(timezone=True), nullable=True)
    deposit_returned = Column(Boolean, nullable=False, default=False)
    deposit_returned_date = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        # One active booking per vendor per event
        UniqueConstraint("vendor_id", "event_id", "active_marker", name="uq_vendor_event_active"),
        CheckConstraint("grand_total >= 0", name="check_grand_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="check_paid_amount_non_negative"),
        CheckConstraint("remaining_amount >= 0", name="check_remaining_amount_non_negative"),
        CheckConstraint("active_marker IS NULL OR active_marker = true", name="check_active_marker"),
        # Availability scans: all position-holding bookings of one event
        Index("ix_stall_bookings_event_status", "event_id", "status"),
    )

    @property
    def tables(self) -> list[TableSelection]:
        return [TableSelection.from_json(item) for item in (self.selected_tables or [])]

    @property
    def add_ons(self) -> list[AddOnSelection]:
        return [AddOnSelection.from_json(item) for item in (self.selected_add_ons or [])]

    @property
    def position_ids(self) -> list[str]:
        return [item["positionId"] for item in (self.selected_tables or [])]

    def __repr__(self) -> str:
        return (
            f"<StallBooking(id={self.id}, vendor={self.vendor_id}, event={self.event_id}, "
            f"status={self.status}, payment={self.payment_status})>"
        )
