"""
Stall booking state machine.

    Pending    --confirm-->          Confirmed
    Pending    --reject/cancel-->    Cancelled   (terminal)
    Confirmed  --select tables-->    Processing
    Processing --payment Paid-->     Completed   (terminal, mints scan credential)
    {Pending, Confirmed, Processing} --cancel--> Cancelled

This module is the only writer of booking rows.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Every transition re-reads the booking, decides whether it is legal for
the status it finds, and writes with

    UPDATE stall_bookings SET ..., version = version + 1
    WHERE id = :id AND version = :read_version

If rows_affected == 0 someone else changed the booking in between; we
roll back, re-read and decide again, so a lost race surfaces as the
proper transition error instead of a silent overwrite.

Two invariants need more than a single row:

- One active booking per (vendor, event): enforced by the unique
  constraint on (vendor_id, event_id, active_marker). The insert either
  succeeds or raises IntegrityError; there is no read-then-write window.
- No double-booked table: selections for one event run inside the
  event's SelectionArbiter, re-validate availability there, and commit
  together with a CAS bump of the event's SelectionGuard row. A writer
  that read availability before another selection committed fails the
  guard CAS and re-validates.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.config import get_settings
from stallbook.core.exceptions import (
    AlreadyCancelledError,
    ContentionError,
    DuplicateActiveBookingError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from stallbook.core.logging import get_logger
from stallbook.core.metrics import db_retries, record_transition
from stallbook.domain import (
    ACTIVE_STATUSES,
    AddOnSelection,
    BookingStatus,
    PaymentStatus,
    TableSelection,
)
from stallbook.models.booking import StallBooking, active_marker_for, new_booking_id
from stallbook.models.selection_guard import SelectionGuard
from stallbook.services import notifier
from stallbook.services.allocation_service import check_selection_shape, validate_selection
from stallbook.services.credentials import issue_credential
from stallbook.services.directory import Directory
from stallbook.services.interfaces.arbiter import SelectionArbiter
from stallbook.services.pricing import calculate_pricing

logger = get_logger(__name__)

# Statuses each operation may start from
ALLOWED_FROM = {
    "confirm": frozenset({BookingStatus.PENDING}),
    "select tables for": frozenset({BookingStatus.CONFIRMED}),
    "record payment for": frozenset({BookingStatus.PROCESSING}),
    "cancel": ACTIVE_STATUSES,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(booking: StallBooking, operation: str) -> None:
    if booking.status in ALLOWED_FROM[operation]:
        return
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelledError(booking.id, booking.status.value, operation)
    raise InvalidTransitionError(booking.id, booking.status.value, operation)


async def get_booking(db: AsyncSession, booking_id: str) -> StallBooking:
    """Fresh read of a booking, bypassing the session identity map."""
    booking = await db.get(StallBooking, booking_id, populate_existing=True)
    if booking is None:
        logger.info("booking_not_found", booking_id=booking_id)
        raise NotFoundError(f"Stall booking {booking_id} not found")
    return booking


async def _compare_and_swap(db: AsyncSession, booking: StallBooking, values: dict) -> bool:
    result = await db.execute(
        update(StallBooking)
        .where(
            StallBooking.id == booking.id,
            StallBooking.version == booking.version,
        )
        .values(**values, version=StallBooking.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _transition(
    db: AsyncSession,
    booking_id: str,
    name: str,
    decide: Callable[[StallBooking], Optional[dict]],
) -> tuple[StallBooking, bool]:
    """
    Run one state transition with optimistic locking.

    `decide` sees a fresh booking and returns the column values to write,
    None for a no-op, or raises when the transition is illegal.
    Returns the committed booking and whether anything changed.
    """
    max_attempts = get_settings().MAX_RETRY_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        booking = await get_booking(db, booking_id)
        values = decide(booking)
        if values is None:
            return booking, False

        if await _compare_and_swap(db, booking, values):
            await db.commit()
            record_transition(name)
            return await get_booking(db, booking_id), True

        await db.rollback()
        db_retries.inc()
        logger.info("booking_retry", booking_id=booking_id, transition=name, attempt=attempt, reason="version_conflict")

    raise ContentionError(f"Booking {booking_id} is being modified concurrently; re-query it and retry")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_booking(
    db: AsyncSession,
    directory: Directory,
    vendor_id: str,
    event_id: str,
    organizer_id: str,
    notes: Optional[str] = None,
) -> StallBooking:
    """
    Open a Pending stall request.
    Raises DuplicateActiveBookingError if the vendor already has an
    active request for the event.
    """
    event = await directory.get_event(event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    if await directory.get_vendor(vendor_id) is None:
        raise NotFoundError(f"Vendor {vendor_id} not found")
    if event.organizer_id is not None and event.organizer_id != organizer_id:
        raise InvalidInputError(f"Event {event_id} is not organized by {organizer_id}")

    booking = StallBooking(
        id=new_booking_id(),
        vendor_id=vendor_id,
        event_id=event_id,
        organizer_id=organizer_id,
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        active_marker=active_marker_for(BookingStatus.PENDING),
        selected_tables=[],
        selected_add_ons=[],
        tables_total=Decimal("0"),
        deposit_total=Decimal("0"),
        add_ons_total=Decimal("0"),
        grand_total=Decimal("0"),
        paid_amount=Decimal("0"),
        remaining_amount=Decimal("0"),
        has_checked_in=False,
        has_checked_out=False,
        deposit_returned=False,
        request_date=utcnow(),
        notes=notes,
        version=1,
    )
    db.add(booking)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("booking_failed_duplicate", vendor_id=vendor_id, event_id=event_id)
        raise DuplicateActiveBookingError(vendor_id, event_id)

    record_transition("created")
    logger.info("booking_created", booking_id=booking.id, vendor_id=vendor_id, event_id=event_id)
    await notifier.emit(booking.id, notifier.BOOKING_CREATED, vendor_id=vendor_id, event_id=event_id)
    return await get_booking(db, booking.id)


# ---------------------------------------------------------------------------
# Organizer decisions
# ---------------------------------------------------------------------------


async def confirm(db: AsyncSession, booking_id: str, notes: Optional[str] = None) -> StallBooking:
    def decide(booking: StallBooking) -> dict:
        _require(booking, "confirm")
        values = {"status": BookingStatus.CONFIRMED, "confirmation_date": utcnow()}
        if notes:
            values["notes"] = notes
        return values

    booking, _ = await _transition(db, booking_id, "confirmed", decide)
    logger.info("booking_confirmed", booking_id=booking_id)
    await notifier.emit(booking_id, notifier.BOOKING_CONFIRMED, old_status=BookingStatus.PENDING.value)
    return booking


async def cancel(db: AsyncSession, booking_id: str, reason: Optional[str] = None) -> StallBooking:
    """
    Cancel an active booking. Positions it held are released implicitly:
    availability simply stops counting it.
    """
    previous = {}

    def decide(booking: StallBooking) -> dict:
        _require(booking, "cancel")
        previous["status"] = booking.status
        return {
            "status": BookingStatus.CANCELLED,
            "active_marker": active_marker_for(BookingStatus.CANCELLED),
            "cancellation_reason": reason,
        }

    booking, _ = await _transition(db, booking_id, "cancelled", decide)
    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        previous_status=previous["status"].value,
        positions_released=booking.position_ids,
    )
    await notifier.emit(
        booking_id,
        notifier.BOOKING_CANCELLED,
        old_status=previous["status"].value,
        reason=reason,
        positions_released=booking.position_ids,
    )
    return booking


async def update_status(
    db: AsyncSession,
    booking_id: str,
    new_status: BookingStatus,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> StallBooking:
    """
    Organizer-facing status change. Only Confirmed and Cancelled can be
    requested directly; Processing and Completed are reached through
    table selection and payment.
    """
    if new_status == BookingStatus.CONFIRMED:
        return await confirm(db, booking_id, notes=notes)
    if new_status == BookingStatus.CANCELLED:
        return await cancel(db, booking_id, reason=reason)
    if new_status in (BookingStatus.PENDING, BookingStatus.PROCESSING, BookingStatus.COMPLETED):
        booking = await get_booking(db, booking_id)
        raise InvalidTransitionError(booking.id, booking.status.value, f"move to {new_status.value}")
    raise AssertionError(f"Unhandled booking status {new_status!r}")


# ---------------------------------------------------------------------------
# Vendor selection
# ---------------------------------------------------------------------------


async def _read_guard_version(db: AsyncSession, event_id: str) -> Optional[int]:
    """
    Current guard version for the event, creating the row on first use.
    Returns None if another writer created the row first; the rollback
    that follows expires everything loaded, so the caller must re-read.
    """
    guard = await db.get(SelectionGuard, event_id, populate_existing=True)
    if guard is not None:
        return guard.version

    db.add(SelectionGuard(event_id=event_id, version=0))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return None
    return 0


async def _bump_guard(db: AsyncSession, event_id: str, expected_version: int) -> bool:
    result = await db.execute(
        update(SelectionGuard)
        .where(
            SelectionGuard.event_id == event_id,
            SelectionGuard.version == expected_version,
        )
        .values(version=SelectionGuard.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def select_tables_and_add_ons(
    db: AsyncSession,
    directory: Directory,
    arbiter: SelectionArbiter,
    booking_id: str,
    tables: Sequence[TableSelection],
    add_ons: Sequence[AddOnSelection] = (),
    notes: Optional[str] = None,
) -> StallBooking:
    """
    Commit a vendor's table and add-on selection, moving the booking to
    Processing.

    Raises:
        InvalidTransitionError: booking is not Confirmed
        InvalidInputError: bad quantities, or tables not matching the layout
        ConflictError: some positions are held by another booking
    """
    booking = await get_booking(db, booking_id)
    _require(booking, "select tables for")
    event_id = booking.event_id

    event = await directory.get_event(event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    position_ids = check_selection_shape(event, tables)
    pricing = calculate_pricing(tables, add_ons)

    max_attempts = get_settings().MAX_RETRY_ATTEMPTS
    async with arbiter.exclusive(event_id):
        for attempt in range(1, max_attempts + 1):
            booking = await get_booking(db, booking_id)
            _require(booking, "select tables for")

            guard_version = await _read_guard_version(db, event_id)
            if guard_version is None:
                db_retries.inc()
                logger.info(
                    "selection_retry", booking_id=booking_id, event_id=event_id, attempt=attempt, reason="guard_created"
                )
                continue

            try:
                await validate_selection(db, event_id, booking_id, position_ids)
            except Exception:
                await db.rollback()
                raise

            values = {
                "selected_tables": [t.to_json() for t in tables],
                "selected_add_ons": [a.to_json() for a in add_ons],
                **pricing.as_columns(),
                "status": BookingStatus.PROCESSING,
                "selection_date": utcnow(),
            }
            if notes:
                values["notes"] = notes

            if await _compare_and_swap(db, booking, values) and await _bump_guard(db, event_id, guard_version):
                await db.commit()
                break

            await db.rollback()
            db_retries.inc()
            logger.info(
                "selection_retry", booking_id=booking_id, event_id=event_id, attempt=attempt, reason="version_conflict"
            )
        else:
            raise ContentionError(
                f"Table selection for event {event_id} is under heavy contention; re-query availability and retry"
            )

    record_transition("selected")
    logger.info(
        "tables_selected",
        booking_id=booking_id,
        event_id=event_id,
        positions=position_ids,
        grand_total=str(pricing.grand_total),
    )
    await notifier.emit(
        booking_id,
        notifier.TABLES_SELECTED,
        positions=position_ids,
        grand_total=str(pricing.grand_total),
    )
    return await get_booking(db, booking_id)


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


async def set_payment_status(
    db: AsyncSession,
    booking_id: str,
    new_status: PaymentStatus,
    paid_amount: Optional[Decimal] = None,
    notes: Optional[str] = None,
) -> StallBooking:
    """
    Record a payment status for a Processing booking.

    - Paid: completes the booking, settles the balance and mints the scan
      credential, all in one write.
    - Partial: records `paid_amount` (must stay below the grand total).
    - Unpaid: resets the paid amount to zero.
    """
    previous = {}

    def decide(booking: StallBooking) -> dict:
        _require(booking, "record payment for")
        previous["payment_status"] = booking.payment_status
        now = utcnow()
        tables, add_ons = booking.tables, booking.add_ons

        if new_status == PaymentStatus.PAID:
            grand_total = calculate_pricing(tables, add_ons).grand_total
            pricing = calculate_pricing(tables, add_ons, paid_amount=grand_total)
            credential = issue_credential(booking.id, booking.vendor_id, booking.event_id)
            values = {
                **pricing.as_columns(),
                "payment_status": PaymentStatus.PAID,
                "status": BookingStatus.COMPLETED,
                "active_marker": active_marker_for(BookingStatus.COMPLETED),
                "completion_date": now,
                "scan_credential": credential.token,
            }
            previous["qr_payload"] = credential.qr_payload
        elif new_status == PaymentStatus.PARTIAL:
            if paid_amount is None:
                raise InvalidInputError("A partial payment needs the amount paid so far")
            pricing = calculate_pricing(tables, add_ons, paid_amount=paid_amount)
            if pricing.remaining_amount == 0:
                raise InvalidInputError("Paid amount covers the grand total; record the payment as Paid")
            values = {**pricing.as_columns(), "payment_status": PaymentStatus.PARTIAL}
        elif new_status == PaymentStatus.UNPAID:
            pricing = calculate_pricing(tables, add_ons)
            values = {**pricing.as_columns(), "payment_status": PaymentStatus.UNPAID}
        else:
            raise AssertionError(f"Unhandled payment status {new_status!r}")

        if new_status != PaymentStatus.UNPAID and booking.payment_date is None:
            values["payment_date"] = now
        if notes:
            values["notes"] = notes
        return values

    transition = {
        PaymentStatus.PAID: "paid",
        PaymentStatus.PARTIAL: "partial",
        PaymentStatus.UNPAID: "unpaid",
    }[new_status]
    booking, _ = await _transition(db, booking_id, transition, decide)

    logger.info(
        "payment_status_updated",
        booking_id=booking_id,
        old_payment_status=previous["payment_status"].value,
        payment_status=new_status.value,
        paid_amount=str(booking.paid_amount),
        remaining_amount=str(booking.remaining_amount),
    )
    await notifier.emit(
        booking_id,
        notifier.PAYMENT_STATUS_CHANGED,
        old_payment_status=previous["payment_status"].value,
        payment_status=new_status.value,
        paid_amount=str(booking.paid_amount),
        remaining_amount=str(booking.remaining_amount),
    )
    if new_status == PaymentStatus.PAID:
        # Hand the QR payload to the artifact renderer
        await notifier.emit(booking_id, notifier.CREDENTIAL_ISSUED, qr_payload=previous["qr_payload"])
    return booking


# ---------------------------------------------------------------------------
# Attendance writes (driven by attendance_service scans)
# ---------------------------------------------------------------------------


async def record_check_in(db: AsyncSession, booking_id: str) -> bool:
    """Set the check-in flag if it is still unset. Returns False if it was already set."""
    result = await db.execute(
        update(StallBooking)
        .where(
            StallBooking.id == booking_id,
            StallBooking.status == BookingStatus.COMPLETED,
            StallBooking.has_checked_in.is_(False),
        )
        .values(has_checked_in=True, check_in_time=utcnow(), version=StallBooking.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    record_transition("checked_in")
    return True


async def record_check_out(db: AsyncSession, booking_id: str) -> bool:
    """Set the check-out flag after a check-in. Returns False if not applicable."""
    result = await db.execute(
        update(StallBooking)
        .where(
            StallBooking.id == booking_id,
            StallBooking.status == BookingStatus.COMPLETED,
            StallBooking.has_checked_in.is_(True),
            StallBooking.has_checked_out.is_(False),
        )
        .values(has_checked_out=True, check_out_time=utcnow(), version=StallBooking.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    record_transition("checked_out")
    return True


async def return_deposit(db: AsyncSession, booking_id: str) -> StallBooking:
    """Mark the deposit returned. Needs a check-out; repeating it is a no-op."""

    def decide(booking: StallBooking) -> Optional[dict]:
        if not booking.has_checked_out:
            raise InvalidTransitionError(booking.id, booking.status.value, "return the deposit of")
        if booking.deposit_returned:
            return None
        return {"deposit_returned": True, "deposit_returned_date": utcnow()}

    booking, changed = await _transition(db, booking_id, "deposit_returned", decide)
    if changed:
        logger.info("deposit_returned", booking_id=booking_id, deposit_total=str(booking.deposit_total))
        await notifier.emit(booking_id, notifier.DEPOSIT_RETURNED, deposit_total=str(booking.deposit_total))
    return booking


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def find_latest_for_vendor(db: AsyncSession, event_id: str, vendor_id: str) -> Optional[StallBooking]:
    """Most recent booking of a vendor for an event, whatever its status."""
    result = await db.execute(
        select(StallBooking)
        .where(StallBooking.event_id == event_id, StallBooking.vendor_id == vendor_id)
        .order_by(StallBooking.request_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_bookings(
    db: AsyncSession,
    event_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    organizer_id: Optional[str] = None,
) -> list[StallBooking]:
    query = select(StallBooking)
    if event_id is not None:
        query = query.where(StallBooking.event_id == event_id)
    if vendor_id is not None:
        query = query.where(StallBooking.vendor_id == vendor_id)
    if organizer_id is not None:
        query = query.where(StallBooking.organizer_id == organizer_id)

    result = await db.execute(query.order_by(StallBooking.request_date.desc()))
    return list(result.scalars().all())
