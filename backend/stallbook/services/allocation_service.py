"""
Table allocation: which venue positions are free for an event, and is a
requested selection safe to commit.

A position counts as booked when some booking of the event in
Processing or Completed lists it in its selected tables. Pending,
Confirmed and Cancelled bookings hold nothing, so cancelling a booking
frees its positions on the very next query. Availability is always
computed from bookings, never stored.

This module only reads bookings. The commit that makes a validated
selection stick lives in booking_service, under the per-event arbiter.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.exceptions import ConflictError, InvalidInputError, NotFoundError
from stallbook.core.logging import get_logger
from stallbook.core.metrics import selection_conflicts
from stallbook.domain import (
    POSITION_HOLDING_STATUSES,
    Availability,
    EventProjection,
    PositionAvailability,
    TableSelection,
    VenuePosition,
    to_decimal,
)
from stallbook.models.booking import StallBooking
from stallbook.services.directory import Directory

logger = get_logger(__name__)


async def booked_positions(
    db: AsyncSession,
    event_id: str,
    exclude_booking_id: Optional[str] = None,
) -> set[str]:
    """
    Union of selected position IDs across position-holding bookings.
    Uses the ix_stall_bookings_event_status index.
    """
    query = select(StallBooking.selected_tables).where(
        StallBooking.event_id == event_id,
        StallBooking.status.in_(POSITION_HOLDING_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.where(StallBooking.id != exclude_booking_id)

    result = await db.execute(query)
    booked: set[str] = set()
    for tables in result.scalars().all():
        booked.update(item["positionId"] for item in (tables or []))
    return booked


async def _require_event(directory: Directory, event_id: str) -> EventProjection:
    event = await directory.get_event(event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def list_availability(db: AsyncSession, directory: Directory, event_id: str) -> Availability:
    """All venue positions of the event split into booked and available."""
    event = await _require_event(directory, event_id)
    booked = await booked_positions(db, event_id)

    availability = Availability(add_on_items=list(event.add_on_items))
    for position in event.venue_tables:
        entry = PositionAvailability(position=position, is_booked=position.position_id in booked)
        availability.all.append(entry)
        (availability.booked if entry.is_booked else availability.available).append(entry)
    return availability


def _matches_layout(table: TableSelection, position: VenuePosition) -> bool:
    return (
        table.table_id == position.table_id
        and to_decimal(table.price) == position.price
        and to_decimal(table.deposit_amount) == position.deposit_amount
    )


def check_selection_shape(event: EventProjection, tables: Iterable[TableSelection]) -> list[str]:
    """
    Structural checks that need no booking data: the event has a layout,
    the request is non-empty, positions are unique and exist in the layout,
    and each position carries the layout's table, price and deposit.
    Returns the requested position IDs in request order.
    """
    if not event.venue_tables:
        raise InvalidInputError(f"No tables available for event {event.event_id}")

    position_ids = [t.position_id for t in tables]
    if not position_ids:
        raise InvalidInputError("At least one table must be selected")

    seen: set[str] = set()
    duplicates = []
    for position_id in position_ids:
        if position_id in seen and position_id not in duplicates:
            duplicates.append(position_id)
        seen.add(position_id)
    if duplicates:
        raise InvalidInputError("Duplicate positions in selection: " + ", ".join(duplicates))

    unknown = [p for p in position_ids if event.position(p) is None]
    if unknown:
        raise InvalidInputError("Unknown positions for this event: " + ", ".join(unknown))

    mismatched = [t.position_id for t in tables if not _matches_layout(t, event.position(t.position_id))]
    if mismatched:
        raise InvalidInputError("Selection does not match the venue layout for: " + ", ".join(mismatched))

    return position_ids


async def validate_selection(
    db: AsyncSession,
    event_id: str,
    booking_id: str,
    requested_position_ids: Iterable[str],
) -> None:
    """
    Fail with ConflictError listing every requested position that another
    booking already holds. The booking's own positions never conflict.

    Only meaningful when called under the event's selection arbiter and
    followed by the guarded commit in the same critical section.
    """
    requested = list(requested_position_ids)
    booked = await booked_positions(db, event_id, exclude_booking_id=booking_id)
    conflicts = [p for p in requested if p in booked]
    if conflicts:
        selection_conflicts.inc()
        logger.warning(
            "selection_conflict",
            event_id=event_id,
            booking_id=booking_id,
            positions=conflicts,
        )
        raise ConflictError(conflicts)
