"""
Stall booking endpoints: request, confirm/cancel, table selection,
payment status, QR scanning and deposit return.
"""

import asyncio

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.config import get_settings
from stallbook.core.exceptions import OperationTimeoutError
from stallbook.core.logging import get_logger
from stallbook.db.session import get_db
from stallbook.domain import ScanAction
from stallbook.schemas.booking import (
    AddOnItemOut,
    AttendanceResponse,
    AvailabilityResponse,
    ExistingRequestResponse,
    PaymentStatusUpdate,
    PositionOut,
    ScanRequest,
    ScanResponse,
    SelectedTableOut,
    StallCreate,
    StallResponse,
    StatusUpdate,
    TableSelectionRequest,
)
from stallbook.services import allocation_service, attendance_service, booking_service
from stallbook.services.directory import Directory, get_directory
from stallbook.services.interfaces.arbiter import SelectionArbiter
from stallbook.services.strategy_factory import get_arbiter

logger = get_logger(__name__)
router = APIRouter(prefix="/stalls", tags=["Stalls"])


async def _with_timeout(coro, operation: str):
    """
    Apply the request-level timeout. A timeout means the outcome is
    unknown: the caller must re-query the booking before retrying.
    """
    try:
        return await asyncio.wait_for(coro, timeout=get_settings().OPERATION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.error("operation_timeout", operation=operation)
        raise OperationTimeoutError(f"{operation} timed out; re-query the booking state before retrying")


def _position_out(entry) -> PositionOut:
    p = entry.position
    return PositionOut(
        position_id=p.position_id,
        table_id=p.table_id,
        name=p.name,
        table_type=p.table_type,
        layout_name=p.layout_name,
        price=p.price,
        deposit_amount=p.deposit_amount,
        is_booked=entry.is_booked,
    )


@router.post("/", response_model=StallResponse, status_code=status.HTTP_201_CREATED)
async def create_stall_request(
    data: StallCreate,
    db: AsyncSession = Depends(get_db),
    directory: Directory = Depends(get_directory),
):
    """
    Request a stall at an event.

    Returns 409 if the vendor already has a Pending, Confirmed or
    Processing request for the same event.
    """
    booking = await _with_timeout(
        booking_service.create_booking(
            db, directory, data.vendor_id, data.event_id, data.organizer_id, notes=data.notes
        ),
        "Stall request",
    )
    return StallResponse.from_booking(booking)


@router.get("/check-request/{event_id}/{vendor_id}", response_model=ExistingRequestResponse)
async def check_existing_request(event_id: str, vendor_id: str, db: AsyncSession = Depends(get_db)):
    """Most recent request of a vendor for an event, if any."""
    booking = await booking_service.find_latest_for_vendor(db, event_id, vendor_id)
    if booking is None:
        return ExistingRequestResponse(message="No existing request found")
    if booking.status.is_terminal:
        return ExistingRequestResponse(
            message=f"Existing request is {booking.status.value}",
            status=booking.status,
            data=StallResponse.from_booking(booking),
        )
    return ExistingRequestResponse(
        message="Existing request found",
        status=booking.status,
        data=StallResponse.from_booking(booking),
    )


@router.get("/available-tables/{event_id}", response_model=AvailabilityResponse)
async def available_tables(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    directory: Directory = Depends(get_directory),
):
    """Venue positions of an event with their booked flag. Never cached."""
    availability = await allocation_service.list_availability(db, directory, event_id)
    return AvailabilityResponse(
        event_id=event_id,
        all_tables=[_position_out(e) for e in availability.all],
        booked_tables=[_position_out(e) for e in availability.booked],
        available_tables=[_position_out(e) for e in availability.available],
        add_on_items=[AddOnItemOut(add_on_id=a.add_on_id, name=a.name, price=a.price) for a in availability.add_on_items],
    )


@router.patch("/{booking_id}/status", response_model=StallResponse)
async def update_status(booking_id: str, data: StatusUpdate, db: AsyncSession = Depends(get_db)):
    """Organizer confirms or cancels (rejects) a request."""
    booking = await booking_service.update_status(
        db, booking_id, data.status, reason=data.cancellation_reason, notes=data.notes
    )
    return StallResponse.from_booking(booking)


@router.patch("/{booking_id}/select-tables-and-addons", response_model=StallResponse)
async def select_tables_and_add_ons(
    booking_id: str,
    data: TableSelectionRequest,
    db: AsyncSession = Depends(get_db),
    directory: Directory = Depends(get_directory),
    arbiter: SelectionArbiter = Depends(get_arbiter),
):
    """
    Vendor selects tables and add-ons for a confirmed request.

    Returns 409 with the conflicting position IDs if another vendor
    got any of them first; re-query availability and resubmit.
    """
    booking = await _with_timeout(
        booking_service.select_tables_and_add_ons(
            db,
            directory,
            arbiter,
            booking_id,
            [t.to_domain() for t in data.selected_tables],
            [a.to_domain() for a in data.selected_add_ons],
            notes=data.notes,
        ),
        "Table selection",
    )
    return StallResponse.from_booking(booking)


@router.patch("/{booking_id}/payment-status", response_model=StallResponse)
async def update_payment_status(booking_id: str, data: PaymentStatusUpdate, db: AsyncSession = Depends(get_db)):
    """Record Unpaid / Partial / Paid. Paid completes the booking and issues its QR credential."""
    booking = await booking_service.set_payment_status(
        db, booking_id, data.payment_status, paid_amount=data.paid_amount, notes=data.notes
    )
    return StallResponse.from_booking(booking)


@router.post("/scan", response_model=ScanResponse)
async def scan_stall_qr(data: ScanRequest, db: AsyncSession = Depends(get_db)):
    """First scan checks the stall in, second checks it out, any later scan is rejected."""
    result = await attendance_service.scan(db, data.qr_code_data)
    booking = result.booking
    return ScanResponse(
        message="Check-in successful" if result.action == ScanAction.CHECK_IN else "Check-out successful",
        action=result.action,
        stall_id=booking.id,
        vendor_id=booking.vendor_id,
        event_id=booking.event_id,
        check_in_time=booking.check_in_time,
        check_out_time=booking.check_out_time,
        duration_minutes=result.duration_minutes,
        selected_tables=[SelectedTableOut(**vars(t)) for t in booking.tables],
        grand_total=booking.grand_total,
        paid_amount=booking.paid_amount,
        remaining_amount=booking.remaining_amount,
    )


@router.get("/{booking_id}/attendance", response_model=AttendanceResponse)
async def get_attendance(booking_id: str, db: AsyncSession = Depends(get_db)):
    return await attendance_service.get_attendance(db, booking_id)


@router.patch("/{booking_id}/return-deposit", response_model=StallResponse)
async def return_deposit(booking_id: str, db: AsyncSession = Depends(get_db)):
    """Mark the deposit returned after check-out. Safe to repeat."""
    booking = await booking_service.return_deposit(db, booking_id)
    return StallResponse.from_booking(booking)


@router.get("/event/{event_id}", response_model=list[StallResponse])
async def list_by_event(event_id: str, db: AsyncSession = Depends(get_db)):
    bookings = await booking_service.list_bookings(db, event_id=event_id)
    return [StallResponse.from_booking(b) for b in bookings]


@router.get("/vendor/{vendor_id}", response_model=list[StallResponse])
async def list_by_vendor(vendor_id: str, db: AsyncSession = Depends(get_db)):
    bookings = await booking_service.list_bookings(db, vendor_id=vendor_id)
    return [StallResponse.from_booking(b) for b in bookings]


@router.get("/organizer/{organizer_id}", response_model=list[StallResponse])
async def list_by_organizer(organizer_id: str, db: AsyncSession = Depends(get_db)):
    bookings = await booking_service.list_bookings(db, organizer_id=organizer_id)
    return [StallResponse.from_booking(b) for b in bookings]


@router.get("/{booking_id}", response_model=StallResponse)
async def get_stall(booking_id: str, db: AsyncSession = Depends(get_db)):
    booking = await booking_service.get_booking(db, booking_id)
    return StallResponse.from_booking(booking)
