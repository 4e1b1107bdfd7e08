"""
Attendance protocol: interpret stall QR scans as check-in or check-out.

Scan flow:
  1. Parse the payload (MalformedPayloadError if it is not ours)
  2. Load the booking it names (NotFoundError)
  3. Verify the credential signature and that it is exactly the one
     stored on the booking for this vendor (InvalidCredentialError)
  4. Decide the action from the booking's attendance flags; the payload's
     declared type is ignored
  5. Apply the flag through a conditional write, so two simultaneous
     scans of one stall resolve to one check-in and one check-out
"""

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.exceptions import (
    AlreadyCheckedOutError,
    InvalidCredentialError,
    MalformedPayloadError,
    NotFoundError,
)
from stallbook.core.logging import get_logger
from stallbook.core.metrics import record_scan
from stallbook.core.security import verify_scan_credential
from stallbook.domain import ScanAction, ScanPayload
from stallbook.models.booking import StallBooking
from stallbook.services import booking_service, notifier
from stallbook.services.credentials import parse_scan_payload

logger = get_logger(__name__)


@dataclass
class ScanResult:
    action: ScanAction
    booking: StallBooking
    duration_minutes: Optional[int] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def stay_minutes(booking: StallBooking) -> Optional[int]:
    if booking.check_in_time is None or booking.check_out_time is None:
        return None
    delta = _as_utc(booking.check_out_time) - _as_utc(booking.check_in_time)
    return int(delta.total_seconds() // 60)


def verify_credential(payload: ScanPayload, booking: StallBooking) -> None:
    """Raise InvalidCredentialError unless the payload belongs to this booking."""
    if not booking.scan_credential:
        raise InvalidCredentialError(f"Stall {booking.id} has no scan credential")

    try:
        claims = verify_scan_credential(payload.credential)
    except JWTError:
        raise InvalidCredentialError("QR credential signature is not valid")

    if not hmac.compare_digest(payload.credential, booking.scan_credential):
        raise InvalidCredentialError("QR credential does not match this stall")

    if claims["bid"] != booking.id or claims["vid"] != booking.vendor_id:
        raise InvalidCredentialError("QR credential does not match this stall")


async def scan(db: AsyncSession, raw_payload: str) -> ScanResult:
    try:
        payload = parse_scan_payload(raw_payload)
    except MalformedPayloadError:
        record_scan("malformed")
        raise

    try:
        booking = await booking_service.get_booking(db, payload.booking_id)
    except NotFoundError:
        record_scan("not_found")
        raise

    try:
        verify_credential(payload, booking)
    except InvalidCredentialError as e:
        record_scan("invalid_credential")
        logger.warning(
            "invalid_scan_credential",
            booking_id=payload.booking_id,
            claimed_vendor_id=payload.vendor_id,
            reason=e.message,
        )
        raise

    # Flags only move forward, so at most one retry per flag is needed
    for _ in range(3):
        if not booking.has_checked_in:
            if await booking_service.record_check_in(db, booking.id):
                booking = await booking_service.get_booking(db, booking.id)
                record_scan("check_in")
                logger.info("scan_check_in", booking_id=booking.id, declared_type=payload.kind.value)
                await notifier.emit(booking.id, notifier.CHECKED_IN, check_in_time=booking.check_in_time.isoformat())
                return ScanResult(action=ScanAction.CHECK_IN, booking=booking)
        elif not booking.has_checked_out:
            if await booking_service.record_check_out(db, booking.id):
                booking = await booking_service.get_booking(db, booking.id)
                duration = stay_minutes(booking)
                record_scan("check_out")
                logger.info("scan_check_out", booking_id=booking.id, duration_minutes=duration)
                await notifier.emit(
                    booking.id,
                    notifier.CHECKED_OUT,
                    check_out_time=booking.check_out_time.isoformat(),
                    duration_minutes=duration,
                )
                return ScanResult(action=ScanAction.CHECK_OUT, booking=booking, duration_minutes=duration)
        else:
            break
        # Lost a race with a concurrent scan; look again
        booking = await booking_service.get_booking(db, booking.id)

    record_scan("already_checked_out")
    logger.info("scan_rejected", booking_id=booking.id, reason="already_checked_out")
    raise AlreadyCheckedOutError(booking.id)


async def get_attendance(db: AsyncSession, booking_id: str) -> dict:
    booking = await booking_service.get_booking(db, booking_id)
    return {
        "booking_id": booking.id,
        "vendor_id": booking.vendor_id,
        "has_checked_in": booking.has_checked_in,
        "has_checked_out": booking.has_checked_out,
        "check_in_time": booking.check_in_time,
        "check_out_time": booking.check_out_time,
        "duration_minutes": stay_minutes(booking),
    }
