"""
Tests for QR scanning: check-in, check-out and credential checks.
"""

import json

import pytest
from jose import jwt

from conftest import EVENT_ID, VENDOR_IDS
from stallbook.core.config import get_settings
from stallbook.core.exceptions import (
    AlreadyCheckedOutError,
    InvalidCredentialError,
    MalformedPayloadError,
    NotFoundError,
)
from stallbook.core.security import create_scan_credential
from stallbook.domain import ScanAction, ScanKind
from stallbook.services import attendance_service, notifier as events
from stallbook.services.credentials import build_qr_payload, parse_scan_payload


@pytest.mark.asyncio
async def test_check_in_check_out_then_rejected(db_session, lifecycle, notifier):
    booking = await lifecycle.completed()
    qr = build_qr_payload(booking.scan_credential)

    first = await attendance_service.scan(db_session, qr)
    assert first.action == ScanAction.CHECK_IN
    assert first.booking.has_checked_in is True
    assert first.booking.check_in_time is not None
    assert first.booking.has_checked_out is False

    second = await attendance_service.scan(db_session, qr)
    assert second.action == ScanAction.CHECK_OUT
    assert second.booking.has_checked_out is True
    assert second.duration_minutes is not None
    assert second.duration_minutes >= 0

    with pytest.raises(AlreadyCheckedOutError):
        await attendance_service.scan(db_session, qr)

    attendance = await attendance_service.get_attendance(db_session, booking.id)
    assert attendance["has_checked_in"] is True
    assert attendance["has_checked_out"] is True
    assert attendance["duration_minutes"] == second.duration_minutes

    assert notifier.types_for(booking.id)[-2:] == [events.CHECKED_IN, events.CHECKED_OUT]


@pytest.mark.asyncio
async def test_declared_type_is_ignored(db_session, lifecycle):
    """A payload labelled check-out still checks in a stall that is not yet in."""
    booking = await lifecycle.completed()
    result = await attendance_service.scan(db_session, build_qr_payload(booking.scan_credential, ScanKind.CHECK_OUT))
    assert result.action == ScanAction.CHECK_IN


@pytest.mark.asyncio
async def test_attendance_before_any_scan(db_session, lifecycle):
    booking = await lifecycle.completed()
    attendance = await attendance_service.get_attendance(db_session, booking.id)
    assert attendance["has_checked_in"] is False
    assert attendance["check_in_time"] is None
    assert attendance["duration_minutes"] is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        json.dumps({"type": "stall-checkin", "credential": "x.y.z"}),
        json.dumps({"warning": "w", "type": "ticket", "credential": "x.y.z"}),
        json.dumps({"warning": "w", "type": "stall-checkin"}),
        json.dumps({"warning": "w", "type": "stall-checkin", "credential": "garbage"}),
    ],
)
def test_malformed_payloads(raw):
    with pytest.raises(MalformedPayloadError):
        parse_scan_payload(raw)


def test_credential_missing_booking_claims():
    settings = get_settings()
    token = jwt.encode({"typ": "stall-scan", "vid": "v", "iat": 1}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    with pytest.raises(MalformedPayloadError):
        parse_scan_payload(build_qr_payload(token))


def test_parse_reads_claims():
    token = create_scan_credential("b-1", "v-1", "e-1")
    payload = parse_scan_payload(build_qr_payload(token, ScanKind.CHECK_OUT))
    assert payload.kind == ScanKind.CHECK_OUT
    assert (payload.booking_id, payload.vendor_id, payload.event_id) == ("b-1", "v-1", "e-1")
    assert payload.credential == token


@pytest.mark.asyncio
async def test_malformed_scan_changes_nothing(db_session, lifecycle):
    booking = await lifecycle.completed()
    with pytest.raises(MalformedPayloadError):
        await attendance_service.scan(db_session, "{}")
    attendance = await attendance_service.get_attendance(db_session, booking.id)
    assert attendance["has_checked_in"] is False


@pytest.mark.asyncio
async def test_unknown_booking(db_session):
    token = create_scan_credential("missing-booking", VENDOR_IDS[0], EVENT_ID)
    with pytest.raises(NotFoundError):
        await attendance_service.scan(db_session, build_qr_payload(token))


@pytest.mark.asyncio
async def test_forged_signature(db_session, lifecycle):
    booking = await lifecycle.completed()
    forged = jwt.encode(
        {"typ": "stall-scan", "bid": booking.id, "vid": booking.vendor_id, "eid": EVENT_ID, "iat": 1},
        "not-the-server-key",
        algorithm="HS256",
    )
    with pytest.raises(InvalidCredentialError):
        await attendance_service.scan(db_session, build_qr_payload(forged))

    attendance = await attendance_service.get_attendance(db_session, booking.id)
    assert attendance["has_checked_in"] is False


@pytest.mark.asyncio
async def test_validly_signed_but_not_issued(db_session, lifecycle):
    """A correctly signed credential that is not the one stored on the booking is refused."""
    booking = await lifecycle.completed()
    reminted = create_scan_credential(booking.id, booking.vendor_id, booking.event_id)
    with pytest.raises(InvalidCredentialError):
        await attendance_service.scan(db_session, build_qr_payload(reminted))


@pytest.mark.asyncio
async def test_credential_copied_to_another_booking(db_session, lifecycle):
    """Stall A's credential never checks in stall B."""
    a = await lifecycle.completed(VENDOR_IDS[0], positions=("P-1",))
    b = await lifecycle.completed(VENDOR_IDS[1], positions=("P-2",))

    # A's token, but the booking lookup is pointed at B
    claims = jwt.get_unverified_claims(a.scan_credential)
    settings = get_settings()
    retargeted = jwt.encode({**claims, "bid": b.id}, "not-the-server-key", algorithm=settings.ALGORITHM)
    with pytest.raises(InvalidCredentialError):
        await attendance_service.scan(db_session, build_qr_payload(retargeted))

    # A's token itself only ever checks in A
    result = await attendance_service.scan(db_session, build_qr_payload(a.scan_credential))
    assert result.booking.id == a.id
    assert (await attendance_service.get_attendance(db_session, b.id))["has_checked_in"] is False


@pytest.mark.asyncio
async def test_booking_without_credential(db_session, lifecycle):
    """Processing bookings have not been paid and cannot be scanned."""
    booking = await lifecycle.processing()
    token = create_scan_credential(booking.id, booking.vendor_id, booking.event_id)
    with pytest.raises(InvalidCredentialError):
        await attendance_service.scan(db_session, build_qr_payload(token))
