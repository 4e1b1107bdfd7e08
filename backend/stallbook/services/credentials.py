"""
Scan credential minting and QR payload parsing.

QR payload (what the vendor's printed/QR artifact encodes):

    {
      "warning": "<human readable: use the organizer app>",
      "type": "stall-checkin",
      "credential": "<HS256 JWT: typ, bid, vid, eid, iat, jti>"
    }

The warning and type markers deter generic scanners; the signed
credential is what carries authority. `type` is informational: whether
a scan checks in or out is decided from the booking, never from here.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone

from jose import JWTError

from stallbook.core.config import get_settings
from stallbook.core.exceptions import MalformedPayloadError
from stallbook.core.security import create_scan_credential, read_unverified_claims
from stallbook.domain import ScanKind, ScanPayload

REQUIRED_CLAIMS = ("bid", "vid", "eid", "iat")


@dataclass(frozen=True)
class IssuedCredential:
    token: str
    qr_payload: str


def build_qr_payload(token: str, kind: ScanKind = ScanKind.CHECK_IN) -> str:
    return json.dumps(
        {
            "warning": get_settings().SCAN_WARNING,
            "type": kind.value,
            "credential": token,
        }
    )


def issue_credential(booking_id: str, vendor_id: str, event_id: str) -> IssuedCredential:
    """Mint the credential for a booking that is becoming Completed."""
    token = create_scan_credential(booking_id, vendor_id, event_id)
    return IssuedCredential(token=token, qr_payload=build_qr_payload(token))


def parse_scan_payload(raw_payload: str) -> ScanPayload:
    """
    Parse a scanned QR string.
    Raises MalformedPayloadError for anything that is not our payload
    shape; signature checks happen later, against the booking.
    """
    try:
        data = json.loads(raw_payload)
    except (TypeError, ValueError):
        raise MalformedPayloadError("QR code is not a stall payload")

    if not isinstance(data, dict):
        raise MalformedPayloadError("QR code is not a stall payload")

    if not isinstance(data.get("warning"), str) or not data["warning"]:
        raise MalformedPayloadError("QR code is missing its scanner marker")

    try:
        kind = ScanKind(data.get("type"))
    except ValueError:
        raise MalformedPayloadError("Invalid QR code type")

    token = data.get("credential")
    if not isinstance(token, str) or not token:
        raise MalformedPayloadError("QR code carries no credential")

    try:
        claims = read_unverified_claims(token)
    except JWTError:
        raise MalformedPayloadError("QR credential cannot be decoded")

    if any(claims.get(name) in (None, "") for name in REQUIRED_CLAIMS):
        raise MalformedPayloadError("QR credential is missing booking details")

    try:
        issued_at = datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        raise MalformedPayloadError("QR credential has an invalid issue time")

    return ScanPayload(
        kind=kind,
        booking_id=str(claims["bid"]),
        vendor_id=str(claims["vid"]),
        event_id=str(claims["eid"]),
        issued_at=issued_at,
        credential=token,
    )
