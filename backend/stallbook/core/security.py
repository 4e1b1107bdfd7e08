"""
Signing and verification of stall scan credentials.

A credential is an HS256 JWT bound to one booking. It carries no expiry:
a stall keeps one credential from payment until check-out, and replay is
stopped by the booking's attendance state, not by token lifetime.
"""

import uuid
from datetime import datetime, timezone

from jose import JWTError, jwt

from stallbook.core.config import get_settings

CREDENTIAL_TYPE = "stall-scan"


def create_scan_credential(booking_id: str, vendor_id: str, event_id: str) -> str:
    settings = get_settings()
    claims = {
        "typ": CREDENTIAL_TYPE,
        "bid": booking_id,
        "vid": vendor_id,
        "eid": event_id,
        "iat": int(datetime.now(timezone.utc).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def read_unverified_claims(token: str) -> dict:
    """Claims without signature verification; raises JWTError if unparseable."""
    return jwt.get_unverified_claims(token)


def verify_scan_credential(token: str) -> dict:
    """Verified claims; raises JWTError on a bad signature or wrong type."""
    settings = get_settings()
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if claims.get("typ") != CREDENTIAL_TYPE:
        raise JWTError("Not a stall scan credential")
    return claims
