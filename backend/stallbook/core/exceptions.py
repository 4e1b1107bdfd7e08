"""
Domain error taxonomy for the booking engine.

Services raise these and never HTTP exceptions. Each error knows the
HTTP status the API layer maps it to and renders its structured detail
through ``to_dict()``.

    StallBookingError
    ├── InvalidInputError            validation, safe to retry after fixing input
    │   └── MalformedPayloadError
    ├── ContentionError              a concurrent actor won a race
    │   ├── ConflictError            carries the conflicting position IDs
    │   └── DuplicateActiveBookingError
    ├── NotFoundError
    ├── TransitionError              never retry blindly
    │   ├── InvalidTransitionError
    │   │   └── AlreadyCancelledError
    │   └── AlreadyCheckedOutError
    ├── InvalidCredentialError       security event, audited separately
    └── OperationTimeoutError        outcome unknown, re-query before retrying
"""

from typing import Optional, Sequence


class StallBookingError(Exception):
    status_code: int = 400
    kind: str = "stall_booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class InvalidInputError(StallBookingError):
    status_code = 422
    kind = "invalid_input"


class MalformedPayloadError(InvalidInputError):
    status_code = 400
    kind = "malformed_payload"


class ContentionError(StallBookingError):
    status_code = 409
    kind = "contention"


class ConflictError(ContentionError):
    """Requested table positions are already held by another booking."""

    kind = "conflict"

    def __init__(self, positions: Sequence[str], message: Optional[str] = None):
        self.positions = list(positions)
        if message is None:
            message = "Some selected tables are no longer available: " + ", ".join(self.positions)
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "positions": self.positions}


class DuplicateActiveBookingError(ContentionError):
    kind = "duplicate_active_booking"

    def __init__(self, vendor_id: str, event_id: str):
        self.vendor_id = vendor_id
        self.event_id = event_id
        super().__init__(f"Vendor {vendor_id} already has an active stall request for event {event_id}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "vendor_id": self.vendor_id, "event_id": self.event_id}


class NotFoundError(StallBookingError):
    status_code = 404
    kind = "not_found"


class TransitionError(StallBookingError):
    status_code = 409
    kind = "transition_error"


class InvalidTransitionError(TransitionError):
    kind = "invalid_transition"

    def __init__(self, booking_id: str, current: str, attempted: str):
        self.booking_id = booking_id
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} booking {booking_id} while it is {current}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "booking_id": self.booking_id, "current_status": self.current}


class AlreadyCancelledError(InvalidTransitionError):
    kind = "already_cancelled"


class AlreadyCheckedOutError(TransitionError):
    kind = "already_checked_out"

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Stall {booking_id} has already been checked out")


class InvalidCredentialError(StallBookingError):
    status_code = 403
    kind = "invalid_credential"


class OperationTimeoutError(StallBookingError):
    status_code = 504
    kind = "operation_timeout"
