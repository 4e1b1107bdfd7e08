"""
Domain events emitted on every booking transition.

The engine hands a structured event to a notifier after the transition
has committed; formatting and channel choice (WhatsApp, email, ...)
belong to whatever consumes them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from stallbook.core.logging import get_logger
from stallbook.core.metrics import notification_failures

logger = get_logger(__name__)

BOOKING_CREATED = "booking_created"
BOOKING_CONFIRMED = "booking_confirmed"
TABLES_SELECTED = "tables_selected"
BOOKING_CANCELLED = "booking_cancelled"
PAYMENT_STATUS_CHANGED = "payment_status_changed"
CREDENTIAL_ISSUED = "credential_issued"
CHECKED_IN = "checked_in"
CHECKED_OUT = "checked_out"
DEPOSIT_RETURNED = "deposit_returned"


@dataclass(frozen=True)
class DomainEvent:
    booking_id: str
    event_type: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payload: dict = field(default_factory=dict)


class Notifier(ABC):
    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        pass


class LoggingNotifier(Notifier):
    """Default sink: writes each domain event to the structured log."""

    async def publish(self, event: DomainEvent) -> None:
        logger.info(
            "domain_event",
            booking_id=event.booking_id,
            event_type=event.event_type,
            timestamp=event.timestamp.isoformat(),
            **event.payload,
        )


class RecordingNotifier(Notifier):
    """Keeps every published event in memory."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types_for(self, booking_id: str) -> list[str]:
        return [e.event_type for e in self.events if e.booking_id == booking_id]


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = LoggingNotifier()
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    global _notifier
    _notifier = notifier


async def emit(booking_id: str, event_type: str, **payload) -> None:
    """
    Publish a domain event for a committed transition.
    The transition already happened, so a failing notifier is logged
    and counted rather than reported to the caller.
    """
    event = DomainEvent(booking_id=booking_id, event_type=event_type, payload=payload)
    try:
        await get_notifier().publish(event)
    except Exception as e:
        notification_failures.inc()
        logger.error("notification_dispatch_failed", booking_id=booking_id, event_type=event_type, error=str(e))
