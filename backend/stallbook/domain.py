"""
Closed enums and value objects shared by the booking engine.

Statuses are enums, never free-form strings, so every transition site
handles them exhaustively.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_positions(self) -> bool:
        return self in POSITION_HOLDING_STATUSES


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.PROCESSING})
# A position is reserved once a vendor has selected it, not when a stall is merely requested
POSITION_HOLDING_STATUSES = frozenset({BookingStatus.PROCESSING, BookingStatus.COMPLETED})


class PaymentStatus(str, enum.Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class ScanKind(str, enum.Enum):
    """Marker declared inside a scanned payload. Informational only."""

    CHECK_IN = "stall-checkin"
    CHECK_OUT = "stall-checkout"


class ScanAction(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TableSelection:
    table_id: str
    position_id: str
    table_name: str
    table_type: str
    price: Decimal
    deposit_amount: Decimal
    layout_name: Optional[str] = None

    def to_json(self) -> dict:
        return {
            "tableId": self.table_id,
            "positionId": self.position_id,
            "tableName": self.table_name,
            "tableType": self.table_type,
            "layoutName": self.layout_name,
            "price": str(self.price),
            "depositAmount": str(self.deposit_amount),
        }

    @classmethod
    def from_json(cls, data: dict) -> "TableSelection":
        return cls(
            table_id=data["tableId"],
            position_id=data["positionId"],
            table_name=data["tableName"],
            table_type=data["tableType"],
            layout_name=data.get("layoutName"),
            price=to_decimal(data["price"]),
            deposit_amount=to_decimal(data["depositAmount"]),
        )


@dataclass(frozen=True)
class AddOnSelection:
    add_on_id: str
    name: str
    price: Decimal
    quantity: int = 1

    def to_json(self) -> dict:
        return {
            "addOnId": self.add_on_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_json(cls, data: dict) -> "AddOnSelection":
        return cls(
            add_on_id=data["addOnId"],
            name=data["name"],
            price=to_decimal(data["price"]),
            quantity=int(data.get("quantity", 1)),
        )


@dataclass(frozen=True)
class PricingBreakdown:
    tables_total: Decimal
    deposit_total: Decimal
    add_ons_total: Decimal
    grand_total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal

    def as_columns(self) -> dict:
        """Column values for the booking's derived monetary fields."""
        return {
            "tables_total": self.tables_total,
            "deposit_total": self.deposit_total,
            "add_ons_total": self.add_ons_total,
            "grand_total": self.grand_total,
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
        }


@dataclass(frozen=True)
class VenuePosition:
    """A table position in an event's venue layout. Read-only input."""

    position_id: str
    table_id: str
    name: str
    table_type: str
    price: Decimal
    deposit_amount: Decimal
    layout_name: Optional[str] = None


@dataclass(frozen=True)
class AddOnItem:
    add_on_id: str
    name: str
    price: Decimal


@dataclass(frozen=True)
class EventProjection:
    event_id: str
    title: str
    organizer_id: Optional[str] = None
    location: Optional[str] = None
    venue_tables: tuple = ()
    add_on_items: tuple = ()

    def position(self, position_id: str) -> Optional[VenuePosition]:
        for table in self.venue_tables:
            if table.position_id == position_id:
                return table
        return None


@dataclass(frozen=True)
class VendorProjection:
    vendor_id: str
    name: str
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None
    business_name: Optional[str] = None


@dataclass(frozen=True)
class ScanPayload:
    """Ephemeral parsed form of a scanned QR payload. Never persisted."""

    kind: ScanKind
    booking_id: str
    vendor_id: str
    event_id: str
    issued_at: datetime
    credential: str


@dataclass(frozen=True)
class PositionAvailability:
    position: VenuePosition
    is_booked: bool


@dataclass
class Availability:
    all: list = field(default_factory=list)
    booked: list = field(default_factory=list)
    available: list = field(default_factory=list)
    add_on_items: list = field(default_factory=list)
