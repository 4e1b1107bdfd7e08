"""
Pydantic schemas for stall booking request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from stallbook.domain import AddOnSelection, BookingStatus, PaymentStatus, ScanAction, TableSelection


class StallCreate(BaseModel):
    vendor_id: str = Field(..., min_length=1, max_length=64)
    event_id: str = Field(..., min_length=1, max_length=64)
    organizer_id: str = Field(..., min_length=1, max_length=64)
    notes: Optional[str] = Field(None, max_length=2000)


class SelectedTableIn(BaseModel):
    table_id: str = Field(..., min_length=1)
    position_id: str = Field(..., min_length=1)
    table_name: str
    table_type: str
    layout_name: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    deposit_amount: Decimal = Field(..., ge=0)

    def to_domain(self) -> TableSelection:
        return TableSelection(
            table_id=self.table_id,
            position_id=self.position_id,
            table_name=self.table_name,
            table_type=self.table_type,
            layout_name=self.layout_name,
            price=self.price,
            deposit_amount=self.deposit_amount,
        )


class SelectedAddOnIn(BaseModel):
    add_on_id: str = Field(..., min_length=1)
    name: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)

    def to_domain(self) -> AddOnSelection:
        return AddOnSelection(add_on_id=self.add_on_id, name=self.name, price=self.price, quantity=self.quantity)


class TableSelectionRequest(BaseModel):
    selected_tables: list[SelectedTableIn] = Field(..., min_length=1)
    selected_add_ons: list[SelectedAddOnIn] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)


class StatusUpdate(BaseModel):
    status: BookingStatus
    cancellation_reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def partial_needs_amount(self):
        if self.payment_status == PaymentStatus.PARTIAL and self.paid_amount is None:
            raise ValueError("paid_amount is required for a Partial payment")
        return self


class ScanRequest(BaseModel):
    qr_code_data: str = Field(..., min_length=1, max_length=8192)


class SelectedTableOut(BaseModel):
    table_id: str
    position_id: str
    table_name: str
    table_type: str
    layout_name: Optional[str] = None
    price: Decimal
    deposit_amount: Decimal


class SelectedAddOnOut(BaseModel):
    add_on_id: str
    name: str
    price: Decimal
    quantity: int


class StallResponse(BaseModel):
    id: str
    vendor_id: str
    event_id: str
    organizer_id: str
    status: BookingStatus
    payment_status: PaymentStatus
    selected_tables: list[SelectedTableOut]
    selected_add_ons: list[SelectedAddOnOut]
    tables_total: Decimal
    deposit_total: Decimal
    add_ons_total: Decimal
    grand_total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    has_checked_in: bool
    has_checked_out: bool
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    has_scan_credential: bool
    request_date: datetime
    confirmation_date: Optional[datetime]
    selection_date: Optional[datetime]
    payment_date: Optional[datetime]
    completion_date: Optional[datetime]
    deposit_returned: bool
    deposit_returned_date: Optional[datetime]
    notes: Optional[str]
    cancellation_reason: Optional[str]

    @classmethod
    def from_booking(cls, booking) -> "StallResponse":
        return cls(
            id=booking.id,
            vendor_id=booking.vendor_id,
            event_id=booking.event_id,
            organizer_id=booking.organizer_id,
            status=booking.status,
            payment_status=booking.payment_status,
            selected_tables=[SelectedTableOut(**vars(t)) for t in booking.tables],
            selected_add_ons=[SelectedAddOnOut(**vars(a)) for a in booking.add_ons],
            tables_total=booking.tables_total,
            deposit_total=booking.deposit_total,
            add_ons_total=booking.add_ons_total,
            grand_total=booking.grand_total,
            paid_amount=booking.paid_amount,
            remaining_amount=booking.remaining_amount,
            has_checked_in=booking.has_checked_in,
            has_checked_out=booking.has_checked_out,
            check_in_time=booking.check_in_time,
            check_out_time=booking.check_out_time,
            has_scan_credential=booking.scan_credential is not None,
            request_date=booking.request_date,
            confirmation_date=booking.confirmation_date,
            selection_date=booking.selection_date,
            payment_date=booking.payment_date,
            completion_date=booking.completion_date,
            deposit_returned=booking.deposit_returned,
            deposit_returned_date=booking.deposit_returned_date,
            notes=booking.notes,
            cancellation_reason=booking.cancellation_reason,
        )


class ExistingRequestResponse(BaseModel):
    message: str
    status: Optional[BookingStatus] = None
    data: Optional[StallResponse] = None


class PositionOut(BaseModel):
    position_id: str
    table_id: str
    name: str
    table_type: str
    layout_name: Optional[str] = None
    price: Decimal
    deposit_amount: Decimal
    is_booked: bool


class AddOnItemOut(BaseModel):
    add_on_id: str
    name: str
    price: Decimal


class AvailabilityResponse(BaseModel):
    event_id: str
    all_tables: list[PositionOut]
    booked_tables: list[PositionOut]
    available_tables: list[PositionOut]
    add_on_items: list[AddOnItemOut]


class ScanResponse(BaseModel):
    message: str
    action: ScanAction
    stall_id: str
    vendor_id: str
    event_id: str
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    duration_minutes: Optional[int] = None
    selected_tables: list[SelectedTableOut]
    grand_total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal


class AttendanceResponse(BaseModel):
    booking_id: str
    vendor_id: str
    has_checked_in: bool
    has_checked_out: bool
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    duration_minutes: Optional[int] = None
