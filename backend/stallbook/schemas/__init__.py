from stallbook.schemas.booking import (
    AttendanceResponse,
    AvailabilityResponse,
    ExistingRequestResponse,
    PaymentStatusUpdate,
    ScanRequest,
    ScanResponse,
    StallCreate,
    StallResponse,
    StatusUpdate,
    TableSelectionRequest,
)

__all__ = [
    "StallCreate", "StallResponse", "ExistingRequestResponse",
    "TableSelectionRequest", "StatusUpdate", "PaymentStatusUpdate",
    "ScanRequest", "ScanResponse", "AttendanceResponse", "AvailabilityResponse",
]
