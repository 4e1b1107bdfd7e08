from stallbook.models.booking import StallBooking
from stallbook.models.selection_guard import SelectionGuard

__all__ = ["StallBooking", "SelectionGuard"]
