from booking_engine.scheduling.availability import (
    compute_slots,
    find_available_dates,
    is_slot_available,
    summarize_dates,
    working_window,
)
from booking_engine.scheduling.reschedule import validate_move

__all__ = [
    "compute_slots",
    "is_slot_available",
    "summarize_dates",
    "find_available_dates",
    "working_window",
    "validate_move",
]
