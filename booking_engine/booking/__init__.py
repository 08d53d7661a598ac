from booking_engine.booking.orchestrator import (
    GuestBookingOrchestrator,
    generate_confirmation_code,
)

__all__ = ["GuestBookingOrchestrator", "generate_confirmation_code"]
