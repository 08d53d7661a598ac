"""Per-flow form state threaded through the booking steps."""

from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from booking_engine.schemas.booking_schema import Barber, Service


@dataclass
class BookingFormState:
    """
    Accumulated selections of one booking flow.

    Owned by exactly one controller and discarded when the flow ends.
    The rendering layer only ever receives copies.
    """
    barber: Optional[Barber] = None
    service: Optional[Service] = None
    booking_date: Optional[date] = None
    booking_time: Optional[time] = None
    slot_confirmed: bool = False
    guest_name: str = ""
    guest_phone: str = ""
    guest_email: str = ""
    notes: str = ""
    phone_verified: bool = False

    @property
    def barber_id(self) -> Optional[str]:
        return self.barber.id if self.barber else None

    @property
    def service_id(self) -> Optional[str]:
        return self.service.id if self.service else None
