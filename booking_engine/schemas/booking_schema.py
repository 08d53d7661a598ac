"""Barber, service, booking and notification data models."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    LUNCH_BREAK = "lunch-break"
    HOLIDAY = "holiday"
    ERROR = "error"


OCCUPYING_STATUSES = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.LUNCH_BREAK, BookingStatus.HOLIDAY}
)

# Calendar entries that represent staff time rather than customer appointments.
IMMOVABLE_STATUSES = frozenset({BookingStatus.LUNCH_BREAK, BookingStatus.HOLIDAY})

DEFAULT_BOOKING_DURATION = 60


def minutes_of(value: time) -> int:
    """Minutes since midnight for a time of day."""
    return value.hour * 60 + value.minute


class Barber(BaseModel):
    """A member of staff who can be booked."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    active: bool = True


class Service(BaseModel):
    """A bookable service. Duration is the only scheduling-relevant attribute."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    duration_minutes: int = Field(gt=0)
    active: bool = True
    price: Optional[float] = None


class HolidayPeriod(BaseModel):
    """Inclusive date range during which a barber takes no bookings."""
    model_config = ConfigDict(frozen=True)

    barber_id: str
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_order(self) -> "HolidayPeriod":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class LunchBreak(BaseModel):
    """A recurring daily break for one barber."""
    model_config = ConfigDict(frozen=True)

    barber_id: str
    start_time: time
    duration_minutes: int = Field(default=60, gt=0)
    is_active: bool = True

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes


class OpeningHours(BaseModel):
    """A barber's working window on one weekday.

    ``day_of_week`` counts from Sunday (0) to Saturday (6), the way the
    opening_hours table stores it.
    """
    model_config = ConfigDict(frozen=True)

    barber_id: str
    day_of_week: int = Field(ge=0, le=6)
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    is_closed: bool = False

    @model_validator(mode="after")
    def _check_window(self) -> "OpeningHours":
        if self.is_closed:
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("open_time and close_time are required on an open day")
        if self.close_time <= self.open_time:
            raise ValueError("close_time must be after open_time")
        return self

    def applies_to(self, day: date) -> bool:
        return self.day_of_week == day.isoweekday() % 7


class ExistingBooking(BaseModel):
    """A stored calendar entry as seen by the scheduling functions."""
    model_config = ConfigDict(frozen=True)

    id: str
    barber_id: str
    service_id: Optional[str] = None
    duration_minutes: int = Field(default=DEFAULT_BOOKING_DURATION, gt=0)
    booking_date: date
    booking_time: time
    status: BookingStatus = BookingStatus.CONFIRMED

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.booking_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes


class BookingRecord(BaseModel):
    """A booking row as written to and returned by the booking store."""

    id: Optional[str] = None
    barber_id: str
    service_id: str
    booking_date: date
    booking_time: time
    status: BookingStatus = BookingStatus.CONFIRMED
    guest_booking: bool = False
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    notes: Optional[str] = None
    confirmation_code: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class NotificationOutcome(BaseModel):
    """Result of a best-effort confirmation message."""

    success: bool
    message: str = ""
    provider_configured: bool = True


class GuestBookingResult(BaseModel):
    """Everything the caller needs after a guest booking was stored."""

    booking: BookingRecord
    confirmation_code: str
    notification: NotificationOutcome
