"""Validation of a proposed move of an existing booking to a new date and time."""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time

from booking_engine.scheduling.availability import (
    block_reason,
    is_holiday,
    occupied_intervals,
    working_window,
)
from booking_engine.schemas.booking_schema import (
    ExistingBooking,
    HolidayPeriod,
    LunchBreak,
    OpeningHours,
)
from booking_engine.schemas.scheduling_schema import BusinessHours, MoveDecision

logger = logging.getLogger(__name__)


def validate_move(
    booking: ExistingBooking,
    new_date: date,
    new_time: time,
    existing_bookings: Iterable[ExistingBooking],
    holidays: Iterable[HolidayPeriod],
    business_hours: BusinessHours,
    now: datetime,
    lunch_breaks: Iterable[LunchBreak] = (),
    opening_hours: Iterable[OpeningHours] = (),
) -> MoveDecision:
    """
    Apply the availability rules to one proposed slot.

    The booking being moved is always left out of the overlap check, so a
    booking may be dropped back onto (or partly over) its own prior slot.
    Unlike generated slots, the new start does not have to sit on the slot
    grid: calendar drops snap to quarter hours.
    """
    intervals = occupied_intervals(
        booking.barber_id,
        new_date,
        existing_bookings,
        lunch_breaks,
        exclude_booking_id=booking.id,
    )
    reason = block_reason(
        new_date,
        new_time,
        booking.duration_minutes,
        intervals,
        is_holiday(booking.barber_id, new_date, holidays),
        working_window(booking.barber_id, new_date, business_hours, opening_hours),
        now,
    )
    if reason is not None:
        logger.debug(
            "Move of booking %s to %s %s rejected: %s",
            booking.id, new_date.isoformat(), new_time.strftime("%H:%M"), reason.value,
        )
        return MoveDecision.reject(reason)
    return MoveDecision.accept()
