"""
Slot availability for one barber, one service and one date.

Every function here is a pure computation over data the caller has
already fetched: bookings, holidays, lunch breaks and opening hours come
in, a list of slots goes out. Blocked candidates are returned with a
reason rather than dropped, so the booking screen can show disabled times
as well as free ones.

Usage:
    slots = compute_slots(barber, service, day, bookings, holidays, hours, clock.now())
    free = [s for s in slots if s.available]
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, time, timedelta
from typing import Optional

from booking_engine.schemas.booking_schema import (
    Barber,
    ExistingBooking,
    HolidayPeriod,
    LunchBreak,
    OpeningHours,
    Service,
    minutes_of,
)
from booking_engine.schemas.scheduling_schema import (
    BlockReason,
    BusinessHours,
    DateAvailability,
    TimeSlot,
)

logger = logging.getLogger(__name__)

Interval = tuple[int, int]


def is_holiday(barber_id: str, day: date, holidays: Iterable[HolidayPeriod]) -> bool:
    """Check whether ``day`` falls inside any of the barber's holiday ranges."""
    return any(h.barber_id == barber_id and h.contains(day) for h in holidays)


def working_window(
    barber_id: str,
    day: date,
    business_hours: BusinessHours,
    opening_hours: Iterable[OpeningHours] = (),
) -> Optional[Interval]:
    """
    Minutes the barber works on ``day``, or None when closed.

    The barber's own opening-hours row for the weekday wins. Without one
    the shop-wide business hours apply.
    """
    for row in opening_hours:
        if row.barber_id == barber_id and row.applies_to(day):
            if row.is_closed:
                return None
            return minutes_of(row.open_time), minutes_of(row.close_time)
    if business_hours.is_closed_on(day):
        return None
    return business_hours.opening_minutes, business_hours.closing_minutes


def occupied_intervals(
    barber_id: str,
    day: date,
    existing_bookings: Iterable[ExistingBooking],
    lunch_breaks: Iterable[LunchBreak] = (),
    exclude_booking_id: Optional[str] = None,
) -> list[Interval]:
    """Collect the minute ranges already taken on ``day`` for one barber."""
    intervals = [
        (b.start_minutes, b.end_minutes)
        for b in existing_bookings
        if b.barber_id == barber_id
        and b.booking_date == day
        and b.is_occupying
        and b.id != exclude_booking_id
    ]
    intervals.extend(
        (lb.start_minutes, lb.end_minutes)
        for lb in lunch_breaks
        if lb.barber_id == barber_id and lb.is_active
    )
    return sorted(intervals)


def overlaps(start: int, end: int, intervals: Iterable[Interval]) -> bool:
    """Half-open interval intersection: touching ends do not collide."""
    return any(start < other_end and end > other_start for other_start, other_end in intervals)


def block_reason(
    day: date,
    start: time,
    duration_minutes: int,
    intervals: Sequence[Interval],
    on_holiday: bool,
    window: Optional[Interval],
    now: datetime,
) -> Optional[BlockReason]:
    """
    Decide whether one candidate start can be booked.

    ``window`` is the working window from ``working_window``; None means the
    barber does not work that day. Checks run in a fixed order (holiday,
    past, outside-hours, overlap) and the first failing check is reported.
    """
    if on_holiday:
        return BlockReason.HOLIDAY

    if datetime.combine(day, start) <= now:
        return BlockReason.PAST

    start_min = minutes_of(start)
    end_min = start_min + duration_minutes
    if window is None or start_min < window[0] or end_min > window[1]:
        return BlockReason.OUTSIDE_HOURS

    if overlaps(start_min, end_min, intervals):
        return BlockReason.OVERLAP

    return None


def candidate_times(
    business_hours: BusinessHours, window: Optional[Interval] = None
) -> list[time]:
    """All start times from opening up to (not including) closing.

    The grid starts at ``window`` when given, else at the business hours.
    """
    opening, closing = window or (business_hours.opening_minutes, business_hours.closing_minutes)
    return [
        time(m // 60, m % 60)
        for m in range(opening, closing, business_hours.slot_interval_minutes)
    ]


def compute_slots(
    barber: Barber,
    service: Service,
    day: date,
    existing_bookings: Iterable[ExistingBooking],
    holidays: Iterable[HolidayPeriod],
    business_hours: BusinessHours,
    now: datetime,
    lunch_breaks: Iterable[LunchBreak] = (),
    opening_hours: Iterable[OpeningHours] = (),
) -> list[TimeSlot]:
    """
    Generate every candidate slot of ``day`` with its availability flag.

    Candidates follow the barber's working window for the weekday. On a
    day the barber does not work, the business-hours grid is returned
    with every slot blocked.

    Returns:
        Slots in chronological order. Nothing is dropped: blocked slots
        carry a ``reason``.
    """
    on_holiday = is_holiday(barber.id, day, holidays)
    intervals = occupied_intervals(barber.id, day, existing_bookings, lunch_breaks)
    window = working_window(barber.id, day, business_hours, opening_hours)

    slots = []
    for start in candidate_times(business_hours, window):
        reason = block_reason(
            day, start, service.duration_minutes, intervals, on_holiday, window, now
        )
        slots.append(TimeSlot(date=day, time=start, available=reason is None, reason=reason))

    logger.debug(
        "Computed %d slots for barber %s on %s (%d available)",
        len(slots), barber.id, day.isoformat(), sum(1 for s in slots if s.available),
    )
    return slots


def is_slot_available(
    barber: Barber,
    service: Service,
    day: date,
    start: time,
    existing_bookings: Iterable[ExistingBooking],
    holidays: Iterable[HolidayPeriod],
    business_hours: BusinessHours,
    now: datetime,
    lunch_breaks: Iterable[LunchBreak] = (),
    opening_hours: Iterable[OpeningHours] = (),
) -> Optional[BlockReason]:
    """Check a single chosen start against the generated slot set.

    Returns None when the slot is bookable, otherwise the block reason.
    A start that is not on the slot grid is reported as outside-hours.
    """
    for slot in compute_slots(
        barber, service, day, existing_bookings, holidays, business_hours, now,
        lunch_breaks, opening_hours,
    ):
        if slot.time == start:
            return slot.reason
    return BlockReason.OUTSIDE_HOURS


def summarize_dates(
    barber: Barber,
    service: Service,
    first_day: date,
    days: int,
    bookings_by_date: Mapping[date, Sequence[ExistingBooking]],
    holidays: Sequence[HolidayPeriod],
    business_hours: BusinessHours,
    now: datetime,
    lunch_breaks: Sequence[LunchBreak] = (),
    opening_hours: Sequence[OpeningHours] = (),
) -> list[DateAvailability]:
    """Count bookable slots on each of ``days`` consecutive dates.

    Fully blocked dates report the reason shared by all their slots, when
    there is one, so the date picker can explain why a date is disabled.
    """
    summary = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        slots = compute_slots(
            barber,
            service,
            day,
            bookings_by_date.get(day, ()),
            holidays,
            business_hours,
            now,
            lunch_breaks,
            opening_hours,
        )
        free = sum(1 for s in slots if s.available)
        reasons = {s.reason for s in slots}
        shared = reasons.pop() if free == 0 and len(reasons) == 1 else None
        summary.append(
            DateAvailability(
                date=day, day_name=day.strftime("%A"), slot_count=free, reason=shared
            )
        )
    return summary


def find_available_dates(
    barber: Barber,
    service: Service,
    first_day: date,
    days: int,
    bookings_by_date: Mapping[date, Sequence[ExistingBooking]],
    holidays: Sequence[HolidayPeriod],
    business_hours: BusinessHours,
    now: datetime,
    lunch_breaks: Sequence[LunchBreak] = (),
    limit: Optional[int] = None,
    opening_hours: Sequence[OpeningHours] = (),
) -> list[DateAvailability]:
    """Get the dates within the horizon that still have at least one free slot."""
    results = [
        d
        for d in summarize_dates(
            barber, service, first_day, days, bookings_by_date,
            holidays, business_hours, now, lunch_breaks, opening_hours,
        )
        if d.slot_count > 0
    ]
    return results[:limit] if limit is not None else results
