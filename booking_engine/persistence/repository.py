"""
Booking store interface and an in-memory implementation.

The in-memory store backs tests and local development. Like the Supabase
store it refuses to write a booking whose interval collides with another
occupying booking of the same barber, which closes the gap between the
availability read and the insert.
"""

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any, Optional, Protocol

from booking_engine.errors import ConflictError, PersistenceError
from booking_engine.scheduling.availability import occupied_intervals, overlaps
from booking_engine.schemas.booking_schema import (
    DEFAULT_BOOKING_DURATION,
    OCCUPYING_STATUSES,
    Barber,
    BookingRecord,
    ExistingBooking,
    HolidayPeriod,
    LunchBreak,
    OpeningHours,
    Service,
    minutes_of,
)
from booking_engine.utils import same_phone

logger = logging.getLogger(__name__)


class BookingRepository(Protocol):
    async def list_barbers(self, active_only: bool = True) -> list[Barber]: ...

    async def list_services(self, active_only: bool = True) -> list[Service]: ...

    async def list_barber_service_ids(self, barber_id: str) -> set[str]: ...

    async def list_bookings(self, barber_id: str, day: date) -> list[ExistingBooking]: ...

    async def list_holidays(self, barber_id: str) -> list[HolidayPeriod]: ...

    async def list_lunch_breaks(self, barber_id: str) -> list[LunchBreak]: ...

    async def list_opening_hours(self, barber_id: str) -> list[OpeningHours]: ...

    async def get_booking(self, booking_id: str) -> Optional[BookingRecord]: ...

    async def insert_booking(self, record: BookingRecord) -> BookingRecord: ...

    async def update_booking(self, booking_id: str, **changes: Any) -> BookingRecord: ...

    async def find_guest_bookings(self, phone: str, code: str) -> list[BookingRecord]: ...


class InMemoryBookingRepository:
    """Dictionary-backed store with the same contract as the remote one."""

    def __init__(
        self,
        barbers: Iterable[Barber] = (),
        services: Iterable[Service] = (),
        barber_services: Optional[Mapping[str, Iterable[str]]] = None,
        holidays: Iterable[HolidayPeriod] = (),
        lunch_breaks: Iterable[LunchBreak] = (),
        bookings: Iterable[BookingRecord] = (),
        opening_hours: Iterable[OpeningHours] = (),
        default_country_code: str = "+44",
    ) -> None:
        self._barbers = {b.id: b for b in barbers}
        self._services = {s.id: s for s in services}
        # None means every barber offers every service.
        self._barber_services = (
            {bid: set(sids) for bid, sids in barber_services.items()}
            if barber_services is not None
            else None
        )
        self._holidays = list(holidays)
        self._lunch_breaks = list(lunch_breaks)
        self._opening_hours = list(opening_hours)
        self.default_country_code = default_country_code
        self._bookings: dict[str, BookingRecord] = {}
        for record in bookings:
            stored = record.model_copy(update={"id": record.id or uuid.uuid4().hex})
            self._bookings[stored.id] = stored

    def _duration_of(self, service_id: Optional[str]) -> int:
        service = self._services.get(service_id) if service_id else None
        return service.duration_minutes if service else DEFAULT_BOOKING_DURATION

    def _to_existing(self, record: BookingRecord) -> ExistingBooking:
        return ExistingBooking(
            id=record.id,
            barber_id=record.barber_id,
            service_id=record.service_id,
            duration_minutes=self._duration_of(record.service_id),
            booking_date=record.booking_date,
            booking_time=record.booking_time,
            status=record.status,
        )

    def _check_free(self, record: BookingRecord, exclude_id: Optional[str] = None) -> None:
        if record.status not in OCCUPYING_STATUSES:
            return
        taken = occupied_intervals(
            record.barber_id,
            record.booking_date,
            (self._to_existing(r) for r in self._bookings.values()),
            exclude_booking_id=exclude_id,
        )
        start = minutes_of(record.booking_time)
        if overlaps(start, start + self._duration_of(record.service_id), taken):
            raise ConflictError(
                f"Barber {record.barber_id} already has a booking overlapping "
                f"{record.booking_date.isoformat()} {record.booking_time.strftime('%H:%M')}"
            )

    async def list_barbers(self, active_only: bool = True) -> list[Barber]:
        return [b for b in self._barbers.values() if b.active or not active_only]

    async def list_services(self, active_only: bool = True) -> list[Service]:
        return [s for s in self._services.values() if s.active or not active_only]

    async def list_barber_service_ids(self, barber_id: str) -> set[str]:
        if self._barber_services is None:
            return set(self._services)
        return set(self._barber_services.get(barber_id, ()))

    async def list_bookings(self, barber_id: str, day: date) -> list[ExistingBooking]:
        return [
            self._to_existing(r)
            for r in self._bookings.values()
            if r.barber_id == barber_id and r.booking_date == day
        ]

    async def list_holidays(self, barber_id: str) -> list[HolidayPeriod]:
        return [h for h in self._holidays if h.barber_id == barber_id]

    async def list_lunch_breaks(self, barber_id: str) -> list[LunchBreak]:
        return [lb for lb in self._lunch_breaks if lb.barber_id == barber_id]

    async def list_opening_hours(self, barber_id: str) -> list[OpeningHours]:
        return [oh for oh in self._opening_hours if oh.barber_id == barber_id]

    async def get_booking(self, booking_id: str) -> Optional[BookingRecord]:
        return self._bookings.get(booking_id)

    async def insert_booking(self, record: BookingRecord) -> BookingRecord:
        self._check_free(record)
        stored = record.model_copy(
            update={
                "id": uuid.uuid4().hex,
                "created_at": datetime.now(timezone.utc),
            }
        )
        self._bookings[stored.id] = stored
        logger.info(
            "Booking stored: %s for barber %s on %s at %s",
            stored.id, stored.barber_id, stored.booking_date, stored.booking_time,
        )
        return stored

    async def update_booking(self, booking_id: str, **changes: Any) -> BookingRecord:
        current = self._bookings.get(booking_id)
        if current is None:
            raise PersistenceError(f"Booking {booking_id} not found")
        updated = current.model_copy(update=changes)
        self._check_free(updated, exclude_id=booking_id)
        self._bookings[booking_id] = updated
        logger.info("Booking updated: %s (%s)", booking_id, ", ".join(sorted(changes)))
        return updated

    async def find_guest_bookings(self, phone: str, code: str) -> list[BookingRecord]:
        matches = [
            r
            for r in self._bookings.values()
            if r.guest_booking
            and r.confirmation_code == code
            and same_phone(r.guest_phone or "", phone, self.default_country_code)
        ]
        return sorted(matches, key=lambda r: (r.booking_date, r.booking_time))
