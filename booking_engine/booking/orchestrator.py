"""
Booking creation and guest booking management.

A guest booking is persisted first and only then announced by SMS. The
message is best effort: its outcome is reported next to the stored
booking and never undoes it.

Usage:
    orchestrator = GuestBookingOrchestrator(repository, sms_gateway, clock, hours)
    result = await orchestrator.create_guest_booking(form_state)
    result.confirmation_code, result.notification.success
"""

import asyncio
import logging
import secrets
from datetime import date, time
from typing import Optional

from booking_engine.clock import Clock
from booking_engine.errors import ConflictError, ValidationError
from booking_engine.gateways.sms_gateway import SmsGateway
from booking_engine.persistence.repository import BookingRepository
from booking_engine.scheduling.reschedule import validate_move
from booking_engine.schemas.booking_schema import (
    DEFAULT_BOOKING_DURATION,
    IMMOVABLE_STATUSES,
    BookingRecord,
    BookingStatus,
    ExistingBooking,
    GuestBookingResult,
    NotificationOutcome,
)
from booking_engine.schemas.flow_schema import BookingFormState
from booking_engine.schemas.scheduling_schema import BlockReason, BusinessHours
from booking_engine.utils import is_valid_phone, mask_phone

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_SPAN = 900000


def generate_confirmation_code() -> str:
    """Uniform 6-digit code in [100000, 999999]. Uniqueness is not guaranteed."""
    return str(CODE_MIN + secrets.randbelow(CODE_SPAN))


def _require_slot(form_state: BookingFormState) -> None:
    if form_state.barber is None:
        raise ValidationError("Please select a barber", field="barber")
    if form_state.service is None:
        raise ValidationError("Please select a service", field="service")
    if form_state.booking_date is None or form_state.booking_time is None:
        raise ValidationError("Please select a date and time", field="booking_time")


def _optional(value: str) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class GuestBookingOrchestrator:
    """Creates, looks up, cancels and moves bookings."""

    def __init__(
        self,
        repository: BookingRepository,
        sms_gateway: SmsGateway,
        clock: Clock,
        business_hours: BusinessHours,
        notification_timeout: float = 15.0,
    ) -> None:
        self.repository = repository
        self.sms_gateway = sms_gateway
        self.clock = clock
        self.business_hours = business_hours
        self.notification_timeout = notification_timeout

    async def create_guest_booking(self, form_state: BookingFormState) -> GuestBookingResult:
        """
        Persist a guest booking, then send its confirmation SMS.

        Raises:
            ValidationError: If the form state is incomplete or the phone is unverified.
            ConflictError: If the store rejects the slot as taken.
            PersistenceError: If the store write fails. No SMS is attempted.
        """
        _require_slot(form_state)
        if not form_state.guest_name.strip():
            raise ValidationError("Please enter your name", field="guest_name")
        if not is_valid_phone(form_state.guest_phone):
            raise ValidationError("Please enter a valid phone number", field="guest_phone")
        if not form_state.phone_verified:
            raise ValidationError("Phone number has not been verified", field="guest_phone")

        code = generate_confirmation_code()
        record = BookingRecord(
            barber_id=form_state.barber.id,
            service_id=form_state.service.id,
            booking_date=form_state.booking_date,
            booking_time=form_state.booking_time,
            status=BookingStatus.CONFIRMED,
            guest_booking=True,
            guest_name=form_state.guest_name.strip(),
            guest_phone=form_state.guest_phone.strip(),
            guest_email=_optional(form_state.guest_email),
            notes=_optional(form_state.notes),
            confirmation_code=code,
        )
        stored = await self.repository.insert_booking(record)
        logger.info(
            "Guest booking %s created for %s on %s at %s",
            stored.id, mask_phone(stored.guest_phone or ""),
            stored.booking_date.isoformat(), stored.booking_time.strftime("%H:%M"),
        )

        notification = await self._notify(stored, code)
        return GuestBookingResult(
            booking=stored, confirmation_code=code, notification=notification
        )

    async def create_member_booking(
        self, form_state: BookingFormState, user_id: str
    ) -> BookingRecord:
        """Persist a booking for a signed-in customer. No code and no SMS."""
        _require_slot(form_state)
        if not user_id:
            raise ValidationError("A signed-in user is required", field="user_id")

        record = BookingRecord(
            barber_id=form_state.barber.id,
            service_id=form_state.service.id,
            booking_date=form_state.booking_date,
            booking_time=form_state.booking_time,
            status=BookingStatus.CONFIRMED,
            notes=_optional(form_state.notes),
            user_id=user_id,
        )
        stored = await self.repository.insert_booking(record)
        logger.info("Member booking %s created for user %s", stored.id, user_id)
        return stored

    async def _notify(self, booking: BookingRecord, code: str) -> NotificationOutcome:
        try:
            outcome = await asyncio.wait_for(
                self.sms_gateway.send_booking_sms(
                    booking.guest_phone or "",
                    booking.guest_name or "",
                    code,
                    booking.id or "",
                    booking.booking_date,
                    booking.booking_time,
                ),
                timeout=self.notification_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Confirmation SMS for booking %s timed out after %.1fs",
                booking.id, self.notification_timeout,
            )
            return NotificationOutcome(success=False, message="SMS gateway timed out")
        except Exception as exc:
            logger.exception("Confirmation SMS for booking %s failed", booking.id)
            return NotificationOutcome(success=False, message=f"Failed to send SMS: {exc}")

        if not outcome.success:
            logger.warning(
                "Booking %s stored but confirmation SMS failed: %s", booking.id, outcome.message
            )
        return outcome

    async def find_guest_bookings(self, phone: str, code: str) -> list[BookingRecord]:
        """Look up guest bookings by phone and confirmation code together."""
        if not is_valid_phone(phone):
            raise ValidationError("Please enter a valid phone number", field="guest_phone")
        code = (code or "").strip()
        if not (code.isdigit() and len(code) == 6):
            raise ValidationError("Confirmation codes have 6 digits", field="confirmation_code")
        return await self.repository.find_guest_bookings(phone, code)

    async def _get(self, booking_id: str) -> BookingRecord:
        record = await self.repository.get_booking(booking_id)
        if record is None:
            raise ValidationError(f"Booking {booking_id} not found", field="booking_id")
        return record

    async def cancel_guest_booking(self, booking_id: str) -> BookingRecord:
        """Mark a booking cancelled. Cancelling twice is a no-op."""
        record = await self._get(booking_id)
        if record.status == BookingStatus.CANCELLED:
            return record
        if record.status != BookingStatus.CONFIRMED:
            raise ValidationError(
                f"A {record.status.value} booking cannot be cancelled", field="status"
            )
        updated = await self.repository.update_booking(
            booking_id, status=BookingStatus.CANCELLED
        )
        logger.info("Booking cancelled: %s", booking_id)
        return updated

    async def reschedule_booking(
        self, booking_id: str, new_date: date, new_time: time
    ) -> BookingRecord:
        """
        Move a booking after checking the new slot against fresh data.

        Raises:
            ValidationError: If the entry cannot be moved or the slot is
                past, on holiday or outside the barber's working hours.
            ConflictError: If the new slot overlaps another booking.
        """
        record = await self._get(booking_id)
        if record.status in IMMOVABLE_STATUSES:
            raise ValidationError(
                "Lunch breaks and holidays cannot be moved", field="status"
            )
        if record.status != BookingStatus.CONFIRMED:
            raise ValidationError(
                f"A {record.status.value} booking cannot be moved", field="status"
            )

        services = {s.id: s for s in await self.repository.list_services(active_only=False)}
        service = services.get(record.service_id)
        moving = ExistingBooking(
            id=record.id,
            barber_id=record.barber_id,
            service_id=record.service_id,
            duration_minutes=service.duration_minutes if service else DEFAULT_BOOKING_DURATION,
            booking_date=record.booking_date,
            booking_time=record.booking_time,
            status=record.status,
        )
        decision = validate_move(
            moving,
            new_date,
            new_time,
            await self.repository.list_bookings(record.barber_id, new_date),
            await self.repository.list_holidays(record.barber_id),
            self.business_hours,
            self.clock.now(),
            await self.repository.list_lunch_breaks(record.barber_id),
            await self.repository.list_opening_hours(record.barber_id),
        )
        if not decision.accepted:
            if decision.reason == BlockReason.OVERLAP:
                raise ConflictError("The new time overlaps another booking")
            raise ValidationError(
                f"Cannot move booking: {decision.reason.value}", field="booking_time"
            )

        updated = await self.repository.update_booking(
            booking_id, booking_date=new_date, booking_time=new_time
        )
        logger.info(
            "Booking rescheduled: %s to %s %s",
            booking_id, new_date.isoformat(), new_time.strftime("%H:%M"),
        )
        return updated
