"""
Booking flow controller: one instance per customer booking.

Walks the customer through barber, service, date/time, guest details,
phone verification and notes, enforcing each step's requirements before
firing the matching state machine trigger. Every public call returns a
``FlowOutcome``; rejected attempts carry the error and leave the form
state untouched.

Usage:
    flow = BookingFlowController(repo, verification, orchestrator, clock, hours)
    await flow.select_barber("b1")
    await flow.select_service("s1")
    outcome = await flow.available_slots(date(2025, 3, 17))
"""

import asyncio
import functools
import uuid
from dataclasses import dataclass, replace
from datetime import date, time, timedelta
from typing import Any, Optional

from booking_engine.booking.orchestrator import GuestBookingOrchestrator
from booking_engine.clock import Clock
from booking_engine.errors import BookingEngineError, ConflictError, ValidationError
from booking_engine.flow.form_state import check_guest_info, snapshot
from booking_engine.flow.state_machine import (
    BookingStateMachine,
    BookingStep,
    FlowTrigger,
    InvalidTransitionError,
)
from booking_engine.logging_context import flow_context, get_flow_logger
from booking_engine.persistence.repository import BookingRepository
from booking_engine.scheduling.availability import (
    compute_slots,
    find_available_dates,
    is_slot_available,
)
from booking_engine.schemas.flow_schema import BookingFormState
from booking_engine.schemas.scheduling_schema import BlockReason, BusinessHours
from booking_engine.schemas.verification_schema import (
    VerificationOutcome,
    VerificationSession,
)
from booking_engine.utils import mask_phone, normalize_phone
from booking_engine.verification.service import PhoneVerificationService

logger = get_flow_logger(__name__)

BLOCK_MESSAGES = {
    BlockReason.PAST: "That time has already passed",
    BlockReason.HOLIDAY: "The barber is on holiday that day",
    BlockReason.OUTSIDE_HOURS: "That time is outside opening hours",
    BlockReason.OVERLAP: "That time is no longer available",
}


@dataclass
class FlowOutcome:
    """Result of one controller call."""
    ok: bool
    step: BookingStep
    error: Optional[BookingEngineError] = None
    data: Any = None


def _flow_operation(func):
    """Tag logs with the flow id and turn engine errors into failed outcomes."""

    @functools.wraps(func)
    async def wrapper(self: "BookingFlowController", *args, **kwargs) -> FlowOutcome:
        with flow_context(self.flow_id):
            try:
                return await func(self, *args, **kwargs)
            except InvalidTransitionError as exc:
                return self._fail(ValidationError(str(exc), field="step"))
            except BookingEngineError as exc:
                return self._fail(exc)

    return wrapper


async def _gather_reads(*reads):
    """Run repository reads together and raise the first failure once all have settled."""
    results = await asyncio.gather(*reads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class BookingFlowController:
    """
    Drives one booking through the wizard steps.

    Authenticated flows skip guest details and phone verification and book
    on behalf of ``user_id``.
    """

    def __init__(
        self,
        repository: BookingRepository,
        verification_service: PhoneVerificationService,
        orchestrator: GuestBookingOrchestrator,
        clock: Clock,
        business_hours: BusinessHours,
        authenticated: bool = False,
        user_id: Optional[str] = None,
        horizon_days: int = 14,
        flow_id: Optional[str] = None,
    ) -> None:
        if authenticated and not user_id:
            raise ValueError("user_id is required for an authenticated flow")
        self.repository = repository
        self.verification_service = verification_service
        self.orchestrator = orchestrator
        self.clock = clock
        self.business_hours = business_hours
        self.user_id = user_id
        self.horizon_days = horizon_days
        self.flow_id = flow_id or f"FLOW-{uuid.uuid4().hex[:8]}"
        self._sm = BookingStateMachine(authenticated=authenticated)
        self._state = BookingFormState()
        self._verification: Optional[VerificationSession] = None

    # --- Read-only views ---

    @property
    def current_step(self) -> BookingStep:
        return self._sm.current_step

    @property
    def authenticated(self) -> bool:
        return self._sm.authenticated

    @property
    def form_state(self) -> BookingFormState:
        return snapshot(self._state)

    @property
    def verification(self) -> Optional[VerificationSession]:
        return replace(self._verification) if self._verification else None

    def step_trace(self) -> list[str]:
        return self._sm.get_step_trace()

    # --- Helpers ---

    def _ok(self, data: Any = None) -> FlowOutcome:
        return FlowOutcome(ok=True, step=self.current_step, data=data)

    def _fail(self, error: BookingEngineError) -> FlowOutcome:
        logger.info(
            "Step %s rejected: %s", self.current_step.value, error,
        )
        return FlowOutcome(ok=False, step=self.current_step, error=error)

    def _require_step(self, *steps: BookingStep) -> None:
        if self.current_step not in steps:
            raise ValidationError(
                f"Not available at step '{self.current_step.value}'", field="step"
            )

    def _require_selection(self) -> None:
        if self._state.barber is None:
            raise ValidationError("Please select a barber", field="barber")
        if self._state.service is None:
            raise ValidationError("Please select a service", field="service")

    def _clear_slot(self) -> None:
        self._state.booking_date = None
        self._state.booking_time = None
        self._state.slot_confirmed = False

    async def _fetch_day(self, day: date):
        barber_id = self._state.barber_id
        return await _gather_reads(
            self.repository.list_bookings(barber_id, day),
            self.repository.list_holidays(barber_id),
            self.repository.list_lunch_breaks(barber_id),
            self.repository.list_opening_hours(barber_id),
        )

    async def _check_slot(self, day: date, start: time) -> None:
        """Re-check one slot against freshly fetched data."""
        bookings, holidays, lunch_breaks, opening_hours = await self._fetch_day(day)
        reason = is_slot_available(
            self._state.barber,
            self._state.service,
            day,
            start,
            bookings,
            holidays,
            self.business_hours,
            self.clock.now(),
            lunch_breaks,
            opening_hours,
        )
        if reason is None:
            return
        if reason == BlockReason.OVERLAP:
            raise ConflictError(BLOCK_MESSAGES[reason])
        raise ValidationError(BLOCK_MESSAGES[reason], field="booking_time")

    # --- Step: barber ---

    @_flow_operation
    async def list_barbers(self) -> FlowOutcome:
        return self._ok(await self.repository.list_barbers(active_only=True))

    @_flow_operation
    async def select_barber(self, barber_id: str) -> FlowOutcome:
        self._require_step(BookingStep.BARBER)
        barbers = {b.id: b for b in await self.repository.list_barbers(active_only=False)}
        barber = barbers.get(barber_id)
        if barber is None or not barber.active:
            raise ValidationError("Please select an available barber", field="barber")

        self._sm.transition(FlowTrigger.BARBER_SELECTED)
        if self._state.barber_id != barber.id:
            self._clear_slot()
        self._state.barber = barber
        logger.info("Barber selected: %s", barber.id)
        return self._ok(barber)

    # --- Step: service ---

    @_flow_operation
    async def list_services(self) -> FlowOutcome:
        """Active services offered by the selected barber."""
        if self._state.barber is None:
            raise ValidationError("Please select a barber", field="barber")
        offered = await self.repository.list_barber_service_ids(self._state.barber_id)
        services = await self.repository.list_services(active_only=True)
        return self._ok([s for s in services if s.id in offered])

    @_flow_operation
    async def select_service(self, service_id: str) -> FlowOutcome:
        self._require_step(BookingStep.SERVICE)
        services = {s.id: s for s in await self.repository.list_services(active_only=False)}
        service = services.get(service_id)
        if service is None or not service.active:
            raise ValidationError("Please select an available service", field="service")
        offered = await self.repository.list_barber_service_ids(self._state.barber_id)
        if service.id not in offered:
            raise ValidationError(
                f"{self._state.barber.name} does not offer {service.name}", field="service"
            )

        self._sm.transition(FlowTrigger.SERVICE_SELECTED)
        if self._state.service_id != service.id:
            self._clear_slot()
        self._state.service = service
        logger.info("Service selected: %s", service.id)
        return self._ok(service)

    # --- Step: datetime ---

    @_flow_operation
    async def available_slots(self, day: date) -> FlowOutcome:
        """Every candidate slot of ``day`` with its availability flag."""
        self._require_step(BookingStep.DATETIME)
        self._require_selection()
        bookings, holidays, lunch_breaks, opening_hours = await self._fetch_day(day)
        slots = compute_slots(
            self._state.barber,
            self._state.service,
            day,
            bookings,
            holidays,
            self.business_hours,
            self.clock.now(),
            lunch_breaks,
            opening_hours,
        )
        return self._ok(slots)

    @_flow_operation
    async def available_dates(self, first_day: Optional[date] = None) -> FlowOutcome:
        """Dates within the booking horizon that still have a free slot."""
        self._require_step(BookingStep.DATETIME)
        self._require_selection()
        barber_id = self._state.barber_id
        first_day = first_day or self.clock.now().date()
        days = [first_day + timedelta(days=i) for i in range(self.horizon_days)]
        holidays, lunch_breaks, opening_hours, *per_day = await _gather_reads(
            self.repository.list_holidays(barber_id),
            self.repository.list_lunch_breaks(barber_id),
            self.repository.list_opening_hours(barber_id),
            *(self.repository.list_bookings(barber_id, d) for d in days),
        )
        dates = find_available_dates(
            self._state.barber,
            self._state.service,
            first_day,
            self.horizon_days,
            dict(zip(days, per_day)),
            holidays,
            self.business_hours,
            self.clock.now(),
            lunch_breaks,
            opening_hours=opening_hours,
        )
        return self._ok(dates)

    @_flow_operation
    async def confirm_datetime(self, day: date, start: time) -> FlowOutcome:
        self._require_step(BookingStep.DATETIME)
        self._require_selection()
        await self._check_slot(day, start)

        self._sm.transition(FlowTrigger.SLOT_CONFIRMED)
        self._state.booking_date = day
        self._state.booking_time = start
        self._state.slot_confirmed = True
        logger.info("Slot confirmed: %s %s", day.isoformat(), start.strftime("%H:%M"))
        return self._ok()

    # --- Step: guest-info ---

    @_flow_operation
    async def submit_guest_info(self, name: str, phone: str, email: str = "") -> FlowOutcome:
        self._require_step(BookingStep.GUEST_INFO)
        check_guest_info(name, phone, email)

        self._sm.transition(FlowTrigger.GUEST_INFO_SUBMITTED)
        if normalize_phone(phone) != normalize_phone(self._state.guest_phone):
            self._state.phone_verified = False
            self._verification = None
        self._state.guest_name = name.strip()
        self._state.guest_phone = phone.strip()
        self._state.guest_email = (email or "").strip()
        logger.info("Guest details submitted for %s", mask_phone(phone))
        return self._ok()

    # --- Step: verify-phone ---

    @_flow_operation
    async def send_verification_code(self) -> FlowOutcome:
        """Dispatch a code to the guest phone.

        The outcome data is the ``SendCodeResult``; it carries a mock code
        only in deployments that allow mock codes.
        """
        self._require_step(BookingStep.VERIFY_PHONE)
        result = await self.verification_service.send_code(self._state.guest_phone)
        self._verification = VerificationSession(
            phone=self._state.guest_phone, dispatched=result.dispatched
        )
        return self._ok(result)

    @_flow_operation
    async def verify_phone(self, code: str) -> FlowOutcome:
        self._require_step(BookingStep.VERIFY_PHONE)
        if self._state.phone_verified:
            self._sm.transition(FlowTrigger.PHONE_VERIFIED)
            return self._ok(VerificationOutcome.VERIFIED)
        if self._verification is None or not self._verification.dispatched:
            raise ValidationError("Please request a verification code first", field="code")

        outcome = await self.verification_service.check_code(self._state.guest_phone, code)
        self._verification.attempts += 1
        self._verification.outcome = outcome
        if outcome == VerificationOutcome.REJECTED:
            raise ValidationError("The verification code is incorrect", field="code")

        self._sm.transition(FlowTrigger.PHONE_VERIFIED)
        self._state.phone_verified = True
        return self._ok(outcome)

    # --- Step: notes ---

    @_flow_operation
    async def submit_notes(self, notes: str) -> FlowOutcome:
        self._require_step(BookingStep.NOTES)
        self._state.notes = (notes or "").strip()
        return self._ok()

    @_flow_operation
    async def confirm(self, notes: Optional[str] = None) -> FlowOutcome:
        """
        Re-check the slot and create the booking.

        On success the flow reaches ``confirmation`` and the outcome data is
        a ``GuestBookingResult`` (guest) or ``BookingRecord`` (member). If the
        slot was taken in the meantime the flow returns to ``datetime``.
        """
        self._require_step(BookingStep.NOTES)
        self._require_selection()
        if not self._state.slot_confirmed:
            raise ValidationError("Please select a date and time", field="booking_time")

        pending = replace(self._state)
        if notes is not None:
            pending.notes = notes.strip()

        try:
            await self._check_slot(pending.booking_date, pending.booking_time)
            if self.authenticated:
                result = await self.orchestrator.create_member_booking(pending, self.user_id)
            else:
                result = await self.orchestrator.create_guest_booking(pending)
        except ConflictError:
            self._sm.transition(FlowTrigger.SLOT_CONFLICT)
            self._state.slot_confirmed = False
            logger.info("Slot taken before confirmation, back to date selection")
            raise

        self._sm.transition(FlowTrigger.BOOKING_CREATED)
        self._state = pending
        logger.info("Booking flow completed")
        return self._ok(result)

    # --- Navigation ---

    @_flow_operation
    async def back(self) -> FlowOutcome:
        """Step back one step, keeping entered data."""
        self._sm.transition(FlowTrigger.BACK)
        if self.current_step == BookingStep.DATETIME:
            self._state.slot_confirmed = False
        return self._ok()

    @_flow_operation
    async def go_to(self, step: BookingStep) -> FlowOutcome:
        """Jump back to an earlier step of this flow."""
        if self._sm.is_terminal():
            raise ValidationError("The booking is already complete", field="step")
        steps = self._sm.steps()
        if step not in steps or steps.index(step) >= steps.index(self.current_step):
            raise ValidationError(f"Cannot go to step '{step.value}'", field="step")
        while self.current_step != step:
            self._sm.transition(FlowTrigger.BACK)
        if step == BookingStep.DATETIME:
            self._state.slot_confirmed = False
        return self._ok()
