"""End-to-end tests for the booking flow controller."""

import asyncio
from datetime import date, time

import pytest
import respx

from booking_engine.booking.orchestrator import GuestBookingOrchestrator
from booking_engine.config import SupabaseConfig
from booking_engine.errors import ConflictError, ExternalServiceError, PersistenceError, ValidationError
from booking_engine.flow.controller import BookingFlowController
from booking_engine.flow.state_machine import BookingStep
from booking_engine.persistence.repository import InMemoryBookingRepository
from booking_engine.persistence.supabase_repository import SupabaseBookingRepository
from booking_engine.schemas.booking_schema import BookingRecord, OpeningHours
from booking_engine.schemas.verification_schema import VerificationOutcome
from booking_engine.verification.service import PhoneVerificationService
from tests.conftest import (
    BARBER,
    BEARD_TRIM,
    BOOKING_DAY,
    GUEST_PHONE,
    HAIRCUT,
    ISSUED_CODE,
    make_record,
)

REST = "https://demo.supabase.co/rest/v1"


async def _to_datetime(flow, barber_id="b1", service_id="s1"):
    assert (await flow.select_barber(barber_id)).ok
    assert (await flow.select_service(service_id)).ok


async def _to_verify(flow, start=time(10, 0)):
    await _to_datetime(flow)
    assert (await flow.confirm_datetime(BOOKING_DAY, start)).ok
    assert (await flow.submit_guest_info("Sam Carter", GUEST_PHONE)).ok


async def _to_notes(flow, start=time(10, 0)):
    await _to_verify(flow, start)
    assert (await flow.send_verification_code()).ok
    assert (await flow.verify_phone(ISSUED_CODE)).ok


class FailingGateway:
    async def invoke(self, action, phone, code=None):
        raise ExternalServiceError("Verification gateway unreachable")


class TestBarberAndService:
    @pytest.mark.asyncio
    async def test_select_barber_advances(self, guest_flow):
        outcome = await guest_flow.select_barber("b1")
        assert outcome.ok
        assert outcome.step == BookingStep.SERVICE
        assert guest_flow.form_state.barber_id == "b1"

    @pytest.mark.asyncio
    async def test_inactive_barber_rejected(self, guest_flow):
        outcome = await guest_flow.select_barber("b3")
        assert not outcome.ok
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.field == "barber"
        assert guest_flow.current_step == BookingStep.BARBER
        assert guest_flow.form_state.barber is None

    @pytest.mark.asyncio
    async def test_service_not_offered_rejected(self, guest_flow):
        await guest_flow.select_barber("b1")
        outcome = await guest_flow.select_service("s3")
        assert not outcome.ok
        assert outcome.error.field == "service"
        assert guest_flow.current_step == BookingStep.SERVICE

    @pytest.mark.asyncio
    async def test_inactive_service_rejected(self, guest_flow):
        await guest_flow.select_barber("b1")
        outcome = await guest_flow.select_service("s4")
        assert not outcome.ok

    @pytest.mark.asyncio
    async def test_list_services_for_barber(self, guest_flow):
        await guest_flow.select_barber("b1")
        outcome = await guest_flow.list_services()
        assert {s.id for s in outcome.data} == {"s1", "s2"}

    @pytest.mark.asyncio
    async def test_out_of_order_call_rejected(self, guest_flow):
        outcome = await guest_flow.select_service("s1")
        assert not outcome.ok
        assert outcome.error.field == "step"


class TestDatetimeStep:
    @pytest.mark.asyncio
    async def test_available_slots(self, guest_flow, repository):
        await repository.insert_booking(make_record("10:00"))
        await _to_datetime(guest_flow)
        outcome = await guest_flow.available_slots(BOOKING_DAY)
        slots = {s.label: s for s in outcome.data}
        assert slots["10:00"].available is False
        assert slots["10:30"].available is True

    @pytest.mark.asyncio
    async def test_available_dates_skip_holiday(self, guest_flow):
        await _to_datetime(guest_flow)
        outcome = await guest_flow.available_dates(date(2024, 6, 9))
        dates = [d.date for d in outcome.data]
        assert date(2024, 6, 9) in dates
        assert date(2024, 6, 10) not in dates
        assert date(2024, 6, 13) in dates

    @pytest.mark.asyncio
    async def test_confirm_free_slot(self, guest_flow):
        await _to_datetime(guest_flow)
        outcome = await guest_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        assert outcome.ok
        assert outcome.step == BookingStep.GUEST_INFO
        state = guest_flow.form_state
        assert state.slot_confirmed is True
        assert state.booking_time == time(10, 0)

    @pytest.mark.asyncio
    async def test_confirm_rechecks_fresh_bookings(self, guest_flow, repository):
        await _to_datetime(guest_flow)
        await repository.insert_booking(make_record("10:00"))
        outcome = await guest_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        assert not outcome.ok
        assert isinstance(outcome.error, ConflictError)
        assert guest_flow.current_step == BookingStep.DATETIME
        assert guest_flow.form_state.slot_confirmed is False

    @pytest.mark.asyncio
    async def test_confirm_holiday_rejected(self, guest_flow):
        await _to_datetime(guest_flow)
        outcome = await guest_flow.confirm_datetime(date(2024, 6, 10), time(10, 0))
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.field == "booking_time"

    @pytest.mark.asyncio
    async def test_confirm_past_rejected(self, guest_flow, clock):
        await _to_datetime(guest_flow)
        clock.set(clock.now().replace(day=3, hour=14, minute=5))
        outcome = await guest_flow.confirm_datetime(BOOKING_DAY, time(14, 0))
        assert not outcome.ok


class TestGuestInfoStep:
    @pytest.mark.asyncio
    async def test_missing_name_rejected(self, guest_flow):
        await _to_datetime(guest_flow)
        await guest_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        outcome = await guest_flow.submit_guest_info("  ", GUEST_PHONE)
        assert outcome.error.field == "guest_name"
        assert guest_flow.current_step == BookingStep.GUEST_INFO

    @pytest.mark.asyncio
    async def test_bad_phone_rejected(self, guest_flow):
        await _to_datetime(guest_flow)
        await guest_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        outcome = await guest_flow.submit_guest_info("Sam", "12345")
        assert outcome.error.field == "guest_phone"

    @pytest.mark.asyncio
    async def test_bad_email_rejected(self, guest_flow):
        await _to_datetime(guest_flow)
        await guest_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        outcome = await guest_flow.submit_guest_info("Sam", GUEST_PHONE, "not-an-email")
        assert outcome.error.field == "guest_email"


class TestVerifyPhoneStep:
    @pytest.mark.asyncio
    async def test_send_returns_mock_code(self, guest_flow):
        await _to_verify(guest_flow)
        outcome = await guest_flow.send_verification_code()
        assert outcome.ok
        assert outcome.data.mock_code == ISSUED_CODE
        assert guest_flow.verification.dispatched is True

    @pytest.mark.asyncio
    async def test_wrong_code_blocks_advance(self, guest_flow):
        await _to_verify(guest_flow)
        await guest_flow.send_verification_code()
        outcome = await guest_flow.verify_phone("000000")
        assert not outcome.ok
        assert outcome.error.field == "code"
        assert guest_flow.current_step == BookingStep.VERIFY_PHONE
        assert guest_flow.form_state.phone_verified is False
        assert guest_flow.verification.outcome == VerificationOutcome.REJECTED
        assert guest_flow.verification.attempts == 1

    @pytest.mark.asyncio
    async def test_correct_code_advances(self, guest_flow):
        await _to_notes(guest_flow)
        assert guest_flow.current_step == BookingStep.NOTES
        assert guest_flow.form_state.phone_verified is True

    @pytest.mark.asyncio
    async def test_verify_before_send_rejected(self, guest_flow):
        await _to_verify(guest_flow)
        outcome = await guest_flow.verify_phone(ISSUED_CODE)
        assert not outcome.ok

    @pytest.mark.asyncio
    async def test_gateway_failure_reported(
        self, repository, orchestrator, clock, business_hours
    ):
        flow = BookingFlowController(
            repository, PhoneVerificationService(FailingGateway()), orchestrator,
            clock, business_hours,
        )
        await _to_verify(flow)
        outcome = await flow.send_verification_code()
        assert isinstance(outcome.error, ExternalServiceError)
        assert flow.current_step == BookingStep.VERIFY_PHONE

    @pytest.mark.asyncio
    async def test_changing_phone_clears_verification(self, guest_flow):
        await _to_notes(guest_flow)
        await guest_flow.go_to(BookingStep.GUEST_INFO)
        await guest_flow.submit_guest_info("Sam Carter", "07700 900999")
        assert guest_flow.form_state.phone_verified is False
        assert guest_flow.verification is None

    @pytest.mark.asyncio
    async def test_same_phone_keeps_verification(self, guest_flow):
        await _to_notes(guest_flow)
        await guest_flow.go_to(BookingStep.GUEST_INFO)
        await guest_flow.submit_guest_info("Sam Carter", "07700-900-123")
        assert guest_flow.form_state.phone_verified is True


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_guest_happy_path(self, guest_flow, repository, sms_gateway):
        await _to_notes(guest_flow)
        outcome = await guest_flow.confirm("Fade please")

        assert outcome.ok
        assert outcome.step == BookingStep.CONFIRMATION
        result = outcome.data
        assert len(result.confirmation_code) == 6
        assert result.notification.success is True
        assert result.booking.notes == "Fade please"
        assert await repository.get_booking(result.booking.id) is not None
        assert guest_flow.step_trace() == [
            "barber", "service", "datetime", "guest-info",
            "verify-phone", "notes", "confirmation",
        ]

    @pytest.mark.asyncio
    async def test_slot_taken_returns_to_datetime(self, guest_flow, repository):
        await _to_notes(guest_flow)
        await repository.insert_booking(make_record("10:00"))
        outcome = await guest_flow.confirm()
        assert isinstance(outcome.error, ConflictError)
        assert outcome.step == BookingStep.DATETIME
        state = guest_flow.form_state
        assert state.slot_confirmed is False
        assert state.guest_name == "Sam Carter"
        assert state.phone_verified is True

    @pytest.mark.asyncio
    async def test_persistence_failure_reported(self, guest_flow, orchestrator, monkeypatch):
        await _to_notes(guest_flow)

        async def broken_insert(record):
            raise PersistenceError("write failed")

        monkeypatch.setattr(orchestrator.repository, "insert_booking", broken_insert)
        outcome = await guest_flow.confirm()
        assert isinstance(outcome.error, PersistenceError)
        assert guest_flow.current_step == BookingStep.NOTES

    @pytest.mark.asyncio
    async def test_member_flow_skips_guest_steps(self, member_flow, sms_gateway):
        await _to_datetime(member_flow)
        outcome = await member_flow.confirm_datetime(BOOKING_DAY, time(11, 0))
        assert outcome.step == BookingStep.NOTES
        outcome = await member_flow.confirm()
        assert outcome.ok
        assert isinstance(outcome.data, BookingRecord)
        assert outcome.data.user_id == "user-42"
        assert sms_gateway.sent == []

    def test_member_flow_requires_user(
        self, repository, verification_service, orchestrator, clock, business_hours
    ):
        with pytest.raises(ValueError):
            BookingFlowController(
                repository, verification_service, orchestrator, clock, business_hours,
                authenticated=True,
            )


class TestNavigation:
    @pytest.mark.asyncio
    async def test_back_keeps_data(self, guest_flow):
        await _to_datetime(guest_flow)
        await guest_flow.back()
        assert guest_flow.current_step == BookingStep.SERVICE
        assert guest_flow.form_state.service_id == "s1"

    @pytest.mark.asyncio
    async def test_back_into_datetime_clears_confirmation(self, guest_flow):
        await _to_verify(guest_flow)
        await guest_flow.back()
        await guest_flow.back()
        assert guest_flow.current_step == BookingStep.DATETIME
        state = guest_flow.form_state
        assert state.slot_confirmed is False
        assert state.booking_time == time(10, 0)

    @pytest.mark.asyncio
    async def test_go_to_earlier_step(self, guest_flow):
        await _to_notes(guest_flow)
        outcome = await guest_flow.go_to(BookingStep.DATETIME)
        assert outcome.ok
        assert guest_flow.current_step == BookingStep.DATETIME
        assert guest_flow.form_state.slot_confirmed is False

    @pytest.mark.asyncio
    async def test_go_to_later_step_rejected(self, guest_flow):
        outcome = await guest_flow.go_to(BookingStep.NOTES)
        assert not outcome.ok
        assert guest_flow.current_step == BookingStep.BARBER

    @pytest.mark.asyncio
    async def test_back_from_start_rejected(self, guest_flow):
        outcome = await guest_flow.back()
        assert not outcome.ok
        assert isinstance(outcome.error, ValidationError)

    @pytest.mark.asyncio
    async def test_changing_barber_clears_slot(self, guest_flow):
        await _to_verify(guest_flow)
        await guest_flow.go_to(BookingStep.BARBER)
        await guest_flow.select_barber("b2")
        state = guest_flow.form_state
        assert state.booking_time is None
        assert state.guest_name == "Sam Carter"

    @pytest.mark.asyncio
    async def test_form_state_is_a_copy(self, guest_flow):
        await guest_flow.select_barber("b1")
        snapshot = guest_flow.form_state
        snapshot.guest_name = "Mallory"
        assert guest_flow.form_state.guest_name == ""


def _flow_over(repo, verification_service, sms_gateway, clock, business_hours):
    orchestrator = GuestBookingOrchestrator(repo, sms_gateway, clock, business_hours)
    return BookingFlowController(
        repo, verification_service, orchestrator, clock, business_hours, flow_id="FLOW-store",
    )


class TestBarberWorkingHours:
    @pytest.fixture
    def short_monday_flow(self, verification_service, sms_gateway, clock, business_hours):
        repo = InMemoryBookingRepository(
            barbers=[BARBER],
            services=[HAIRCUT, BEARD_TRIM],
            opening_hours=[
                OpeningHours(
                    barber_id="b1", day_of_week=1, open_time=time(12, 0), close_time=time(15, 0),
                ),
                OpeningHours(barber_id="b1", day_of_week=2, is_closed=True),
            ],
        )
        return _flow_over(repo, verification_service, sms_gateway, clock, business_hours)

    @pytest.mark.asyncio
    async def test_slots_follow_barber_window(self, short_monday_flow):
        await _to_datetime(short_monday_flow)
        outcome = await short_monday_flow.available_slots(BOOKING_DAY)
        assert outcome.ok
        assert outcome.data[0].label == "12:00"
        assert outcome.data[-1].label == "14:30"

    @pytest.mark.asyncio
    async def test_confirm_outside_barber_window_rejected(self, short_monday_flow):
        await _to_datetime(short_monday_flow)
        outcome = await short_monday_flow.confirm_datetime(BOOKING_DAY, time(10, 0))
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.field == "booking_time"
        assert short_monday_flow.current_step == BookingStep.DATETIME

    @pytest.mark.asyncio
    async def test_closed_weekday_not_offered(self, short_monday_flow):
        await _to_datetime(short_monday_flow)
        outcome = await short_monday_flow.available_dates(BOOKING_DAY)
        dates = [d.date for d in outcome.data]
        assert BOOKING_DAY in dates
        assert date(2024, 6, 4) not in dates
        assert date(2024, 6, 5) in dates


class SlowBookingsRepository(InMemoryBookingRepository):
    """Holiday reads fail at once while the bookings read is still in flight."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.bookings_read_finished = False

    async def list_bookings(self, barber_id, day):
        await asyncio.sleep(0.05)
        self.bookings_read_finished = True
        return await super().list_bookings(barber_id, day)

    async def list_holidays(self, barber_id):
        raise PersistenceError("holiday table unavailable")


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_failed_read_waits_for_sibling_reads(
        self, verification_service, sms_gateway, clock, business_hours
    ):
        repo = SlowBookingsRepository(barbers=[BARBER], services=[HAIRCUT])
        flow = _flow_over(repo, verification_service, sms_gateway, clock, business_hours)
        await _to_datetime(flow)

        outcome = await flow.available_slots(BOOKING_DAY)

        assert isinstance(outcome.error, PersistenceError)
        assert repo.bookings_read_finished is True

    @staticmethod
    def _mock_store(lunch_breaks, holidays=()):
        respx.get(f"{REST}/barbers").respond(200, json=[{"id": "b1", "name": "Jordan"}])
        respx.get(f"{REST}/services").respond(200, json=[
            {"id": "s1", "name": "Haircut", "duration": 30, "active": True},
        ])
        respx.get(f"{REST}/barber_services").respond(200, json=[{"service_id": "s1"}])
        respx.get(f"{REST}/bookings").respond(200, json=[])
        respx.get(f"{REST}/barber_holidays").respond(200, json=list(holidays))
        respx.get(f"{REST}/barber_lunch_breaks").respond(200, json=lunch_breaks)
        respx.get(f"{REST}/opening_hours").respond(200, json=[])

    @pytest.mark.asyncio
    @respx.mock
    async def test_unusable_lunch_break_row_ignored(
        self, verification_service, sms_gateway, clock, business_hours
    ):
        self._mock_store([
            {"barber_id": "b1", "start_time": None, "duration": 60, "is_active": True},
        ])
        repo = SupabaseBookingRepository(SupabaseConfig(
            url="https://demo.supabase.co", service_key="service-key",
        ))
        flow = _flow_over(repo, verification_service, sms_gateway, clock, business_hours)
        await _to_datetime(flow)

        outcome = await flow.available_slots(BOOKING_DAY)

        assert outcome.ok
        assert all(s.available for s in outcome.data)
        await repo.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_row_is_failed_outcome(
        self, verification_service, sms_gateway, clock, business_hours
    ):
        self._mock_store([], holidays=[
            {"barber_id": "b1", "start_date": "2024-06-07", "end_date": "2024-06-01"},
        ])
        repo = SupabaseBookingRepository(SupabaseConfig(
            url="https://demo.supabase.co", service_key="service-key",
        ))
        flow = _flow_over(repo, verification_service, sms_gateway, clock, business_hours)
        await _to_datetime(flow)

        outcome = await flow.available_slots(BOOKING_DAY)

        assert not outcome.ok
        assert isinstance(outcome.error, PersistenceError)
        assert flow.current_step == BookingStep.DATETIME
        await repo.aclose()
