"""Shared test fixtures and helpers."""

from datetime import date, datetime, time
from typing import Optional

import pytest

from booking_engine.booking.orchestrator import GuestBookingOrchestrator
from booking_engine.clock import FixedClock
from booking_engine.flow.controller import BookingFlowController
from booking_engine.flow.state_machine import BookingStateMachine
from booking_engine.gateways.sms_gateway import LoggingSmsGateway
from booking_engine.gateways.verification_gateway import InMemoryVerificationGateway
from booking_engine.persistence.repository import InMemoryBookingRepository
from booking_engine.schemas.booking_schema import (
    Barber,
    BookingRecord,
    BookingStatus,
    ExistingBooking,
    HolidayPeriod,
    Service,
)
from booking_engine.schemas.flow_schema import BookingFormState
from booking_engine.schemas.scheduling_schema import BusinessHours
from booking_engine.verification.service import PhoneVerificationService

# 2024-06-03 is a Monday.
BOOKING_DAY = date(2024, 6, 3)
NOW = datetime(2024, 6, 2, 12, 0)
ISSUED_CODE = "654321"
GUEST_PHONE = "07700 900123"

BARBER = Barber(id="b1", name="Jordan")
OTHER_BARBER = Barber(id="b2", name="Alex")
RETIRED_BARBER = Barber(id="b3", name="Casey", active=False)

HAIRCUT = Service(id="s1", name="Haircut", duration_minutes=30, price=20.0)
BEARD_TRIM = Service(id="s2", name="Beard trim", duration_minutes=45, price=15.0)
HOT_SHAVE = Service(id="s3", name="Hot shave", duration_minutes=60, price=25.0)
OLD_SERVICE = Service(id="s4", name="Perm", duration_minutes=90, active=False)


def make_booking(
    start: str,
    duration: int = 30,
    day: date = BOOKING_DAY,
    barber_id: str = "b1",
    status: BookingStatus = BookingStatus.CONFIRMED,
    booking_id: Optional[str] = None,
) -> ExistingBooking:
    """Helper to create an ExistingBooking from an "HH:MM" start."""
    hour, minute = (int(part) for part in start.split(":"))
    return ExistingBooking(
        id=booking_id or f"bk-{barber_id}-{day.isoformat()}-{start}",
        barber_id=barber_id,
        service_id="s1",
        duration_minutes=duration,
        booking_date=day,
        booking_time=time(hour, minute),
        status=status,
    )


def make_record(
    start: str,
    day: date = BOOKING_DAY,
    barber_id: str = "b1",
    service_id: str = "s1",
    status: BookingStatus = BookingStatus.CONFIRMED,
    booking_id: Optional[str] = None,
    **fields,
) -> BookingRecord:
    """Helper to create a stored BookingRecord for seeding a repository."""
    hour, minute = (int(part) for part in start.split(":"))
    return BookingRecord(
        id=booking_id,
        barber_id=barber_id,
        service_id=service_id,
        booking_date=day,
        booking_time=time(hour, minute),
        status=status,
        **fields,
    )


@pytest.fixture
def business_hours():
    return BusinessHours(start_hour=9, end_hour=17)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def holidays():
    return [HolidayPeriod(barber_id="b1", start_date=date(2024, 6, 10), end_date=date(2024, 6, 12))]


@pytest.fixture
def repository(holidays):
    return InMemoryBookingRepository(
        barbers=[BARBER, OTHER_BARBER, RETIRED_BARBER],
        services=[HAIRCUT, BEARD_TRIM, HOT_SHAVE, OLD_SERVICE],
        barber_services={"b1": ["s1", "s2", "s4"], "b2": ["s1", "s3"]},
        holidays=holidays,
    )


@pytest.fixture
def verification_gateway():
    return InMemoryVerificationGateway(fixed_code=ISSUED_CODE)


@pytest.fixture
def verification_service(verification_gateway):
    return PhoneVerificationService(verification_gateway, allow_mock_codes=True)


@pytest.fixture
def sms_gateway():
    return LoggingSmsGateway()


@pytest.fixture
def orchestrator(repository, sms_gateway, clock, business_hours):
    return GuestBookingOrchestrator(
        repository, sms_gateway, clock, business_hours, notification_timeout=1.0
    )


@pytest.fixture
def guest_flow(repository, verification_service, orchestrator, clock, business_hours):
    return BookingFlowController(
        repository, verification_service, orchestrator, clock, business_hours,
        flow_id="FLOW-test",
    )


@pytest.fixture
def member_flow(repository, verification_service, orchestrator, clock, business_hours):
    return BookingFlowController(
        repository, verification_service, orchestrator, clock, business_hours,
        authenticated=True, user_id="user-42",
    )


@pytest.fixture
def state_machine():
    return BookingStateMachine()


@pytest.fixture
def guest_form():
    return BookingFormState(
        barber=BARBER,
        service=HAIRCUT,
        booking_date=BOOKING_DAY,
        booking_time=time(10, 0),
        slot_confirmed=True,
        guest_name="Sam Carter",
        guest_phone=GUEST_PHONE,
        notes="Short on the sides",
        phone_verified=True,
    )
