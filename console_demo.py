"""
Offline console demo: runs a full booking flow without any credentials.

Uses the real flow controller, availability engine, verification service
and orchestrator on top of the in-memory store and the mock gateways. No
Twilio, no Supabase, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario member
    python console_demo.py --scenario conflict
"""

import argparse
import asyncio
from datetime import date, time, timedelta

from booking_engine.booking.orchestrator import GuestBookingOrchestrator
from booking_engine.clock import SystemClock
from booking_engine.config import settings
from booking_engine.flow.controller import BookingFlowController, FlowOutcome
from booking_engine.gateways.sms_gateway import LoggingSmsGateway
from booking_engine.gateways.verification_gateway import InMemoryVerificationGateway
from booking_engine.persistence.repository import InMemoryBookingRepository
from booking_engine.schemas.booking_schema import (
    Barber,
    BookingRecord,
    LunchBreak,
    OpeningHours,
    Service,
)
from booking_engine.schemas.scheduling_schema import BusinessHours
from booking_engine.verification.service import PhoneVerificationService

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_PHONE = "07700 900123"


def say(text: str) -> None:
    print(f"{GREEN}{BOLD}[{settings.business.name}]{RESET} {GREEN}{text}{RESET}")


def system_log(text: str) -> None:
    print(f"{DIM}  >> {text}{RESET}")


def report(label: str, outcome: FlowOutcome) -> None:
    if outcome.ok:
        system_log(f"{label}: ok (now at '{outcome.step.value}')")
    else:
        print(f"{RED}  !! {label}: {outcome.error}{RESET} (at '{outcome.step.value}')")


def seed_repository() -> InMemoryBookingRepository:
    return InMemoryBookingRepository(
        barbers=[Barber(id="b1", name="Jordan"), Barber(id="b2", name="Alex")],
        services=[
            Service(id="s1", name="Haircut", duration_minutes=30, price=20.0),
            Service(id="s2", name="Skin fade", duration_minutes=45, price=25.0),
            Service(id="s3", name="Hot towel shave", duration_minutes=60, price=30.0),
        ],
        barber_services={"b1": ["s1", "s2"], "b2": ["s1", "s3"]},
        lunch_breaks=[LunchBreak(barber_id="b1", start_time=time(13, 0))],
        # Alex starts late on Saturdays and takes Sundays off.
        opening_hours=[
            OpeningHours(
                barber_id="b2", day_of_week=6, open_time=time(11, 0), close_time=time(16, 0),
            ),
            OpeningHours(barber_id="b2", day_of_week=0, is_closed=True),
        ],
        default_country_code=settings.twilio.default_country_code,
    )


class ConsoleSession:
    """Wires the engine together with offline adapters."""

    def __init__(self) -> None:
        self.clock = SystemClock(settings.business.timezone)
        self.hours = BusinessHours.from_config(settings.business)
        self.repository = seed_repository()
        self.sms = LoggingSmsGateway()
        self.verification = PhoneVerificationService(
            InMemoryVerificationGateway(), allow_mock_codes=True
        )
        self.orchestrator = GuestBookingOrchestrator(
            self.repository, self.sms, self.clock, self.hours,
            notification_timeout=settings.gateways.notification_timeout_sec,
        )

    def new_flow(self, user_id: str = "") -> BookingFlowController:
        return BookingFlowController(
            self.repository, self.verification, self.orchestrator, self.clock, self.hours,
            authenticated=bool(user_id), user_id=user_id or None,
            horizon_days=settings.business.booking_horizon_days,
        )

    async def pick_slot(self, flow: BookingFlowController) -> tuple[date, time]:
        dates = await flow.available_dates(self.clock.now().date() + timedelta(days=1))
        day = dates.data[0].date
        slots = await flow.available_slots(day)
        free = [s for s in slots.data if s.available]
        say(
            f"{day.strftime('%A %d %B')} has {len(free)} free times, "
            f"first few: {', '.join(s.label for s in free[:5])}"
        )
        return day, free[0].time

    async def run_guest(self) -> None:
        flow = self.new_flow()
        system_log(f"Flow {flow.flow_id} started as guest")
        report("select barber", await flow.select_barber("b1"))
        report("select service", await flow.select_service("s2"))
        day, start = await self.pick_slot(flow)
        report("confirm slot", await flow.confirm_datetime(day, start))
        report("guest details", await flow.submit_guest_info("Sam Carter", DEMO_PHONE))

        sent = await flow.send_verification_code()
        report("send code", sent)
        system_log(f"Mock verification code: {sent.data.mock_code}")
        report("wrong code", await flow.verify_phone("000000"))
        report("verify phone", await flow.verify_phone(sent.data.mock_code))

        outcome = await flow.confirm("First visit")
        report("confirm booking", outcome)
        if outcome.ok:
            result = outcome.data
            say(f"Booked! Your confirmation code is {BOLD}{result.confirmation_code}{RESET}")
            system_log(f"SMS: {result.notification.message}")
            system_log(f"Trace: {' -> '.join(flow.step_trace())}")

    async def run_member(self) -> None:
        flow = self.new_flow(user_id="user-42")
        system_log(f"Flow {flow.flow_id} started for user-42")
        report("select barber", await flow.select_barber("b2"))
        report("select service", await flow.select_service("s3"))
        day, start = await self.pick_slot(flow)
        report("confirm slot", await flow.confirm_datetime(day, start))
        outcome = await flow.confirm()
        report("confirm booking", outcome)
        system_log(f"Trace: {' -> '.join(flow.step_trace())}")

    async def run_conflict(self) -> None:
        flow = self.new_flow()
        report("select barber", await flow.select_barber("b1"))
        report("select service", await flow.select_service("s1"))
        day, start = await self.pick_slot(flow)
        report("confirm slot", await flow.confirm_datetime(day, start))
        report("guest details", await flow.submit_guest_info("Sam Carter", DEMO_PHONE))
        sent = await flow.send_verification_code()
        report("verify phone", await flow.verify_phone(sent.data.mock_code))

        print(f"{YELLOW}  Another customer takes the same slot...{RESET}")
        await self.repository.insert_booking(BookingRecord(
            barber_id="b1", service_id="s1", booking_date=day, booking_time=start,
        ))
        outcome = await flow.confirm()
        report("confirm booking", outcome)
        say("Sorry, that time was just taken. Please pick another one.")

    async def run_scenario(self, name: str) -> None:
        runner = {
            "guest": self.run_guest,
            "member": self.run_member,
            "conflict": self.run_conflict,
        }[name]
        print(f"\n{BOLD}=== {name} scenario ==={RESET}\n")
        await runner()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking demo")
    parser.add_argument(
        "--scenario",
        choices=["guest", "member", "conflict"],
        default="guest",
        help="Which scripted booking flow to play",
    )
    args = parser.parse_args()
    asyncio.run(ConsoleSession().run_scenario(args.scenario))


if __name__ == "__main__":
    main()
