"""Tests for the booking wizard state machine."""

import pytest

from booking_engine.flow.state_machine import (
    BookingStateMachine,
    BookingStep,
    FlowTrigger,
    InvalidTransitionError,
)


def _advance_guest_to_notes(sm):
    sm.transition(FlowTrigger.BARBER_SELECTED)
    sm.transition(FlowTrigger.SERVICE_SELECTED)
    sm.transition(FlowTrigger.SLOT_CONFIRMED)
    sm.transition(FlowTrigger.GUEST_INFO_SUBMITTED)
    sm.transition(FlowTrigger.PHONE_VERIFIED)


class TestInitialState:
    def test_starts_at_barber(self, state_machine):
        assert state_machine.current_step == BookingStep.BARBER

    def test_initial_history_has_one_entry(self, state_machine):
        assert len(state_machine.get_history()) == 1

    def test_not_terminal_at_start(self, state_machine):
        assert not state_machine.is_terminal()

    def test_guest_by_default(self, state_machine):
        assert state_machine.authenticated is False


class TestGuestPath:
    def test_full_guest_path(self, state_machine):
        _advance_guest_to_notes(state_machine)
        state_machine.transition(FlowTrigger.BOOKING_CREATED)
        assert state_machine.get_step_trace() == [
            "barber", "service", "datetime", "guest-info",
            "verify-phone", "notes", "confirmation",
        ]
        assert state_machine.is_terminal()

    def test_slot_confirmed_goes_to_guest_info(self, state_machine):
        state_machine.transition(FlowTrigger.BARBER_SELECTED)
        state_machine.transition(FlowTrigger.SERVICE_SELECTED)
        assert state_machine.transition(FlowTrigger.SLOT_CONFIRMED) == BookingStep.GUEST_INFO

    def test_cannot_skip_verification(self, state_machine):
        state_machine.transition(FlowTrigger.BARBER_SELECTED)
        state_machine.transition(FlowTrigger.SERVICE_SELECTED)
        state_machine.transition(FlowTrigger.SLOT_CONFIRMED)
        state_machine.transition(FlowTrigger.GUEST_INFO_SUBMITTED)
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(FlowTrigger.BOOKING_CREATED)

    def test_guest_steps(self, state_machine):
        assert state_machine.steps() == list(BookingStep)


class TestMemberPath:
    def test_member_skips_guest_steps(self):
        sm = BookingStateMachine(authenticated=True)
        sm.transition(FlowTrigger.BARBER_SELECTED)
        sm.transition(FlowTrigger.SERVICE_SELECTED)
        assert sm.transition(FlowTrigger.SLOT_CONFIRMED) == BookingStep.NOTES
        sm.transition(FlowTrigger.BOOKING_CREATED)
        assert sm.get_step_trace() == [
            "barber", "service", "datetime", "notes", "confirmation",
        ]

    def test_member_back_from_notes_goes_to_datetime(self):
        sm = BookingStateMachine(authenticated=True)
        sm.transition(FlowTrigger.BARBER_SELECTED)
        sm.transition(FlowTrigger.SERVICE_SELECTED)
        sm.transition(FlowTrigger.SLOT_CONFIRMED)
        assert sm.transition(FlowTrigger.BACK) == BookingStep.DATETIME

    def test_member_steps_exclude_guest_steps(self):
        steps = BookingStateMachine(authenticated=True).steps()
        assert BookingStep.GUEST_INFO not in steps
        assert BookingStep.VERIFY_PHONE not in steps


class TestBackAndConflict:
    def test_back_walks_the_guest_path(self, state_machine):
        _advance_guest_to_notes(state_machine)
        expected = [
            BookingStep.VERIFY_PHONE,
            BookingStep.GUEST_INFO,
            BookingStep.DATETIME,
            BookingStep.SERVICE,
            BookingStep.BARBER,
        ]
        for step in expected:
            assert state_machine.transition(FlowTrigger.BACK) == step

    def test_no_back_from_barber(self, state_machine):
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(FlowTrigger.BACK)

    def test_no_back_from_confirmation(self, state_machine):
        _advance_guest_to_notes(state_machine)
        state_machine.transition(FlowTrigger.BOOKING_CREATED)
        with pytest.raises(InvalidTransitionError):
            state_machine.transition(FlowTrigger.BACK)

    def test_slot_conflict_returns_to_datetime(self, state_machine):
        _advance_guest_to_notes(state_machine)
        assert state_machine.transition(FlowTrigger.SLOT_CONFLICT) == BookingStep.DATETIME


class TestValidTriggers:
    def test_triggers_at_start(self, state_machine):
        assert state_machine.get_valid_triggers() == [FlowTrigger.BARBER_SELECTED]

    def test_guard_filters_triggers(self):
        sm = BookingStateMachine(authenticated=True)
        sm.transition(FlowTrigger.BARBER_SELECTED)
        sm.transition(FlowTrigger.SERVICE_SELECTED)
        sm.transition(FlowTrigger.SLOT_CONFIRMED)
        triggers = sm.get_valid_triggers()
        assert FlowTrigger.BACK in triggers
        assert triggers.count(FlowTrigger.BACK) == 1

    def test_error_message_lists_valid_triggers(self, state_machine):
        with pytest.raises(InvalidTransitionError, match="barber_selected"):
            state_machine.transition(FlowTrigger.PHONE_VERIFIED)

    def test_history_records_triggers(self, state_machine):
        state_machine.transition(FlowTrigger.BARBER_SELECTED)
        history = state_machine.get_history()
        assert history[-1].trigger == FlowTrigger.BARBER_SELECTED
        assert history[-1].step == BookingStep.SERVICE
