"""
Finite state machine for the booking wizard.

Defines the seven booking steps and every legal move between them in one
transition table. Guest and authenticated flows share the table; guards on
the branching transitions pick the path, so an authenticated customer goes
straight from ``datetime`` to ``notes``.

Usage:
    sm = BookingStateMachine(authenticated=False)
    sm.transition(FlowTrigger.BARBER_SELECTED)
    assert sm.current_step == BookingStep.SERVICE
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class BookingStep(str, Enum):
    """Steps of the booking wizard, in forward order."""
    BARBER = "barber"
    SERVICE = "service"
    DATETIME = "datetime"
    GUEST_INFO = "guest-info"
    VERIFY_PHONE = "verify-phone"
    NOTES = "notes"
    CONFIRMATION = "confirmation"


class FlowTrigger(str, Enum):
    """Events that move the wizard."""
    BARBER_SELECTED = "barber_selected"
    SERVICE_SELECTED = "service_selected"
    SLOT_CONFIRMED = "slot_confirmed"
    GUEST_INFO_SUBMITTED = "guest_info_submitted"
    PHONE_VERIFIED = "phone_verified"
    BOOKING_CREATED = "booking_created"
    SLOT_CONFLICT = "slot_conflict"
    BACK = "back"


@dataclass
class Transition:
    """A single legal move."""
    from_step: BookingStep
    to_step: BookingStep
    trigger: FlowTrigger
    guard: Optional[Callable[["BookingStateMachine"], bool]] = None


@dataclass
class StepEntry:
    """Recorded history entry for a step visit."""
    step: BookingStep
    entered_at: datetime
    trigger: Optional[FlowTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a trigger has no legal move from the current step."""


def _is_guest(sm: "BookingStateMachine") -> bool:
    return not sm.authenticated


def _is_member(sm: "BookingStateMachine") -> bool:
    return sm.authenticated


class BookingStateMachine:
    """
    Deterministic step controller for one booking flow.

    Holds no form data. The flow controller decides when a step's
    requirements are met and fires the matching trigger; this class only
    knows which moves exist.
    """

    TRANSITIONS: list[Transition] = [
        # --- Forward ---
        Transition(BookingStep.BARBER, BookingStep.SERVICE, FlowTrigger.BARBER_SELECTED),
        Transition(BookingStep.SERVICE, BookingStep.DATETIME, FlowTrigger.SERVICE_SELECTED),
        Transition(BookingStep.DATETIME, BookingStep.GUEST_INFO,
                   FlowTrigger.SLOT_CONFIRMED, _is_guest),
        Transition(BookingStep.DATETIME, BookingStep.NOTES,
                   FlowTrigger.SLOT_CONFIRMED, _is_member),
        Transition(BookingStep.GUEST_INFO, BookingStep.VERIFY_PHONE,
                   FlowTrigger.GUEST_INFO_SUBMITTED, _is_guest),
        Transition(BookingStep.VERIFY_PHONE, BookingStep.NOTES,
                   FlowTrigger.PHONE_VERIFIED, _is_guest),
        Transition(BookingStep.NOTES, BookingStep.CONFIRMATION, FlowTrigger.BOOKING_CREATED),

        # --- Slot taken between selection and insert ---
        Transition(BookingStep.NOTES, BookingStep.DATETIME, FlowTrigger.SLOT_CONFLICT),

        # --- Back ---
        Transition(BookingStep.SERVICE, BookingStep.BARBER, FlowTrigger.BACK),
        Transition(BookingStep.DATETIME, BookingStep.SERVICE, FlowTrigger.BACK),
        Transition(BookingStep.GUEST_INFO, BookingStep.DATETIME, FlowTrigger.BACK, _is_guest),
        Transition(BookingStep.VERIFY_PHONE, BookingStep.GUEST_INFO, FlowTrigger.BACK, _is_guest),
        Transition(BookingStep.NOTES, BookingStep.VERIFY_PHONE, FlowTrigger.BACK, _is_guest),
        Transition(BookingStep.NOTES, BookingStep.DATETIME, FlowTrigger.BACK, _is_member),
    ]

    def __init__(self, authenticated: bool = False) -> None:
        self.authenticated = authenticated
        self._current_step = BookingStep.BARBER
        self._history: list[StepEntry] = [
            StepEntry(step=BookingStep.BARBER, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_step(self) -> BookingStep:
        return self._current_step

    def transition(self, trigger: FlowTrigger) -> BookingStep:
        """
        Execute a move.

        Args:
            trigger: The event triggering the move.

        Returns:
            The new step.

        Raises:
            InvalidTransitionError: If no legal move exists.
        """
        for t in self.TRANSITIONS:
            if t.from_step == self._current_step and t.trigger == trigger:
                if t.guard is not None and not t.guard(self):
                    continue

                old_step = self._current_step
                self._current_step = t.to_step
                self._history.append(StepEntry(
                    step=self._current_step,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Step transition: %s -> %s (trigger: %s)",
                    old_step.value, self._current_step.value, trigger.value,
                )
                return self._current_step

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_step.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[FlowTrigger]:
        """Return all triggers with a legal move from the current step."""
        return [
            t.trigger
            for t in self.TRANSITIONS
            if t.from_step == self._current_step and (t.guard is None or t.guard(self))
        ]

    def steps(self) -> list[BookingStep]:
        """Ordered steps this flow will visit."""
        if self.authenticated:
            return [s for s in BookingStep
                    if s not in (BookingStep.GUEST_INFO, BookingStep.VERIFY_PHONE)]
        return list(BookingStep)

    def get_history(self) -> list[StepEntry]:
        """Return the full step history."""
        return list(self._history)

    def get_step_trace(self) -> list[str]:
        """Return ordered list of step names visited."""
        return [entry.step.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_step == BookingStep.CONFIRMATION
