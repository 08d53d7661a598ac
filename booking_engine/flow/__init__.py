from booking_engine.flow.controller import BookingFlowController, FlowOutcome
from booking_engine.flow.state_machine import (
    BookingStateMachine,
    BookingStep,
    FlowTrigger,
    InvalidTransitionError,
)

__all__ = [
    "BookingFlowController",
    "FlowOutcome",
    "BookingStateMachine",
    "BookingStep",
    "FlowTrigger",
    "InvalidTransitionError",
]
