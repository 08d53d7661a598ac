"""Error taxonomy shared by the flow controller, orchestrator and adapters."""

from typing import Optional


class BookingEngineError(Exception):
    """Base class for every error raised by the booking engine."""


class ValidationError(BookingEngineError):
    """Bad or missing input for a step or operation.

    ``field`` names the form field that failed so the caller can point the
    customer at it.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class ConflictError(BookingEngineError):
    """The chosen slot is no longer free. The customer must pick another time."""


class ExternalServiceError(BookingEngineError):
    """An SMS or verification gateway was unreachable or returned an error."""


class PersistenceError(BookingEngineError):
    """The booking store failed to read or write."""
