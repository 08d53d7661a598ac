"""Business hours, generated time slots and move decisions."""

from datetime import date, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from booking_engine.config import BusinessConfig


class BlockReason(str, Enum):
    """Why a candidate slot cannot be booked."""
    PAST = "past"
    OVERLAP = "overlap"
    HOLIDAY = "holiday"
    OUTSIDE_HOURS = "outside-hours"


class BusinessHours(BaseModel):
    """Opening window shared by every barber, passed explicitly into scheduling calls."""
    model_config = ConfigDict(frozen=True)

    start_hour: int = Field(default=8, ge=0, le=24)
    end_hour: int = Field(default=22, ge=0, le=24)
    slot_interval_minutes: int = Field(default=30, ge=1, le=60)
    closed_weekdays: frozenset[int] = frozenset()

    @model_validator(mode="after")
    def _check_window(self) -> "BusinessHours":
        if not self.start_hour < self.end_hour - 1:
            raise ValueError("start_hour must be more than one hour before end_hour")
        return self

    @classmethod
    def from_config(cls, config: BusinessConfig) -> "BusinessHours":
        return cls(
            start_hour=config.start_hour,
            end_hour=config.end_hour,
            slot_interval_minutes=config.slot_interval_minutes,
            closed_weekdays=frozenset(config.closed_weekdays),
        )

    def with_start_hour(self, hour: int) -> "BusinessHours":
        """Return a copy with a new opening hour; ignored if it would leave under two hours."""
        if 0 <= hour < self.end_hour - 1:
            return self.model_copy(update={"start_hour": hour})
        return self

    def with_end_hour(self, hour: int) -> "BusinessHours":
        """Return a copy with a new closing hour; ignored if it would leave under two hours."""
        if self.start_hour + 1 < hour <= 24:
            return self.model_copy(update={"end_hour": hour})
        return self

    @property
    def opening_minutes(self) -> int:
        return self.start_hour * 60

    @property
    def closing_minutes(self) -> int:
        return self.end_hour * 60

    def is_closed_on(self, day: date) -> bool:
        return day.weekday() in self.closed_weekdays


class TimeSlot(BaseModel):
    """A generated candidate start time and whether it can be booked."""
    model_config = ConfigDict(frozen=True)

    date: date
    time: time
    available: bool
    reason: Optional[BlockReason] = None

    @property
    def label(self) -> str:
        return self.time.strftime("%H:%M")


class DateAvailability(BaseModel):
    """Summary of bookable slots on one date."""

    date: date
    day_name: str
    slot_count: int
    reason: Optional[BlockReason] = None


class MoveDecision(BaseModel):
    """Outcome of validating a proposed move of an existing booking."""
    model_config = ConfigDict(frozen=True)

    accepted: bool
    reason: Optional[BlockReason] = None

    @classmethod
    def accept(cls) -> "MoveDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: BlockReason) -> "MoveDecision":
        return cls(accepted=False, reason=reason)
