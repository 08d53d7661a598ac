"""Injectable time sources.

Scheduling decisions depend on "now". Production code reads the wall clock
in the shop's timezone; tests pin it with ``FixedClock``.
"""

from datetime import datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current naive local date-time of the shop."""
        ...


class SystemClock:
    """Wall clock converted to the shop's local time."""

    def __init__(self, timezone: str = "UTC") -> None:
        self._zone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._zone).replace(tzinfo=None, microsecond=0)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = current

    def advance(self, minutes: int = 0, hours: int = 0, days: int = 0) -> datetime:
        self._current += timedelta(minutes=minutes, hours=hours, days=days)
        return self._current
