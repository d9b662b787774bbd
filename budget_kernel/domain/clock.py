"""
Injectable time source.

Services never call ``datetime.now()`` or ``date.today()``: due dates,
overdue detection, approval and payment timestamps all read the clock
they were constructed with.  ``SystemClock`` is the only place real time
enters the system.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock for tests: time stands still until moved explicitly.

    Starts at 2024-01-01 12:00 UTC unless given another instant.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Move one second forward and return the new time."""
        self.advance(1)
        return self._current
