"""
Clock -- injectable source of "now" and "today".

Every date-driven rule (proration, expiry classification, renewal
fallback, late fees, event timestamps) reads time from a Clock handed to
it, never from ``datetime.now()`` or ``date.today()``.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that reads the
    wall clock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its UTC date."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Defaults to 2024-01-01 12:00 UTC.  ``advance()`` exists mainly to
    separate event timestamps so history ordering is observable in tests.
    """

    DEFAULT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or self.DEFAULT

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def set_date(self, day: date) -> None:
        """Move to noon UTC on ``day``."""
        self._current = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
