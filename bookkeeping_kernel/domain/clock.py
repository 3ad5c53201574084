"""
Injectable time source.

Services never call ``datetime.now()`` or ``date.today()``; they ask the
Clock they were constructed with.  posted_at, voided_at, reconciled_at,
last_run_date and the recurring sweep's notion of "today" all come from here,
so a test can pin the calendar (month ends, leap days, financial year
boundaries) without patching the standard library.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current time; ``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Business date used for due checks and quick entries."""
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a chosen instant until moved explicitly.

    Defaults to 2025-01-01 09:00 UTC.  ``set_date`` jumps to 09:00 UTC on a
    given day, which is how scheduler tests walk through a calendar.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_date(self, day: date) -> None:
        self._current = datetime(day.year, day.month, day.day, 9, 0, 0, tzinfo=timezone.utc)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
