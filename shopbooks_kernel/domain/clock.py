"""
Clock -- Where the books get "now" and "today" from.

Record dates default to ``clock.today()`` and AP aging ages against it, so
the service takes a clock instead of calling ``date.today()``.  Tests pass
a ``DeterministicClock`` and move it by hand.

``today()`` is the calendar date in the shop's timezone, which is not
always the UTC date: a sale at 01:00 in Baku is still the previous day in
UTC.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta, tzinfo


class Clock(ABC):
    """
    Source of the current time.

    Guarantees:
        - ``now()`` is timezone-aware.
        - ``today()`` is ``now()`` seen in the clock's timezone.
    """

    def __init__(self, tz: tzinfo = UTC):
        self.tz = tz

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()


class SystemClock(Clock):
    """The machine's clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None, tz: tzinfo = UTC):
        super().__init__(tz)
        self._now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")

    def now(self) -> datetime:
        return self._now

    def set_time(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, **delta: float) -> None:
        """Move forward, e.g. ``advance(days=30)`` or ``advance(hours=2)``."""
        self._now += timedelta(**delta)
