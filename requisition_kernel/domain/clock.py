"""
Time for the requisition kernel.

Every timestamp the kernel writes (``approved_at``, ``closed_at``, audit
entry times) comes from an injected ``Clock``.  ``to_utc`` is the single
place where loose caller input (dates, naive datetimes) becomes an aware
UTC datetime.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone

# Default starting instant for DeterministicClock
EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def to_utc(value: datetime | date) -> datetime:
    """A bare date is midnight UTC; a naive datetime is taken to be UTC."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of aware UTC ``datetime`` values."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock for tests and replays.

    Time stands still until moved.  ``set_time`` may move it backwards,
    which is how the audit ledger's monotonic timestamps are exercised.
    """

    def __init__(self, start: datetime | None = None, step_seconds: float = 1):
        self._current = to_utc(start) if start is not None else EPOCH
        self._step = timedelta(seconds=step_seconds)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = to_utc(moment)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move forward by one step and return the new time."""
        self._current += self._step
        return self._current
