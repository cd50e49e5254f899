"""
Clock -- injectable source of "now".

Responsibility:
    Services never call ``datetime.now()``; they ask the Clock they were
    built with.  Waiting periods, expiry and SLA checks therefore give the
    same answer whenever the same instant is replayed.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place wall-clock time
    enters the kernel.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; a naive value is taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Contract: ``now()`` and ``now_utc()`` return timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...

    def now_utc(self) -> datetime:
        return as_utc(self.now())


class SystemClock(Clock):
    """Wall-clock time.  Not for tests or replay."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    Time stands still until the test moves it with ``advance``,
    ``advance_days``, ``tick`` or ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._current = as_utc(start or DEFAULT_TEST_EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Move forward one second and return the new time."""
        self.advance(1)
        return self._current
