"""
PolicyClock -- pull-based timing policy over an injected Clock.

Responsibility:
    Answers "how long since X" and "has deadline D passed" at decision time.
    Auto-consent, consent expiry and screening SLA flags are all computed on
    read through this class; nothing registers timers or background jobs.

Architecture position:
    Kernel > Domain.  Read-only against the Clock it wraps; safe to share.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from workflow_kernel.domain.clock import Clock, SystemClock, as_utc


class PolicyClock:
    """
    Elapsed-time and deadline queries.

    Contract:
        - ``elapsed_days`` counts whole days, floored, never negative.
        - ``has_expired(ts, window)`` is true when the age of ``ts`` is
          strictly greater than ``window`` days.  Exactly ``window`` days old
          is not expired.
        - ``has_passed(deadline)`` is true once now >= deadline.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def now(self) -> datetime:
        return self._clock.now_utc()

    def age(self, timestamp: datetime) -> timedelta:
        age = self.now() - as_utc(timestamp)
        return max(age, timedelta())

    def elapsed_days(self, timestamp: datetime) -> int:
        return self.age(timestamp).days

    def has_expired(self, timestamp: datetime, window_days: int) -> bool:
        return self.age(timestamp) > timedelta(days=window_days)

    def deadline(self, timestamp: datetime, days: int) -> datetime:
        """``timestamp`` plus ``days``; the point at which a window closes."""
        return as_utc(timestamp) + timedelta(days=days)

    def has_passed(self, deadline: datetime) -> bool:
        return self.now() >= as_utc(deadline)

    def days_remaining(self, timestamp: datetime, window_days: int) -> int:
        """Whole days left before ``has_expired`` turns true (0 once expired)."""
        remaining = self.deadline(timestamp, window_days) - self.now()
        return max(remaining.days, 0)
