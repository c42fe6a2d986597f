"""
Clock -- injectable source of "now" for workflow timestamps.

Responsibility:
    Workflow transitions stamp ``acted_at``, ``submitted_at`` and
    ``created_at`` values.  They read the time from a ``Clock`` handed to the
    service, never from ``datetime.now()``, so a test can pin every stamp.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that reads the
    wall clock.

Invariants enforced:
    - Every returned instant is timezone-aware and normalized to UTC.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current UTC instant for services."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Naive start values are read as UTC.  ``now_utc()`` keeps returning the
    same instant until ``tick()`` moves it forward.
    """

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        start = start or _DEFAULT_START
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._current = start.astimezone(timezone.utc)
        self._step = step

    def now_utc(self) -> datetime:
        return self._current

    def tick(self) -> datetime:
        """Move forward one step and return the new instant."""
        self._current += self._step
        return self._current
