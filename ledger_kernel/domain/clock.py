"""
Clock -- injectable time source.

Responsibility:
    Lets services stamp ``posted_at``, ``closed_at`` and report
    ``generated_at`` without calling ``datetime.now()`` directly, so tests and
    report regeneration are deterministic.

Architecture position:
    Kernel > Domain -- pure core.  SystemClock is the one sanctioned I/O
    boundary for time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Handed to services through their constructor.  ``now()`` is always UTC-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen at ``start`` until ``advance()`` moves it forward."""

    def __init__(self, start: datetime):
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
