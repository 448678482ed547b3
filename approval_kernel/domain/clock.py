"""
Injectable time source for workflow and audit timestamps.

``created_at``, ``decided_at``, ``completed_at`` and audit ``occurred_at``
all come from the clock a service was built with, so tests can pin them.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

DEFAULT_TEST_EPOCH = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware current time."""
        ...


class SystemClock:
    """UTC wall time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock:
    """Frozen time that moves only when a test calls ``advance``."""

    def __init__(self, start: datetime = DEFAULT_TEST_EPOCH):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
