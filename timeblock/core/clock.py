"""Wall-clock time source."""

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current wall-clock time."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...


class SystemClock:
    """Clock backed by the system's UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


system_clock = SystemClock()
