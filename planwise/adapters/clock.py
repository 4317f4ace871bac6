"""Clock adapters — implement ClockPort."""

from __future__ import annotations

from datetime import datetime, timedelta


class SystemClock:
    """Wall-clock time, naive local."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FixedClock:
    """A clock that only moves when told to. Used for replays and tests."""

    def __init__(self, instant: datetime) -> None:
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant

    def advance(self, **delta: float) -> datetime:
        """Move forward by timedelta keyword arguments, e.g. advance(days=1)."""
        self._instant += timedelta(**delta)
        return self._instant
