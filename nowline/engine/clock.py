"""Injectable clocks for nowline.

The engine never reads wall-clock time directly; planners and tickers are handed
a clock so tests can pin and advance time deterministically.
"""

from datetime import datetime, timedelta


class Clock:
    """Source of the current local wall-clock time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Local wall-clock time, truncated to whole seconds."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, minutes: int = 0, seconds: int = 0) -> datetime:
        self._now = self._now + timedelta(minutes=minutes, seconds=seconds)
        return self._now
