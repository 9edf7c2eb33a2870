"""
Time sources for rate-limit windows.

Windows are measured in elapsed real time. SystemClock reads the wall clock
once and then advances it with time.monotonic(), so NTP adjustments can't
shrink or stretch a window while the process runs.
"""
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Interface: now() returns a timezone-aware UTC datetime."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def __init__(self):
        self._wall_anchor = datetime.now(timezone.utc)
        self._mono_anchor = time.monotonic()

    def now(self) -> datetime:
        return self._wall_anchor + timedelta(seconds=time.monotonic() - self._mono_anchor)


class FrozenClock(Clock):
    """Manually advanced clock for tests and replay tooling."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta = None, **kwargs) -> datetime:
        if delta is None:
            delta = timedelta(**kwargs)
        with self._lock:
            self._now = self._now + delta
            return self._now


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


system_clock = SystemClock()
