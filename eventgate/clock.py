"""
Time sources for the gate.

Decisions take ``now`` as an argument so they are deterministic under test;
``SystemClock`` supplies it in production and ``FrozenClock`` in tests.
"""

import threading
import time
from datetime import datetime, timezone, timedelta
from typing import Optional, Union

from .errors import StoreUnavailable


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Supplies the current time"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start or datetime(2024, 1, 1, tzinfo=timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime):
        with self._lock:
            self._now = ensure_utc(value)

    def advance(self, delta: Union[timedelta, float]) -> datetime:
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        with self._lock:
            self._now = self._now + delta
            return self._now


class Deadline:
    """
    Caller-supplied deadline for one admission, measured on the monotonic
    clock so wall-clock adjustments cannot stretch or shrink it.

    A Deadline built with ``seconds=None`` never expires.
    """

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def after(cls, seconds: Optional[float]) -> "Deadline":
        return cls(seconds)

    def remaining(self) -> Optional[float]:
        """Seconds left, ``None`` when unbounded, never negative"""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, operation: str = "admission"):
        """Raise StoreUnavailable if the deadline has passed"""
        if self.expired():
            raise StoreUnavailable(f"deadline of {self.seconds}s exceeded during {operation}")
