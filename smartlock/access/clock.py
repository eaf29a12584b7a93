"""Lock real-time clock, correctable from the directory server's time."""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional


class LockClock:
    """
    Local wall clock with a software correction offset.

    The host clock is never touched; ``set`` shifts the offset so ``now()``
    reports the server's time from then on.
    """

    def __init__(self, source: Optional[Callable[[], datetime]] = None):
        self._source = source or datetime.now
        self._offset = timedelta(0)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._source() + self._offset

    def set(self, value: datetime) -> None:
        with self._lock:
            self._offset = value - self._source()

    @property
    def offset(self) -> timedelta:
        with self._lock:
            return self._offset


def to_local_naive(value: datetime) -> datetime:
    """Drop timezone info, converting aware values to local time first."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def weak_compare(a: datetime, b: datetime, tolerance_seconds: float) -> bool:
    """True if the two times are within ``tolerance_seconds`` of each other."""
    return abs((a - b).total_seconds()) <= tolerance_seconds
