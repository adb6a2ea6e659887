"""
Clock abstraction.

Semua timestamps dalam UTC dan timezone-aware. Protocol bergantung pada
clock skew antar nodes yang jauh lebih kecil dari lease duration.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Union


class Clock(ABC):
    """Sumber 'now' untuk LeaseLock"""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall clock dari sistem"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """
    Clock yang di-set secara manual.
    Dipakai untuk tests dan simulasi supaya deadlines bisa di-control.
    """

    def __init__(self, start: datetime = None):
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("ManualClock needs a timezone-aware start time")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: Union[timedelta, float]) -> datetime:
        """Majukan clock. delta bisa timedelta atau seconds."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self._now = self._now + delta
        return self._now

    def set(self, value: datetime):
        self._now = value
