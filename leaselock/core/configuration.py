"""Lock configuration untuk scheduled tasks."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Tuple, Union

from .exceptions import LockConfigurationError

Duration = Union[timedelta, int, float]


def _to_timedelta(value: Duration) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


@dataclass
class LockConfiguration:
    """
    Relative lease durations untuk satu named lock.

    Attributes:
        name: Lock name (unique di seluruh fleet)
        lock_at_most_for: Hard ceiling lease duration
        lock_at_least_for: Minimum holding period (floor untuk early release)
    """
    name: str
    lock_at_most_for: Duration
    lock_at_least_for: Duration = timedelta(0)

    def __post_init__(self):
        self.lock_at_most_for = _to_timedelta(self.lock_at_most_for)
        self.lock_at_least_for = _to_timedelta(self.lock_at_least_for)

        if not isinstance(self.name, str) or not self.name:
            raise LockConfigurationError("Lock name must be a non-empty string")
        if self.lock_at_most_for <= timedelta(0):
            raise LockConfigurationError(
                f"lock_at_most_for must be positive, got {self.lock_at_most_for}")
        if self.lock_at_least_for < timedelta(0):
            raise LockConfigurationError(
                f"lock_at_least_for must not be negative, got {self.lock_at_least_for}")
        if self.lock_at_least_for > self.lock_at_most_for:
            raise LockConfigurationError(
                f"lock_at_least_for ({self.lock_at_least_for}) is longer than "
                f"lock_at_most_for ({self.lock_at_most_for})")

    def deadlines(self, now: datetime) -> Tuple[datetime, datetime]:
        """Returns (lock_at_most_until, lock_at_least_until) relatif ke now"""
        return now + self.lock_at_most_for, now + self.lock_at_least_for


@dataclass
class TaskResult:
    """Hasil LeaseLock.execute"""
    executed: bool
    result: Any = None
