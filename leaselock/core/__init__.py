"""Core lease lock protocol"""

from .clock import Clock, ManualClock, SystemClock
from .configuration import LockConfiguration, TaskResult
from .exceptions import (
    ConditionNotMet,
    LeaseLockError,
    LeaseReleaseError,
    LockConfigurationError,
    StoreTransportError,
)
from .lease_lock import Lease, LeaseLock
from .records import LeaseRecord
from .store import LeaseStore

__all__ = [
    'Clock', 'ManualClock', 'SystemClock',
    'LockConfiguration', 'TaskResult',
    'ConditionNotMet', 'LeaseLockError', 'LeaseReleaseError',
    'LockConfigurationError', 'StoreTransportError',
    'Lease', 'LeaseLock', 'LeaseRecord', 'LeaseStore',
]
