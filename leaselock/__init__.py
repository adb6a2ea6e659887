"""
Lease Lock

Distributed mutual-exclusion lock untuk scheduled tasks:
- Atomic conditional write sebagai satu-satunya serialization point
- Lease expiry mencegah deadlock permanen saat holder crash
- Stores: in-memory, HTTP lease store node, Redis, DynamoDB
"""

from .core import (
    ConditionNotMet,
    Lease,
    LeaseLock,
    LeaseLockError,
    LeaseRecord,
    LeaseReleaseError,
    LeaseStore,
    LockConfiguration,
    LockConfigurationError,
    ManualClock,
    StoreTransportError,
    SystemClock,
    TaskResult,
)

__version__ = "1.0.0"

__all__ = [
    'ConditionNotMet', 'Lease', 'LeaseLock', 'LeaseLockError', 'LeaseRecord',
    'LeaseReleaseError', 'LeaseStore', 'LockConfiguration', 'LockConfigurationError',
    'ManualClock', 'StoreTransportError', 'SystemClock', 'TaskResult',
]
