"""
Lease store backends.

Redis dan DynamoDB backends di-import saat dibutuhkan saja.
"""

from typing import Optional

from ..core.store import LeaseStore
from ..utils.config import Config
from .http import HttpLeaseStore
from .memory import InMemoryLeaseStore


def create_store(backend: Optional[str] = None) -> LeaseStore:
    """
    Buat LeaseStore berdasarkan Config.LEASE_STORE.

    Args:
        backend: memory, http, redis, atau dynamodb
    """
    backend = (backend or Config.LEASE_STORE).lower()

    if backend == 'memory':
        return InMemoryLeaseStore()
    elif backend == 'http':
        return HttpLeaseStore(Config.LEASE_STORE_URL)
    elif backend == 'redis':
        from .redis_store import RedisLeaseStore
        return RedisLeaseStore()
    elif backend == 'dynamodb':
        from .dynamodb import DynamoDBLeaseStore
        return DynamoDBLeaseStore()
    else:
        raise ValueError(f"Unknown lease store backend: {backend}")


__all__ = ['create_store', 'HttpLeaseStore', 'InMemoryLeaseStore']
