"""
Unit tests untuk InMemoryLeaseStore conditional semantics.
"""

from datetime import datetime, timedelta, timezone

import pytest

from leaselock.core.exceptions import ConditionNotMet, StoreTransportError
from leaselock.stores.memory import InMemoryLeaseStore

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(n):
    return T0 + timedelta(seconds=n)


@pytest.mark.asyncio
async def test_try_update_absent_record():
    store = InMemoryLeaseStore()

    record = await store.try_update('job-x', at(60), at(0), 'node-a', at(0))

    assert record.lock_until == at(60)
    assert record.locked_by == 'node-a'
    assert len(store) == 1


@pytest.mark.asyncio
async def test_try_update_condition():
    """Precondition: lockUntil <= available_at"""
    store = InMemoryLeaseStore()
    await store.try_update('job-x', at(60), at(0), 'node-a', at(0))

    with pytest.raises(ConditionNotMet):
        await store.try_update('job-x', at(70), at(10), 'node-b', at(10))

    # Boundary: lockUntil == available_at
    record = await store.try_update('job-x', at(120), at(60), 'node-b', at(60))
    assert record.locked_by == 'node-b'
    assert store.conditions_failed == 1


@pytest.mark.asyncio
async def test_update_unconditional_keeps_holder_fields():
    store = InMemoryLeaseStore()
    await store.try_update('job-x', at(60), at(0), 'node-a', at(0))

    record = await store.update('job-x', at(5))

    assert record.lock_until == at(5)
    assert record.locked_at == at(0)
    assert record.locked_by == 'node-a'


@pytest.mark.asyncio
async def test_update_held_until():
    store = InMemoryLeaseStore()
    await store.try_update('job-x', at(60), at(0), 'node-a', at(0))

    with pytest.raises(ConditionNotMet):
        await store.update('job-x', at(5), held_until=at(30))

    with pytest.raises(ConditionNotMet):
        await store.update('job-y', at(5), held_until=at(60))

    record = await store.update('job-x', at(5), held_until=at(60))
    assert record.lock_until == at(5)


@pytest.mark.asyncio
async def test_injected_failures():
    store = InMemoryLeaseStore()
    store.fail_next(2)

    with pytest.raises(StoreTransportError):
        await store.try_update('job-x', at(60), at(0), 'node-a', at(0))
    with pytest.raises(StoreTransportError):
        await store.get('job-x')

    assert await store.get('job-x') is None
    assert store.writes_applied == 0


@pytest.mark.asyncio
async def test_locked_names():
    store = InMemoryLeaseStore()
    await store.try_update('job-x', at(60), at(0), 'node-a', at(0))
    await store.try_update('job-y', at(10), at(0), 'node-a', at(0))

    assert store.locked_names(at(5)) == ['job-x', 'job-y']
    assert store.locked_names(at(30)) == ['job-x']


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
