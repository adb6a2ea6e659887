"""
Unit tests untuk RedisLeaseStore (Redis client di-mock).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
from fakeredis.aioredis import FakeRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from leaselock.core.clock import ManualClock
from leaselock.core.exceptions import ConditionNotMet, StoreTransportError
from leaselock.core.lease_lock import LeaseLock
from leaselock.stores.redis_store import ACQUIRE_SCRIPT, RELEASE_SCRIPT, RedisLeaseStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_store():
    client = MagicMock()
    scripts = {ACQUIRE_SCRIPT: AsyncMock(), RELEASE_SCRIPT: AsyncMock()}
    client.register_script.side_effect = lambda source: scripts[source]
    client.hgetall = AsyncMock()
    client.ping = AsyncMock()
    client.aclose = AsyncMock()
    store = RedisLeaseStore(client=client, key_prefix='lease:')
    return store, client, scripts[ACQUIRE_SCRIPT], scripts[RELEASE_SCRIPT]


@pytest.mark.asyncio
async def test_try_update_applied():
    store, client, acquire, _ = make_store()
    acquire.return_value = [
        'lockUntil', '2024-01-01T00:01:00.000Z',
        'lockedAt', '2024-01-01T00:00:00.000Z',
        'lockedBy', 'node-a'
    ]

    record = await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)

    acquire.assert_awaited_once_with(
        keys=['lease:job-x'],
        args=['2024-01-01T00:01:00.000Z', '2024-01-01T00:00:00.000Z', 'node-a',
              '2024-01-01T00:00:00.000Z']
    )
    assert record.name == 'job-x'
    assert record.lock_until == T0 + timedelta(seconds=60)
    assert record.locked_by == 'node-a'


@pytest.mark.asyncio
async def test_try_update_condition_not_met():
    store, _, acquire, _ = make_store()
    acquire.return_value = None

    with pytest.raises(ConditionNotMet):
        await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)


@pytest.mark.asyncio
async def test_redis_error_translated():
    store, client, acquire, release = make_store()
    acquire.side_effect = RedisConnectionError("connection refused")
    release.side_effect = RedisConnectionError("connection refused")
    client.hgetall.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(StoreTransportError):
        await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)
    with pytest.raises(StoreTransportError):
        await store.update('job-x', T0)
    with pytest.raises(StoreTransportError):
        await store.get('job-x')


@pytest.mark.asyncio
async def test_update_args():
    store, _, _, release = make_store()
    release.return_value = [b'lockUntil', b'2024-01-01T00:00:05.000Z']

    record = await store.update('job-x', T0 + timedelta(seconds=5), held_until=T0 + timedelta(seconds=60))
    assert record.lock_until == T0 + timedelta(seconds=5)
    release.assert_awaited_with(
        keys=['lease:job-x'],
        args=['2024-01-01T00:00:05.000Z', '2024-01-01T00:01:00.000Z']
    )

    await store.update('job-x', T0 + timedelta(seconds=5))
    release.assert_awaited_with(
        keys=['lease:job-x'],
        args=['2024-01-01T00:00:05.000Z', '']
    )


@pytest.mark.asyncio
async def test_get():
    store, client, _, _ = make_store()

    client.hgetall.return_value = {}
    assert await store.get('job-x') is None

    client.hgetall.return_value = {'lockUntil': '2024-01-01T00:01:00.000Z', 'lockedBy': 'node-a'}
    record = await store.get('job-x')
    assert record.lock_until == T0 + timedelta(seconds=60)
    assert record.locked_at is None
    client.hgetall.assert_awaited_with('lease:job-x')


@pytest.mark.asyncio
async def test_create_lease_table_pings():
    store, client, _, _ = make_store()

    await store.create_lease_table()
    client.ping.assert_awaited_once()

    client.ping.side_effect = RedisConnectionError("down")
    with pytest.raises(StoreTransportError):
        await store.create_lease_table()


@pytest.mark.asyncio
async def test_lease_lock_over_redis_contended():
    """Script returns nil -> LeaseLock tidak dapat lease"""
    store, _, acquire, _ = make_store()
    acquire.return_value = None
    clock = ManualClock()
    lock = LeaseLock(store, clock=clock, identity='node-a')

    assert await lock.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is None
    assert lock.leases_contended == 1


# Tests di bawah menjalankan Lua scripts sungguhan di fakeredis

def make_lua_store():
    client = FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisLeaseStore(client=client, key_prefix='lease:'), client


@pytest.mark.asyncio
async def test_acquire_script_absent_live_expired():
    store, client = make_lua_store()

    # Absent -> applied
    record = await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)
    assert record.lock_until == T0 + timedelta(seconds=60)
    assert record.locked_by == 'node-a'

    # Live -> nil
    with pytest.raises(ConditionNotMet):
        await store.try_update('job-x', T0 + timedelta(seconds=90), T0 + timedelta(seconds=30),
                               'node-b', T0 + timedelta(seconds=30))
    assert (await client.hget('lease:job-x', 'lockedBy')) == 'node-a'

    # Expired (lockUntil == available_at) -> applied
    record = await store.try_update('job-x', T0 + timedelta(seconds=120), T0 + timedelta(seconds=60),
                                    'node-b', T0 + timedelta(seconds=60))
    assert record.lock_until == T0 + timedelta(seconds=120)
    assert record.locked_by == 'node-b'

    await store.close()


@pytest.mark.asyncio
async def test_release_script_held_until():
    store, client = make_lua_store()
    await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)

    # held_until mismatch -> nil, record tidak berubah
    with pytest.raises(ConditionNotMet):
        await store.update('job-x', T0 + timedelta(seconds=5), held_until=T0 + timedelta(seconds=30))
    assert (await client.hget('lease:job-x', 'lockUntil')) == '2024-01-01T00:01:00.000Z'

    # held_until pada record yang tidak ada -> nil
    with pytest.raises(ConditionNotMet):
        await store.update('job-y', T0, held_until=T0 + timedelta(seconds=60))
    assert await store.get('job-y') is None

    record = await store.update('job-x', T0 + timedelta(seconds=5), held_until=T0 + timedelta(seconds=60))
    assert record.lock_until == T0 + timedelta(seconds=5)
    assert record.locked_by == 'node-a'

    await store.close()


@pytest.mark.asyncio
async def test_release_script_unconditional():
    store, _ = make_lua_store()
    await store.try_update('job-x', T0 + timedelta(seconds=60), T0, 'node-a', T0)

    record = await store.update('job-x', T0 + timedelta(seconds=5))

    assert record.lock_until == T0 + timedelta(seconds=5)
    assert record.locked_at == T0
    fetched = await store.get('job-x')
    assert fetched.lock_until == T0 + timedelta(seconds=5)

    await store.close()


@pytest.mark.asyncio
async def test_lease_lock_over_lua_scripts():
    """Scenario job-x end-to-end lewat Redis scripts"""
    store, _ = make_lua_store()
    clock = ManualClock(T0)
    lock_a = LeaseLock(store, clock=clock, identity='process-a')
    lock_b = LeaseLock(store, clock=clock, identity='process-b')

    lease_a = await lock_a.try_acquire('job-x', T0 + timedelta(seconds=60), T0)
    assert lease_a is not None

    clock.advance(1)
    assert await lock_b.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is None

    clock.advance(1)
    await lease_a.release()

    clock.advance(1)
    assert await lock_b.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is not None

    # Release kedua dari lease lama tidak menyentuh holder baru
    await lease_a.release()
    record = await store.get('job-x')
    assert record.locked_by == 'process-b'
    assert record.lock_until == T0 + timedelta(seconds=63)

    await store.close()


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
