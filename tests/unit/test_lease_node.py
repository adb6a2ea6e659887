"""
Integration tests untuk LeaseStoreNode + HttpLeaseStore.
"""

from datetime import timedelta

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import unused_port
from prometheus_client import REGISTRY

from leaselock.core.clock import ManualClock
from leaselock.core.exceptions import ConditionNotMet, StoreTransportError
from leaselock.core.lease_lock import LeaseLock
from leaselock.nodes.lease_node import LeaseStoreNode
from leaselock.stores.http import HttpLeaseStore


@pytest_asyncio.fixture
async def node():
    node = LeaseStoreNode(node_id=1, host='127.0.0.1', port=unused_port())
    await node.start()
    yield node
    await node.stop()


@pytest_asyncio.fixture
async def store(node):
    store = HttpLeaseStore(node.url, timeout=2.0)
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_end_to_end_over_http(node, store):
    """Scenario job-x lewat lease store node"""
    clock = ManualClock()
    lock_a = LeaseLock(store, clock=clock, identity='process-a')
    lock_b = LeaseLock(store, clock=clock, identity='process-b')
    t0 = clock.now()

    lease_a = await lock_a.try_acquire('job-x', t0 + timedelta(seconds=60), t0)
    assert lease_a is not None

    clock.advance(1)
    assert await lock_b.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is None

    clock.advance(1)
    await lease_a.release()

    clock.advance(1)
    lease_b = await lock_b.try_acquire('job-x', clock.now() + timedelta(seconds=60))
    assert lease_b is not None

    record = await store.get('job-x')
    assert record.locked_by == 'process-b'
    assert record.lock_until == t0 + timedelta(seconds=63)

    assert node.acquires_granted == 2
    assert node.acquires_rejected == 1
    assert node.updates_applied == 1


@pytest.mark.asyncio
async def test_http_store_conditions(node, store):
    clock = ManualClock()
    t0 = clock.now()

    await store.try_update('job-x', t0 + timedelta(seconds=60), t0, 'node-a', t0)

    with pytest.raises(ConditionNotMet):
        await store.try_update('job-x', t0 + timedelta(seconds=90), t0, 'node-b', t0 + timedelta(seconds=30))

    with pytest.raises(ConditionNotMet):
        await store.update('job-x', t0, held_until=t0 + timedelta(seconds=1))

    record = await store.update('job-x', t0 + timedelta(seconds=5))
    assert record.lock_until == t0 + timedelta(seconds=5)
    assert node.updates_rejected == 1


@pytest.mark.asyncio
async def test_get_unknown_lock(node, store):
    assert await store.get('never-locked') is None


@pytest.mark.asyncio
async def test_invalid_request_rejected(node):
    async with aiohttp.ClientSession() as session:
        async with session.post(f"{node.url}/api/lease/acquire", json={'name': 'job-x'}) as response:
            assert response.status == 400

        async with session.post(f"{node.url}/api/lease/update", data='not json') as response:
            assert response.status == 400


@pytest.mark.asyncio
async def test_status_health_metrics(node, store):
    clock = ManualClock()
    await LeaseLock(store, clock=clock, identity='node-a').try_acquire(
        'job-x', clock.now() + timedelta(seconds=60))

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{node.url}/health") as response:
            assert response.status == 200
            assert (await response.json())['status'] == 'healthy'

        async with session.get(f"{node.url}/api/status") as response:
            status = await response.json()
            assert status['lease_records'] == 1
            assert status['records']['job-x']['lockedBy'] == 'node-a'
            assert status['statistics']['acquires_granted'] == 1

        async with session.get(f"{node.url}/api/metrics") as response:
            body = await response.text()
            assert 'lease_acquire_total' in body


@pytest.mark.asyncio
async def test_create_lease_table_checks_health(node, store):
    await store.create_lease_table()


@pytest.mark.asyncio
async def test_unreachable_node_fails_closed():
    """Node mati -> StoreTransportError di store, None di LeaseLock"""
    store = HttpLeaseStore(f"http://127.0.0.1:{unused_port()}", timeout=1.0)
    clock = ManualClock()
    lock = LeaseLock(store, clock=clock, identity='node-a')

    try:
        with pytest.raises(StoreTransportError):
            await store.get('job-x')

        assert await lock.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is None
        assert lock.acquire_failures == 1
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_malformed_record_fails_closed():
    """200 dengan body yang bukan lease record -> StoreTransportError"""
    async def handle_acquire(request):
        return web.json_response({})

    async def handle_get(request):
        return web.json_response({'_id': 'job-x', 'lockUntil': 'not-a-timestamp'})

    app = web.Application()
    app.router.add_post('/api/lease/acquire', handle_acquire)
    app.router.add_get('/api/lease/{name}', handle_get)
    runner = web.AppRunner(app)
    await runner.setup()
    port = unused_port()
    await web.TCPSite(runner, '127.0.0.1', port).start()

    store = HttpLeaseStore(f"http://127.0.0.1:{port}", timeout=2.0)
    clock = ManualClock()
    lock = LeaseLock(store, clock=clock, identity='node-a')

    try:
        with pytest.raises(StoreTransportError):
            await store.try_update('job-x', clock.now() + timedelta(seconds=60),
                                   clock.now(), 'node-a', clock.now())
        with pytest.raises(StoreTransportError):
            await store.get('job-x')
        assert store.failed_requests == 2

        assert await lock.try_acquire('job-x', clock.now() + timedelta(seconds=60)) is None
        assert lock.acquire_failures == 1
    finally:
        await store.close()
        await runner.cleanup()


@pytest.mark.asyncio
async def test_rejected_requests_counted(node):
    labels = {'method': 'POST', 'endpoint': '/api/lease/acquire'}
    before = REGISTRY.get_sample_value('request_total', labels) or 0

    async with aiohttp.ClientSession() as session:
        async with session.post(f"{node.url}/api/lease/acquire", data='not json') as response:
            assert response.status == 400

    assert REGISTRY.get_sample_value('request_total', labels) == before + 1


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
