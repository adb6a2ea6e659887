"""
Lease Store Node.
HTTP server yang meng-host InMemoryLeaseStore sehingga semua
nodes di fleet bisa berbagi satu lease store.

Endpoints:
- POST /api/lease/acquire  conditional update (absent OR lockUntil <= available_at)
- POST /api/lease/update   set lockUntil (optional: hanya jika lockUntil == held_until)
- GET  /api/lease/{name}   read record
- GET  /api/status, /api/metrics, /health
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from ..core.exceptions import ConditionNotMet
from ..core.records import from_iso_string, to_iso_string
from ..core.clock import SystemClock
from ..stores.memory import InMemoryLeaseStore
from ..utils.metrics import metrics, measure_time

logger = logging.getLogger(__name__)


@web.middleware
async def metrics_middleware(request: web.Request, handler):
    """Record latency setiap request, termasuk yang berakhir dengan HTTPException"""
    timer = measure_time()
    try:
        with timer:
            return await handler(request)
    finally:
        resource = request.match_info.route.resource
        endpoint = resource.canonical if resource else 'unknown'
        metrics.record_request(request.method, endpoint, timer.elapsed)


class LeaseStoreNode:
    """
    Lease store node.

    Features:
    - Conditional acquire dan release lewat HTTP
    - Linearizable per key (asyncio.Lock di InMemoryLeaseStore)
    - Status, Prometheus metrics, dan health check
    """

    def __init__(self,
                 node_id: int,
                 host: str,
                 port: int,
                 store: Optional[InMemoryLeaseStore] = None):
        """
        Args:
            node_id: Unique ID untuk node
            host: Host address
            port: Port number
            store: Backing store (default: InMemoryLeaseStore baru)
        """
        self.node_id = node_id
        self.host = host
        self.port = port
        self.store = store or InMemoryLeaseStore()
        self.clock = SystemClock()

        # HTTP server
        self.app = web.Application(middlewares=[metrics_middleware])
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        # Setup routes
        self._setup_routes()

        # Statistics
        self.acquires_granted = 0
        self.acquires_rejected = 0
        self.updates_applied = 0
        self.updates_rejected = 0

        # Running state
        self._running = False

        logger.info(f"LeaseStoreNode {node_id} initialized at {host}:{port}")

    def _setup_routes(self):
        """Setup HTTP API routes"""
        self.app.router.add_post('/api/lease/acquire', self.handle_acquire)
        self.app.router.add_post('/api/lease/update', self.handle_update)
        self.app.router.add_get('/api/lease/{name}', self.handle_get)
        self.app.router.add_get('/api/status', self.handle_status)
        self.app.router.add_get('/api/metrics', self.handle_metrics)
        self.app.router.add_get('/health', self.handle_health)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self):
        """Start HTTP server"""
        logger.info(f"Starting lease store node {self.node_id}...")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        self._running = True
        logger.info(f"Node {self.node_id} started successfully at {self.url}")

    async def stop(self):
        """Stop node dan cleanup"""
        logger.info(f"Stopping node {self.node_id}...")

        self._running = False

        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()

        logger.info(f"Node {self.node_id} stopped")

    async def _read_json(self, request: web.Request) -> Dict[str, Any]:
        try:
            data = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(
                text='{"error": "invalid_json"}', content_type='application/json')
        if not isinstance(data, dict) or not data.get('name'):
            raise web.HTTPBadRequest(
                text='{"error": "name_required"}', content_type='application/json')
        return data

    async def handle_acquire(self, request: web.Request) -> web.Response:
        """HTTP endpoint untuk conditional acquire"""
        data = await self._read_json(request)
        name = data['name']

        try:
            lock_until = from_iso_string(data['lock_until'])
            locked_at = from_iso_string(data['locked_at'])
            available_at = from_iso_string(data.get('available_at', data['locked_at']))
            locked_by = str(data.get('locked_by', ''))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return web.json_response({'error': f"invalid_request: {e}"}, status=400)

        try:
            record = await self.store.try_update(name, lock_until, locked_at, locked_by, available_at)
        except ConditionNotMet:
            self.acquires_rejected += 1
            logger.debug(f"Rejected acquire of '{name}' by {locked_by}")
            return web.json_response({'error': 'condition_not_met', 'name': name}, status=409)

        self.acquires_granted += 1
        metrics.set_lease_records(len(self.store))
        logger.info(f"{locked_by} acquired '{name}' until {to_iso_string(lock_until)}")
        return web.json_response(record.to_dict())

    async def handle_update(self, request: web.Request) -> web.Response:
        """HTTP endpoint untuk release write"""
        data = await self._read_json(request)
        name = data['name']

        try:
            lock_until = from_iso_string(data['lock_until'])
            held_until = data.get('held_until')
            held_until = from_iso_string(held_until) if held_until else None
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return web.json_response({'error': f"invalid_request: {e}"}, status=400)

        try:
            record = await self.store.update(name, lock_until, held_until)
        except ConditionNotMet:
            self.updates_rejected += 1
            logger.info(f"Rejected update of '{name}', lease is no longer held")
            return web.json_response({'error': 'condition_not_met', 'name': name}, status=409)

        self.updates_applied += 1
        metrics.set_lease_records(len(self.store))
        logger.info(f"Updated '{name}' lockUntil to {to_iso_string(lock_until)}")
        return web.json_response(record.to_dict())

    async def handle_get(self, request: web.Request) -> web.Response:
        """Get satu lease record"""
        name = request.match_info['name']
        record = await self.store.get(name)
        if record is None:
            return web.json_response({'error': 'not_found', 'name': name}, status=404)
        return web.json_response(record.to_dict())

    async def handle_status(self, request: web.Request) -> web.Response:
        """Get status semua lease records"""
        now = self.clock.now()
        status = {
            'node_id': self.node_id,
            'address': f"{self.host}:{self.port}",
            'running': self._running,
            'lease_records': len(self.store),
            'locked': self.store.locked_names(now),
            'records': {
                name: record.to_dict()
                for name, record in self.store.records.items()
            },
            'statistics': {
                'acquires_granted': self.acquires_granted,
                'acquires_rejected': self.acquires_rejected,
                'updates_applied': self.updates_applied,
                'updates_rejected': self.updates_rejected
            }
        }
        return web.json_response(status)

    async def handle_metrics(self, request: web.Request) -> web.Response:
        """Export Prometheus metrics"""
        metrics_data = metrics.get_metrics()
        return web.Response(body=metrics_data, content_type='text/plain')

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint"""
        if self._running:
            return web.json_response({'status': 'healthy'})
        else:
            return web.json_response({'status': 'unhealthy'}, status=503)


# Test code
async def test_lease_node():
    """Jalankan node dan dua clients yang berebut lock yang sama"""
    from datetime import timedelta
    from ..core.lease_lock import LeaseLock
    from ..stores.http import HttpLeaseStore

    node = LeaseStoreNode(node_id=1, host='localhost', port=6001)
    await node.start()

    store_a = HttpLeaseStore(node.url)
    store_b = HttpLeaseStore(node.url)
    lock_a = LeaseLock(store_a, identity='node-a')
    lock_b = LeaseLock(store_b, identity='node-b')

    now = lock_a.clock.now()

    print("\n1. node-a acquires 'job-x' for 60s")
    lease = await lock_a.try_acquire('job-x', now + timedelta(seconds=60))
    print(f"   Result: {lease}")

    print("\n2. node-b tries to acquire 'job-x'")
    result = await lock_b.try_acquire('job-x', now + timedelta(seconds=60))
    print(f"   Result: {result}")

    print("\n3. node-a releases 'job-x'")
    await lease.release()

    print("\n4. node-b tries again")
    result = await lock_b.try_acquire('job-x', lock_b.clock.now() + timedelta(seconds=60))
    print(f"   Result: {result}")

    await store_a.close()
    await store_b.close()
    await node.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(test_lease_node())
