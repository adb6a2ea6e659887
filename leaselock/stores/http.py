"""
HTTP lease store client.
Menggunakan aiohttp untuk bicara dengan LeaseStoreNode.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import aiohttp

from ..core.exceptions import ConditionNotMet, StoreTransportError
from ..core.records import LeaseRecord, to_iso_string
from ..core.store import LeaseStore
from ..utils.config import Config

logger = logging.getLogger(__name__)


class HttpLeaseStore(LeaseStore):
    """
    LeaseStore yang di-host oleh LeaseStoreNode.

    Status codes:
    - 200: write di-apply, body berisi record
    - 409: condition not met
    - 404: record tidak ada (hanya untuk get)
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        """
        Args:
            base_url: Format "http://host:port"
            timeout: Total timeout per HTTP request (seconds)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout if timeout is not None else Config.STORE_TIMEOUT
        self.session: Optional[aiohttp.ClientSession] = None

        # Statistics
        self.requests_sent = 0
        self.failed_requests = 0

    async def initialize(self):
        """Initialize HTTP client session"""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        logger.info(f"HttpLeaseStore initialized for {self.base_url}")

    async def close(self):
        """Close HTTP client session"""
        if self.session:
            await self.session.close()
            self.session = None
        logger.info(f"HttpLeaseStore closed for {self.base_url}")

    async def _request(self,
                       method: str,
                       path: str,
                       payload: Optional[Dict[str, Any]] = None) -> Tuple[int, Dict[str, Any]]:
        if not self.session:
            await self.initialize()

        url = f"{self.base_url}{path}"

        try:
            async with self.session.request(method, url, json=payload) as response:
                self.requests_sent += 1
                data = await response.json()
                return response.status, data

        except asyncio.TimeoutError as e:
            self.failed_requests += 1
            logger.warning(f"Timeout calling {url}")
            raise StoreTransportError(f"Timeout calling {url}") from e

        except (aiohttp.ClientError, ValueError) as e:
            self.failed_requests += 1
            logger.warning(f"Error calling {url}: {e}")
            raise StoreTransportError(f"Error calling {url}: {e}") from e

    def _to_record(self, name: str, status: int, data: Dict[str, Any]) -> LeaseRecord:
        if status == 200:
            try:
                return LeaseRecord.from_dict(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.failed_requests += 1
                logger.warning(f"Malformed lease record for '{name}': {data!r}")
                raise StoreTransportError(f"Malformed lease record for '{name}': {e}") from e
        if status == 409:
            raise ConditionNotMet(name)
        self.failed_requests += 1
        error = data.get('error') if isinstance(data, dict) else data
        raise StoreTransportError(f"Lease store returned HTTP {status}: {error}")

    async def try_update(self,
                         name: str,
                         lock_until: datetime,
                         locked_at: datetime,
                         locked_by: str,
                         available_at: datetime) -> LeaseRecord:
        status, data = await self._request('POST', '/api/lease/acquire', {
            'name': name,
            'lock_until': to_iso_string(lock_until),
            'locked_at': to_iso_string(locked_at),
            'locked_by': locked_by,
            'available_at': to_iso_string(available_at)
        })
        return self._to_record(name, status, data)

    async def update(self,
                     name: str,
                     lock_until: datetime,
                     held_until: Optional[datetime] = None) -> LeaseRecord:
        payload = {'name': name, 'lock_until': to_iso_string(lock_until)}
        if held_until is not None:
            payload['held_until'] = to_iso_string(held_until)

        status, data = await self._request('POST', '/api/lease/update', payload)
        return self._to_record(name, status, data)

    async def get(self, name: str) -> Optional[LeaseRecord]:
        status, data = await self._request('GET', f"/api/lease/{quote(name, safe='')}")
        if status == 404:
            return None
        return self._to_record(name, status, data)

    async def create_lease_table(self):
        """Node tidak punya schema; cukup cek node healthy"""
        status, data = await self._request('GET', '/health')
        if status != 200:
            raise StoreTransportError(f"Lease store node is {data.get('status', 'unhealthy')}")

    def get_stats(self) -> Dict[str, int]:
        return {
            'requests_sent': self.requests_sent,
            'failed_requests': self.failed_requests
        }
