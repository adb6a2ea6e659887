"""
In-memory lease store.

Dipakai oleh LeaseStoreNode dan untuk tests. Satu asyncio.Lock menjadi
linearization point untuk setiap conditional write, sama seperti
atomic compare-and-write di store sungguhan.

Untuk simulasi race dan failure:
- jitter: random delay sebelum request sampai ke store
- fail_next(n): n request berikutnya gagal dengan StoreTransportError
- hang_next(n): n request berikutnya tidak pernah selesai (sampai di-cancel)
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Dict, List, Optional

from ..core.exceptions import ConditionNotMet, StoreTransportError
from ..core.records import LeaseRecord, truncate_to_millis
from ..core.store import LeaseStore

logger = logging.getLogger(__name__)


class InMemoryLeaseStore(LeaseStore):
    """Lease records di dalam dict: name -> LeaseRecord"""

    def __init__(self, jitter: float = 0.0):
        """
        Args:
            jitter: Maximum random delay (seconds) sebelum setiap request
        """
        self.records: Dict[str, LeaseRecord] = {}
        self.jitter = jitter
        self._lock = asyncio.Lock()
        self._failures_pending = 0
        self._hangs_pending = 0

        # Statistics
        self.writes_applied = 0
        self.conditions_failed = 0

    def fail_next(self, count: int = 1):
        """Inject transport failures untuk count request berikutnya"""
        self._failures_pending += count

    def hang_next(self, count: int = 1):
        """Inject requests yang tidak pernah selesai"""
        self._hangs_pending += count

    async def _transport(self):
        if self.jitter:
            await asyncio.sleep(random.uniform(0, self.jitter))

        if self._hangs_pending:
            self._hangs_pending -= 1
            await asyncio.Event().wait()

        if self._failures_pending:
            self._failures_pending -= 1
            raise StoreTransportError("Injected transport failure")

    async def try_update(self,
                         name: str,
                         lock_until: datetime,
                         locked_at: datetime,
                         locked_by: str,
                         available_at: datetime) -> LeaseRecord:
        await self._transport()

        async with self._lock:
            existing = self.records.get(name)
            if existing is not None and existing.lock_until > available_at:
                self.conditions_failed += 1
                raise ConditionNotMet(name)

            record = LeaseRecord(
                name=name,
                lock_until=truncate_to_millis(lock_until),
                locked_at=truncate_to_millis(locked_at),
                locked_by=locked_by
            )
            self.records[name] = record
            self.writes_applied += 1

        logger.debug(f"Applied {record}")
        return record

    async def update(self,
                     name: str,
                     lock_until: datetime,
                     held_until: Optional[datetime] = None) -> LeaseRecord:
        await self._transport()

        async with self._lock:
            existing = self.records.get(name)

            if held_until is not None:
                if existing is None or existing.lock_until != truncate_to_millis(held_until):
                    self.conditions_failed += 1
                    raise ConditionNotMet(name)

            if existing is None:
                record = LeaseRecord(name=name, lock_until=truncate_to_millis(lock_until))
            else:
                record = LeaseRecord(
                    name=name,
                    lock_until=truncate_to_millis(lock_until),
                    locked_at=existing.locked_at,
                    locked_by=existing.locked_by
                )
            self.records[name] = record
            self.writes_applied += 1

        logger.debug(f"Applied {record}")
        return record

    async def get(self, name: str) -> Optional[LeaseRecord]:
        await self._transport()
        return self.records.get(name)

    def locked_names(self, now: datetime) -> List[str]:
        """Names yang lockUntil-nya masih di masa depan"""
        return [name for name, record in self.records.items() if record.is_locked(now)]

    def __len__(self):
        return len(self.records)
