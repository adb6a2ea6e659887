"""
Lease Lock.

Distributed mutual exclusion di atas LeaseStore:
1. Acquire = satu conditional update dengan precondition
   "record absent OR lockUntil <= now".
2. Jika update di-apply, kita punya lock. Jika condition gagal,
   node lain sedang hold lock.
3. Release = set lockUntil ke max(now, lock_at_least_until), hanya
   selama record masih milik lease ini.
4. Holder yang crash tidak pernah membuat deadlock permanen:
   record expire sendiri di lock_at_most_until.

Tidak ada retry, backoff, atau client-side lock. Contention cukup
menghasilkan "not acquired"; caller skip scheduling window ini.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from .clock import Clock, SystemClock
from .configuration import LockConfiguration, TaskResult
from .exceptions import (
    ConditionNotMet,
    LeaseReleaseError,
    LockConfigurationError,
    StoreTransportError,
)
from .records import to_iso_string, truncate_to_millis
from .store import LeaseStore
from ..utils.config import Config
from ..utils.identity import get_hostname
from ..utils.metrics import metrics, measure_time

logger = logging.getLogger(__name__)


class Lease:
    """
    In-memory handle untuk lock yang sudah di-acquire.

    Holding object ini adalah satu-satunya bukti ownership. Jangan
    di-share antar tasks dan jangan dipakai melewati satu task execution.
    """

    def __init__(self,
                 lock: 'LeaseLock',
                 name: str,
                 lock_at_most_until: datetime,
                 lock_at_least_until: datetime,
                 locked_at: datetime,
                 locked_by: str):
        self._lock = lock
        self.name = name
        self.lock_at_most_until = lock_at_most_until
        self.lock_at_least_until = lock_at_least_until
        self.locked_at = locked_at
        self.locked_by = locked_by
        self.released = False

    async def release(self):
        """
        Release lease.

        Raises:
            LeaseReleaseError: release write tidak terkonfirmasi.
                Lock tetap expire di lock_at_most_until.
        """
        await self._lock._release(self)

    def __repr__(self):
        return (f"Lease({self.name}, at_most={to_iso_string(self.lock_at_most_until)}, "
                f"at_least={to_iso_string(self.lock_at_least_until)}, released={self.released})")


class LeaseLock:
    """
    Lock provider yang mengkoordinasikan locks lewat LeaseStore.

    Features:
    - Single-shot acquire (fail closed pada transport failure)
    - Release dengan minimum holding period (lock_at_least_until)
    - Ownership-conditioned release (stale lease tidak bisa
      memperpendek lease holder berikutnya)
    - Bounded timeout untuk setiap store call
    """

    def __init__(self,
                 store: LeaseStore,
                 clock: Optional[Clock] = None,
                 identity: Optional[str] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            store: Backend untuk lease records
            clock: Sumber 'now' (default: SystemClock)
            identity: Nilai lockedBy (default: hostname)
            timeout: Batas waktu setiap store call dalam seconds
        """
        if timeout is None:
            timeout = Config.STORE_TIMEOUT
        if timeout <= 0:
            raise LockConfigurationError(f"timeout must be positive, got {timeout}")

        self.store = store
        self.clock = clock or SystemClock()
        self.identity = identity or get_hostname()
        self.timeout = timeout

        # Statistics
        self.leases_acquired = 0
        self.leases_contended = 0
        self.acquire_failures = 0
        self.leases_released = 0
        self.leases_lost = 0
        self.release_failures = 0

    def _validate(self,
                  name: str,
                  lock_at_most_until: datetime,
                  lock_at_least_until: datetime,
                  now: datetime):
        if not isinstance(name, str) or not name:
            raise LockConfigurationError("Lock name must be a non-empty string")

        for label, value in (('lock_at_most_until', lock_at_most_until),
                             ('lock_at_least_until', lock_at_least_until)):
            if not isinstance(value, datetime):
                raise LockConfigurationError(f"{label} must be a datetime, got {type(value).__name__}")
            if value.tzinfo is None:
                raise LockConfigurationError(f"{label} must be timezone-aware")

        lock_at_most_until = truncate_to_millis(lock_at_most_until)
        lock_at_least_until = truncate_to_millis(lock_at_least_until)

        if lock_at_most_until <= now:
            raise LockConfigurationError(
                f"lock_at_most_until ({to_iso_string(lock_at_most_until)}) "
                f"is not in the future")
        if lock_at_least_until > lock_at_most_until:
            raise LockConfigurationError(
                f"lock_at_least_until ({to_iso_string(lock_at_least_until)}) is after "
                f"lock_at_most_until ({to_iso_string(lock_at_most_until)})")

    async def try_acquire(self,
                          name: str,
                          lock_at_most_until: datetime,
                          lock_at_least_until: Optional[datetime] = None) -> Optional[Lease]:
        """
        Coba acquire lock sekali.

        Args:
            name: Lock name
            lock_at_most_until: Hard ceiling, harus di masa depan
            lock_at_least_until: Floor untuk early release (default: now)

        Returns:
            Lease jika acquired, None jika lock di-hold node lain atau
            store tidak bisa mengkonfirmasi write

        Raises:
            LockConfigurationError: parameter invalid
        """
        now = truncate_to_millis(self.clock.now())
        if lock_at_least_until is None:
            lock_at_least_until = now

        self._validate(name, lock_at_most_until, lock_at_least_until, now)

        # Lease harus memegang nilai yang identik dengan yang tersimpan di store
        lock_at_most_until = truncate_to_millis(lock_at_most_until)
        lock_at_least_until = truncate_to_millis(lock_at_least_until)

        try:
            with measure_time() as timer:
                record = await asyncio.wait_for(
                    self.store.try_update(
                        name,
                        lock_until=lock_at_most_until,
                        locked_at=now,
                        locked_by=self.identity,
                        available_at=now
                    ),
                    timeout=self.timeout
                )
            metrics.record_store_latency('try_update', timer.elapsed)

        except ConditionNotMet:
            self.leases_contended += 1
            metrics.record_acquire(name, 'contended')
            logger.debug(f"Lock '{name}' is held by another node")
            return None

        except asyncio.TimeoutError:
            self.acquire_failures += 1
            metrics.record_acquire(name, 'failed')
            logger.warning(f"Timeout acquiring lock '{name}' after {self.timeout}s, treating as not acquired")
            return None

        except StoreTransportError as e:
            self.acquire_failures += 1
            metrics.record_acquire(name, 'failed')
            logger.warning(f"Store error acquiring lock '{name}', treating as not acquired: {e}")
            return None

        if record.lock_until != lock_at_most_until:
            self.acquire_failures += 1
            metrics.record_acquire(name, 'failed')
            logger.error(f"Store returned lockUntil {to_iso_string(record.lock_until)} for '{name}', "
                         f"expected {to_iso_string(lock_at_most_until)}")
            return None

        self.leases_acquired += 1
        metrics.record_acquire(name, 'acquired')
        logger.info(f"{self.identity} acquired lock '{name}' until {to_iso_string(lock_at_most_until)}")

        return Lease(
            lock=self,
            name=name,
            lock_at_most_until=lock_at_most_until,
            lock_at_least_until=lock_at_least_until,
            locked_at=now,
            locked_by=self.identity
        )

    async def _release(self, lease: Lease):
        if lease.released:
            logger.warning(f"Lease on '{lease.name}' already released, ignoring")
            return

        now = truncate_to_millis(self.clock.now())
        effective_until = max(now, lease.lock_at_least_until)

        try:
            with measure_time() as timer:
                await asyncio.wait_for(
                    self.store.update(
                        lease.name,
                        lock_until=effective_until,
                        held_until=lease.lock_at_most_until
                    ),
                    timeout=self.timeout
                )
            metrics.record_store_latency('update', timer.elapsed)

        except ConditionNotMet:
            # Lease sudah expire dan lock di-acquire node lain
            lease.released = True
            self.leases_lost += 1
            metrics.record_release(lease.name, 'lost')
            logger.warning(f"Lock '{lease.name}' is no longer held by this lease, "
                           f"leaving the current holder untouched")
            return

        except asyncio.TimeoutError as e:
            self.release_failures += 1
            metrics.record_release(lease.name, 'failed')
            logger.error(f"Timeout releasing lock '{lease.name}', it expires at "
                         f"{to_iso_string(lease.lock_at_most_until)}")
            raise LeaseReleaseError(lease.name, f"timeout after {self.timeout}s") from e

        except StoreTransportError as e:
            self.release_failures += 1
            metrics.record_release(lease.name, 'failed')
            logger.error(f"Store error releasing lock '{lease.name}', it expires at "
                         f"{to_iso_string(lease.lock_at_most_until)}: {e}")
            raise LeaseReleaseError(lease.name, str(e)) from e

        lease.released = True
        self.leases_released += 1
        metrics.record_release(lease.name, 'released')
        logger.info(f"Released lock '{lease.name}', available from {to_iso_string(effective_until)}")

    async def execute(self,
                      configuration: LockConfiguration,
                      task: Callable[[], Awaitable[Any]]) -> TaskResult:
        """
        Jalankan task hanya jika lock bisa di-acquire.

        Lease di-release setelah task selesai, gagal, atau di-cancel.

        Returns:
            TaskResult(executed=False) jika lock tidak didapat
        """
        lock_at_most_until, lock_at_least_until = configuration.deadlines(self.clock.now())
        lease = await self.try_acquire(configuration.name, lock_at_most_until, lock_at_least_until)

        if lease is None:
            logger.info(f"Not executing '{configuration.name}', lock not acquired")
            return TaskResult(executed=False)

        try:
            result = await task()
        except BaseException:
            try:
                await lease.release()
            except LeaseReleaseError as e:
                logger.error(f"Release after failed task '{configuration.name}' failed: {e}")
            raise

        await lease.release()
        return TaskResult(executed=True, result=result)

    def get_stats(self) -> Dict[str, Any]:
        """Get lock statistics"""
        return {
            'identity': self.identity,
            'leases_acquired': self.leases_acquired,
            'leases_contended': self.leases_contended,
            'acquire_failures': self.acquire_failures,
            'leases_released': self.leases_released,
            'leases_lost': self.leases_lost,
            'release_failures': self.release_failures
        }
