"""
Redis lease store.

Setiap lock disimpan sebagai hash "<prefix><name>" dengan fields
lockUntil, lockedAt, lockedBy. Conditional writes dijalankan sebagai
Lua scripts sehingga check-and-set atomic di sisi Redis.
Timestamps fixed-width ISO strings, jadi string compare == time compare.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.exceptions import ConditionNotMet, StoreTransportError
from ..core.records import ID, LOCK_UNTIL, LeaseRecord, to_iso_string
from ..core.store import LeaseStore
from ..utils.config import Config

logger = logging.getLogger(__name__)

# KEYS[1] = lock key
# ARGV = lockUntil, lockedAt, lockedBy, availableAt
ACQUIRE_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'lockUntil')
if current and current > ARGV[4] then
  return nil
end
redis.call('HSET', KEYS[1], 'lockUntil', ARGV[1], 'lockedAt', ARGV[2], 'lockedBy', ARGV[3])
return redis.call('HGETALL', KEYS[1])
"""

# ARGV = lockUntil, heldUntil ('' = unconditional)
RELEASE_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'lockUntil')
if ARGV[2] ~= '' and current ~= ARGV[2] then
  return nil
end
redis.call('HSET', KEYS[1], 'lockUntil', ARGV[1])
return redis.call('HGETALL', KEYS[1])
"""


def _decode(value):
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value


class RedisLeaseStore(LeaseStore):
    """LeaseStore di atas redis.asyncio"""

    def __init__(self,
                 client: Optional[aioredis.Redis] = None,
                 key_prefix: Optional[str] = None):
        """
        Args:
            client: Redis client (default: dari Config)
            key_prefix: Prefix untuk lock keys
        """
        if client is None:
            client = aioredis.Redis(
                host=Config.REDIS_HOST,
                port=Config.REDIS_PORT,
                db=Config.REDIS_DB,
                socket_timeout=Config.STORE_TIMEOUT,
                decode_responses=True
            )
        self.redis = client
        self.key_prefix = key_prefix if key_prefix is not None else Config.REDIS_KEY_PREFIX

        self._acquire_script = self.redis.register_script(ACQUIRE_SCRIPT)
        self._release_script = self.redis.register_script(RELEASE_SCRIPT)

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    def _to_record(self, name: str, flat: List) -> LeaseRecord:
        """HGETALL reply [field, value, ...] -> LeaseRecord"""
        fields: Dict[str, str] = {}
        for i in range(0, len(flat), 2):
            fields[_decode(flat[i])] = _decode(flat[i + 1])
        fields[ID] = name
        return LeaseRecord.from_dict(fields)

    async def try_update(self,
                         name: str,
                         lock_until: datetime,
                         locked_at: datetime,
                         locked_by: str,
                         available_at: datetime) -> LeaseRecord:
        try:
            result = await self._acquire_script(
                keys=[self._key(name)],
                args=[
                    to_iso_string(lock_until),
                    to_iso_string(locked_at),
                    locked_by,
                    to_iso_string(available_at)
                ]
            )
        except RedisError as e:
            logger.warning(f"Redis error acquiring '{name}': {e}")
            raise StoreTransportError(f"Redis error: {e}") from e

        if result is None:
            raise ConditionNotMet(name)
        return self._to_record(name, result)

    async def update(self,
                     name: str,
                     lock_until: datetime,
                     held_until: Optional[datetime] = None) -> LeaseRecord:
        held = to_iso_string(held_until) if held_until is not None else ''
        try:
            result = await self._release_script(
                keys=[self._key(name)],
                args=[to_iso_string(lock_until), held]
            )
        except RedisError as e:
            logger.warning(f"Redis error releasing '{name}': {e}")
            raise StoreTransportError(f"Redis error: {e}") from e

        if result is None:
            raise ConditionNotMet(name)
        return self._to_record(name, result)

    async def get(self, name: str) -> Optional[LeaseRecord]:
        try:
            fields = await self.redis.hgetall(self._key(name))
        except RedisError as e:
            raise StoreTransportError(f"Redis error: {e}") from e

        if not fields:
            return None
        fields = {_decode(k): _decode(v) for k, v in fields.items()}
        if LOCK_UNTIL not in fields:
            return None
        fields[ID] = name
        return LeaseRecord.from_dict(fields)

    async def create_lease_table(self):
        """Redis schemaless; cukup test connection"""
        try:
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except RedisError as e:
            raise StoreTransportError(f"Failed to connect to Redis: {e}") from e

    async def close(self):
        await self.redis.aclose()
