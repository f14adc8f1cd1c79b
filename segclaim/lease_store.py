"""Thin layer over the Redis primitives the lease protocol relies on.

Lock records are JSON `{"worker_id": ..., "expires_at": ...}` with a PX expiry equal to
the lease duration. Everything that reads the owner and then writes must happen inside
a Lua script so another worker cannot claim the key between the check and the write.
"""

from redis.asyncio import Redis

from segclaim.contracts import LockRecord

# KEYS[1] = lock key
# ARGV[1] = worker_id, ARGV[2] = new expires_at (ms), ARGV[3] = lease duration (ms)
EXTEND_LOCK_LUA = r"""
local lock = redis.call('GET', KEYS[1])
if lock then
    local data = cjson.decode(lock)
    if data.worker_id == ARGV[1] then
        data.expires_at = tonumber(ARGV[2])
        redis.call('SET', KEYS[1], cjson.encode(data), 'PX', ARGV[3])
        return 1
    end
end
return 0
"""

# KEYS[1] = lock key
# ARGV[1] = worker_id
DELETE_LOCK_LUA = r"""
local lock = redis.call('GET', KEYS[1])
if lock then
    local data = cjson.decode(lock)
    if data.worker_id == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
end
return 0
"""


def _decode(raw: bytes | str | None) -> str | None:
    if raw is None:
        return None
    return raw.decode() if isinstance(raw, bytes) else raw


class LeaseStore:
    """Atomic lock operations plus plain get/set/publish."""

    def __init__(self, redis: Redis, lease_duration_ms: int):
        self._redis = redis
        self.lease_duration_ms = lease_duration_ms
        self._extend_script = redis.register_script(EXTEND_LOCK_LUA)
        self._delete_script = redis.register_script(DELETE_LOCK_LUA)

    async def create_lock(self, lock_key: str, record: LockRecord) -> bool:
        """SET NX PX. False when another owner already holds the key."""
        created = await self._redis.set(lock_key, record.model_dump_json(), nx=True, px=self.lease_duration_ms)
        return bool(created)

    async def extend_lock(self, lock_key: str, worker_id: str, expires_at: int) -> bool:
        result = await self._extend_script(
            keys=[lock_key],
            args=[worker_id, str(expires_at), str(self.lease_duration_ms)],
        )
        return int(result) == 1

    async def delete_lock(self, lock_key: str, worker_id: str) -> int:
        """Returns the number of deleted keys: 1 when owned, 0 otherwise."""
        result = await self._delete_script(keys=[lock_key], args=[worker_id])
        return int(result)

    async def get_lock(self, lock_key: str) -> LockRecord | None:
        raw = await self._redis.get(lock_key)
        return LockRecord.model_validate_json(raw) if raw is not None else None

    async def get(self, key: str) -> str | None:
        return _decode(await self._redis.get(key))

    async def set(self, key: str, value: str, ttl_ms: int) -> None:
        await self._redis.set(key, value, px=ttl_ms)

    async def publish(self, channel: str, message: str) -> int:
        return await self._redis.publish(channel, message)
