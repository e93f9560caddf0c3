from __future__ import annotations

import hashlib

import redis.asyncio as aioredis
from redis import Redis

from showroom.storage.models import RateLimitEntry


class RedisRateLimitStore:
    """Rate-limit windows shared across instances through Redis.

    Each window is a hash holding ``count`` and ``reset_at``; the key expires
    at ``reset_at`` so stale windows disappear without a sweep.
    """

    # Opens or increments the window in one step so instances never lose a count
    _HIT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local data = redis.call('HMGET', key, 'count', 'reset_at')
local count = tonumber(data[1])
local reset_at = tonumber(data[2])

if count == nil or reset_at == nil or now >= reset_at then
  count = 0
  reset_at = now + window
  redis.call('HSET', key, 'reset_at', tostring(reset_at))
  redis.call('PEXPIREAT', key, math.ceil(reset_at * 1000))
end

count = count + 1
redis.call('HSET', key, 'count', count)
return {count, tostring(reset_at)}
"""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0, client=None):
        self.redis_url = redis_url
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._hit = self.client.register_script(self._HIT_SCRIPT)

    @staticmethod
    def _key(identifier: str) -> str:
        """Hash identifiers so header-supplied values cannot shape the key space."""
        digest = hashlib.sha256(identifier.encode()).hexdigest()
        return f"rate:{digest}"

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving traffic."""
        # Short-lived sync client so the async client is not bound to a throwaway loop
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def hit(self, key: str, window_seconds: int, now: float) -> RateLimitEntry:
        count, reset_at = await self._hit(keys=[self._key(key)], args=[now, window_seconds])
        return RateLimitEntry(key=key, count=int(count), reset_at=float(reset_at))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def delete_expired(self, now: float) -> int:
        # Redis expires windows itself
        return 0

    async def close(self) -> None:
        await self.client.aclose()
