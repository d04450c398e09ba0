"""Redis-backed cache store.

Learn: Redis is shared by every API instance, which is what makes the
login lockout consistent under horizontal scaling. A few operations
need care:

- increment_window(): a counter must never exist without a TTL (it would
  lock the account forever) and a second failure must not extend the
  window. One MULTI/EXEC pipeline does SET key 0 EX ttl NX, then INCR.
  INCR keeps the TTL, NX keeps an existing window untouched.
- delete(): returns how many keys were removed. Single-use records rely
  on this — only the caller that got 1 back consumed the record.
- delete_if_equals(): compare-and-delete in one Lua call, so a lock is
  only released by the holder that took it.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import redis.asyncio as aioredis

_DELETE_IF_EQUALS = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisCacheStore:
    """CacheStore implementation over redis.asyncio (decode_responses=True)."""

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def set(self, key: str, value: str, ttl: Optional[timedelta] = None) -> None:
        if ttl is not None:
            # Redis rejects EX 0; a token about to expire still gets a second
            await self.redis.set(key, value, ex=max(1, int(ttl.total_seconds())))
        else:
            await self.redis.set(key, value)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def delete(self, key: str) -> int:
        return int(await self.redis.delete(key))

    async def increment(self, key: str) -> int:
        return int(await self.redis.incr(key))

    async def expire(self, key: str, ttl: timedelta) -> bool:
        return bool(await self.redis.expire(key, max(1, int(ttl.total_seconds()))))

    async def add_to_set(self, key: str, member: str) -> None:
        await self.redis.sadd(key, member)

    async def remove_from_set(self, key: str, member: str) -> None:
        await self.redis.srem(key, member)

    async def members_of(self, key: str) -> set[str]:
        return set(await self.redis.smembers(key))

    async def increment_window(self, key: str, ttl: timedelta) -> int:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=max(1, int(ttl.total_seconds())), nx=True)
            pipe.incr(key)
            _, count = await pipe.execute()
        return int(count)

    async def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool:
        ms = max(1, int(ttl.total_seconds() * 1000))
        return bool(await self.redis.set(key, value, px=ms, nx=True))

    async def delete_if_equals(self, key: str, value: str) -> int:
        return int(await self.redis.eval(_DELETE_IF_EQUALS, 1, key, value))
