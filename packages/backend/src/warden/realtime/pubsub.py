"""Redis connection pool + pub/sub event bus.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the
message is lost. That matches how Warden treats notifications: a failed
publish is logged by the caller and never fails the command that caused
it.

Channel naming: {prefix}:events:{topic}
The message body carries the key (the user id) so consumers can keep
per-user ordering.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis

from warden.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.store_timeout_seconds,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def _envelope(topic: str, key: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "topic": topic,
        "key": key,
        "payload": payload,
        "published_at": datetime.now(timezone.utc).isoformat(),
    }


class RedisEventBus:
    """EventBus over Redis PUBLISH."""

    def __init__(self, redis: aioredis.Redis, prefix: str = "warden"):
        self.redis = redis
        self.prefix = prefix

    async def publish(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        channel = f"{self.prefix}:events:{topic}"
        await self.redis.publish(
            channel, json.dumps(_envelope(topic, key, payload), default=str)
        )


class MemoryEventBus:
    """EventBus that keeps every message in a list (memory backend, tests)."""

    def __init__(self):
        self.published: list[dict[str, Any]] = []

    async def publish(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        self.published.append(_envelope(topic, key, payload))

    def of_topic(self, topic: str) -> list[dict[str, Any]]:
        return [m for m in self.published if m["topic"] == topic]
