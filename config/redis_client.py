"""
config/redis_client.py
Async Redis client. Holds the cached court/slot catalogue and the
per-IP request counters for anonymous callers.
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis

from config.settings import settings

# ── Global client (set during app startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None

# ── Keys ──────────────────────────────────────────────────────
TIME_SLOTS_KEY = "catalog:time_slots"
COURTS_KEY = "catalog:courts"
CATALOG_KEYS = (TIME_SLOTS_KEY, COURTS_KEY)


async def init_redis() -> None:
    global redis_client
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await redis_client.ping()


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> aioredis.Redis:
    """FastAPI dependency. Fails loudly if startup did not connect."""
    if not redis_client:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


class RedisCache:
    """JSON values with a TTL, plus a fixed-window counter."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Any, ttl: int = settings.REDIS_CACHE_TTL) -> None:
        await self.client.setex(key, ttl, json.dumps(value, default=str))

    async def invalidate_catalog(self) -> None:
        """Forget cached courts and slots, e.g. after reseeding."""
        await self.client.delete(*CATALOG_KEYS)

    async def check_rate_limit(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        """True while the caller is within `limit` hits for the current window."""
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds)
        hits, _ = await pipe.execute()
        return hits <= limit
