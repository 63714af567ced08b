"""Small TTL cache used to memoise per-org lookups.

Today its only tenant is the "latest API version" of a Salesforce
instance, which changes three times a year.  Keys are always scoped by
instance URL: two orgs on different releases must not share an entry.

Same Protocol + InMemory/Redis split as the rest of the service's
stateful helpers; the Redis variant is picked automatically when
REDIS_URL is configured.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from oauth_relay.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...


class InMemoryCacheService:
    """Per-process cache with TTL enforcement.

    Keys come from caller-supplied instance URLs, so the store is bounded:
    expired entries are swept on every write, and when ``max_entries`` live
    entries remain the one closest to expiry is evicted.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
    ) -> None:
        self._clock = clock
        self._max_entries = max_entries
        # key -> (value, expires_at)
        self._store: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        item = self._store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            self._store.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        for stale in [k for k, (_, exp) in self._store.items() if exp <= now]:
            del self._store[stale]
        if key not in self._store and len(self._store) >= self._max_entries:
            oldest = min(self._store, key=lambda k: self._store[k][1])
            del self._store[oldest]
        self._store[key] = (value, now + ttl_seconds)


class RedisCacheService:
    """Redis-backed cache, shared by every relay instance."""

    # Key prefix keeps cache entries apart from anything else in the db.
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        # SETEX sets value and TTL atomically.
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
