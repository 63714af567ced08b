"""Redis connection management.

When REDIS_URL is configured we create a connection pool and the
API-version cache (services/cache.py) is shared across processes.  When
it is unset (local dev, tests) everything falls back to in-memory
implementations and no Redis server is needed.

The OAuth correlation store deliberately does NOT live here: it is a
per-process component owned by the application lifespan.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from oauth_relay.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis(pool: aioredis.Redis | None = redis_pool):  # type: ignore[type-arg]
    """Verify connectivity on startup, release the pool on shutdown.

    An unreachable Redis is logged, not fatal: the cache is an
    optimisation and the relay works without it.  The pool is closed on
    the way out in every case, including a failed ping or a crashing app.
    """
    if pool is None:
        logger.info("No REDIS_URL configured, API version cache is in-memory")
        yield
        return

    try:
        try:
            await pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
            logger.info("Redis connected")
        except Exception:
            logger.exception("Redis connection failed on startup")
        yield
    finally:
        await pool.aclose()
        logger.info("Redis connection pool closed")
