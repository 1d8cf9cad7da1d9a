"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create one shared
connection pool; when it's None (local dev, tests) every Redis consumer
falls back to its in-memory implementation.

Consumers:
  - learnpath/services/cache.py        progress cache entries (with TTL)
  - learnpath/db/change_feed.py        pub/sub push invalidation
  - learnpath/services/task_queue.py   side-effect retry queue (LPUSH/BRPOP)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from learnpath.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # cache values and feed payloads are str
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, using in-memory cache, queue and feed")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        # Keep serving: cache misses go to the store, and the store's
        # own writes still succeed without push notifications.
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
