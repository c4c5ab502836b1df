"""Redis connection management.

Same shape as engine.py: REDIS_URL set means one shared asyncio
connection pool; unset means ``redis_pool`` is None and the progress
cache and task queue use their in-memory implementations.

Redis holds only derived or transient data here (cached progress
snapshots, queued certificate/grading tasks).  Losing it costs a
recompute, never progress history.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from coursetrack.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Ping on startup, close the pool on shutdown.

    A failed ping is logged and startup continues; /health reports the
    outage.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, cache and queue run in memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
