"""Read-through cache for derived progress snapshots.

Flow: GET progress -> cache hit? return it : compute from source rows,
store with a TTL, return.  Every write path that can change an
enrollment's snapshot (lesson progress, attempt submit/expire/reset,
enrollment completion) deletes ``progress_key(enrollment_id)`` through
invalidate_progress(), and the request dependency deletes it once more
after the database session commits.

The TTL (PROGRESS_CACHE_TTL) bounds staleness if a write path ever
misses an invalidation; explicit deletes keep the common case fresh.
The cache only ever holds recomputable data, so an empty cache is
always correct, just slower.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

from coursetrack.db.redis import redis_pool

if TYPE_CHECKING:
    from coursetrack.repos.repositories import Repositories


def progress_key(enrollment_id: UUID) -> str:
    return f"progress:{enrollment_id}"


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """Process-local cache for dev and tests; TTLs are not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def clear(self) -> None:
        self._store.clear()

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    # Keeps cache keys apart from the task queue lists
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()


async def invalidate_progress(repos: Repositories, enrollment_id: UUID) -> None:
    """Drop the cached snapshot now and again when the unit of work ends.

    A reader that misses the cache mid-transaction recomputes from the
    pre-commit rows and stores them; the second delete removes that entry.
    """
    await cache_service.delete(progress_key(enrollment_id))
    repos.stale_progress.add(enrollment_id)


async def flush_stale_progress(repos: Repositories) -> None:
    while repos.stale_progress:
        await cache_service.delete(progress_key(repos.stale_progress.pop()))
