"""
cache/store.py -- Redis cache-aside layer for entity reads.

Reads go through read_through(): a hit returns the cached JSON, a miss runs
the loader against the store of record and caches the result for the TTL
(default 5 minutes). Writes never update the cache; they invalidate it.

Key layout (see CacheNamespace):
    user:42                 single entity
    users:1:10:ada          collection page (page, limit, filter...)

Invalidation policy: any create/update/delete of an entity must delete the
single-entity key AND every key under the collection prefix, because a write
can move a row between pages or in/out of a filter. invalidate_entity() does
both. Callers invalidate AFTER the write commits, never before, so a
concurrent reader cannot repopulate the cache with pre-write data.

Failure policy:
  - get/populate failures degrade to a miss (logged) -- the store of record
    still answers, so a cache outage never fails a read.
  - invalidation failures raise DependencyError -- a silently skipped
    invalidation would leave stale data readable for a full TTL.

No single-flight: concurrent misses on one key may each call the loader.

Usage:
    cache = EntityCache(redis_client, ttl=300)
    body = await cache.read_through(USERS.item(42), load_user)
    await cache.invalidate_entity(USERS, 42)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from core.errors import DependencyError

logger = logging.getLogger("accounts.cache")

_DEFAULT_TTL = 5 * 60
_SCAN_BATCH = 500


@dataclass(frozen=True)
class CacheNamespace:
    """Key builder for one entity type."""

    entity: str
    collection: str

    def item(self, entity_id: int | str) -> str:
        return f"{self.entity}:{entity_id}"

    def listing(self, *params: Any) -> str:
        return ":".join([self.collection, *(str(p) for p in params)])

    @property
    def prefix(self) -> str:
        return f"{self.collection}:"


USERS = CacheNamespace("user", "users")
PRODUCTS = CacheNamespace("product", "products")


class EntityCache:
    def __init__(self, client: Redis, ttl: int = _DEFAULT_TTL) -> None:
        self._client = client
        self.ttl = ttl

    # ------------------------------------------------------------------
    # Read side (best effort)
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss, decode error, or outage."""
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            logger.warning("Cache read failed for %s, falling through: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl or self.ttl)
        except RedisError as exc:
            logger.warning("Cache populate failed for %s: %s", key, exc)

    async def read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any | None]],
        ttl: int | None = None,
    ) -> Any | None:
        """Return the cached value for key, loading and caching it on a miss.

        A loader result of None (e.g. row not found) is returned but never
        cached, so a later insert is visible immediately.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    # ------------------------------------------------------------------
    # Write side (must not fail silently)
    # ------------------------------------------------------------------

    async def invalidate(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            logger.error("Cache invalidation failed for %s: %s", key, exc)
            raise DependencyError("Cache invalidation failed.") from exc

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the number of keys removed.

        Uses incremental SCAN rather than KEYS so a large keyspace never
        blocks the Redis server.
        """
        removed = 0
        batch: list[str] = []
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*", count=_SCAN_BATCH):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH:
                    removed += await self._client.delete(*batch)
                    batch.clear()
            if batch:
                removed += await self._client.delete(*batch)
        except RedisError as exc:
            logger.error("Cache invalidation failed for prefix %s: %s", prefix, exc)
            raise DependencyError("Cache invalidation failed.") from exc
        return removed

    async def invalidate_entity(self, namespace: CacheNamespace, entity_id: int | str | None = None) -> None:
        """Apply the write policy: drop the entity key (if any) and all collection pages."""
        if entity_id is not None:
            await self.invalidate(namespace.item(entity_id))
        await self.invalidate_prefix(namespace.prefix)

    async def ping(self) -> bool:
        return bool(await self._client.ping())
