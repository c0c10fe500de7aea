"""
tests/test_cache.py -- Unit tests for cache/store.py (EntityCache, CacheNamespace).

Covers:
  - Key layout for entity and collection keys
  - read_through: miss -> loader -> populate; hit -> no loader call
  - None results are never cached
  - Read-side outage degrades to the loader; write-side outage raises
  - invalidate_entity removes the entity key and every collection page only
"""

from __future__ import annotations

import pytest

from cache.store import PRODUCTS, USERS, EntityCache
from core.errors import DependencyError


class _Loader:
    def __init__(self, value) -> None:
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


def test_key_layout() -> None:
    assert USERS.item(42) == "user:42"
    assert USERS.listing(1, 10, "") == "users:1:10:"
    assert USERS.listing(2, 5, "ada") == "users:2:5:ada"
    assert PRODUCTS.prefix == "products:"


@pytest.mark.asyncio
async def test_read_through_populates_then_hits(redis) -> None:
    cache = EntityCache(redis, ttl=300)
    loader = _Loader({"id": 1, "name": "Ada"})

    assert await cache.read_through("user:1", loader) == {"id": 1, "name": "Ada"}
    assert await cache.read_through("user:1", loader) == {"id": 1, "name": "Ada"}
    assert loader.calls == 1, "Second read must be served from the cache"
    assert 295 <= await redis.ttl("user:1") <= 300


@pytest.mark.asyncio
async def test_none_is_not_cached(redis) -> None:
    cache = EntityCache(redis)
    loader = _Loader(None)
    assert await cache.read_through("user:404", loader) is None
    assert await cache.read_through("user:404", loader) is None
    assert loader.calls == 2
    assert redis.keys_matching("user:*") == []


@pytest.mark.asyncio
async def test_read_outage_falls_through(redis) -> None:
    cache = EntityCache(redis)
    redis.fail = True
    loader = _Loader({"id": 3})
    assert await cache.read_through("user:3", loader) == {"id": 3}
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_undecodable_entry_is_a_miss(redis) -> None:
    await redis.set("user:9", "{not json")
    assert await EntityCache(redis).get("user:9") is None


@pytest.mark.asyncio
async def test_invalidate_entity_clears_item_and_collection(redis) -> None:
    cache = EntityCache(redis)
    for key in ("user:1", "user:2", "users:1:10:", "users:2:10:", "users:1:10:ada", "products:1:10:"):
        await cache.set(key, {"k": key})

    await cache.invalidate_entity(USERS, 1)

    assert redis.keys_matching("users:*") == []
    assert redis.keys_matching("user:*") == ["user:2"]
    assert redis.keys_matching("products:*") == ["products:1:10:"], "Other namespaces must be untouched"


@pytest.mark.asyncio
async def test_invalidate_prefix_counts(redis) -> None:
    cache = EntityCache(redis)
    for page in range(1, 1201):
        await cache.set(f"users:{page}:10:", {})
    assert await cache.invalidate_prefix("users:") == 1200
    assert await cache.invalidate_prefix("users:") == 0


@pytest.mark.asyncio
async def test_invalidation_outage_raises(redis) -> None:
    cache = EntityCache(redis)
    redis.fail = True
    with pytest.raises(DependencyError):
        await cache.invalidate("user:1")
    with pytest.raises(DependencyError):
        await cache.invalidate_prefix("users:")
