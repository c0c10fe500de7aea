"""
tests/test_sessions.py -- Unit tests for auth/sessions.py (SessionStore).
"""

from __future__ import annotations

import pytest

from auth.sessions import SessionStore
from core.errors import DependencyError


@pytest.mark.asyncio
async def test_put_get_delete(redis) -> None:
    sessions = SessionStore(redis, ttl=3600)
    await sessions.put("tok-1", 42)
    assert await sessions.get("tok-1") == 42
    assert redis.keys_matching("refresh_token:*") == ["refresh_token:tok-1"]

    await sessions.delete("tok-1")
    assert await sessions.get("tok-1") is None


@pytest.mark.asyncio
async def test_entry_carries_ttl(redis) -> None:
    sessions = SessionStore(redis, ttl=7 * 24 * 3600)
    await sessions.put("tok-ttl", 1)
    remaining = await redis.ttl("refresh_token:tok-ttl")
    assert 7 * 24 * 3600 - 5 <= remaining <= 7 * 24 * 3600


@pytest.mark.asyncio
async def test_delete_is_idempotent(redis) -> None:
    sessions = SessionStore(redis, ttl=60)
    await sessions.delete("never-stored")
    await sessions.put("tok-2", 1)
    await sessions.delete("tok-2")
    await sessions.delete("tok-2")
    assert await sessions.get("tok-2") is None


@pytest.mark.asyncio
async def test_malformed_entry_reads_as_missing(redis) -> None:
    await redis.set("refresh_token:tok-bad", "not-an-int")
    assert await SessionStore(redis, ttl=60).get("tok-bad") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("op", ["put", "get", "delete"])
async def test_outage_raises_dependency_error(redis, op: str) -> None:
    """An unreachable session store must never read as 'logged out'."""
    sessions = SessionStore(redis, ttl=60)
    redis.fail = True
    with pytest.raises(DependencyError):
        if op == "put":
            await sessions.put("tok", 1)
        elif op == "get":
            await sessions.get("tok")
        else:
            await sessions.delete("tok")
