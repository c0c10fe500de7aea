"""
tests/conftest.py -- Shared test fixtures for accounts API tests.

This module provides:
  - FakeRedis: in-memory stand-in for the redis.asyncio client surface the
    app uses (get/set/delete/scan_iter/ping/ttl/aclose)
  - _patch_lifespan(): wires test stores and FakeRedis into app.state,
    bypassing real startup
  - api_client: TestClient plus seeded admin/user accounts and their tokens
  - redis / user_store / product_store: per-test async unit fixtures

Design: the SQLAlchemy async engines are created INSIDE the patched lifespan
so their connection pools bind to the TestClient's event loop. Each test
module gets its own temporary SQLite file.

The environment block below must run before any application import:
get_settings() is cached on first use, and DEBUG=true lets it generate the
JWT secrets instead of raising ValueError.
"""

from __future__ import annotations

import fnmatch
import os
import time
from collections.abc import AsyncIterator, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from api.main import app
from auth.models import ROLE_ADMIN, ROLE_USER, User
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from cache.store import EntityCache
from catalog.store import ProductStore
from core.config import get_settings

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"
USER_EMAIL = "user@example.com"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# In-memory Redis
# ---------------------------------------------------------------------------


class FakeRedis:
    """Async in-memory Redis with expiry, for use with decode_responses=True semantics.

    Set fail=True to make every command raise redis ConnectionError, which
    is how the outage paths are exercised.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("fake redis is down")

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        self._check()
        return self._live(key)

    async def set(self, key: str, value, ex: int | None = None) -> bool:
        self._check()
        expires_at = time.monotonic() + ex if ex else None
        self._data[key] = (str(value), expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def ttl(self, key: str) -> int:
        self._check()
        if self._live(key) is None:
            return -2
        expires_at = self._data[key][1]
        if expires_at is None:
            return -1
        return int(round(expires_at - time.monotonic()))

    async def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[str]:
        self._check()
        for key in list(self._data):
            if self._live(key) is None:
                continue
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True

    def keys_matching(self, pattern: str) -> list[str]:
        """Synchronous helper for assertions."""
        return sorted(k for k in list(self._data) if self._live(k) is not None and fnmatch.fnmatchcase(k, pattern))


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    redis: FakeRedis
    admin: User
    user: User
    admin_token: str
    user_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @property
    def admin_headers(self) -> dict[str, str]:
        return self.auth(self.admin_token)

    @property
    def user_headers(self) -> dict[str, str]:
        return self.auth(self.user_token)


def _patch_lifespan(db_url: str, redis: FakeRedis, seeded: dict[str, User]):
    """Return an async context manager that replaces the real lifespan.

    Builds real stores on db_url, seeds one admin and one ordinary user, and
    plugs FakeRedis in where the Redis client would be.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.tokens = TokenService.from_settings(settings)
        app.state.user_store = UserStore(db_url)
        await app.state.user_store.initialize()
        app.state.product_store = ProductStore(db_url)
        await app.state.product_store.initialize()
        app.state.redis = redis
        app.state.sessions = SessionStore(redis, ttl=settings.refresh_token_expire_seconds)
        app.state.cache = EntityCache(redis, ttl=settings.cache_ttl_seconds)

        seeded["admin"] = await app.state.user_store.create_user(
            User(name="Admin", email=ADMIN_EMAIL, role=ROLE_ADMIN, password_hash=hash_password(ADMIN_PASSWORD))
        )
        seeded["user"] = await app.state.user_store.create_user(
            User(name="Regular User", email=USER_EMAIL, role=ROLE_USER, password_hash=hash_password(USER_PASSWORD))
        )
        yield
        await app.state.product_store.close()
        await app.state.user_store.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, real SQLite (aiosqlite) and the real cache and
    session logic on top of FakeRedis.
    """
    db_path = tmp_path_factory.mktemp("db") / "accounts.db"
    redis = FakeRedis()
    seeded: dict[str, User] = {}

    app.router.lifespan_context = _patch_lifespan(f"sqlite+aiosqlite:///{db_path}", redis, seeded)

    with TestClient(app, raise_server_exceptions=True) as client:
        tokens: TokenService = app.state.tokens
        yield ApiContext(
            client=client,
            redis=redis,
            admin=seeded["admin"],
            user=seeded["user"],
            admin_token=tokens.issue_access_token(seeded["admin"]),
            user_token=tokens.issue_access_token(seeded["user"]),
        )


# ---------------------------------------------------------------------------
# Async unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
async def user_store(tmp_path) -> AsyncIterator[UserStore]:
    store = UserStore(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def product_store(tmp_path) -> AsyncIterator[ProductStore]:
    store = ProductStore(f"sqlite+aiosqlite:///{tmp_path / 'products.db'}")
    await store.initialize()
    yield store
    await store.close()
