"""
auth/sessions.py -- Redis-backed refresh-token session store.

Each successful login writes `refresh_token:<token>` -> user id with a TTL
equal to the refresh token lifetime. /auth/refresh requires the entry to exist
in addition to a valid signature, and /auth/logout deletes it. That deletion
is the only way to revoke a refresh token before its natural expiry.

Failure semantics: any Redis error raises DependencyError (HTTP 500). An
unreachable store means the session state is unknown, which must never be
reported as "logged out" (401) or silently accepted.

Layer rule: no imports from api/, cache/, or catalog/.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from core.errors import DependencyError

logger = logging.getLogger("accounts.auth")

_KEY_PREFIX = "refresh_token:"


class SessionStore:
    """Maps refresh tokens to user ids.

    Usage:
        sessions = SessionStore(redis_client, ttl=7 * 24 * 3600)
        await sessions.put(refresh_token, user.id)
        user_id = await sessions.get(refresh_token)   # None once logged out
        await sessions.delete(refresh_token)          # idempotent
    """

    def __init__(self, client: Redis, ttl: int) -> None:
        self._client = client
        self.ttl = ttl

    @staticmethod
    def _key(refresh_token: str) -> str:
        return f"{_KEY_PREFIX}{refresh_token}"

    async def put(self, refresh_token: str, user_id: int, ttl: int | None = None) -> None:
        """Upsert the session entry. Re-putting the same token just resets the TTL."""
        try:
            await self._client.set(self._key(refresh_token), str(user_id), ex=ttl or self.ttl)
        except RedisError as exc:
            logger.error("Session store write failed: %s", exc)
            raise DependencyError("Session store unavailable.") from exc

    async def get(self, refresh_token: str) -> int | None:
        try:
            value = await self._client.get(self._key(refresh_token))
        except RedisError as exc:
            logger.error("Session store read failed: %s", exc)
            raise DependencyError("Session store unavailable.") from exc
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Discarding malformed session entry")
            return None

    async def delete(self, refresh_token: str) -> None:
        """Remove the session entry. Deleting a missing key is not an error."""
        try:
            await self._client.delete(self._key(refresh_token))
        except RedisError as exc:
            logger.error("Session store delete failed: %s", exc)
            raise DependencyError("Session store unavailable.") from exc
