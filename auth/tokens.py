"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, two secrets:
       - access tokens (15 min) prove identity for ordinary requests and are
         verified statelessly -- no store hit per request;
       - refresh tokens (7 days) are only honoured while a matching entry
         exists in the SessionStore (auth/sessions.py), which is what makes
         logout effective.
       Separate secrets mean the access key cannot forge a refresh token and
       vice versa. Verification returns None on any failure -- the route layer
       turns that into a 401.

  Refresh tokens carry a random jti. The SessionStore is keyed by the token
       string itself, so without it two logins by the same user within the
       same second would share one session entry.

  Passwords: bcrypt, called directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered.

Layer rule: no imports from api/, cache/, or catalog/. Import from core/ is
allowed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Protocol

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenClaims
from core.config import Settings, get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("accounts.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------

# bcrypt only looks at the first 72 bytes and current releases raise on
# anything longer. The API layer rejects longer passwords up front.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or an over-long password.
        return False


async def hash_password_async(plain: str) -> str:
    """hash_password() on a worker thread. Use from request handlers."""
    return await asyncio.to_thread(hash_password, plain)


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("accounts_timing_dummy")


async def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    bcrypt runs on a worker thread so the event loop keeps serving other
    requests while a hash is checked.

    Returns the User on success, None on any failure.
    """
    user = await store.get_by_email(email)
    if user is None or not user.password_hash:
        await asyncio.to_thread(verify_password, password, _DUMMY_HASH)
        return None
    if not await asyncio.to_thread(verify_password, password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class Identity(Protocol):
    """Anything a token can be minted for: a User row or decoded TokenClaims."""

    id: int
    name: str
    email: str
    role: str


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str


class TokenService:
    """Stateless issuer/verifier for access and refresh tokens.

    One instance is built at startup (api/main.py lifespan) and shared via
    app.state. It holds only immutable configuration; persisting refresh
    tokens is the caller's job (SessionStore.put).

    Usage:
        tokens = TokenService.from_settings(get_settings())
        pair = tokens.issue_token_pair(user)
        claims = tokens.verify_access_token(pair.access)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: int = 15 * 60,
        refresh_ttl: int = 7 * 24 * 60 * 60,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("access and refresh tokens must be signed with different secrets")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl=settings.access_token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
        )

    # -- issuance ---------------------------------------------------------

    def issue_token_pair(self, user: Identity, now: datetime | None = None) -> TokenPair:
        """Mint an access token and a refresh token for the same identity."""
        now = now or datetime.now(timezone.utc)
        return TokenPair(
            access=self.issue_access_token(user, now=now),
            refresh=self.issue_refresh_token(user, now=now),
        )

    def issue_access_token(self, user: Identity, now: datetime | None = None) -> str:
        payload = _base_claims(user, now, self.access_ttl)
        return jwt.encode(payload, self._access_secret, algorithm=_ALGORITHM)

    def issue_refresh_token(self, user: Identity, now: datetime | None = None) -> str:
        payload = _base_claims(user, now, self.refresh_ttl)
        payload["jti"] = uuid.uuid4().hex
        return jwt.encode(payload, self._refresh_secret, algorithm=_ALGORITHM)

    # -- verification -----------------------------------------------------

    def verify_access_token(self, token: str) -> TokenClaims | None:
        """Check signature, expiry and claim shape. No store lookup."""
        return _decode(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> TokenClaims | None:
        """Check signature, expiry and claim shape.

        A non-None result does NOT mean the token is usable: the caller must
        also confirm the SessionStore entry still exists.
        """
        return _decode(token, self._refresh_secret)


def _base_claims(user: Identity, now: datetime | None, ttl: int) -> dict:
    issued = now or datetime.now(timezone.utc)
    expires = issued + timedelta(seconds=ttl)
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }


def _decode(token: str, secret: str) -> TokenClaims | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        return TokenClaims.from_payload(payload)
    except (JWTError, ValueError) as exc:
        logger.debug("Token rejected: %s", exc)
        return None
