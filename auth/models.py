"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; stores and routes do the
work. TokenClaims is the one exception with behaviour: from_payload() is the
explicit decoder that turns an untyped JWT payload into a closed record, so
nothing downstream ever indexes into a raw claims dict.

Layer rule: no imports from api/, cache/, or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


@dataclass
class User:
    """A user row from the store of record.

    password_hash is a bcrypt hash; the plaintext is never stored.
    """

    name: str
    email: str
    role: str = ROLE_USER
    id: int | None = None
    password_hash: str | None = None
    created_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried inside a signed access or refresh token."""

    id: int
    name: str
    email: str
    role: str
    issued_at: datetime
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenClaims":
        """Decode a verified JWT payload. Raises ValueError on malformed claims.

        Signature and expiry are checked by the JWT library before this runs;
        this method only guarantees shape: integer id (bools rejected), string
        name/email, a known role, and numeric iat/exp.
        """
        user_id = payload.get("id")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValueError("claim 'id' must be an integer")
        for key in ("name", "email", "role"):
            if not isinstance(payload.get(key), str):
                raise ValueError(f"claim {key!r} must be a string")
        if payload["role"] not in ROLES:
            raise ValueError(f"unknown role {payload['role']!r}")
        iat, exp = payload.get("iat"), payload.get("exp")
        if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
            raise ValueError("claims 'iat' and 'exp' must be numeric")
        return cls(
            id=user_id,
            name=payload["name"],
            email=payload["email"],
            role=payload["role"],
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
