"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Per-request state machine:
  no / malformed Authorization header   -> 401
  Bearer token fails verification       -> 401
  Bearer token verifies                 -> TokenClaims
then the route's declared policy:
  get_current_identity                  any authenticated user
  require_self_or_admin                 claims.id == {user_id} or admin, else 403
  require_admin                         admin, else 403

Access tokens are verified statelessly (signature + expiry + claim shape).
There is no store lookup here, so a role change takes effect when the holder
next refreshes.

Layer rule: may import from fastapi (this module is part of the FastAPI
dependency injection system). No imports from api/, cache/, or catalog/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import TokenClaims
from auth.tokens import TokenService
from core.errors import AuthenticationError, AuthorizationError

_BEARER_PREFIX = "bearer "


def bearer_token(request: Request) -> str | None:
    """Extract the token from `Authorization: Bearer <token>`, or None."""
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX):].strip()
    return token or None


def get_current_identity(request: Request) -> TokenClaims:
    """Require a valid access token. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: TokenClaims = Depends(get_current_identity)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication required.")
    tokens: TokenService = request.app.state.tokens
    claims = tokens.verify_access_token(token)
    if claims is None:
        raise AuthenticationError("Invalid or expired access token.", code="invalid_token")
    return claims


def require_admin(identity: TokenClaims = Depends(get_current_identity)) -> TokenClaims:
    """Require the admin role. 401 if unauthenticated, 403 if not admin."""
    if not identity.is_admin:
        raise AuthorizationError("Admin privileges required.")
    return identity


def require_self_or_admin(user_id: int, identity: TokenClaims = Depends(get_current_identity)) -> TokenClaims:
    """Allow the user named by the {user_id} path parameter, or any admin."""
    if identity.id != user_id and not identity.is_admin:
        raise AuthorizationError("You do not have permission to modify this user.")
    return identity
