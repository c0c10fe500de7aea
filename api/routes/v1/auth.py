"""
api/routes/v1/auth.py -- Token lifecycle endpoints.

Routes:
  POST /api/v1/auth/login    -- email/password -> access + refresh token pair
  POST /api/v1/auth/refresh  -- refresh token -> new access token
  POST /api/v1/auth/logout   -- revoke a refresh token (idempotent)
  GET  /api/v1/auth/me       -- identity carried by the current access token

Token lifecycle:
  login   issues a pair and records `refresh_token:<token>` in the SessionStore.
  refresh requires BOTH a valid refresh signature AND the SessionStore entry;
          the refresh token itself is reused, only the access token is new.
  logout  deletes the SessionStore entry. The refresh JWT stays
          cryptographically valid until it expires, but refresh rejects it.

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Wrong email and wrong password return the same "bad_credentials" error.
  Login responses carry Cache-Control: no-store.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccessTokenResponse,
    ErrorDetail,
    ErrorResponse,
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
)
from auth.dependencies import get_current_identity
from auth.models import TokenClaims
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user
from core.config import get_settings
from core.errors import AuthenticationError, NotFoundError

logger = logging.getLogger("accounts.auth")

router = APIRouter()

_INVALID_REFRESH = "Invalid or expired refresh token."


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse | JSONResponse:
    """Authenticate with email and password; return a token pair and the user."""
    user_store: UserStore = request.app.state.user_store
    sessions: SessionStore = request.app.state.sessions
    tokens: TokenService = request.app.state.tokens

    user = await authenticate_user(user_store, body.email, body.password)
    if user is None:
        logger.warning("Failed login from %s", request.client.host if request.client else "unknown")
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid credentials.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    pair = tokens.issue_token_pair(user)
    await sessions.put(pair.refresh, user.id)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        access_token=pair.access,
        refresh_token=pair.refresh,
        user=IdentityResponse(id=user.id, name=user.name, email=user.email, role=user.role),
    )


@router.post("/auth/refresh", response_model=AccessTokenResponse)
async def refresh(request: Request, body: RefreshRequest) -> AccessTokenResponse:
    """Exchange a live refresh token for a new access token.

    The new access token is minted from the current user row, so name/email/
    role changes made since login are picked up here.
    """
    sessions: SessionStore = request.app.state.sessions
    tokens: TokenService = request.app.state.tokens
    user_store: UserStore = request.app.state.user_store

    claims = tokens.verify_refresh_token(body.refresh_token)
    if claims is None:
        raise AuthenticationError(_INVALID_REFRESH, code="invalid_token")

    session_user_id = await sessions.get(body.refresh_token)
    if session_user_id is None or session_user_id != claims.id:
        raise AuthenticationError(_INVALID_REFRESH, code="invalid_token")

    user = await user_store.get_by_id(session_user_id)
    if user is None:
        raise NotFoundError("User not found.")

    return AccessTokenResponse(access_token=tokens.issue_access_token(user))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, body: LogoutRequest) -> MessageResponse:
    """Revoke a refresh token. Logging out an unknown or already-revoked token succeeds."""
    sessions: SessionStore = request.app.state.sessions
    await sessions.delete(body.refresh_token)
    return MessageResponse(message="Successfully logged out")


@router.get("/auth/me", response_model=IdentityResponse)
async def me(identity: TokenClaims = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity carried by the current access token."""
    return IdentityResponse(id=identity.id, name=identity.name, email=identity.email, role=identity.role)
