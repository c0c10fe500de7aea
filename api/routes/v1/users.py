"""
api/routes/v1/users.py -- User CRUD with a cache-aside read path.

Routes:
  GET    /users          -- any authenticated user; page, limit, search
  GET    /users/{id}     -- any authenticated user
  POST   /users          -- admin only
  PUT    /users/{id}     -- the user themself, or an admin
  DELETE /users/{id}     -- admin only

Caching:
  Reads go through EntityCache.read_through() with keys user:<id> and
  users:<page>:<limit>:<search>. Every write calls invalidate_entity(USERS, id)
  AFTER the store write commits, dropping the entity key and every cached
  collection page. Invalidation failures surface as 500.

Check order on writes: authentication (401) -> role/ownership (403) ->
body validation (400) -> existence (404) -> uniqueness (409). Validation
happens before any store mutation.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, Pagination, UserCreate, UserListResponse, UserResponse, UserUpdate
from auth.dependencies import get_current_identity, require_admin, require_self_or_admin
from auth.models import TokenClaims, User
from auth.store import UserStore
from auth.tokens import hash_password_async
from cache.store import USERS, EntityCache
from core.errors import ConflictError, NotFoundError, ValidationError
from core.pagination import DEFAULT_LIMIT, MAX_LIMIT

logger = logging.getLogger("accounts.api")

router = APIRouter()

_EMAIL_TAKEN = "Email already in use."


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
async def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    search: str = Query("", max_length=255),
    identity: TokenClaims = Depends(get_current_identity),
) -> dict:
    """List users newest first, optionally filtered by a name/email substring."""
    user_store: UserStore = request.app.state.user_store
    cache: EntityCache = request.app.state.cache

    async def load() -> dict:
        users, total = await user_store.list_users(page, limit, search)
        return UserListResponse(
            data=[UserResponse.from_user(u) for u in users],
            pagination=Pagination.build(total, limit, page),
        ).model_dump(mode="json")

    return await cache.read_through(USERS.listing(page, limit, search), load)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    request: Request,
    user_id: int,
    identity: TokenClaims = Depends(get_current_identity),
) -> dict:
    user_store: UserStore = request.app.state.user_store
    cache: EntityCache = request.app.state.cache

    async def load() -> dict | None:
        user = await user_store.get_by_id(user_id)
        return UserResponse.from_user(user).model_dump(mode="json") if user else None

    body = await cache.read_through(USERS.item(user_id), load)
    if body is None:
        raise NotFoundError("User not found.")
    return body


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    request: Request,
    body: UserCreate,
    identity: TokenClaims = Depends(require_admin),
) -> UserResponse:
    """Create a user account. Admin only."""
    user_store: UserStore = request.app.state.user_store
    cache: EntityCache = request.app.state.cache

    if await user_store.get_by_email(body.email) is not None:
        raise ConflictError(_EMAIL_TAKEN)

    try:
        created = await user_store.create_user(
            User(
                name=body.name,
                email=body.email,
                role=body.role.value,
                password_hash=await hash_password_async(body.password),
            )
        )
    except IntegrityError as exc:
        # Lost a race with a concurrent insert of the same email.
        raise ConflictError(_EMAIL_TAKEN) from exc

    await cache.invalidate_entity(USERS, created.id)
    logger.info("User %s created by admin %s", created.id, identity.id)
    return UserResponse.from_user(created)


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    identity: TokenClaims = Depends(require_self_or_admin),
) -> UserResponse:
    """Update a user. Users may edit themselves; admins may edit anyone and change roles.

    A role sent by a non-admin is ignored rather than rejected. A body that
    leaves nothing to write is 400 no_changes, the same rule as product updates.
    """
    user_store: UserStore = request.app.state.user_store
    cache: EntityCache = request.app.state.cache

    target = await user_store.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found.")

    updates: dict = {}
    if body.name is not None:
        updates["name"] = body.name
    if body.email is not None and body.email != target.email:
        existing = await user_store.get_by_email(body.email)
        if existing is not None and existing.id != user_id:
            raise ConflictError(_EMAIL_TAKEN)
        updates["email"] = body.email
    if body.role is not None and identity.is_admin:
        updates["role"] = body.role.value
    if body.password is not None:
        updates["password_hash"] = await hash_password_async(body.password)

    if not updates:
        raise ValidationError("No fields to update.", code="no_changes")

    try:
        updated = await user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise ConflictError(_EMAIL_TAKEN) from exc
    if updated is None:
        # Deleted between the existence check and the update.
        raise NotFoundError("User not found.")

    await cache.invalidate_entity(USERS, user_id)
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    request: Request,
    user_id: int,
    identity: TokenClaims = Depends(require_admin),
) -> MessageResponse:
    """Delete a user. Admin only.

    Outstanding refresh tokens are left to expire: /auth/refresh answers 404
    once the user row is gone.
    """
    user_store: UserStore = request.app.state.user_store
    cache: EntityCache = request.app.state.cache

    if not await user_store.delete_user(user_id):
        raise NotFoundError("User not found.")

    await cache.invalidate_entity(USERS, user_id)
    logger.info("User %s deleted by admin %s", user_id, identity.id)
    return MessageResponse(message="User deleted successfully")
