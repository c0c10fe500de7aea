"""
tests/test_user_store.py -- Unit tests for auth/store.py (UserStore) against aiosqlite.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore


async def _seed(store: UserStore, *names: str) -> list[User]:
    created = []
    for name in names:
        created.append(
            await store.create_user(
                User(name=name, email=f"{name.lower()}@example.com", password_hash="x")
            )
        )
    return created


@pytest.mark.asyncio
async def test_create_and_get(user_store: UserStore) -> None:
    created = await user_store.create_user(
        User(name="Ada", email="ada@example.com", role="admin", password_hash="hash")
    )
    assert created.id is not None
    assert created.created_at, "created_at must be stamped by the store"

    by_id = await user_store.get_by_id(created.id)
    by_email = await user_store.get_by_email("ada@example.com")
    assert by_id == by_email
    assert by_id.is_admin
    assert await user_store.get_by_id(9999) is None


@pytest.mark.asyncio
async def test_duplicate_email_raises_integrity_error(user_store: UserStore) -> None:
    await _seed(user_store, "Dup")
    with pytest.raises(IntegrityError):
        await _seed(user_store, "Dup")


@pytest.mark.asyncio
async def test_list_newest_first_with_total(user_store: UserStore) -> None:
    await _seed(user_store, "One", "Two", "Three")
    page, total = await user_store.list_users(page=1, limit=2)
    assert total == 3
    assert [u.name for u in page] == ["Three", "Two"]

    page2, _ = await user_store.list_users(page=2, limit=2)
    assert [u.name for u in page2] == ["One"]

    empty, total = await user_store.list_users(page=5, limit=2)
    assert empty == [] and total == 3


@pytest.mark.asyncio
async def test_search_name_or_email_case_insensitive(user_store: UserStore) -> None:
    await _seed(user_store, "Alice", "Bob", "Malice")
    found, total = await user_store.list_users(page=1, limit=10, search="ALIC")
    assert total == 2
    assert {u.name for u in found} == {"Alice", "Malice"}

    by_email, _ = await user_store.list_users(page=1, limit=10, search="bob@")
    assert [u.name for u in by_email] == ["Bob"]


@pytest.mark.asyncio
async def test_search_wildcards_are_literal(user_store: UserStore) -> None:
    await _seed(user_store, "Plain")
    assert (await user_store.list_users(page=1, limit=10, search="%"))[1] == 0
    assert (await user_store.list_users(page=1, limit=10, search="_"))[1] == 0


@pytest.mark.asyncio
async def test_update_user(user_store: UserStore) -> None:
    (user,) = await _seed(user_store, "Carol")
    updated = await user_store.update_user(user.id, name="Caroline", role="admin")
    assert updated.name == "Caroline"
    assert updated.role == "admin"
    assert updated.email == "carol@example.com"

    assert await user_store.update_user(9999, name="ghost") is None
    with pytest.raises(ValueError):
        await user_store.update_user(user.id, id=5)


@pytest.mark.asyncio
async def test_delete_user(user_store: UserStore) -> None:
    (user,) = await _seed(user_store, "Dave")
    assert await user_store.delete_user(user.id) is True
    assert await user_store.delete_user(user.id) is False
    assert await user_store.get_by_id(user.id) is None


@pytest.mark.asyncio
async def test_ping(user_store: UserStore) -> None:
    assert await user_store.ping() is True
