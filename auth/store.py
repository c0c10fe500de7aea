"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

Async: the store runs on SQLAlchemy's asyncio extension so every query is a
suspension point rather than a blocked worker thread. The driver comes from
the URL: postgresql+asyncpg:// in production, sqlite+aiosqlite:// for local
development and tests.

Security:
  All queries use bound parameters. No f-strings in SQL. User-supplied search
  text is LIKE-escaped before being wrapped in wildcards.

  Email uniqueness is enforced by a UNIQUE constraint. create_user() and
  update_user() let IntegrityError propagate; the route layer maps it to 409.

Layer rule: no imports from api/, cache/, or catalog/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from auth.models import ROLE_USER, User
from core.pagination import page_offset

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=ROLE_USER),
    Column("created_at", String(32), nullable=False),
)

# Columns a caller may change through update_user().
_MUTABLE_FIELDS = frozenset({"name", "email", "role", "password_hash"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite+aiosqlite:///./accounts.db")
        await store.initialize()
        user = await store.create_user(User(name="Ada", email="ada@example.com", password_hash=...))
        await store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: AsyncEngine = create_async_engine(db_url)

    async def initialize(self) -> None:
        """Create the users table if it does not exist. Idempotent."""
        async with self.engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and created_at populated.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        created_at = _now_iso()
        async with self.engine.begin() as conn:
            result = await conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    password_hash=user.password_hash,
                    role=user.role,
                    created_at=created_at,
                )
            )
            user_id = result.inserted_primary_key[0]
        return User(
            id=user_id,
            name=user.name,
            email=user.email,
            role=user.role,
            password_hash=user.password_hash,
            created_at=created_at,
        )

    async def get_by_id(self, user_id: int) -> User | None:
        async with self.engine.connect() as conn:
            row = (await conn.execute(_users.select().where(_users.c.id == user_id))).fetchone()
        return _row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        async with self.engine.connect() as conn:
            row = (await conn.execute(_users.select().where(_users.c.email == email))).fetchone()
        return _row_to_user(row) if row is not None else None

    async def list_users(self, page: int, limit: int, search: str = "") -> tuple[list[User], int]:
        """Return one page of users (newest first) and the total matching count.

        search matches name or email, case-insensitive substring.
        """
        condition = None
        if search:
            pattern = _like_pattern(search)
            condition = or_(
                _users.c.name.ilike(pattern, escape="\\"),
                _users.c.email.ilike(pattern, escape="\\"),
            )

        count_q = select(func.count()).select_from(_users)
        rows_q = (
            _users.select()
            .order_by(_users.c.created_at.desc(), _users.c.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        if condition is not None:
            count_q = count_q.where(condition)
            rows_q = rows_q.where(condition)

        async with self.engine.connect() as conn:
            total = (await conn.execute(count_q)).scalar() or 0
            rows = (await conn.execute(rows_q)).fetchall()
        return [_row_to_user(r) for r in rows], total

    async def update_user(self, user_id: int, **fields) -> User | None:
        """Update mutable fields and return the fresh row, or None if user_id is unknown.

        Accepted fields: name, email, role, password_hash. Unknown keys raise
        ValueError -- column names never come from raw input.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        async with self.engine.begin() as conn:
            if fields:
                result = await conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
                if result.rowcount == 0:
                    return None
            row = (await conn.execute(_users.select().where(_users.c.id == user_id))).fetchone()
        return _row_to_user(row) if row is not None else None

    async def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        async with self.engine.begin() as conn:
            result = await conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    async def close(self) -> None:
        await self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=row.role,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )
