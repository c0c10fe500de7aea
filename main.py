#!/usr/bin/env python3
"""
Accounts API -- operator command line.

The HTTP API only lets an admin create users, so the very first admin has to
come from here.

Usage:
  python main.py create-user --name "Ada Lovelace" --email ada@example.com --role admin
  python main.py create-user --name Bob --email bob@example.com --password s3cret-pass
  python main.py flush-cache

Environment variables (same as the API, see core/config.py):
  DATABASE_URL  Store of record. Default: sqlite+aiosqlite:///./accounts.db
  REDIS_URL     Cache / session store. Default: redis://localhost:6379/0
"""

import argparse
import asyncio
import getpass
import sys
from typing import Optional

import pydantic
import redis.asyncio as aioredis
from sqlalchemy.exc import IntegrityError

from api.models import RoleEnum, UserCreate
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password_async
from cache.store import PRODUCTS, USERS, EntityCache
from core.config import get_settings
from core.errors import AppError, ConflictError


async def create_user_account(store: UserStore, body: UserCreate) -> User:
    """Insert a validated user. Raises ConflictError if the email is taken."""
    await store.initialize()
    if await store.get_by_email(body.email) is not None:
        raise ConflictError(f"Email already in use: {body.email}")
    try:
        return await store.create_user(
            User(
                name=body.name,
                email=body.email,
                role=body.role.value,
                password_hash=await hash_password_async(body.password),
            )
        )
    except IntegrityError as exc:
        raise ConflictError(f"Email already in use: {body.email}") from exc


async def flush_cache(cache: EntityCache) -> int:
    """Drop every cached user and product key. Returns the number removed."""
    removed = 0
    for namespace in (USERS, PRODUCTS):
        removed += await cache.invalidate_prefix(f"{namespace.entity}:")
        removed += await cache.invalidate_prefix(namespace.prefix)
    return removed


async def _run_create_user(args: argparse.Namespace) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass("  Password: ")
        if password != getpass.getpass("  Confirm password: "):
            print("  [!] Passwords do not match.")
            return 2

    try:
        body = UserCreate(name=args.name, email=args.email, password=password, role=args.role)
    except pydantic.ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(p) for p in err["loc"])
            print(f"  [!] {field}: {err['msg']}")
        return 2

    store = UserStore(get_settings().database_url)
    try:
        user = await create_user_account(store, body)
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        await store.close()

    print(f"  Created {user.role} '{user.name}' <{user.email}> (id {user.id}).")
    return 0


async def _run_flush_cache(args: argparse.Namespace) -> int:
    settings = get_settings()
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    try:
        removed = await flush_cache(EntityCache(client, ttl=settings.cache_ttl_seconds))
    except AppError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        await client.aclose()

    print(f"  Removed {removed} cached key(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="accounts-api",
        description="Operator commands for the accounts API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --name "Ada Lovelace" --email ada@example.com --role admin
  python main.py flush-cache
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-user", help="Create a user account directly in the database")
    create.add_argument("--name", required=True, help="Display name")
    create.add_argument("--email", required=True, help="Login email (must be unique)")
    create.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted, which keeps it out of shell history)",
    )
    create.add_argument(
        "--role",
        choices=[r.value for r in RoleEnum],
        default=RoleEnum.user.value,
        help="Account role (default: user)",
    )

    sub.add_parser("flush-cache", help="Invalidate every cached user and product entry")

    args = parser.parse_args(argv)

    if args.command == "create-user":
        sys.exit(asyncio.run(_run_create_user(args)))
    if args.command == "flush-cache":
        sys.exit(asyncio.run(_run_flush_cache(args)))
    parser.print_help()


if __name__ == "__main__":
    main()
