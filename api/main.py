"""
api/main.py -- FastAPI application entry point for the accounts API.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the dashboard origin(s)
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan owns every process-wide resource: the token service, the two
SQLAlchemy async engines (inside UserStore / ProductStore), and the Redis
client shared by the SessionStore and the EntityCache. They are attached to
app.state once at startup and treated as immutable afterwards; route
handlers read them from request.app.state. Tests swap the lifespan to inject
fakes (see tests/conftest.py).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.products import router as products_router
from api.routes.v1.users import router as users_router
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService
from cache.store import EntityCache
from catalog.store import ProductStore
from core.config import get_settings
from core.errors import AppError

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared resources on startup and release them on shutdown.

    Startup order: stores first (schema creation must finish before any
    request), then Redis, then the services built on top of it.
    """
    logger.info("Accounts API starting up")
    app.state.tokens = TokenService.from_settings(_settings)

    app.state.user_store = UserStore(_settings.database_url)
    await app.state.user_store.initialize()
    app.state.product_store = ProductStore(_settings.database_url)
    await app.state.product_store.initialize()
    logger.info("Database initialized")

    app.state.redis = aioredis.from_url(
        _settings.redis_url,
        decode_responses=True,
        socket_timeout=_settings.redis_socket_timeout,
        socket_connect_timeout=_settings.redis_socket_timeout,
    )
    app.state.sessions = SessionStore(app.state.redis, ttl=_settings.refresh_token_expire_seconds)
    app.state.cache = EntityCache(app.state.redis, ttl=_settings.cache_ttl_seconds)
    logger.info("Redis client configured (%s)", _settings.redis_url.rsplit("@", 1)[-1])

    yield

    await app.state.redis.aclose()
    await app.state.product_store.close()
    await app.state.user_store.close()
    logger.info("Accounts API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Accounts API",
    description="User and product CRUD with JWT authentication and a Redis read-through cache.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map the domain error taxonomy (core/errors.py) onto the envelope."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.__cause__ or exc)
    return _error(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON, missing fields, bad email, out-of-range query -> 400."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (404 unknown route, 405 wrong method, ...)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """The store of record failed. Details go to the log, never to the client."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "dependency_error", "A backing service is unavailable.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit, no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness plus a reachability check per backing service."""
    components: dict[str, str] = {"app": "ok"}
    try:
        await request.app.state.user_store.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        components["database"] = "error"
    try:
        await request.app.state.cache.ping()
        components["cache"] = "ok"
    except RedisError:
        logger.warning("Health check: cache unreachable")
        components["cache"] = "error"
    status = "ok" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=_VERSION, components=components)
