"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the accounts API happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_access_secret -> JWT_ACCESS_SECRET).

  @model_validator(mode="after"): Cross-field validation of the two signing
      secrets once every field is resolved.

Security notes:
  Access and refresh tokens are signed with DIFFERENT secrets so that leaking
  one key cannot be used to forge the other token class. The validator rejects
  identical secrets and anything shorter than 32 characters.

  In production mode (DEBUG not set or false) a missing secret is a hard
  startup failure. Debug mode generates throwaway secrets with a warning.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
cache/, or catalog/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accounts.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the "not configured" sentinel; see validate_secrets().
    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60

    # bcrypt cost factor. Tests lower it to keep the suite fast.
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Backing services
    # ------------------------------------------------------------------

    database_url: str = "sqlite+aiosqlite:///./accounts.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0
    cache_ttl_seconds: int = 5 * 60

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy.

        Debug mode: generate any missing secret with a warning. Tokens will
        not survive a restart, which is fine for local development.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject secrets shorter than 32 characters and reject an
        access secret equal to the refresh secret.
        """
        for field in ("jwt_access_secret", "jwt_refresh_secret"):
            if getattr(self, field):
                continue
            env_name = field.upper()
            if not self.debug:
                raise ValueError(
                    f"{env_name} is required in production mode. "
                    f"Set {env_name} in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, field, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", env_name)

        if len(self.jwt_access_secret) < _MIN_SECRET_LENGTH or len(self.jwt_refresh_secret) < _MIN_SECRET_LENGTH:
            raise ValueError(f"JWT secrets must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
