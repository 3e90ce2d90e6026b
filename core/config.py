"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Tokengate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or
accept a Settings instance in a constructor instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      process wiring (api/main.py lifespan, main.py CLI) calls it. Components
      (AccountStore, TokenIssuer, RolePolicy) receive their configuration at
      construction time so tests can build them with distinct secrets/TTLs.

  Immutable value: Settings is frozen. Nothing mutates configuration after
      startup; a request never observes a half-updated secret or TTL.

Security notes:
  [M6] JWT_SECRET / JWT_REFRESH_SECRET shorter than 32 chars are rejected.
       HMAC-SHA signing relies on key entropy -- a short key weakens it.

  [M7] In production mode (DEBUG not set or false), a missing JWT_SECRET is a
       hard startup failure. In dev mode a random key is generated with a
       warning; tokens then do not survive a restart.

  Rotating JWT_SECRET invalidates every outstanding access and refresh token.
  This is the only way to revoke tokens in bulk -- the design is stateless.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

_ALLOWED_ALGORITHMS = ("HS256", "HS384", "HS512")

# One day / ninety days, in seconds.
_MAX_ACCESS_TTL = 24 * 60 * 60
_MAX_REFRESH_TTL = 90 * 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults (except JWT_SECRET outside DEBUG) so Settings()
    can be instantiated in test environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `jwt_secret` reads from JWT_SECRET, `access_ttl` reads from ACCESS_TTL.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # Must stay above jwt_secret: the secret validator reads it from info.data.
    debug: bool = False
    database_url: str = "sqlite:///./tokengate.db"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    # Optional distinct key for refresh tokens. Empty means "reuse jwt_secret".
    jwt_refresh_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_ttl: int = 15 * 60  # seconds
    refresh_ttl: int = 7 * 24 * 60 * 60  # seconds

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    # Shared secret required to self-assign the admin role at signup.
    # Empty disables admin self-assignment entirely.
    admin_secret: str = ""
    # When False, any requested role other than "admin" becomes "user".
    # When True, roles outside the enumeration are rejected with 400.
    strict_role_validation: bool = False
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    refresh_cookie_name: str = "refresh_token"
    refresh_cookie_path: str = "/api/v1/auth"
    auth_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str, info: ValidationInfo) -> str:
        """Enforce the JWT_SECRET policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start without one.
        Both modes: reject keys shorter than 32 characters.
        """
        if not v:
            if info.data.get("debug"):
                logger.warning("Using auto-generated JWT_SECRET. Tokens will not survive a restart.")
                return secrets.token_hex(32)
            raise ValueError(
                "JWT_SECRET is required in production mode. "
                "Set JWT_SECRET in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(v) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return v

    @field_validator("jwt_refresh_secret")
    @classmethod
    def validate_jwt_refresh_secret(cls, v: str) -> str:
        if v and len(v) < 32:
            raise ValueError("JWT_REFRESH_SECRET must be at least 32 characters.")
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in _ALLOWED_ALGORITHMS:
            raise ValueError(f"JWT_ALGORITHM must be one of {', '.join(_ALLOWED_ALGORITHMS)}")
        return v

    @field_validator("access_ttl")
    @classmethod
    def validate_access_ttl(cls, v: int) -> int:
        if v < 1 or v > _MAX_ACCESS_TTL:
            raise ValueError("ACCESS_TTL must be between 1 and 86400 seconds (1 day)")
        return v

    @field_validator("refresh_ttl")
    @classmethod
    def validate_refresh_ttl(cls, v: int) -> int:
        if v < 1 or v > _MAX_REFRESH_TTL:
            raise ValueError("REFRESH_TTL must be between 1 and 7776000 seconds (90 days)")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if v < 4 or v > 16:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 16")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must be set and non-empty")
        return v.strip()

    @field_validator("refresh_cookie_path")
    @classmethod
    def validate_refresh_cookie_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("REFRESH_COOKIE_PATH must start with '/'")
        return v

    @model_validator(mode="after")
    def validate_ttl_order(self) -> "Settings":
        """A refresh token that dies before its access token is useless."""
        if self.refresh_ttl <= self.access_ttl:
            raise ValueError("REFRESH_TTL must be greater than ACCESS_TTL.")
        return self

    @property
    def refresh_signing_key(self) -> str:
        return self.jwt_refresh_secret or self.jwt_secret


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: construct Settings(...) directly and pass it to components, or
    call get_settings.cache_clear() after changing environment variables.
    """
    return Settings()
