"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the account service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Cross-field checks once every field is
      resolved. Used to refuse a production start against a throwaway SQLite
      database.

Required variables: DATABASE_URL, JWT_PRIVATE_KEY_PATH, JWT_PUBLIC_KEY_PATH,
NODE_ENV. A missing one is a hard startup failure with a readable message.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accounts.config")

_ENVIRONMENTS = ("development", "production", "test")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `node_env` reads from NODE_ENV, `allowed_origins` from ALLOWED_ORIGINS.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    node_env: str
    database_url: str
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Tokens (RS256 -- private key signs, public key verifies)
    # ------------------------------------------------------------------

    jwt_private_key_path: str
    jwt_public_key_path: str
    jwt_expires_in: int = 3600

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------

    # Comma-separated list in the environment; parsed by the property below.
    allowed_origins: str = "http://localhost:3000"

    # Fixed window: 10 requests per 6 seconds per client address.
    rate_limit: str = "10 per 6 seconds"
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("node_env")
    @classmethod
    def validate_node_env(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _ENVIRONMENTS:
            raise ValueError(f"NODE_ENV must be one of {', '.join(_ENVIRONMENTS)}; got {value!r}.")
        return value

    @field_validator("database_url", "jwt_private_key_path", "jwt_public_key_path")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("jwt_expires_in")
    @classmethod
    def validate_expiry(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("JWT_EXPIRES_IN must be a positive number of seconds.")
        return value

    @model_validator(mode="after")
    def validate_production_database(self) -> "Settings":
        """Refuse to run production against an in-memory SQLite database.

        An in-memory store loses every account on restart. Development and
        test modes accept it (the test suite depends on it).
        """
        if self.is_production and ":memory:" in self.database_url:
            raise ValueError("DATABASE_URL points at an in-memory database; not allowed when NODE_ENV=production.")
        if not self.is_production and self.database_url.startswith("sqlite"):
            logger.warning("Using SQLite database (%s). Fine for development, not for production.", self.database_url)
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
