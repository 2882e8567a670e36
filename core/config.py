"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for the SSO service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. token_ttl_seconds -> TOKEN_TTL_SECONDS). Type coercion and
      validation are built in.

Startup policy: any validation failure raises pydantic.ValidationError from
Settings(). Bootstrap treats that as fatal -- the process does not start
serving with a half-valid configuration.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in tests
    without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    # Selects the log format and level (see core/log.py).
    env: Literal["local", "dev", "prod"] = "local"

    host: str = "127.0.0.1"
    port: int = Field(default=44044, ge=1, le=65535)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///./storage/sso.db"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Lifetime of every issued token. exp = iat + this value.
    token_ttl_seconds: int = Field(default=3600, gt=0)
    # bcrypt cost factor. Each +1 doubles hashing time.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("database_url")
    @classmethod
    def require_database_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("DATABASE_URL must not be empty.")
        return value

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.token_ttl_seconds)


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
