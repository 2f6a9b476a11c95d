"""
core/config.py -- Centralized service configuration via pydantic-settings.

All environment variable reads for authcore happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_code_ttl_seconds -> AUTH_CODE_TTL_SECONDS).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Rejects verification-code settings that would make the code
      trivially guessable or immediately expired.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or cache/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")


class Settings(BaseSettings):
    """Service settings loaded from environment variables and .env file.

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
    log_level: str = "INFO"
    # Upper bound for one inbound request, propagated to every store call.
    request_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///authcore.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 5.0
    # "memory" keeps codes in-process -- single-instance deployments and tests only.
    code_store_backend: Literal["redis", "memory"] = "redis"

    # ------------------------------------------------------------------
    # Verification codes
    # ------------------------------------------------------------------

    auth_code_length: int = 6
    auth_code_ttl_seconds: int = 300
    auth_code_write_mode: Literal["blocking", "background"] = "blocking"
    auth_code_write_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    default_role: str = "user"
    # bcrypt cost factor. Each +1 doubles hashing time.
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_auth_code(self) -> "Settings":
        """Reject verification-code settings outside sane bounds.

        Fewer than 4 digits gives a 1-in-1000 guess within the TTL window;
        more than 12 is unusable when typed by hand into a chat bot.
        """
        if not 4 <= self.auth_code_length <= 12:
            raise ValueError("AUTH_CODE_LENGTH must be between 4 and 12.")
        if self.auth_code_ttl_seconds <= 0:
            raise ValueError("AUTH_CODE_TTL_SECONDS must be positive.")
        if self.auth_code_write_timeout_seconds <= 0:
            raise ValueError("AUTH_CODE_WRITE_TIMEOUT_SECONDS must be positive.")
        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive.")
        if self.auth_code_write_mode == "background" and self.code_store_backend == "memory":
            logger.warning("Background code writes with the memory code store gain nothing; consider blocking mode.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
