"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for SessionGuard happen here. No module should
call os.getenv() or os.environ.get() directly.

Design patterns used:
  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  Explicit injection: services receive a Settings instance in their
      constructor. get_settings() is the lru_cache singleton used only by the
      composition roots (api/main.py and main.py); nothing in auth/ reads it.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode (DEBUG=true) generates missing keys with a warning,
      production mode refuses to start without them.

Security notes:
  SECRET_KEY signs session JWTs. ENCRYPTION_KEY protects TOTP seeds at rest.
  Both must be at least 32 characters. They are kept separate so rotating the
  signing key (which logs everybody out) never makes stored TOTP seeds
  unreadable.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionguard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'sessionguard.db'}"

_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Deployment settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true, or with explicit
    keys passed as keyword arguments).
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    encryption_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = Field(default=86400, gt=0)
    refresh_token_ttl_seconds: int = Field(default=604800, gt=0)

    # ------------------------------------------------------------------
    # Password hashing and policy
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Backup codes are random and single-use; a lower cost is enough.
    backup_code_rounds: int = Field(default=10, ge=4, le=31)

    password_min_length: int = Field(default=12, ge=1)
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    password_history_size: int = Field(default=10, ge=0)
    password_reuse_window: int = Field(default=5, ge=0)

    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------

    lockout_max_attempts: int = Field(default=5, ge=1)
    lockout_duration_seconds: int = Field(default=900, gt=0)

    # ------------------------------------------------------------------
    # Two-factor
    # ------------------------------------------------------------------

    totp_issuer: str = "SessionGuard"
    totp_window: int = Field(default=1, ge=0, le=10)
    backup_code_count: int = Field(default=8, ge=1, le=32)
    trusted_device_seconds: int = Field(default=2592000, gt=0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Duration accessors
    # ------------------------------------------------------------------

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(seconds=self.access_token_ttl_seconds)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(seconds=self.refresh_token_ttl_seconds)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(seconds=self.lockout_duration_seconds)

    @property
    def trusted_device_duration(self) -> timedelta:
        return timedelta(seconds=self.trusted_device_seconds)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce the SECRET_KEY / ENCRYPTION_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and stored TOTP seeds will not survive restart.

        Production mode: refuse to start if either key is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        for name in ("secret_key", "encryption_key"):
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        f"Set {name.upper()} in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Data bound to it will not survive restarts.", name.upper())
            if len(value) < _MIN_KEY_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_KEY_LENGTH} characters.")
        if self.refresh_token_ttl_seconds < self.access_token_ttl_seconds:
            raise ValueError("REFRESH_TOKEN_TTL_SECONDS must not be shorter than ACCESS_TOKEN_TTL_SECONDS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance for the entry points.

    In tests: construct Settings(...) directly and pass it to the services, or
    call get_settings.cache_clear() after changing environment variables.
    """
    return Settings()
