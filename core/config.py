"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  HMAC used to store refresh tokens both rely on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure. A random per-process key would invalidate every access
  token and every stored refresh-token hash on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("appstore.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    database_url: str = "sqlite:///appstore_auth.db"

    # ------------------------------------------------------------------
    # Password policy
    # ------------------------------------------------------------------

    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Tokens and cookies
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    email_verification_expire_hours: int = 24
    # Off by default: a refresh only mints a new access token. Turning this on
    # replaces the session (and the refresh cookie) on every refresh.
    rotate_refresh_tokens: bool = False
    secure_cookies: bool = False
    refresh_cookie_name: str = "refreshToken"
    refresh_cookie_path: str = "/api/v1/auth"

    # ------------------------------------------------------------------
    # Account lockout and sessions
    # ------------------------------------------------------------------

    # (failed attempts, lock minutes): the highest tier reached applies.
    # JSON in the environment, e.g. LOCKOUT_TIERS='[[5, 30], [3, 15]]'.
    lockout_tiers: list[tuple[int, int]] = [(5, 30), (3, 15)]
    max_sessions_per_user: int = 5
    cleanup_interval_hours: int = 24

    # ------------------------------------------------------------------
    # Rate limiting (fixed windows, per client key and action class)
    # ------------------------------------------------------------------

    # "memory://" (single process) or a shared store such as "redis://host:6379".
    rate_limit_storage_uri: str = "memory://"
    rate_limit_general_max: int = 100
    rate_limit_general_window_seconds: int = 15 * 60
    rate_limit_auth_max: int = 5
    rate_limit_auth_window_seconds: int = 15 * 60
    rate_limit_review_max: int = 3
    rate_limit_review_window_seconds: int = 60 * 60
    rate_limit_upload_max: int = 10
    rate_limit_upload_window_seconds: int = 60 * 60
    # Only honour X-Forwarded-For / X-Real-IP behind a trusted reverse proxy.
    # Otherwise any client can pick its own rate-limit key.
    trust_forwarded_for: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Outbound mail (empty smtp_host = log instead of send)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "noreply@localhost"
    public_base_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.

        Lockout tiers are sorted highest threshold first so the store can
        take the first tier the attempt count reaches.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.lockout_tiers or any(n < 1 or m < 1 for n, m in self.lockout_tiers):
            raise ValueError("LOCKOUT_TIERS needs at least one (attempts, minutes) pair of positive integers.")
        self.lockout_tiers = sorted(self.lockout_tiers, reverse=True)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
