"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for EDAP happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_ttl_seconds -> SESSION_TTL_SECONDS). Type coercion and
      validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Misconfiguration is a startup failure,
      never a silent fallback.

Security notes:
  [T1] token_bytes below 32 is rejected outright. Session and reset tokens are
       bearer credentials -- fewer than 256 random bits weakens both.

  [T2] password_hash_scheme defaults to "sha256" so hashes written by the
       legacy portal still verify. "bcrypt" is the salted alternative.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("edap.config")

_HASH_SCHEMES = {"sha256", "bcrypt"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    the token and TTL invariants at startup.
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

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    session_ttl_seconds: int = 8 * 60 * 60
    reset_token_ttl_seconds: int = 60 * 60
    token_bytes: int = 32
    # 0 disables the background sweep; lazy eviction alone stays correct.
    sweep_interval_seconds: int = 600

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    password_hash_scheme: str = "sha256"
    # 0 disables lockout.
    max_failed_logins: int = 5
    lockout_seconds: int = 15 * 60
    revoke_sessions_on_reset: bool = True

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    reset_link_base_url: str = "http://localhost:8080/auth/reset-password"
    session_cookie_name: str = "edap_session"
    secure_cookies: bool = False
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    # Empty string selects the in-memory user store.
    user_store_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_policy(self) -> "Settings":
        """Reject configurations that would break token or hashing invariants.

        TTLs must be positive, tokens carry at least 256 random bits [T1],
        and the hash scheme must be one the hasher factory knows [T2].
        """
        if self.session_ttl_seconds <= 0 or self.reset_token_ttl_seconds <= 0:
            raise ValueError("Token TTLs must be positive numbers of seconds.")
        if self.token_bytes < 32:
            raise ValueError("TOKEN_BYTES must be at least 32 (256 bits of entropy).")
        self.password_hash_scheme = self.password_hash_scheme.strip().lower()
        if self.password_hash_scheme not in _HASH_SCHEMES:
            raise ValueError(
                f"PASSWORD_HASH_SCHEME must be one of {sorted(_HASH_SCHEMES)}, "
                f"got {self.password_hash_scheme!r}."
            )
        if self.max_failed_logins < 0 or self.lockout_seconds < 0:
            raise ValueError("Lockout settings cannot be negative.")
        if self.sweep_interval_seconds < 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS cannot be negative.")
        if self.debug and self.password_hash_scheme == "sha256":
            logger.warning(
                "WARNING: Using unsalted sha256 password hashing. " "Set PASSWORD_HASH_SCHEME=bcrypt for new deployments."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, except tests that need a specific configuration.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
