"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for KanTab auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, github_client_id -> GITHUB_CLIENT_ID).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning; production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the OAuth session cookie both rely on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. Tokens signed with a random key would all become
       invalid on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("kantab.config")


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
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8080", "http://127.0.0.1"]
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # 90 days, matching the lifetime of the login cookie.
    token_expire_seconds: int = 60 * 60 * 24 * 90
    # Verification results are reused for at most one hour, independent of
    # the token's own expiry.
    token_cache_ttl_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Secure IDs
    # ------------------------------------------------------------------

    hashid_salt: str = "K4nTa3"
    hashid_min_length: int = 0

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    auth_providers: list[str] = ["google", "facebook", "github", "twitter"]

    google_client_id: str = ""
    google_client_secret: str = ""
    facebook_client_id: str = ""
    facebook_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""
    twitter_client_id: str = ""
    twitter_client_secret: str = ""

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    # Empty cookie_name disables writing the token cookie on OAuth callback.
    cookie_name: str = "jwt-token"
    secure_cookies: bool = False
    success_redirect: str = "/"
    login_redirect: str = "/login"

    # ------------------------------------------------------------------
    # External collaborators
    # ------------------------------------------------------------------

    accounts_service_url: str = "http://localhost:3000/api/v1/accounts"
    resources_service_url: str = "http://localhost:3000/api/v1"
    service_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def provider_credentials(self, client_id_key: str, client_secret_key: str) -> tuple[str, str]:
        """Return (client_id, client_secret) for the given env var names.

        Keys use the env var spelling (GITHUB_CLIENT_ID); unknown keys resolve
        to "" so a provider without settings fields simply reads as disabled.
        """
        return (
            getattr(self, client_id_key.lower(), "") or "",
            getattr(self, client_secret_key.lower(), "") or "",
        )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Issued tokens will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
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
