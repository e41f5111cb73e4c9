"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SecretBoard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, auth_mode -> AUTH_MODE).

Auth modes:
  legacy -- unsalted digest passwords, duplicate usernames allowed, no OAuth.
            Kept only so old password stores can still be checked.
  local  -- bcrypt passwords, unique usernames, Google/Facebook federation.
  oauth  -- federation only; local login and registration are disabled.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secretboard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'secretboard.db'}"

AuthMode = Literal["legacy", "local", "oauth"]


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # Base URL the OAuth providers call back to: <base>/auth/<provider>/secrets
    public_base_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    auth_mode: AuthMode = "local"
    secure_cookies: bool = False
    session_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"
    # When true, GET /secrets is readable without a session.
    secrets_public: bool = False

    # ------------------------------------------------------------------
    # OAuth providers (empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    facebook_client_id: str = ""
    facebook_client_secret: str = ""

    @property
    def oauth_allowed(self) -> bool:
        return self.auth_mode != "legacy"

    @property
    def local_login_allowed(self) -> bool:
        return self.auth_mode != "oauth"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters. The key signs the
        session JWT and the OAuth state cookie.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.auth_mode == "legacy":
            logger.warning("AUTH_MODE=legacy stores unsalted password digests. Do not use outside migrations.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
