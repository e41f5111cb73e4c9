"""
auth/gateway.py -- The Auth Gateway: every authentication decision in one place.

Web handlers call the gateway; the gateway calls the UserStore, the
SessionStore and the PasswordHasher it was built with. Nothing here knows
about HTTP.

Behaviour by auth mode:

  legacy  register never checks for an existing username; login compares an
          unsalted digest. Provider logins are refused.
  local   register refuses a taken username; bcrypt comparison; provider
          logins use find-or-create by provider id.
  oauth   provider logins only. register/login answer "local_disabled".

Failed logins never say whether the username exists: a missing user and a
wrong password both produce "bad_credentials", and the missing-user path still
runs one hash verification so timing does not differ.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from auth.hashing import PasswordHasher, hasher_for_mode
from auth.models import PROVIDERS, AuthResult, SessionContext, User
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import create_session_token, decode_session_token

logger = logging.getLogger("secretboard.auth")


class AuthGateway:
    def __init__(
        self,
        store: UserStore,
        sessions: SessionStore,
        auth_mode: str = "local",
        hasher: PasswordHasher | None = None,
        session_expire_seconds: int = 3600,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.auth_mode = auth_mode
        self.hasher = hasher if hasher is not None else hasher_for_mode(auth_mode)
        self.session_expire_seconds = session_expire_seconds

    @property
    def local_login_allowed(self) -> bool:
        return self.auth_mode != "oauth"

    @property
    def oauth_allowed(self) -> bool:
        return self.auth_mode != "legacy"

    @property
    def enforces_unique_usernames(self) -> bool:
        return self.auth_mode != "legacy"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def register(self, username: str, password: str) -> AuthResult:
        """Create a password-authenticated record and log it in.

        Raises StoreError when the user store is unavailable.
        """
        if not self.local_login_allowed:
            return AuthResult.failure("local_disabled")
        username = (username or "").strip()
        if not username or not password:
            return AuthResult.failure("missing_fields")

        if self.enforces_unique_usernames and self.store.get_by_username(username) is not None:
            logger.info("Registration rejected: username already taken")
            return AuthResult.failure("username_taken")

        user_id = self.store.create_user(User(username=username, hashed_password=self.hasher.hash(password)))
        user = self.store.get_by_id(user_id)
        logger.info("Registered user %d (%s)", user_id, self.hasher.name)
        return self._start_session(user)

    def login(self, username: str, password: str) -> AuthResult:
        """Verify a username/password pair and log the record in.

        Raises StoreError when the user store is unavailable.
        """
        if not self.local_login_allowed:
            return AuthResult.failure("local_disabled")
        user = self.store.get_by_username((username or "").strip())
        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return before hashing.
            self.hasher.dummy_verify(password or "")
            logger.info("Login failed: incorrect username and/or password")
            return AuthResult.failure("bad_credentials")
        if not self.hasher.verify(password or "", user.hashed_password):
            logger.info("Login failed: incorrect username and/or password")
            return AuthResult.failure("bad_credentials")
        return self._start_session(user)

    def authenticate_with_provider(self, provider: str, subject: str) -> AuthResult:
        """Log in the record bound to an already-verified provider identity.

        The subject comes from a completed OAuth handshake and is trusted as
        is. The record is found by provider id or created on first sight;
        either way a session is started for it.
        """
        if not self.oauth_allowed:
            return AuthResult.failure("oauth_disabled")
        if provider not in PROVIDERS or not subject:
            return AuthResult.failure("oauth_failed")

        lookup = self.store.find_or_create_by_provider(provider, subject)
        if lookup.created:
            logger.info("Created user %d from %s login", lookup.user.id, provider)
        return self._start_session(lookup.user)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def resolve_session(self, token: str | None) -> SessionContext:
        """Turn a presented token into a SessionContext. Never raises."""
        if not token:
            return SessionContext.anonymous()
        payload = decode_session_token(token)
        if payload is None:
            return SessionContext.anonymous()
        session_id = payload["sid"]
        try:
            user_id = self.sessions.lookup(session_id)
        except Exception:
            logger.exception("Session lookup failed")
            return SessionContext.anonymous()
        if user_id is None or user_id != payload["user_id"]:
            return SessionContext.anonymous()
        user = self.store.get_by_id(user_id)
        if user is None:
            return SessionContext.anonymous()
        return SessionContext.authenticated(user, session_id)

    def logout(self, session: SessionContext) -> SessionContext:
        """End the session. Always returns an anonymous context.

        A failure while revoking the server-side row is logged and otherwise
        ignored; the caller's cookie is cleared by the web layer regardless.
        """
        if session.session_id is not None:
            try:
                self.sessions.revoke(session.session_id)
            except Exception:
                logger.exception("Session revocation failed for user %s", session.user_id)
        return SessionContext.anonymous()

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def submit_secret(self, session: SessionContext, text: str) -> str | None:
        """Overwrite the secret of the session's user.

        Returns None on success or an error code. Raises StoreError when the
        store cannot be written.
        """
        if not session.is_authenticated:
            return "login_required"
        if not text or not text.strip():
            return "empty_secret"
        if not self.store.set_secret(session.user_id, text):
            return "login_required"
        return None

    def list_secrets(self) -> list[str]:
        """Every submitted secret. Raises StoreError when the store cannot be read."""
        return self.store.list_secrets()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_session(self, user: User) -> AuthResult:
        session_id = self.sessions.create(user.id, self.session_expire_seconds)
        token = create_session_token(session_id, user.id, self.session_expire_seconds)
        self.store.update_last_login(user.id)
        return AuthResult(user=user, token=token)
