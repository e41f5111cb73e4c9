"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond tiny helpers).
Stores and the gateway do the work.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

PROVIDERS = ("google", "facebook")


@dataclass
class User:
    """A user record.

    username is None for records created by an OAuth callback -- those carry
    a provider id instead. hashed_password is None for OAuth-only users.
    A record may carry both (a local account later found via a provider).

    secret is None until the user submits one. Each submission overwrites it.
    """

    id: int | None = None
    username: str | None = None
    hashed_password: str | None = None
    google_id: str | None = None
    facebook_id: str | None = None
    secret: str | None = None
    created_at: str | None = None
    last_login: str | None = None

    def provider_id(self, provider: str) -> str | None:
        if provider == "google":
            return self.google_id
        if provider == "facebook":
            return self.facebook_id
        raise ValueError(f"Unknown provider: {provider!r}")


@dataclass
class ProviderLookup:
    """Tagged result of a find-or-create by provider id.

    created is True when the record was inserted by this call, False when an
    existing record was reused.
    """

    user: User
    created: bool


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionContext:
    """The caller's session as seen by a single request handler.

    Built once per request by auth.dependencies.get_session_context() and
    passed into handlers explicitly. session_id names the server-side session
    row so logout can revoke it.
    """

    state: SessionState = SessionState.ANONYMOUS
    user_id: int | None = None
    session_id: str | None = None
    user: User | None = None

    @classmethod
    def anonymous(cls) -> SessionContext:
        return cls()

    @classmethod
    def authenticated(cls, user: User, session_id: str) -> SessionContext:
        return cls(
            state=SessionState.AUTHENTICATED,
            user_id=user.id,
            session_id=session_id,
            user=user,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED


@dataclass
class AuthResult:
    """Outcome of register / login / provider authentication.

    On success: user and token are set, error is None.
    On failure: error holds a short code ("bad_credentials", "username_taken",
    ...) that the web layer maps to a display message.
    """

    user: User | None = None
    token: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.token is not None

    @classmethod
    def failure(cls, code: str) -> AuthResult:
        return cls(error=code)
