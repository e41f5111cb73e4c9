"""
auth/tokens.py -- Session token encoding and the session cookie.

The cookie value is a JWT (python-jose, HS256) signed with SECRET_KEY. It
carries the server-side session id ("sid"), the user id and an expiry. A valid
signature alone does not authenticate: the gateway also checks that the
session row still exists and has not been revoked, so logout really ends the
session.

Verification returns None on any failure -- callers treat None as Anonymous.

Layer rule: no imports from api/ or web/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "session_token"


def create_session_token(session_id: str, user_id: int, expire_seconds: int = 0) -> str:
    """Encode a signed JWT naming a server-side session.

    Args:
        session_id:     Id of the row in the sessions table.
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.session_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sid": session_id,
        "user_id": user_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "sid" not in payload or "user_id" not in payload:
        return None
    return payload


def set_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
