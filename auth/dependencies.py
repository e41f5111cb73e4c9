"""
auth/dependencies.py -- FastAPI Depends() helpers for the session context.

The session token is read from, in priority order:
  1. The "session_token" cookie -- set by the web login, register and OAuth flows.
  2. Authorization: Bearer <token> header -- API clients.

get_session_context() never raises; anonymous callers get an anonymous
context. require_user() is the hard variant for JSON routes (HTTP 401).

Layer rule: no imports from web/. auth/dependencies.py may import
from fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.gateway import AuthGateway
from auth.models import SessionContext, User
from auth.tokens import SESSION_COOKIE


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


def get_session_context(request: Request) -> SessionContext:
    """Resolve the request's session. Anonymous on any failure."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return get_gateway(request).resolve_session(token)


def require_user(request: Request) -> User:
    """Require an authenticated session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(require_user)): ...
    """
    session = get_session_context(request)
    if not session.is_authenticated:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session.user
