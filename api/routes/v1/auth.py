"""
api/routes/v1/auth.py -- JSON identity endpoints.

Routes:
  GET /api/v1/auth/providers  -- list enabled OAuth providers (public)
  GET /api/v1/auth/me         -- current identity (requires auth)

Registration, login and logout are browser flows and live in web/routes.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MeResponse, OAuthProviderInfo
from auth.dependencies import require_user
from auth.models import PROVIDERS, User
from auth.oauth import get_enabled_providers

router = APIRouter()


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty in the legacy auth mode."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(require_user)) -> MeResponse:
    """Return identity information for the authenticated caller.

    The secret itself is never returned -- only whether one exists.
    """
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        providers=[p for p in PROVIDERS if current_user.provider_id(p)],
        has_secret=current_user.secret is not None,
    )
