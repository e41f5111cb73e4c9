"""
auth/oauth.py -- Authlib OAuth provider configuration.

build_oauth() registers only providers with both client ID and secret
configured, and none at all in the legacy auth mode. The login and register
templates render buttons from get_enabled_providers().

OAuth state parameter (CSRF protection) is handled by authlib via Starlette
SessionMiddleware. The session stores the state between the authorization
redirect and the callback.

Supported providers:
  google   -- Authorization code flow; OIDC discovery. Subject is the "sub"
              claim of the id_token.
  facebook -- Authorization code flow; static endpoints. Subject is the Graph
              API "id" of /me.

Only the provider subject is used. Emails are not compared, so the same person
signing in through both providers gets two records.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import Settings, get_settings

logger = logging.getLogger("secretboard.auth.oauth")

_LABELS = {"google": "Google", "facebook": "Facebook"}


def build_oauth(cfg: Settings) -> OAuth:
    """Return an Authlib registry holding every enabled provider."""
    oauth = OAuth()
    if not cfg.oauth_allowed:
        return oauth

    # Google -- OIDC discovery
    if cfg.google_client_id and cfg.google_client_secret:
        oauth.register(
            name="google",
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid profile"},
        )
        logger.info("Google OAuth provider registered")

    # Facebook -- static endpoints (no OIDC discovery for the Graph login)
    if cfg.facebook_client_id and cfg.facebook_client_secret:
        oauth.register(
            name="facebook",
            client_id=cfg.facebook_client_id,
            client_secret=cfg.facebook_client_secret,
            access_token_url="https://graph.facebook.com/v19.0/oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://www.facebook.com/v19.0/dialog/oauth",
            api_base_url="https://graph.facebook.com/v19.0/",
            client_kwargs={"scope": "public_profile"},
        )
        logger.info("Facebook OAuth provider registered")

    return oauth


def get_enabled_providers(cfg: Settings | None = None) -> list[dict]:
    """Return {"name", "label"} for every configured and allowed provider."""
    cfg = cfg or get_settings()
    if not cfg.oauth_allowed:
        return []
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": _LABELS["google"]})
    if cfg.facebook_client_id and cfg.facebook_client_secret:
        providers.append({"name": "facebook", "label": _LABELS["facebook"]})
    return providers


def callback_url(cfg: Settings, provider: str) -> str:
    return f"{cfg.public_base_url.rstrip('/')}/auth/{provider}/secrets"


async def get_provider_subject(client, provider: str, token: dict) -> str:
    """Extract the provider's stable user id from a token response.

    Raises:
        ValueError: If the response carries no subject.
    """
    if provider == "google":
        userinfo = token.get("userinfo") or {}
        subject = userinfo.get("sub")
    elif provider == "facebook":
        resp = await client.get("me", params={"fields": "id"}, token=token)
        resp.raise_for_status()
        subject = resp.json().get("id")
    else:
        raise ValueError(f"Unknown OAuth provider: {provider!r}")

    if not subject:
        raise ValueError(f"{provider} OAuth: no subject in provider response")
    return str(subject)
