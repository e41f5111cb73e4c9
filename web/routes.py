"""
web/routes.py -- Jinja2 template routes for the SecretBoard web UI.

Every handler receives the caller's SessionContext through Depends() and asks
the AuthGateway (app.state.gateway) to do the actual work. Handlers only
render templates and redirect.

Routes:
  GET  /                        -- landing page
  GET  /register                -- registration form
  POST /register                -- create account, log in, redirect /secrets
  GET  /login                   -- login form (+ provider buttons)
  POST /login                   -- password login, redirect /secrets
  GET  /secrets                 -- every submitted secret (auth required unless SECRETS_PUBLIC)
  GET  /submit                  -- secret submission form (auth required)
  POST /submit                  -- overwrite the caller's secret (auth required)
  GET  /logout                  -- end session, redirect /
  GET  /auth/{provider}         -- OAuth redirect to provider
  GET  /auth/{provider}/secrets -- OAuth callback

Failures never raise to the client: bad credentials redirect, form errors
re-render, store failures render a 503 page.
"""

import logging
from pathlib import Path
from typing import Optional

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from httpx import HTTPError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from auth.dependencies import get_gateway, get_session_context
from auth.gateway import AuthGateway
from auth.models import AuthResult, SessionContext
from auth.oauth import callback_url, get_enabled_providers, get_provider_subject
from auth.store import StoreError
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

logger = logging.getLogger("secretboard.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_settings = get_settings()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for error codes. The raw ?error= query param is NEVER
# passed to templates -- only the message from this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Incorrect username and/or password.",
    "username_taken": "That username is already registered.",
    "missing_fields": "Username and password are required.",
    "local_disabled": "Password accounts are disabled. Sign in with a provider instead.",
    "oauth_failed": "Sign-in with the provider failed. Please try again.",
    "oauth_disabled": "Provider sign-in is not available.",
    "empty_secret": "Your secret cannot be empty.",
}

_ACCOUNTS_UNAVAILABLE = "Accounts are unavailable right now. Please try again later."


def _safe_next(next_url: Optional[str], default: str = "/secrets") -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative URLs ("//evil.example"), which
    would send the user off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return default


def _require_session(request: Request, session: SessionContext) -> Optional[RedirectResponse]:
    """Return a redirect to /login for anonymous callers, None otherwise.

    Call at the top of protected route handlers:
        if redirect := _require_session(request, session):
            return redirect
    """
    if not session.is_authenticated:
        return RedirectResponse(f"/login?next={request.url.path}", status_code=302)
    return None


def _logged_in_redirect(result: AuthResult, next_url: str) -> RedirectResponse:
    resp = RedirectResponse(next_url, status_code=302)
    set_session_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _login_rate_limit() -> str:
    """slowapi evaluates a callable limit on every request."""
    return _settings.login_rate_limit


def _store_error_page(
    request: Request,
    session: SessionContext,
    message: str = "Secrets are unavailable right now. Please try again later.",
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "error.html",
        {"session": session, "error_msg": message},
        status_code=503,
    )


def _providers(gateway: AuthGateway) -> list[dict]:
    """Provider buttons to show. Empty when the gateway refuses federation."""
    return get_enabled_providers() if gateway.oauth_allowed else []


def _provider_enabled(provider: str, gateway: AuthGateway) -> bool:
    return provider in {p["name"] for p in _providers(gateway)}


def _form_context(session: SessionContext, gateway: AuthGateway, **extra) -> dict:
    return {
        "session": session,
        "providers": _providers(gateway),
        "local_enabled": gateway.local_login_allowed,
        **extra,
    }


# ---------------------------------------------------------------------------
# GET / -- landing page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request, session: SessionContext = Depends(get_session_context)) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {"session": session})


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
def register_form(
    request: Request,
    session: SessionContext = Depends(get_session_context),
    gateway: AuthGateway = Depends(get_gateway),
) -> HTMLResponse:
    if session.is_authenticated:
        return RedirectResponse("/secrets", status_code=302)
    return templates.TemplateResponse(request, "register.html", _form_context(session, gateway))


@router.post("/register", response_class=HTMLResponse)
@limiter.limit(_login_rate_limit)  # below @router so FastAPI registers the limited wrapper
def register_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
    gateway: AuthGateway = Depends(get_gateway),
) -> HTMLResponse:
    """Create a password account. Failures re-render the form."""
    try:
        result = gateway.register(username, password)
    except StoreError:
        logger.exception("Registration failed: user store unavailable")
        return _store_error_page(request, SessionContext.anonymous(), _ACCOUNTS_UNAVAILABLE)
    if not result.ok:
        return templates.TemplateResponse(
            request,
            "register.html",
            _form_context(
                SessionContext.anonymous(),
                gateway,
                error_msg=_ERROR_MESSAGES.get(result.error, "Registration failed."),
                username=username,
            ),
        )
    return _logged_in_redirect(result, "/secrets")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(
    request: Request,
    session: SessionContext = Depends(get_session_context),
    gateway: AuthGateway = Depends(get_gateway),
) -> HTMLResponse:
    """Render the login page with username/password form and provider buttons."""
    if session.is_authenticated:
        return RedirectResponse("/secrets", status_code=302)

    return templates.TemplateResponse(
        request,
        "login.html",
        _form_context(
            session,
            gateway,
            error_msg=_ERROR_MESSAGES.get(request.query_params.get("error", ""), None),
            next=_safe_next(request.query_params.get("next")),
        ),
    )


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(_login_rate_limit)  # below @router so FastAPI registers the limited wrapper
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
    gateway: AuthGateway = Depends(get_gateway),
) -> RedirectResponse:
    """Handle username/password login form submission.

    Wrong password and unknown username look the same. The legacy mode sends
    failures back to the landing page; the others back to the login form.
    """
    try:
        result = gateway.login(username, password)
    except StoreError:
        logger.exception("Login failed: user store unavailable")
        return _store_error_page(request, SessionContext.anonymous(), _ACCOUNTS_UNAVAILABLE)
    if not result.ok:
        if gateway.auth_mode == "legacy":
            return RedirectResponse("/", status_code=302)
        return RedirectResponse(f"/login?error={result.error}", status_code=302)
    return _logged_in_redirect(result, _safe_next(request.query_params.get("next")))


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


@router.get("/logout")
def logout(
    session: SessionContext = Depends(get_session_context),
    gateway: AuthGateway = Depends(get_gateway),
) -> RedirectResponse:
    """End the session (if any), clear the cookie and go to the landing page."""
    gateway.logout(session)
    resp = RedirectResponse("/", status_code=302)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


@router.get("/secrets", response_class=HTMLResponse)
def secrets_page(
    request: Request,
    session: SessionContext = Depends(get_session_context),
    gateway: AuthGateway = Depends(get_gateway),
) -> HTMLResponse:
    if not _settings.secrets_public:
        if redirect := _require_session(request, session):
            return redirect
    try:
        secrets = gateway.list_secrets()
    except StoreError:
        logger.exception("Listing secrets failed")
        return _store_error_page(request, session)
    return templates.TemplateResponse(request, "secrets.html", {"session": session, "secrets": secrets})


@router.get("/submit", response_class=HTMLResponse)
def submit_form(request: Request, session: SessionContext = Depends(get_session_context)) -> HTMLResponse:
    if redirect := _require_session(request, session):
        return redirect
    return templates.TemplateResponse(request, "submit.html", {"session": session})


@router.post("/submit", response_class=HTMLResponse)
def submit_post(
    request: Request,
    secret: str = Form(default=""),
    session: SessionContext = Depends(get_session_context),
    gateway: AuthGateway = Depends(get_gateway),
) -> HTMLResponse:
    """Overwrite the caller's secret and show the list."""
    if redirect := _require_session(request, session):
        return redirect
    try:
        error = gateway.submit_secret(session, secret)
    except StoreError:
        logger.exception("Saving secret failed for user %s", session.user_id)
        return _store_error_page(request, session)
    if error == "login_required":
        return RedirectResponse("/login?next=/submit", status_code=302)
    if error is not None:
        return templates.TemplateResponse(
            request,
            "submit.html",
            {"session": session, "error_msg": _ERROR_MESSAGES.get(error, "Could not save your secret.")},
        )
    return RedirectResponse("/secrets", status_code=302)


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/{provider}")
async def oauth_redirect(
    request: Request,
    provider: str,
    gateway: AuthGateway = Depends(get_gateway),
) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    Validates the provider name against the enabled provider list first, so a
    spoofed name can never reach the registry.
    """
    if not _provider_enabled(provider, gateway):
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    client = request.app.state.oauth.create_client(provider)
    return await client.authorize_redirect(request, callback_url(_settings, provider))


@router.get("/auth/{provider}/secrets")
async def oauth_callback(
    request: Request,
    provider: str,
    gateway: AuthGateway = Depends(get_gateway),
) -> RedirectResponse:
    """Handle the provider callback: exchange the code, then find-or-create.

    Flow:
      1. Exchange authorization code for token (authlib checks state).
      2. Extract the provider subject id.
      3. Find the record by provider id or create it; start a session.
      4. Set cookie, redirect /secrets.
    """
    if not _provider_enabled(provider, gateway):
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    try:
        subject = await get_provider_subject(client, provider, token)
    except (ValueError, HTTPError):
        logger.warning("OAuth login rejected: no usable subject from %r", provider, exc_info=True)
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    result = await run_in_threadpool(gateway.authenticate_with_provider, provider, subject)
    if not result.ok:
        return RedirectResponse(f"/login?error={result.error}", status_code=302)
    return _logged_in_redirect(result, "/secrets")
