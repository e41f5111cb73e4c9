"""
tests/conftest.py -- Shared test fixtures for SecretBoard tests.

This module provides:
  - make_gateway: factory for an AuthGateway on a fresh in-memory DB, per mode
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - web_client: TestClient with follow_redirects=False for web route tests
  - legacy_web_client, oauth_web_client: the same, per auth mode
  - api_client: TestClient for JSON route tests
  - count_users: raw row count per username

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixtures because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any auth/core import: DEBUG so get_settings()
auto-generates SECRET_KEY, provider credentials so both OAuth providers are
enabled, a high login rate limit so the suite never trips it, and the
TestClient host in ALLOWED_HOSTS.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("AUTH_MODE", "local")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")
os.environ.setdefault("FACEBOOK_CLIENT_ID", "test-facebook-id")
os.environ.setdefault("FACEBOOK_CLIENT_SECRET", "test-facebook-secret")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from api.main import app
from auth.gateway import AuthGateway
from auth.hashing import BcryptHasher, hasher_for_mode
from auth.sessions import DatabaseSessionStore
from auth.store import UserStore

try:
    from web.routes import router as web_router

    app.include_router(web_router, tags=["Web UI"])
except Exception:
    pass  # Router already included or unavailable


_db_counter = itertools.count()


def _shared_memory_url(name: str) -> str:
    return f"sqlite:///file:test_{name}_{next(_db_counter)}?mode=memory&cache=shared&uri=true"


def _fast_hasher(auth_mode: str):
    """bcrypt at the minimum cost factor keeps the suite fast."""
    if auth_mode == "legacy":
        return hasher_for_mode(auth_mode)
    return BcryptHasher(rounds=4)


# ---------------------------------------------------------------------------
# Gateway factory (unit tests)
# ---------------------------------------------------------------------------


@pytest.fixture
def make_gateway() -> Generator:
    """Yield a factory: make_gateway(mode="local") -> AuthGateway.

    Each call gets its own in-memory database.
    """
    stores: list[UserStore] = []

    def _factory(auth_mode: str = "local") -> AuthGateway:
        store = UserStore(_shared_memory_url(auth_mode))
        stores.append(store)
        return AuthGateway(
            store,
            DatabaseSessionStore(store.engine),
            auth_mode=auth_mode,
            hasher=_fast_hasher(auth_mode),
        )

    yield _factory

    for store in stores:
        store.close()


# ---------------------------------------------------------------------------
# App fixtures (integration tests)
# ---------------------------------------------------------------------------


def _patch_lifespan(gateway: AuthGateway, oauth_registry):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine: a real asyncio.Task is needed
    because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = gateway.store
        app.state.session_store = gateway.sessions
        app.state.gateway = gateway
        app.state.oauth = oauth_registry
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def _make_client(auth_mode: str, **client_kwargs):
    store = UserStore(_shared_memory_url(f"app_{auth_mode}"))
    gateway = AuthGateway(
        store,
        DatabaseSessionStore(store.engine),
        auth_mode=auth_mode,
        hasher=_fast_hasher(auth_mode),
    )
    oauth_registry = MagicMock()
    app.router.lifespan_context = _patch_lifespan(gateway, oauth_registry)
    return store, gateway, oauth_registry, TestClient(app, raise_server_exceptions=True, **client_kwargs)


@pytest.fixture
def web_client() -> Generator[tuple[TestClient, AuthGateway, MagicMock], None, None]:
    """Yield (client, gateway, oauth_registry) for web route tests.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows them. Function-scoped so
    cookies and records never leak between tests.
    """
    store, gateway, oauth_registry, client = _make_client("local", follow_redirects=False)
    with client:
        yield client, gateway, oauth_registry
    store.close()


@pytest.fixture
def legacy_web_client() -> Generator[tuple[TestClient, AuthGateway], None, None]:
    """Like web_client, but the gateway runs in the legacy auth mode."""
    store, gateway, _registry, client = _make_client("legacy", follow_redirects=False)
    with client:
        yield client, gateway
    store.close()


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthGateway], None, None]:
    """Yield (client, gateway) for JSON API tests."""
    store, gateway, _registry, client = _make_client("local")
    with client:
        yield client, gateway
    store.close()


@pytest.fixture
def oauth_web_client() -> Generator[tuple[TestClient, AuthGateway], None, None]:
    """Like web_client, but the gateway only accepts provider logins."""
    store, gateway, _registry, client = _make_client("oauth", follow_redirects=False)
    with client:
        yield client, gateway
    store.close()


# ---------------------------------------------------------------------------
# Assertions against the users table
# ---------------------------------------------------------------------------


@pytest.fixture
def count_users():
    """Return count_users(store, username) -> number of records with that username."""

    def _count(store: UserStore, username: str) -> int:
        with store.engine.connect() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM users WHERE username = :username"), {"username": username}
            ).scalar_one()

    return _count
