"""
auth/sessions.py -- Server-held session records.

SessionStore is the interface the gateway depends on; DatabaseSessionStore
keeps one row per login in the same database as the users table.

A session is live while its row exists, is not revoked and has not passed
expires_at. Expiry is enforced twice: by the JWT "exp" claim and by the row.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
)


class SessionStore(ABC):
    """Create, look up and revoke authenticated sessions."""

    @abstractmethod
    def create(self, user_id: int, expire_seconds: int) -> str:
        """Start a session for user_id and return its id."""

    @abstractmethod
    def lookup(self, session_id: str) -> int | None:
        """Return the user id of a live session, or None."""

    @abstractmethod
    def revoke(self, session_id: str) -> None:
        """End a session. Revoking an unknown or ended session is a no-op."""


class DatabaseSessionStore(SessionStore):
    """SQLAlchemy Core implementation of SessionStore.

    Takes an existing Engine (normally UserStore.engine) so sessions and users
    live in one database.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create(self, user_id: int, expire_seconds: int) -> str:
        session_id = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=user_id,
                    created_at=now.isoformat(),
                    expires_at=(now + timedelta(seconds=expire_seconds)).isoformat(),
                    revoked=0,
                )
            )
            conn.commit()
        return session_id

    def lookup(self, session_id: str) -> int | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None or row.revoked:
            return None
        if datetime.fromisoformat(row.expires_at) <= datetime.now(timezone.utc):
            return None
        return row.user_id

    def revoke(self, session_id: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(revoked=1))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete revoked and expired rows. Returns number of rows removed."""
        now = datetime.now(timezone.utc).isoformat()
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.revoked == 1) | (_sessions.c.expires_at < now))
            )
            conn.commit()
        return result.rowcount
