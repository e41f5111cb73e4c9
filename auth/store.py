"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and gateway
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  username is NOT unique in the schema. The legacy auth mode allows duplicate
  usernames; the other modes check get_by_username() before inserting.

  google_id / facebook_id ARE unique. SQLite treats NULLs as distinct in
  UNIQUE constraints, so any number of records may lack a provider id, while
  two records can never share one. find_or_create_by_provider() relies on this
  to settle concurrent first logins.

Failures on the username, insert and secret paths are re-raised as StoreError
so the web layer can answer with an explicit error page.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import PROVIDERS, ProviderLookup, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), index=True),  # NULL for OAuth-created records
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("google_id", String(255), unique=True),
    Column("facebook_id", String(255), unique=True),
    Column("secret", Text),  # NULL until the first submission
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_PROVIDER_COLUMNS = {
    "google": _users.c.google_id,
    "facebook": _users.c.facebook_id,
}


class StoreError(Exception):
    """The user store could not complete a read or write."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///secretboard.db")
        uid = store.create_user(User(username="ada@example.com", hashed_password=...))
        store.set_secret(uid, "I still use tabs.")
        store.list_secrets()
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if a provider id is already taken,
        StoreError for any other database failure. Username collisions are not
        detected here.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        hashed_password=user.hashed_password,
                        google_id=user.google_id,
                        facebook_id=user.facebook_id,
                        secret=user.secret,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError("could not create user") from exc
        return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Return the oldest record with this exact username, or None.

        Legacy mode can hold several records per username; the first one
        registered wins, matching a plain findOne. Raises StoreError if the
        database cannot be read.
        """
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    _users.select().where(_users.c.username == username).order_by(_users.c.id).limit(1)
                ).fetchone()
        except SQLAlchemyError as exc:
            raise StoreError("could not look up username") from exc
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_provider(self, provider: str, subject: str) -> User | None:
        """Look up a user by provider id. Returns None if no record carries it."""
        column = _provider_column(provider)
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(column == subject)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_or_create_by_provider(self, provider: str, subject: str) -> ProviderLookup:
        """Return the record carrying this provider id, creating it if absent.

        Two steps: lookup, then insert. If a concurrent request inserts the
        same provider id between the two, the UNIQUE constraint rejects our
        insert and the winner's record is returned with created=False.
        """
        existing = self.get_by_provider(provider, subject)
        if existing is not None:
            return ProviderLookup(user=existing, created=False)

        new_user = User(**{f"{provider}_id": subject})
        try:
            user_id = self.create_user(new_user)
        except IntegrityError:
            winner = self.get_by_provider(provider, subject)
            if winner is None:
                raise
            return ProviderLookup(user=winner, created=False)

        created = self.get_by_id(user_id)
        return ProviderLookup(user=created, created=True)

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def set_secret(self, user_id: int, text: str) -> bool:
        """Overwrite the user's secret. Returns False if the user does not exist.

        Raises StoreError if the database rejects the write.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(secret=text))
                conn.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"could not save secret for user {user_id}") from exc
        return result.rowcount > 0

    def list_secrets(self) -> list[str]:
        """Return every non-null secret. No ordering guarantee, no owner.

        Raises StoreError if the database cannot be read.
        """
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(_users.c.secret).where(_users.c.secret.is_not(None))).fetchall()
        except SQLAlchemyError as exc:
            raise StoreError("could not list secrets") from exc
        return [r.secret for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _provider_column(provider: str):
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider!r}")
    return _PROVIDER_COLUMNS[provider]


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        google_id=row.google_id,
        facebook_id=row.facebook_id,
        secret=row.secret,
        created_at=row.created_at,
        last_login=row.last_login,
    )
