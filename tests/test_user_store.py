"""Unit tests for auth/store.py and auth/sessions.py.

Covers:
- get_by_username() returns the oldest record when duplicates exist
- find_or_create_by_provider() creates once, then reuses (tagged result)
- provider ids are independent: same subject under two providers = two records
- set_secret() overwrites; list_secrets() skips NULL secrets
- account and secret operations raise StoreError when the database fails;
  provider id collisions still surface as IntegrityError
- DatabaseSessionStore create / lookup / revoke / expiry / purge
"""

from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.sessions import DatabaseSessionStore
from auth.store import StoreError, UserStore


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


class TestUserLookups:
    def test_duplicate_usernames_allowed_by_store(self, store: UserStore, count_users) -> None:
        first = store.create_user(User(username="ada@example.com", hashed_password="a"))
        store.create_user(User(username="ada@example.com", hashed_password="b"))
        assert count_users(store, "ada@example.com") == 2
        assert store.get_by_username("ada@example.com").id == first

    def test_get_by_username_missing(self, store: UserStore) -> None:
        assert store.get_by_username("nobody@example.com") is None


class TestFindOrCreate:
    def test_creates_then_reuses(self, store: UserStore) -> None:
        first = store.find_or_create_by_provider("google", "g-100")
        second = store.find_or_create_by_provider("google", "g-100")
        assert first.created is True
        assert second.created is False
        assert first.user.id == second.user.id
        assert second.user.google_id == "g-100"
        assert second.user.username is None
        assert second.user.hashed_password is None

    def test_providers_do_not_merge(self, store: UserStore) -> None:
        google = store.find_or_create_by_provider("google", "same-subject")
        facebook = store.find_or_create_by_provider("facebook", "same-subject")
        assert google.user.id != facebook.user.id
        assert facebook.user.facebook_id == "same-subject"
        assert facebook.user.google_id is None

    def test_unknown_provider(self, store: UserStore) -> None:
        with pytest.raises(ValueError):
            store.find_or_create_by_provider("myspace", "x")

    def test_lost_insert_race_reuses_winner(self, store: UserStore) -> None:
        """If the lookup misses but the insert collides, the winner is returned."""
        winner_id = store.create_user(User(google_id="g-race"))
        real_lookup = store.get_by_provider
        calls = {"n": 0}

        def _stale_then_real(provider, subject):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_lookup(provider, subject)

        with patch.object(store, "get_by_provider", side_effect=_stale_then_real):
            result = store.find_or_create_by_provider("google", "g-race")

        assert result.created is False
        assert result.user.id == winner_id


class TestSecrets:
    def test_overwrite(self, store: UserStore) -> None:
        uid = store.create_user(User(username="ada@example.com"))
        store.set_secret(uid, "A")
        store.set_secret(uid, "B")
        assert store.list_secrets() == ["B"]
        assert store.get_by_id(uid).secret == "B"

    def test_list_skips_null(self, store: UserStore) -> None:
        store.create_user(User(username="quiet@example.com"))
        uid = store.create_user(User(username="loud@example.com"))
        store.set_secret(uid, "I sing in the shower.")
        assert store.list_secrets() == ["I sing in the shower."]

    def test_set_secret_unknown_user(self, store: UserStore) -> None:
        assert store.set_secret(9999, "orphan") is False

    def test_store_failure_raises_store_error(self, store: UserStore) -> None:
        with store.engine.connect() as conn:
            conn.execute(text("DROP TABLE users"))
            conn.commit()
        with pytest.raises(StoreError):
            store.list_secrets()
        with pytest.raises(StoreError):
            store.set_secret(1, "x")

    def test_account_failure_raises_store_error(self, store: UserStore) -> None:
        with store.engine.connect() as conn:
            conn.execute(text("DROP TABLE users"))
            conn.commit()
        with pytest.raises(StoreError):
            store.create_user(User(username="ada@example.com", hashed_password="a"))
        with pytest.raises(StoreError):
            store.get_by_username("ada@example.com")

    def test_duplicate_provider_id_is_not_a_store_error(self, store: UserStore) -> None:
        store.create_user(User(google_id="g-1"))
        with pytest.raises(IntegrityError):
            store.create_user(User(google_id="g-1"))


class TestDatabaseSessionStore:
    def test_lifecycle(self, store: UserStore) -> None:
        sessions = DatabaseSessionStore(store.engine)
        sid = sessions.create(user_id=7, expire_seconds=60)
        assert sessions.lookup(sid) == 7
        sessions.revoke(sid)
        assert sessions.lookup(sid) is None

    def test_unknown_session(self, store: UserStore) -> None:
        sessions = DatabaseSessionStore(store.engine)
        assert sessions.lookup("does-not-exist") is None
        sessions.revoke("does-not-exist")  # no-op

    def test_expired_session(self, store: UserStore) -> None:
        sessions = DatabaseSessionStore(store.engine)
        sid = sessions.create(user_id=7, expire_seconds=-1)
        assert sessions.lookup(sid) is None

    def test_purge_expired(self, store: UserStore) -> None:
        sessions = DatabaseSessionStore(store.engine)
        live = sessions.create(user_id=1, expire_seconds=60)
        sessions.create(user_id=2, expire_seconds=-1)
        revoked = sessions.create(user_id=3, expire_seconds=60)
        sessions.revoke(revoked)
        assert sessions.purge_expired() == 2
        assert sessions.lookup(live) == 1
