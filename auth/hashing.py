"""
auth/hashing.py -- Password hashing schemes behind one small interface.

Two implementations:

  BcryptHasher -- bcrypt with a random per-user salt embedded in the stored
       string. Used by the "local" and "oauth" auth modes. bcrypt is used
       directly (no passlib wrapper): passlib's wrap-bug detection builds a
       password longer than 72 bytes, which bcrypt 4.x rejects.

  LegacyDigestHasher -- unsalted MD5 hex digest of the plaintext. Identical
       passwords produce identical stored values across users. Exists only so
       records written by the first version of the app can still be checked
       (AUTH_MODE=legacy). Never selected by default.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod

import bcrypt


class PasswordHasher(ABC):
    """Derive and verify stored credentials from plaintext passwords."""

    name: str = ""
    _dummy_hash: str | None = None

    @abstractmethod
    def hash(self, plain: str) -> str:
        """Return the stored form of a plaintext password."""

    @abstractmethod
    def verify(self, plain: str, stored: str) -> bool:
        """Return True if plain matches the stored credential. Never raises."""

    def dummy_verify(self, plain: str) -> None:
        """Run one verification against a throwaway credential.

        Called when the username does not exist so the response time of a
        failed login does not reveal whether the account exists.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("secretboard_timing_dummy")
        self.verify(plain, self._dummy_hash)


class BcryptHasher(PasswordHasher):
    name = "bcrypt"

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        # bcrypt only looks at the first 72 bytes and 4.x raises past that.
        pw_bytes = plain.encode("utf-8")[:72]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, stored: str) -> bool:
        pw_bytes = plain.encode("utf-8")[:72]
        try:
            return bcrypt.checkpw(pw_bytes, stored.encode("utf-8"))
        except (ValueError, TypeError):
            # Not a bcrypt string (e.g. a legacy digest left in the table).
            return False


class LegacyDigestHasher(PasswordHasher):
    name = "md5"

    def hash(self, plain: str) -> str:
        return hashlib.md5(plain.encode("utf-8")).hexdigest()  # noqa: S324 # nosec B324 -- legacy format

    def verify(self, plain: str, stored: str) -> bool:
        return hmac.compare_digest(self.hash(plain), stored or "")


def hasher_for_mode(auth_mode: str) -> PasswordHasher:
    """Pick the hashing scheme for an auth mode. Only "legacy" gets the digest."""
    if auth_mode == "legacy":
        return LegacyDigestHasher()
    return BcryptHasher()
