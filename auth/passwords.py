"""
auth/passwords.py -- Salted password hashing (bcrypt).

Security design decisions:
  Per-account salt: every account carries 32 random bytes (secrets.token_bytes)
       that are concatenated with the password before hashing. A new salt is
       drawn on every password change and is never reused.

  Pre-digest: password bytes + salt bytes are run through SHA-256 and base64
       encoded before bcrypt sees them. Raw salt bytes may contain NUL, which
       bcrypt rejects, and password + 32-byte salt can exceed bcrypt's 72-byte
       input limit. The 44-byte base64 digest avoids both.

  bcrypt cost: configurable (Settings.bcrypt_rounds). bcrypt embeds its own
       salt and cost in the output, so verify() only needs the stored hash
       plus our per-account salt.

  Timing equalization: dummy_verify() runs a full bcrypt check against a
       precomputed hash so a login for an unknown email costs the same as a
       wrong password, and response time does not reveal which emails exist.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection trips over bcrypt 4.x's explicit length errors.

Layer rule: stdlib + bcrypt + core/ only. No imports from api/ or sessions/.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets

import bcrypt

from core.errors import InternalError

logger = logging.getLogger("keyward.auth")

SALT_BYTES = 32


def _salted_digest(password: str, salt: bytes) -> bytes:
    return base64.b64encode(hashlib.sha256(password.encode("utf-8") + salt).digest())


class PasswordHasher:
    """Derive and verify salted bcrypt password hashes.

    Usage:
        hasher = PasswordHasher(rounds=12)
        salt = hasher.generate_salt()
        stored = hasher.derive("s3cret", salt)
        hasher.verify("s3cret", salt, stored)   # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy_salt = secrets.token_bytes(SALT_BYTES)
        self._dummy_hash = self.derive("keyward_timing_dummy", self._dummy_salt)

    def generate_salt(self, n: int = SALT_BYTES) -> bytes:
        """Return n cryptographically secure random bytes.

        Failure of the OS entropy source is fatal to the calling operation and
        is not retried.
        """
        try:
            return secrets.token_bytes(n)
        except (OSError, NotImplementedError) as exc:
            logger.error("Entropy source unavailable: %s", exc)
            raise InternalError(detail=f"salt generation failed: {exc}") from exc

    def derive(self, password: str, salt: bytes) -> str:
        """Return the bcrypt hash of password + salt as an ASCII string."""
        try:
            hashed = bcrypt.hashpw(_salted_digest(password, salt), bcrypt.gensalt(rounds=self.rounds))
        except ValueError as exc:
            raise InternalError(detail=f"password hashing failed: {exc}") from exc
        return hashed.decode("ascii")

    def verify(self, candidate: str, salt: bytes, stored_hash: str) -> bool:
        """Return True if candidate + salt matches stored_hash.

        A mismatch returns False. A stored hash that bcrypt cannot parse is a
        data problem, not a bad password, so it raises InternalError.
        """
        try:
            return bcrypt.checkpw(_salted_digest(candidate, salt), stored_hash.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise InternalError(detail=f"malformed stored password hash: {exc}") from exc

    def dummy_verify(self, candidate: str) -> None:
        """Burn one bcrypt check against the dummy hash. Result is discarded."""
        self.verify(candidate, self._dummy_salt, self._dummy_hash)
