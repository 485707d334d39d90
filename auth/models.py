"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Account and
Profile mirror the database rows; the *Claims classes are the typed payloads
of the four token purposes, decoded by TokenCodec.parse(). Stores and the
service do the work.

Layer rule: stdlib only. No imports from api/, core/, or sessions/.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar


@dataclass
class Account:
    """An identity that can log in.

    password_hash is the bcrypt output of derive(password, salt) -- never the
    plaintext. salt is 32 raw bytes, regenerated on every password change.

    email_token / password_token hold the most recently minted verification
    and reset tokens. Empty string means "none outstanding"; ChangePassword
    compares against password_token so a newer reset supersedes older ones.
    """

    email: str
    password_hash: str
    salt: bytes
    id: str | None = None
    is_verified: bool = False
    email_token: str = ""
    password_token: str = ""
    created_at: str | None = None


@dataclass
class Profile:
    """Display data owned 1:1 by an Account. Only created during signup."""

    full_name: str
    account_id: str | None = None
    id: str | None = None


@dataclass(frozen=True)
class TokenPair:
    """Result of Login and RefreshToken."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


# ---------------------------------------------------------------------------
# Token claims -- one frozen dataclass per purpose
#
# `purpose` is a ClassVar, not a field: TokenCodec writes it into the JWT on
# mint and checks it on parse, so a token of one purpose cannot be decoded as
# another. `exp` is integer UNIX seconds, matching the JWT registered claim.
# Single-use tokens carry a random `jti` so two mints in the same second differ.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Claims:
    purpose: ClassVar[str] = ""

    def is_expired(self, now: float | None = None) -> bool:
        """True once the current time has reached the exp claim."""
        current = time.time() if now is None else now
        return current >= self.exp  # type: ignore[attr-defined]


@dataclass(frozen=True)
class EmailClaims(_Claims):
    purpose: ClassVar[str] = "email_verification"

    email: str
    exp: int
    jti: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class ResetClaims(_Claims):
    purpose: ClassVar[str] = "password_reset"

    email: str
    exp: int
    jti: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class AccessClaims(_Claims):
    purpose: ClassVar[str] = "access"

    account_id: str
    email: str
    full_name: str
    session_id: str
    exp: int


@dataclass(frozen=True)
class RefreshClaims(_Claims):
    purpose: ClassVar[str] = "refresh"

    account_id: str
    session_id: str
    exp: int
