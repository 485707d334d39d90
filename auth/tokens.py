"""
auth/tokens.py -- JWT codec for the four token purposes.

Security design decisions:
  JWT: python-jose with HS256. One TokenCodec is built at startup with
       Settings.secret_key; the secret is never read ad hoc per call.

  Typed claims: mint() takes one of the *Claims dataclasses from auth.models
       and parse() returns one. The dataclass's `purpose` is written into the
       token and checked on parse, so an email-verification token presented
       where a reset or refresh token is expected is rejected as invalid.

  Expiry is NOT enforced here. jose's exp check is disabled so parse() only
       answers "is this token genuine and well-formed". Callers compare
       claims.is_expired() against the clock and raise TokenExpiredError
       themselves. That keeps "corrupt" and "stale" as separate outcomes, and
       lets SignOut revoke sessions for tokens that have already lapsed.

  Session ids: access and refresh tokens each embed a fresh UUID4 hex id that
       keys the Session Store. Revoking one id ends one session without
       rotating the signing secret.

Layer rule: stdlib + python-jose + core/ only. No imports from api/ or sessions/.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from typing import TypeVar

from jose import JWTError, jwt

from core.errors import InvalidTokenError

logger = logging.getLogger("keyward.auth")

_ALGORITHM = "HS256"

ClaimsT = TypeVar("ClaimsT")


def expiry_after(seconds: int, now: float | None = None) -> int:
    """Return the exp claim value for a token that lives `seconds` from now."""
    current = time.time() if now is None else now
    return int(current) + seconds


def new_session_id() -> str:
    return uuid.uuid4().hex


class TokenCodec:
    """Sign and verify purpose-tagged JWT claim sets.

    Usage:
        codec = TokenCodec(secret_key)
        token = codec.mint(EmailClaims(email="a@x.com", exp=expiry_after(86400)))
        claims = codec.parse(token, EmailClaims)
        if claims.is_expired():
            ...
    """

    def __init__(self, secret: str, algorithm: str = _ALGORITHM) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty signing secret.")
        self._secret = secret
        self._algorithm = algorithm

    def mint(self, claims) -> str:
        """Encode a claims dataclass as a signed JWT."""
        payload = dataclasses.asdict(claims)
        payload["purpose"] = claims.purpose
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def parse(self, token: str, claims_type: type[ClaimsT]) -> ClaimsT:
        """Verify signature and structure, returning a claims_type instance.

        Raises InvalidTokenError for a bad signature, a malformed token, a
        purpose mismatch, or missing/mistyped fields. Never checks expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidTokenError(detail=f"JWT decode failed: {exc}") from exc

        purpose = getattr(claims_type, "purpose", "")
        if payload.get("purpose") != purpose:
            raise InvalidTokenError(detail=f"expected {purpose!r} token, got {payload.get('purpose')!r}")

        values = {}
        for field in dataclasses.fields(claims_type):
            value = payload.get(field.name)
            expected = int if field.name == "exp" else str
            # bool is an int subclass; a True exp is not a timestamp
            if not isinstance(value, expected) or isinstance(value, bool):
                raise InvalidTokenError(detail=f"{purpose} token has missing or invalid claim {field.name!r}")
            values[field.name] = value
        return claims_type(**values)
