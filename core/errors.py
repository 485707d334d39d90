"""
core/errors.py -- Error taxonomy for the credential lifecycle.

Every failure that crosses a component boundary is an AuthError carrying:
  kind:        machine-checkable ErrorKind (the HTTP layer maps it to a status)
  message:     user-facing text, safe to return to clients
  detail:      internal diagnostic text, logged but never returned

Collaborators raise the specific subclass; AuthService either lets it pass
through unchanged or re-raises with `from` chaining, so the kind survives.

Layer rule: core/ is the kernel. stdlib only; may not import from api/, auth/,
or sessions/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    not_found = "not_found"
    unauthorized = "unauthorized"
    email_not_verified = "email_not_verified"
    token_expired = "token_expired"
    invalid_token = "invalid_token"
    duplicate_email = "duplicate_email"
    internal = "internal"


# HTTP-status equivalents. Lives here (not in api/) so the mapping is part of
# the error contract and can be asserted without importing FastAPI.
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.not_found: 404,
    ErrorKind.unauthorized: 401,
    ErrorKind.email_not_verified: 403,
    ErrorKind.token_expired: 401,
    ErrorKind.invalid_token: 400,
    ErrorKind.duplicate_email: 409,
    ErrorKind.internal: 500,
}


class AuthError(Exception):
    """Base class for all credential lifecycle errors.

    Subclasses set `kind` and `default_message`; callers usually pass only
    the internal detail:

        raise UnauthorizedError(detail=f"password mismatch for account {account.id}")
    """

    kind: ErrorKind = ErrorKind.internal
    default_message: str = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None, detail: str = "") -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(detail or self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class NotFoundError(AuthError):
    kind = ErrorKind.not_found
    default_message = "Account not found."


class UnauthorizedError(AuthError):
    kind = ErrorKind.unauthorized
    default_message = "Invalid email or password."


class EmailNotVerifiedError(AuthError):
    kind = ErrorKind.email_not_verified
    default_message = "Please verify your email address first."


class TokenExpiredError(AuthError):
    kind = ErrorKind.token_expired
    default_message = "Your token has expired."


class InvalidTokenError(AuthError):
    kind = ErrorKind.invalid_token
    default_message = "Invalid token."


class DuplicateEmailError(AuthError):
    kind = ErrorKind.duplicate_email
    default_message = "An account with that email already exists."


class InternalError(AuthError):
    kind = ErrorKind.internal
