"""
API request and response models for Keyward REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
Password hashes, salts and outstanding verification/reset tokens never appear
in any response model.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Account, Profile, TokenPair

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
# Deliverability is proven by the verification mail, not by a regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt input is a fixed-size digest of password + salt, so length is not
# capped by bcrypt's 72-byte limit. The upper bound only guards the request.
_PASSWORD_FIELD = Field(min_length=8, max_length=255)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    full_name and email are trimmed. Passwords are kept exactly as typed, here
    and in every other request model, so the same string always logs in.
    """

    full_name: str = Field(min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = _PASSWORD_FIELD
    confirm_password: str

    @field_validator("full_name", "email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("confirm_password must match password")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset_password."""

    email: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/change_password.

    token is the value from the ?token= query string of the reset link.
    """

    token: str = Field(min_length=1)
    password: str = _PASSWORD_FIELD
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.password != self.confirm_password:
            raise ValueError("confirm_password must match password")
        return self


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1)


class SignOutRequest(BaseModel):
    """Request body for POST /api/v1/auth/signout. The access token travels in the header."""

    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    is_verified: bool
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id or "",
            email=account.email,
            is_verified=account.is_verified,
            created_at=account.created_at or "",
        )


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    full_name: str


class SignUpResponse(BaseModel):
    """Response for POST /api/v1/auth/signup."""

    model_config = ConfigDict(frozen=True)

    message: str
    account: AccountResponse
    profile: ProfileResponse

    @classmethod
    def from_domain(cls, account: Account, profile: Profile) -> "SignUpResponse":
        """Factory Method -- the domain-to-contract mapping lives beside the contract."""
        return cls(
            message="Account created. Check your inbox to verify your email address.",
            account=AccountResponse.from_account(account),
            profile=ProfileResponse(full_name=profile.full_name),
        )


class TokenPairResponse(BaseModel):
    """Response for POST /login and POST /refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    access_expires_at: datetime
    refresh_expires_at: datetime

    @classmethod
    def from_pair(cls, pair: TokenPair, expires_in: int) -> "TokenPairResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=expires_in,
            access_expires_at=pair.access_expires_at,
            refresh_expires_at=pair.refresh_expires_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me -- identity carried by the access token."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str
    full_name: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
