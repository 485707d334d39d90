"""
api/routes/v1/auth.py -- Credential lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/signup            -- create account + profile; mails verification link (201)
  POST /api/v1/auth/login             -- email/password login; returns access + refresh pair
  GET  /api/v1/auth/verify_email      -- ?token=... from the verification mail
  POST /api/v1/auth/reset_password    -- mails a reset link to a verified account
  POST /api/v1/auth/change_password   -- reset token + new password
  POST /api/v1/auth/refresh           -- rotate to a new access + refresh pair
  POST /api/v1/auth/signout           -- revoke both sessions (Bearer access token + body refresh token)
  GET  /api/v1/auth/me                -- identity of the current access token (requires auth)

Handlers are thin: they translate bodies into AuthService calls and results
into response models. AuthService raises AuthError subclasses; the handler in
api/main.py turns those into the {"error": {...}} envelope, so no route
catches them.

Handlers are plain `def` (not async) because AuthService does blocking
bcrypt, SQLite and SMTP work. FastAPI runs them in its thread pool.

Security:
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    SignOutRequest,
    SignUpRequest,
    SignUpResponse,
    TokenPairResponse,
)
from auth.dependencies import bearer_token, get_auth_service, get_current_claims
from auth.models import AccessClaims, TokenPair
from auth.service import AuthService

# Auth policy:
# - POST /auth/signup, /login, /reset_password, /change_password, /refresh: public
# - GET  /auth/verify_email: public -- the token in the link is the credential
# - POST /auth/signout: needs the Bearer access token, but expired ones are accepted
# - GET  /auth/me: requires a live access session (get_current_claims)
router = APIRouter()


def _token_response(service: AuthService, pair: TokenPair) -> JSONResponse:
    body = TokenPairResponse.from_pair(pair, expires_in=service.settings.access_token_expire_seconds)
    resp = JSONResponse(status_code=200, content=body.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/signup", response_model=SignUpResponse, status_code=201)
def signup(body: SignUpRequest, service: AuthService = Depends(get_auth_service)) -> SignUpResponse:
    """Register a new account. Login is refused until the emailed link is opened."""
    account, profile = service.sign_up(body.email, body.password, body.full_name)
    return SignUpResponse.from_domain(account, profile)


@router.post("/auth/login", response_model=TokenPairResponse)
def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Authenticate with email and password; return a fresh token pair."""
    pair = service.login(body.email, body.password)
    return _token_response(service, pair)


@router.get("/auth/verify_email", response_model=MessageResponse)
def verify_email(token: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Confirm an email address. Safe to open the same link twice."""
    service.verify_email(token)
    return MessageResponse(message="Email verified. You can now log in.")


@router.post("/auth/reset_password", response_model=MessageResponse)
def reset_password(body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Mail a password reset link. Any earlier link stops working."""
    service.reset_password(body.email)
    return MessageResponse(message="Password reset link sent.")


@router.post("/auth/change_password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    """Set a new password with the token from the reset link. The token is single-use."""
    service.change_password(body.token, body.password)
    return MessageResponse(message="Password changed. You can now log in.")


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Exchange a live refresh token for a new token pair."""
    pair = service.refresh_token(body.refresh_token)
    return _token_response(service, pair)


@router.post("/auth/signout", response_model=MessageResponse)
def signout(
    request: Request, body: SignOutRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    """Revoke the access and refresh sessions named by the presented tokens."""
    access_token = bearer_token(request)
    if not access_token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    service.sign_out(access_token, body.refresh_token)
    return MessageResponse(message="Signed out.")


@router.get("/auth/me", response_model=MeResponse)
def me(claims: AccessClaims = Depends(get_current_claims)) -> MeResponse:
    """Return identity information carried by the current access token."""
    return MeResponse(account_id=claims.account_id, email=claims.email, full_name=claims.full_name)
