"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as `Authorization: Bearer <token>`. Validation is
delegated to AuthService.authenticate(), which checks signature, purpose,
expiry and that the session id is still live in the SessionStore.

get_current_claims() raises the AuthError from authenticate() unchanged, so
the API error handler reports token_expired vs invalid_token accurately.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request/HTTPException)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AccessClaims
from auth.service import AuthService


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_current_claims(request: Request) -> AccessClaims:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    token = bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return get_auth_service(request).authenticate(token)
