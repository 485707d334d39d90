"""
auth/service.py -- Credential lifecycle: signup, login, verification, reset,
password change, token refresh, sign-out, and per-request authentication.

AuthService is the single owner of the lifecycle rules. It holds no state of
its own between calls; everything durable lives in the AccountStore (account
and profile rows) or the SessionStore (live session ids).

Rules enforced here:
  - A password hash is derived from a fresh 32-byte salt on signup and on
    every password change.
  - Login requires the right password AND a verified email.
  - Every login/refresh mints an access + refresh pair, each with its own new
    session id registered in the SessionStore for exactly the token lifetime.
  - A reset token must be genuine, unexpired, AND equal to the one currently
    stored on the account. Minting a new one supersedes the old; a successful
    change clears it.
  - Expiry is checked here, never in TokenCodec.
  - Errors from collaborators are never swallowed. They pass through with
    their kind intact; nothing is retried.

Layer rule: no imports from api/. Collaborators are injected, so the service
can be exercised without FastAPI, SMTP, or a real database file.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from auth.mailer import RESET_PASSWORD_TEMPLATE, VERIFY_EMAIL_TEMPLATE, Mailer
from auth.models import (
    AccessClaims,
    Account,
    EmailClaims,
    Profile,
    RefreshClaims,
    ResetClaims,
    TokenPair,
)
from auth.passwords import PasswordHasher
from auth.store import AccountStore
from auth.tokens import TokenCodec, expiry_after, new_session_id
from core.config import Settings
from core.errors import (
    AuthError,
    EmailNotVerifiedError,
    InvalidTokenError,
    NotFoundError,
    TokenExpiredError,
    UnauthorizedError,
)
from sessions.store import SessionStore

logger = logging.getLogger("keyward.auth")


def _as_datetime(exp: int) -> datetime:
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class AuthService:
    """Orchestrates the hasher, codec, stores and mailer.

    Usage:
        service = AuthService(settings, accounts, sessions, mailer)
        account, profile = service.sign_up("a@x.com", "pw1", "Ann")
        service.verify_email(token_from_mail)
        pair = service.login("a@x.com", "pw1")
        claims = service.authenticate(pair.access_token)
    """

    def __init__(
        self,
        settings: Settings,
        accounts: AccountStore,
        sessions: SessionStore,
        mailer: Mailer,
        codec: TokenCodec | None = None,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.settings = settings
        self.accounts = accounts
        self.sessions = sessions
        self.mailer = mailer
        self.codec = codec or TokenCodec(settings.secret_key)
        self.hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)

    # ------------------------------------------------------------------
    # Signup and verification
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str, full_name: str) -> tuple[Account, Profile]:
        """Create an unverified account + profile and mail the verification link.

        The account and profile rows are committed before the mail is sent. If
        sending fails the error propagates and the rows stay committed: the
        account exists, unverified, with no link delivered. Nothing retries
        or cleans up; the failure is logged with the account id.
        """
        salt = self.hasher.generate_salt()
        password_hash = self.hasher.derive(password, salt)
        email_token = self.codec.mint(
            EmailClaims(email=email, exp=expiry_after(self.settings.email_token_expire_seconds))
        )

        account = self.accounts.insert_account(
            Account(email=email, password_hash=password_hash, salt=salt, email_token=email_token)
        )
        profile = self.accounts.insert_profile(Profile(full_name=full_name, account_id=account.id))
        logger.info("Account %s created", account.id)

        url = self._link("/api/v1/auth/verify_email", email_token)
        body = VERIFY_EMAIL_TEMPLATE.format(url=url)
        try:
            self.mailer.send([account.email], self.settings.email_verification_subject, body)
        except AuthError:
            logger.error("Verification mail for account %s failed after commit", account.id)
            raise
        return account, profile

    def verify_email(self, token: str) -> Account:
        """Mark the account named by an email-verification token as verified.

        Idempotent: verifying an already-verified account succeeds silently.
        """
        claims = self._parse_unexpired(token, EmailClaims)
        account = self.accounts.get_by_email(claims.email)
        if account is None:
            raise NotFoundError(detail=f"verification token for unknown email {claims.email!r}")

        if not account.is_verified:
            self.accounts.update_verified(account.id, True)
            account.is_verified = True
            logger.info("Account %s verified", account.id)
        if account.email_token:
            self.accounts.clear_email_token(account.id)
            account.email_token = ""
        return account

    # ------------------------------------------------------------------
    # Login, refresh, sign-out
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> TokenPair:
        """Check credentials and open a new access + refresh session pair."""
        account = self.accounts.get_by_email(email)
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt
            self.hasher.dummy_verify(password)
            logger.warning("Login rejected: unknown email")
            raise NotFoundError(message=UnauthorizedError.default_message, detail="login for unknown email")

        if not self.hasher.verify(password, account.salt, account.password_hash):
            logger.warning("Login rejected: bad password for account %s", account.id)
            raise UnauthorizedError(detail=f"password mismatch for account {account.id}")

        if not account.is_verified:
            logger.warning("Login rejected: account %s not verified", account.id)
            raise EmailNotVerifiedError(detail=f"account {account.id} has not verified its email")

        profile = self._profile_for(account.id)
        pair = self._issue_pair(account, profile)
        logger.info("Account %s logged in", account.id)
        return pair

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new access + refresh pair.

        The presented refresh session is not revoked; it lapses at its own
        expiry. The new pair gets brand-new session ids.
        """
        claims = self._parse_unexpired(refresh_token, RefreshClaims)
        if self.sessions.get(claims.session_id) is None:
            logger.warning("Refresh rejected: session for account %s not live", claims.account_id)
            raise TokenExpiredError(detail=f"refresh session {claims.session_id} expired or revoked")

        account = self.accounts.get_by_id(claims.account_id)
        if account is None:
            raise NotFoundError(detail=f"refresh token for unknown account {claims.account_id}")
        profile = self._profile_for(account.id)

        pair = self._issue_pair(account, profile)
        logger.info("Account %s refreshed its tokens", account.id)
        return pair

    def sign_out(self, access_token: str, refresh_token: str) -> None:
        """Revoke both sessions named by the presented token pair.

        Expired tokens are still accepted here: their sessions may have lapsed
        already, but a genuine token is enough to revoke. If one deletion
        fails the other is still attempted; the first failure is re-raised
        afterwards and nothing is rolled back.
        """
        access = self.codec.parse(access_token, AccessClaims)
        refresh = self.codec.parse(refresh_token, RefreshClaims)

        failure: AuthError | None = None
        for session_id in (access.session_id, refresh.session_id):
            try:
                self.sessions.delete(session_id)
            except AuthError as exc:
                failure = failure or exc
        if failure is not None:
            raise failure
        logger.info("Account %s signed out", access.account_id)

    def authenticate(self, access_token: str) -> AccessClaims:
        """Validate an access token for an incoming request.

        The token must be genuine, unexpired, and its session still live in
        the SessionStore (absent means signed out or lapsed).
        """
        claims = self._parse_unexpired(access_token, AccessClaims)
        if self.sessions.get(claims.session_id) is None:
            raise TokenExpiredError(detail=f"access session {claims.session_id} expired or revoked")
        return claims

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def reset_password(self, email: str) -> None:
        """Mint a reset token, store it on the account, and mail the link.

        Storing the token is what makes older reset links stale: change_password
        only accepts the token currently on file.
        """
        token = self.codec.mint(ResetClaims(email=email, exp=expiry_after(self.settings.reset_token_expire_seconds)))

        account = self.accounts.get_by_email(email)
        if account is None:
            raise NotFoundError(detail=f"reset requested for unknown email {email!r}")
        if not account.is_verified:
            raise EmailNotVerifiedError(detail=f"reset requested for unverified account {account.id}")

        account.password_token = token
        self.accounts.update_password_token(account)
        logger.info("Password reset issued for account %s", account.id)

        url = self._link("/api/v1/auth/change_password", token)
        self.mailer.send([email], self.settings.reset_password_subject, RESET_PASSWORD_TEMPLATE.format(url=url))

    def change_password(self, token: str, new_password: str) -> None:
        """Set a new password using the reset token currently on file. Single use."""
        claims = self._parse_unexpired(token, ResetClaims)
        account = self.accounts.get_by_email(claims.email)
        if account is None:
            raise NotFoundError(detail=f"reset token for unknown email {claims.email!r}")
        if not account.password_token or token != account.password_token:
            logger.warning("Password change rejected: stale reset token for account %s", account.id)
            raise InvalidTokenError(detail=f"reset token does not match the one on file for account {account.id}")

        account.salt = self.hasher.generate_salt()
        account.password_hash = self.hasher.derive(new_password, account.salt)
        self.accounts.update_salt_and_hash(account)

        account.password_token = ""
        self.accounts.update_password_token(account)
        logger.info("Password changed for account %s", account.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_unexpired(self, token: str, claims_type):
        claims = self.codec.parse(token, claims_type)
        if claims.is_expired():
            raise TokenExpiredError(detail=f"{claims_type.purpose} token expired at {claims.exp}")
        return claims

    def _profile_for(self, account_id: str) -> Profile:
        profile = self.accounts.get_profile(account_id)
        if profile is None:
            raise NotFoundError(message="Profile not found.", detail=f"account {account_id} has no profile")
        return profile

    def _issue_pair(self, account: Account, profile: Profile) -> TokenPair:
        access_ttl = self.settings.access_token_expire_seconds
        refresh_ttl = self.settings.refresh_token_expire_seconds
        access = AccessClaims(
            account_id=account.id,
            email=account.email,
            full_name=profile.full_name,
            session_id=new_session_id(),
            exp=expiry_after(access_ttl),
        )
        refresh = RefreshClaims(
            account_id=account.id,
            session_id=new_session_id(),
            exp=expiry_after(refresh_ttl),
        )
        access_token = self.codec.mint(access)
        refresh_token = self.codec.mint(refresh)

        self.sessions.put(access.session_id, access_token, access_ttl)
        self.sessions.put(refresh.session_id, refresh_token, refresh_ttl)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=_as_datetime(access.exp),
            refresh_expires_at=_as_datetime(refresh.exp),
        )

    def _link(self, path: str, token: str) -> str:
        return f"{self.settings.host.rstrip('/')}{path}?{urlencode({'token': token})}"
