"""
tests/conftest.py -- Shared test fixtures for Keyward unit and integration tests.

This module provides:
  - settings: a throwaway Settings with a fixed secret and bcrypt cost 4
  - account_store / session_store: isolated in-memory stores per test
  - mailer: RecordingMailer that captures outbound mail instead of sending it
  - service: AuthService wired to all of the above
  - signed_up / verified_account: pre-registered accounts for lifecycle tests
  - api_client: TestClient with a patched lifespan using the same test objects

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the account store because TestClient runs route handlers in a thread pool and
SQLAlchemy's pool may hand each thread a new connection. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The session store keeps one sqlite3 connection, so ':memory:' is enough.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from auth.models import Account, Profile
from auth.service import AuthService
from auth.store import AccountStore
from core.config import Settings
from core.errors import InternalError
from sessions.store import SessionStore

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
TEST_HOST = "http://auth.test"

_LINK_RE = re.compile(r"https?://\S+")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    recipients: list[str]
    subject: str
    body: str

    @property
    def link(self) -> str:
        match = _LINK_RE.search(self.body)
        assert match is not None, f"no link in mail body: {self.body!r}"
        return match.group(0)

    @property
    def token(self) -> str:
        return parse_qs(urlparse(self.link).query)["token"][0]


@dataclass
class RecordingMailer:
    """Mailer double. Set `fail = True` to simulate a broken SMTP relay."""

    sent: list[SentMail] = field(default_factory=list)
    fail: bool = False

    def send(self, recipients: list[str], subject: str, body: str) -> None:
        if self.fail:
            raise InternalError(detail="simulated SMTP outage")
        self.sent.append(SentMail(list(recipients), subject, body))

    @property
    def last(self) -> SentMail:
        assert self.sent, "no mail was sent"
        return self.sent[-1]


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _make_settings(**overrides) -> Settings:
    values = {
        "secret_key": TEST_SECRET,
        "host": TEST_HOST,
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- fresh state for every unit test
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return _make_settings()


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(db_url=_shared_memory_url("test_accounts"))
    yield store
    store.close()


@pytest.fixture
def session_store() -> Generator[SessionStore, None, None]:
    store = SessionStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def service(
    settings: Settings,
    account_store: AccountStore,
    session_store: SessionStore,
    mailer: RecordingMailer,
) -> AuthService:
    return AuthService(settings, account_store, session_store, mailer)


@pytest.fixture
def signed_up(service: AuthService, mailer: RecordingMailer) -> tuple[Account, Profile]:
    """An unverified account: a@x.com / pw1-secret, full name Ann."""
    return service.sign_up("a@x.com", "pw1-secret", "Ann")


@pytest.fixture
def verified_account(service: AuthService, mailer: RecordingMailer, signed_up) -> Account:
    """The signed_up account after its verification link was opened."""
    return service.verify_email(mailer.last.token)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test AuthService and its stores into app.state so TestClient
    routes see isolated in-memory state and the recording mailer rather than
    real files and a real SMTP relay.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = service.accounts
        app.state.session_store = service.sessions
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(
    service: AuthService, mailer: RecordingMailer
) -> Generator[tuple[TestClient, RecordingMailer], None, None]:
    """Yield (client, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers.
    """
    from api.main import app

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer
