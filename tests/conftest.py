"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - make_engine(): isolated named in-memory SQLite engine per test
  - FakeClock / RecordingEmailSender: deterministic time and captured mail
  - account_store / session_store / auth_service: unit-level fixtures
  - api_client / limited_client: TestClient over the real app with a patched lifespan
  - register: signup + verification through the API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() is cached on first call, DEBUG lets it auto-generate
SECRET_KEY, and 4 bcrypt rounds keeps the suite fast.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.mailer import EmailSender
from auth.ratelimit import RateLimiter, WindowPolicy, policies_from_settings
from auth.schema import create_auth_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import AccountStore
from core.config import get_settings

STRONG_PASSWORD = "Str0ng!Pass"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_engine(prefix: str = "auth") -> Engine:
    """Create an isolated named shared-memory SQLite engine with all tables."""
    return create_auth_engine(f"sqlite:///file:test_{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


class FakeClock:
    """Callable clock for AuthService(clock=...). Starts at a fixed UTC instant."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingEmailSender(EmailSender):
    """Captures verification mail instead of sending it."""

    def __init__(self) -> None:
        super().__init__("http://testserver")
        self.sent: list[tuple[str, str, str]] = []

    def send_verification(self, email: str, token: str, role: str) -> None:
        self.sent.append((email, token, role))

    def token_for(self, email: str) -> str:
        """Return the most recent token mailed to `email` (normalized)."""
        for recipient, token, _ in reversed(self.sent):
            if recipient == email.strip().lower():
                return token
        raise AssertionError(f"no verification mail sent to {email}")


def generous_limiter() -> RateLimiter:
    """Limiter that no functional test will exhaust."""
    policy = WindowPolicy(10_000, timedelta(minutes=15))
    return RateLimiter({"general": policy, "auth": policy, "review": policy, "upload": policy})


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def account_store(engine: Engine) -> AccountStore:
    return AccountStore(engine, lockout_tiers=((5, 30), (3, 15)), verification_ttl_hours=24)


@pytest.fixture
def session_store(engine: Engine) -> SessionStore:
    return SessionStore(engine, max_sessions_per_user=5)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def auth_service(
    account_store: AccountStore,
    session_store: SessionStore,
    mailer: RecordingEmailSender,
    clock: FakeClock,
) -> AuthService:
    return AuthService(account_store, session_store, mailer, get_settings(), clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService, limiter: RateLimiter, engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test components into app.state so TestClient routes see
    an isolated in-memory DB and a recording mailer.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.rate_limiter = limiter
        app.state.mailer = service.mailer
        app.state.auth_service = service
        app.state.account_store = service.accounts
        app.state.session_store = service.sessions
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def _start_client(limiter: RateLimiter) -> tuple[TestClient, RecordingEmailSender, Engine]:
    """Build the components and patch the app. Caller enters the TestClient."""
    engine = make_engine("api")
    mailer = RecordingEmailSender()
    settings = get_settings()
    service = AuthService(
        AccountStore(engine, lockout_tiers=settings.lockout_tiers),
        SessionStore(engine, max_sessions_per_user=settings.max_sessions_per_user),
        mailer,
        settings,
    )
    app.router.lifespan_context = _patch_lifespan(service, limiter, engine)
    return TestClient(app, raise_server_exceptions=True), mailer, engine


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, RecordingEmailSender], None, None]:
    """Yield (client, mailer) over a fresh database for each test."""
    client, mailer, engine = _start_client(generous_limiter())
    with client:
        yield client, mailer
    engine.dispose()


@pytest.fixture
def limited_client() -> Generator[tuple[TestClient, RecordingEmailSender], None, None]:
    """Like api_client, but with the production thresholds (auth: 5 per 15 minutes)."""
    client, mailer, engine = _start_client(RateLimiter(policies_from_settings(get_settings())))
    with client:
        yield client, mailer
    engine.dispose()


@pytest.fixture
def register(api_client):
    """Return register(email, password=STRONG_PASSWORD, path=...) -> account id.

    Signs up through the API and redeems the mailed verification token.
    """
    client, mailer = api_client

    def _register(email: str, password: str = STRONG_PASSWORD, path: str = "/api/v1/auth/signup") -> int:
        resp = client.post(path, json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        token = mailer.token_for(email)
        assert client.get("/api/v1/auth/verify-email", params={"token": token}).status_code == 200
        return resp.json()["id"]

    return _register
