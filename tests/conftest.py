"""
tests/conftest.py -- Shared test fixtures for TaskBoard tests.

This module provides:
  - RecordingMailer: EmailSender stand-in that records every message
  - account_store / lifecycle: single-threaded unit fixtures on :memory:
  - _make_test_stores(): isolated named in-memory DBs for API tests
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: (TestClient, RecordingMailer) for API integration tests
  - signup: registers, confirms and logs in a fresh account through the API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API fixtures because TestClient runs route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.lifecycle import AccountLifecycle
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from projects.store import ProjectStore

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
TEST_PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------------------------
# Mailer double
# ---------------------------------------------------------------------------


@dataclass
class SentEmail:
    kind: str  # "confirmation" | "reset"
    email: str
    name: str
    token: str


@dataclass
class RecordingMailer:
    """Records every send. Set fail=True to make sends raise."""

    sent: list[SentEmail] = field(default_factory=list)
    fail: bool = False

    def send_confirmation(self, email: str, name: str, token: str) -> bool:
        return self._record("confirmation", email, name, token)

    def send_password_reset(self, email: str, name: str, token: str) -> bool:
        return self._record("reset", email, name, token)

    def last_token(self, email: str, kind: str | None = None) -> str:
        for msg in reversed(self.sent):
            if msg.email == email.lower() and (kind is None or msg.kind == kind):
                return msg.token
        raise AssertionError(f"no email sent to {email}")

    def _record(self, kind: str, email: str, name: str, token: str) -> bool:
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.sent.append(SentEmail(kind=kind, email=email, name=name, token=token))
        return True


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def project_store() -> Generator[ProjectStore, None, None]:
    store = ProjectStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(secret_key=TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def lifecycle(account_store, issuer, mailer) -> AccountLifecycle:
    return AccountLifecycle(account_store, issuer, mailer, token_ttl_seconds=600)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, ProjectStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth', 'projects').
    """
    accounts_url = f"sqlite:///file:test_accounts_{db_suffix}?mode=memory&cache=shared&uri=true"
    projects_url = f"sqlite:///file:test_projects_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(db_url=accounts_url), ProjectStore(db_url=projects_url)


def _patch_lifespan(account_store: AccountStore, project_store: ProjectStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and the recording mailer into app.state so
    TestClient routes see isolated test DBs and no SMTP connection is made.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        issuer = TokenIssuer(secret_key=TEST_SECRET, expire_seconds=3600)
        app.state.account_store = account_store
        app.state.project_store = project_store
        app.state.token_issuer = issuer
        app.state.mailer = mailer
        app.state.lifecycle = AccountLifecycle(account_store, issuer, mailer, token_ttl_seconds=600)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, RecordingMailer], None, None]:
    """Yield (client, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. Each
    test module gets its own databases.
    """
    account_store, project_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(account_store, project_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer

    project_store.close()
    account_store.close()


def _unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def signup(api_client) -> Callable[..., tuple[int, str, str]]:
    """Return a helper that creates a confirmed account and logs it in.

    signup("ann") -> (account_id, email, bearer_token)
    """
    client, mailer = api_client

    def _signup(name: str = "user", password: str = TEST_PASSWORD) -> tuple[int, str, str]:
        email = _unique_email(name)
        resp = client.post(
            "/api/v1/auth/create-account",
            json={"name": name, "email": email, "password": password, "password_confirmation": password},
        )
        assert resp.status_code == 201, resp.text
        code = mailer.last_token(email, "confirmation")
        assert client.post("/api/v1/auth/confirm-account", json={"token": code}).status_code == 200
        resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        token = resp.json()["access_token"]
        account_id = client.get("/api/v1/auth/user", headers=_auth_headers(token)).json()["id"]
        return account_id, email, token

    return _signup
