"""
tests/conftest.py -- Shared test fixtures for bridge-auth.

This module provides:
  - RecordingMailer: Mailer double that records every message it is asked to send
  - store / mailer / token_config / service: unit-level fixtures around an
    in-memory UserStore
  - make_user(): create a user straight through the store with a given state
  - api_client: TestClient wired to isolated stores via a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment must be set before any api/ import: get_settings() is cached on
first call, and api/main.py reads it at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

# CRITICAL: set before importing api/ so get_settings() auto-generates
# SECRET_KEY in dev mode, does not throttle test logins, and accepts the
# TestClient host.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from auth.models import Registration, User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenConfig

TEST_SECRET = "test-secret-key-that-is-definitely-long-enough-for-hs512"


@dataclass
class SentMail:
    to: str
    subject: str
    html_body: str


@dataclass
class RecordingMailer:
    """Mailer double. Set ok=False to simulate a failed dispatch."""

    ok: bool = True
    sent: list[SentMail] = field(default_factory=list)

    def send(self, to: str, subject: str, html_body: str) -> bool:
        self.sent.append(SentMail(to, subject, html_body))
        return self.ok


def make_user(
    store: UserStore,
    username: str,
    email: str,
    password: str = "Passw0rd!",
    confirmed: bool = True,
    roles: tuple[str, ...] = ("Customer",),
    lockout_end: datetime | None = None,
    **fields,
) -> User:
    """Create a user in a given state, bypassing the workflow."""
    user = store.create(Registration(username=username, email=email, password=password, **fields))
    for role in roles:
        store.assign_role(user.id, role)
    if confirmed:
        store.confirm_email(user.id)
    if lockout_end is not None:
        store.set_lockout(user.id, lockout_end)
    return store.find_by_id(user.id)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:", max_failed_attempts=3, lockout_minutes=5)
    yield s
    s.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret_key=TEST_SECRET, issuer="test-issuer", audience="test-audience")


@pytest.fixture
def service(store: UserStore, mailer: RecordingMailer, token_config: TokenConfig) -> AuthService:
    return AuthService(store, mailer, token_config, app_name="Warehouse Bridge")


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    mailer: RecordingMailer
    admin_password: str = "Adm1n!pass"
    customer_password: str = "Cust0mer!pass"


def _patch_lifespan(user_store: UserStore, mailer: RecordingMailer, token_config: TokenConfig):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.token_config = token_config
        app.state.auth_service = AuthService(user_store, mailer, token_config, app_name="Warehouse Bridge")
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with a running TestClient.

    Seeds two confirmed users: "testadmin" (Admin) and "alice" (Customer).
    """
    from api.main import app

    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    mailer = RecordingMailer()
    ctx_config = TokenConfig(secret_key=TEST_SECRET, issuer="test-issuer", audience="test-audience")

    ctx = ApiContext(client=None, store=user_store, mailer=mailer)  # type: ignore[arg-type]
    make_user(user_store, "testadmin", "admin@example.com", ctx.admin_password, roles=("Admin",))
    make_user(user_store, "alice", "a@x.com", ctx.customer_password, full_name="Alice", avatar="alice.png")

    app.router.lifespan_context = _patch_lifespan(user_store, mailer, ctx_config)

    with TestClient(app, raise_server_exceptions=True) as client:
        ctx.client = client
        yield ctx

    user_store.close()
