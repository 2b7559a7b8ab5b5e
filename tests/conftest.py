"""
tests/conftest.py -- Shared test fixtures for SessionGuard.

This module provides:
  - ManualClock / clock: a settable "now" injected into every service
  - settings: explicit Settings with cheap bcrypt and fixed keys
  - store / authenticator: in-memory UserStore and the Authenticator over it
  - alice: a ready-made user with a policy-compliant password
  - api_client: TestClient with an admin Bearer token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests stay on one thread and use plain :memory:.

DEBUG and LOGIN_RATE_LIMIT must be set before any api/ import: the limiter
reads get_settings() when a limited route is hit.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any core/api import so get_settings() can auto-generate
# keys in dev mode and the login limiter does not trip during the suite.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authenticator import Authenticator
from auth.results import LoginSuccess
from auth.store import UserStore
from core.config import Settings

ALICE_PASSWORD = "Tr0ub4dor&3xyz"
ADMIN_PASSWORD = "Adm1n!Passw0rd#"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ---------------------------------------------------------------------------
# Settings / store / authenticator
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    """Settings with the minimum bcrypt cost and fixed 32+ char keys."""
    values = dict(
        debug=False,
        secret_key="test-signing-key-0123456789abcdef0123456789",
        encryption_key="test-encryption-key-0123456789abcdef012345",
        database_url="sqlite:///:memory:",
        bcrypt_rounds=4,
        backup_code_rounds=4,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def authenticator(store: UserStore, settings: Settings, clock: ManualClock) -> Authenticator:
    return Authenticator(store, settings, clock=clock)


@pytest.fixture
def alice(authenticator: Authenticator):
    user = authenticator.create_user("alice", "Alice@Example.com", ALICE_PASSWORD, display_name="Alice")
    assert not hasattr(user, "errors"), user
    return user


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, authenticator: Authenticator):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so TestClient routes see an
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.authenticator = authenticator
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers. The admin user is created and logged in before
    the client starts; token goes in Authorization headers.
    """
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    authenticator = Authenticator(user_store, make_settings())

    admin = authenticator.create_user("testadmin", "admin@example.com", ADMIN_PASSWORD, role="admin")
    result = authenticator.login("testadmin", ADMIN_PASSWORD)
    assert isinstance(result, LoginSuccess)

    app.router.lifespan_context = _patch_lifespan(user_store, authenticator)

    # TrustedHostMiddleware only admits localhost names.
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, result.access_token, admin.id

    user_store.close()
