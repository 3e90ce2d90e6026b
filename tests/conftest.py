"""
tests/conftest.py -- Shared test fixtures for Tokengate tests.

This module provides:
  - make_settings: factory for immutable Settings with test-friendly defaults
  - store / issuer / policy: isolated auth components for unit tests
  - api: Harness(client, settings, store, issuer) over the real FastAPI app
    with a patched lifespan wiring isolated in-memory stores
  - make_signup: factory for valid signup bodies with unique emails

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API harness because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The client talks to https://testserver so Secure cookies are stored and sent
back the way a browser on HTTPS would.

Environment variables must be set before any api/ import: api/main.py reads
get_settings() at import time for middleware configuration.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set before any api/core import so get_settings() can
# auto-generate JWT_SECRET in dev mode and TrustedHost accepts the test host.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient

from api.limiter import configure as configure_rate_limits
from api.limiter import limiter
from api.main import app
from auth.policy import RolePolicy
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import Settings

TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef-0123456789"
TEST_ADMIN_SECRET = "correct-horse-battery-staple"

# Counters persist across tests otherwise; rate limiting has its own test.
limiter.enabled = False


class Harness(NamedTuple):
    client: TestClient
    settings: Settings
    store: AccountStore
    issuer: TokenIssuer


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Return a factory for Settings; keyword overrides win over test defaults.

    _env_file=None keeps a developer's local .env out of the tests.
    """

    def _make(**overrides) -> Settings:
        values = {
            "jwt_secret": TEST_JWT_SECRET,
            "admin_secret": TEST_ADMIN_SECRET,
            "bcrypt_rounds": 4,
            "secure_cookies": True,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    """In-memory AccountStore with fast bcrypt rounds."""
    s = AccountStore("sqlite:///:memory:", bcrypt_rounds=4)
    yield s
    s.close()


@pytest.fixture
def issuer(settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def admin_secret() -> str:
    return TEST_ADMIN_SECRET


@pytest.fixture
def policy(admin_secret) -> RolePolicy:
    return RolePolicy(admin_secret)


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: AccountStore, issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    isolated test DBs and test Settings rather than the process configuration.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.account_store = store
        app.state.token_issuer = issuer
        app.state.role_policy = RolePolicy.from_settings(settings)
        configure_rate_limits(settings)
        yield

    return test_lifespan


@pytest.fixture
def api(settings) -> Generator[Harness, None, None]:
    """Yield a Harness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, dependencies and exception handlers but use an
    isolated in-memory store. Each test gets a fresh database.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = AccountStore(db_url, bcrypt_rounds=settings.bcrypt_rounds)
    issuer = TokenIssuer(settings)

    app.router.lifespan_context = _patch_lifespan(settings, store, issuer)

    with TestClient(app, base_url="https://testserver") as client:
        yield Harness(client, settings, store, issuer)

    store.close()


@pytest.fixture
def make_signup() -> Callable[..., dict]:
    """Return a factory for valid signup bodies with a unique email each call."""

    def _make(**overrides) -> dict:
        body = {
            "email": f"user-{uuid.uuid4().hex[:12]}@example.com",
            "password": "p",
            "firstName": "A",
            "lastName": "B",
            "role": "user",
        }
        body.update(overrides)
        return body

    return _make
