"""
tests/conftest.py -- Shared test fixtures for the SSO service.

This module provides:
  - storage:    file-backed SQLite Storage in tmp_path, with one application
  - hasher:     CredentialHasher at the minimum bcrypt cost (fast tests)
  - service:    AuthService wired to the two above
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: file-backed SQLite under tmp_path rather than shared-cache
":memory:". The concurrency tests insert from several threads at once, and
shared-cache in-memory databases fail immediately with "database table is
locked" instead of waiting on SQLite's busy timeout like a file database does.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hasher import CredentialHasher
from auth.service import AuthService
from auth.store import Storage
from auth.tokens import TokenIssuer

APP_ID = 1
APP_NAME = "test-app"
APP_SECRET = "test-secret"
TOKEN_TTL = timedelta(hours=1)

# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage(tmp_path) -> Generator[Storage, None, None]:
    """Fresh Storage with APP_ID provisioned."""
    s = Storage(f"sqlite:///{tmp_path / 'sso.db'}")
    s.create_app(APP_ID, APP_NAME, APP_SECRET)
    yield s
    s.close()


@pytest.fixture
def hasher() -> CredentialHasher:
    return CredentialHasher(rounds=4)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer()


@pytest.fixture
def service(storage: Storage, hasher: CredentialHasher, issuer: TokenIssuer) -> AuthService:
    return AuthService(
        log=logging.getLogger("sso.test.auth"),
        user_saver=storage,
        user_provider=storage,
        app_provider=storage,
        hasher=hasher,
        issuer=issuer,
        token_ttl=TOKEN_TTL,
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService, storage: Storage):
    """Return a lifespan that wires the test service into app.state.

    Replaces the real lifespan so TestClient routes use the isolated test
    database instead of reading Settings and opening the production one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.storage = storage
        yield

    return test_lifespan


@pytest.fixture
def api_client(service: AuthService, storage: Storage) -> Generator[TestClient, None, None]:
    """TestClient over the real app, backed by the per-test storage."""
    original = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(service, storage)
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client
    finally:
        app.router.lifespan_context = original
