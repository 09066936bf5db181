"""
tests/conftest.py -- Shared test fixtures for the Natours auth tests.

This module provides:
  - store / mailer / service: isolated AccountStore + OutboxMailer + AuthService
  - request_for: builds bare Starlette Requests for exercising the guard directly
  - api_client: TestClient over the real app with a patched lifespan

Design: Each store is a throwaway SQLite file under pytest's tmp_path (not
plain :memory:). AuthService dispatches store writes to the hashing thread
pool and TestClient runs sync dependencies in a thread pool too. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread; a file DB also gives concurrent writers the busy timeout
instead of shared-cache "table is locked" errors.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import: DEBUG lets
get_settings() auto-generate SECRET_KEY, and cost factor 4 keeps bcrypt fast.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from api.limiter import limiter
from api.main import app
from auth.mailer import OutboxMailer
from auth.service import AuthService
from auth.store import AccountStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(directory: Path) -> AccountStore:
    """Create an isolated file-backed SQLite store inside directory."""
    return AccountStore(db_url=f"sqlite:///{directory / 'auth.db'}")


def _make_request(store: AccountStore, headers: dict[str, str] | None = None) -> Request:
    """Build a minimal HTTP Request whose app.state carries the given store."""
    fake_app = SimpleNamespace(state=SimpleNamespace(account_store=store))
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": raw_headers,
        "app": fake_app,
    }
    return Request(scope)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> Generator[AccountStore, None, None]:
    s = _make_test_store(tmp_path)
    yield s
    s.close()


@pytest.fixture
def mailer() -> OutboxMailer:
    return OutboxMailer()


@pytest.fixture
def service(store: AccountStore, mailer: OutboxMailer) -> AuthService:
    return AuthService(store, mailer)


@pytest.fixture
def request_for(store: AccountStore) -> Callable[..., Request]:
    """Return a builder of Requests bound to the store fixture."""

    def _build(headers: dict[str, str] | None = None) -> Request:
        return _make_request(store, headers)

    return _build


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, mailer: OutboxMailer):
    """Return a lifespan that wires test doubles into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        app.state.mailer = mailer
        app.state.auth_service = AuthService(store, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[tuple[TestClient, AccountStore, OutboxMailer], None, None]:
    """Yield (client, store, mailer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers against an
    isolated throwaway store.
    """
    store = _make_test_store(tmp_path_factory.mktemp("api"))
    mailer = OutboxMailer()
    app.router.lifespan_context = _patch_lifespan(store, mailer)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, mailer

    store.close()
