"""
tests/conftest.py -- Shared test fixtures for the account service tests.

This module provides:
  - make_store(): an isolated in-memory UserStore per test
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - client: TestClient against the real app, one fresh database per test
  - accounts / admin: the wired AccountService and a ready-made ADMIN session
  - register(): helper that registers through the API and returns the session

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG=true               -- get_settings() generates the signing secrets
  RATE_LIMIT_ENABLED=false -- limits are switched on only in test_rate_limit.py
  BCRYPT_ROUNDS=4          -- the lowest cost bcrypt accepts, keeps tests fast
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, init_state
from auth.passwords import PasswordHasher
from auth.service import AccountService
from auth.store import UserStore
from auth.tokens import TokenService

API = "/api/v1"

PASSWORD = "Secret1!"
ADMIN_PASSWORD = "Admin#2024"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_store() -> UserStore:
    """Return a UserStore on a uniquely named shared-memory database."""
    return UserStore(f"sqlite:///file:test_accounts_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def make_service(store: UserStore, tokens: TokenService | None = None) -> AccountService:
    """AccountService with throwaway secrets and the cheapest bcrypt cost."""
    if tokens is None:
        tokens = TokenService("a" * 32, "b" * 32)
    return AccountService(store, tokens, PasswordHasher(rounds=4))


def _patch_lifespan(store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so TestClient routes see an isolated
    database rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class Session:
    id: int
    name: str
    access_token: str
    refresh_token: str | None

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


def register(client: TestClient, name: str, email: str, password: str = PASSWORD) -> Session:
    """Register through the API and return the issued session."""
    resp = client.post(f"{API}/users/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return Session(
        id=data["user"]["id"],
        name=data["user"]["name"],
        access_token=data["accessToken"],
        refresh_token=resp.cookies.get("refreshToken"),
    )


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def client(store: UserStore) -> Generator[TestClient, None, None]:
    """TestClient on the real app, backed by a fresh in-memory database."""
    app.router.lifespan_context = _patch_lifespan(store)
    limiter.reset()
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def accounts(client: TestClient) -> AccountService:
    return app.state.accounts


@pytest.fixture
def admin(client: TestClient, accounts: AccountService) -> Session:
    """An ADMIN account created out of band (as manage.py would) and logged in."""
    user = accounts.create_account("root-admin", "root@acme.io", ADMIN_PASSWORD, "ADMIN")
    resp = client.post(f"{API}/users/login", json={"name": "root-admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return Session(
        id=user.id,
        name=user.name,
        access_token=resp.json()["data"]["accessToken"],
        refresh_token=resp.cookies.get("refreshToken"),
    )


# ---------------------------------------------------------------------------
# Service fixtures (no HTTP)
# ---------------------------------------------------------------------------


@pytest.fixture
def service(store: UserStore) -> AccountService:
    return make_service(store)
