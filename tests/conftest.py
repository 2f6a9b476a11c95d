"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - FakeClock: a hand-advanced clock for MemoryCodeStore TTL tests
  - ctx: an unbounded CallContext for direct service/store calls
  - store / codes / service: unit-test wiring on sqlite:///:memory:
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - api_client: TestClient against the real app with isolated stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
Both in-memory stores use StaticPool so SQLAlchemy keeps one connection open
for the life of the fixture.

bcrypt runs at cost 4 everywhere here; at the default of 12 the suite would
spend most of its time hashing.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from api.main import app
from auth.service import CredentialService, close_service
from auth.store import SQLAccountStore
from auth.tokens import BcryptHasher
from cache.store import MemoryCodeStore
from core.context import CallContext

TEST_BCRYPT_ROUNDS = 4


class FakeClock:
    """Monotonic clock stand-in. Time only moves when advance() is called."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ctx() -> CallContext:
    return CallContext("test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[SQLAccountStore, None, None]:
    account_store = SQLAccountStore("sqlite:///:memory:", poolclass=StaticPool)
    yield account_store
    account_store.close()


@pytest.fixture
def codes(clock: FakeClock) -> MemoryCodeStore:
    return MemoryCodeStore(clock=clock)


@pytest.fixture
def service(store: SQLAccountStore, codes: MemoryCodeStore) -> Generator[CredentialService, None, None]:
    svc = CredentialService(store, codes, BcryptHasher(TEST_BCRYPT_ROUNDS))
    yield svc
    svc.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: CredentialService):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built test service into app.state so TestClient routes see
    isolated stores rather than the configured database and Redis.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, CredentialService], None, None]:
    """Yield (client, service) for API integration tests.

    One database per test module: the module name is part of the shared-memory
    URI so state never leaks between modules.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    accounts = SQLAccountStore(
        f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true", poolclass=StaticPool
    )
    service = CredentialService(accounts, MemoryCodeStore(), BcryptHasher(TEST_BCRYPT_ROUNDS))

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service

    close_service(service)
