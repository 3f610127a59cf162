"""
tests/conftest.py -- Shared test fixtures for StoreRater unit and integration tests.

This module provides:
  - _make_test_services(): isolated in-memory DB plus the services built on it
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - engine / user_store / rating_store: fresh per-test stores for unit tests
  - api_client: TestClient plus tokens for every role, one per test module

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any core/api import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.models import ROLE_ADMIN, ROLE_NORMAL_USER, ROLE_STORE_OWNER, User
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from core.config import Settings
from db.schema import create_db_engine, init_schema
from ratings.models import Store
from ratings.store import RatingStore

TEST_SECRET_KEY = "test-secret-key-for-storerater-0123456789abcdef"
TEST_ADMIN_EMAIL = "admin@abc.com"
TEST_ADMIN_PASSWORD = "Admin@Pass1"
TEST_PASSWORD = "Passw0rd!"

# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


def _memory_db_url(db_suffix: str) -> str:
    return f"sqlite:///file:test_storerater_{db_suffix}?mode=memory&cache=shared&uri=true"


def _make_test_settings(db_url: str) -> Settings:
    return Settings(
        debug=True,
        secret_key=TEST_SECRET_KEY,
        database_url=db_url,
        admin_email=TEST_ADMIN_EMAIL,
        admin_password=TEST_ADMIN_PASSWORD,
    )


def _make_test_services(db_suffix: str) -> tuple[Settings, Engine, TokenService, UserStore, RatingStore]:
    """Create an isolated named shared-memory database and the services on top of it.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    settings = _make_test_settings(_memory_db_url(db_suffix))
    engine = create_db_engine(settings.database_url)
    init_schema(engine)
    token_service = TokenService(settings.secret_key, expire_seconds=3600)
    return settings, engine, token_service, UserStore(engine), RatingStore(engine)


def _patch_lifespan(
    settings: Settings,
    engine: Engine,
    token_service: TokenService,
    user_store: UserStore,
    rating_store: RatingStore,
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test services into app.state so TestClient routes see
    the isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.engine = engine
        app.state.token_service = token_service
        app.state.user_store = user_store
        app.state.rating_store = rating_store
        yield

    return test_lifespan


def _make_user(
    user_store: UserStore,
    email: str,
    role: str = ROLE_NORMAL_USER,
    name: str = "Regular Test User Account",
    password: str = TEST_PASSWORD,
) -> int:
    """Insert a user with a real bcrypt hash and return its id."""
    return user_store.create_user(
        User(name=name, email=email, role=role, hashed_password=hash_password(password), address="1 Test Street")
    )


def _make_store(rating_store: RatingStore, name: str, owner_email: str) -> tuple[int, int]:
    """Create a store with a fresh owner account. Returns (store_id, owner_id)."""
    owner = User(
        name="Store Owner Test Account",
        email=owner_email,
        role=ROLE_STORE_OWNER,
        hashed_password=hash_password(TEST_PASSWORD),
    )
    store = Store(name=name, email=f"{name.lower().replace(' ', '')}@example.com", address=f"{name} Road")
    return rating_store.create_store_with_owner(store, owner)


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- fresh database per unit test
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user():
    """Factory fixture: make_user(store, email, role=..., name=..., password=...) -> id."""
    return _make_user


@pytest.fixture
def make_store():
    """Factory fixture: make_store(rating_store, name, owner_email) -> (store_id, owner_id)."""
    return _make_store


@pytest.fixture
def user_password() -> str:
    return TEST_PASSWORD


@pytest.fixture
def admin_password() -> str:
    return TEST_ADMIN_PASSWORD


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine(_memory_db_url(f"unit_{uuid.uuid4().hex}"))
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def rating_store(engine: Engine) -> RatingStore:
    return RatingStore(engine)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET_KEY, expire_seconds=3600)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[str, str], dict[str, int]], None, None]:
    """Yield (client, tokens, ids) for API integration tests.

    Seeded before the client starts:
      - two normal users ("user", "other_user")
      - one store ("Corner Cafe") with its owner ("owner")
      - one store_owner account with no store ("storeless_owner")

    tokens holds a bearer token per key above plus "admin" for the bootstrap
    administrator. ids holds the matching database ids, plus "store".

    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    """
    suffix = f"{request.module.__name__.rsplit('.', 1)[-1]}_{uuid.uuid4().hex[:8]}"
    settings, engine, token_service, user_store, rating_store = _make_test_services(suffix)

    ids: dict[str, int] = {}
    ids["user"] = _make_user(user_store, "user@example.com")
    ids["other_user"] = _make_user(user_store, "other@example.com", name="Another Regular Test User")
    ids["store"], ids["owner"] = _make_store(rating_store, "Corner Cafe", "owner@example.com")
    ids["storeless_owner"] = _make_user(user_store, "storeless@example.com", role=ROLE_STORE_OWNER)

    tokens = {
        "admin": token_service.issue("admin", ROLE_ADMIN),
        "user": token_service.issue(ids["user"], ROLE_NORMAL_USER),
        "other_user": token_service.issue(ids["other_user"], ROLE_NORMAL_USER),
        "owner": token_service.issue(ids["owner"], ROLE_STORE_OWNER),
        "storeless_owner": token_service.issue(ids["storeless_owner"], ROLE_STORE_OWNER),
    }

    app.router.lifespan_context = _patch_lifespan(settings, engine, token_service, user_store, rating_store)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, tokens, ids

    engine.dispose()
