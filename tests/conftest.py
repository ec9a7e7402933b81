"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of clubhub.api.security which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from clubhub.config import ClubConfig  # noqa: E402
from clubhub.database.engine import init_db  # noqa: E402
from clubhub.database.models import Role, User  # noqa: E402
from clubhub.engine.identity import CurrentUser  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all ClubHub tables and seeds.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the OAuth callback).  The
    connect/begin listeners hand transaction control to SQLAlchemy so
    SAVEPOINTs behave as they do on PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def club_config() -> ClubConfig:
    return ClubConfig(club_name="Test Club", attendance_points=20, weekly_checkin_points=10)


def make_user(
    engine: Engine,
    user_id: str,
    role: Role = Role.MEMBER,
    *,
    email: str | None = None,
    points: int = 0,
) -> CurrentUser:
    """Insert a profile and return the matching request identity."""
    email = email or f"{user_id}@example.org"
    with Session(engine) as session:
        session.add(User(id=user_id, email=email, role=role.value, points=points))
        session.commit()
    return CurrentUser(id=user_id, email=email, role=role, points=points)


def make_token(user: CurrentUser, *, role: str | None = None) -> str:
    """Create a session JWT for *user*.  Usable from any test module."""
    from clubhub.api import security

    return security.issue_token(user.id, user.email, role or user.role.value)


@pytest.fixture
def users(db_engine) -> dict[str, CurrentUser]:
    """One profile per role."""
    return {
        "visitor": make_user(db_engine, "u-visitor", Role.VISITOR),
        "member": make_user(db_engine, "u-member", Role.MEMBER),
        "member2": make_user(db_engine, "u-member2", Role.MEMBER),
        "manager": make_user(db_engine, "u-manager", Role.MANAGER),
        "admin": make_user(db_engine, "u-admin", Role.ADMIN),
    }


@pytest.fixture
def client(db_engine, club_config):
    """A TestClient wired to the in-memory database and test config."""
    from fastapi.testclient import TestClient

    from clubhub.api.deps import get_config, get_engine
    from clubhub.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: club_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def auth(user: CurrentUser) -> dict:
    return {"Authorization": f"Bearer {make_token(user)}"}
