"""Web test fixtures: TestClient with shared in-memory SQLite."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from praxis.constants import ROLE_USER
from praxis.db import enable_sqlite_foreign_keys
from praxis.repositories.sqlalchemy import SQLAlchemyAuditLogRepository, SQLAlchemyUserRepository
from praxis.services.user_service import UserService
from tests.conftest import SCHEMA_DDL

TEST_PASSWORD = "testpass123"


def _make_test_engine():
    """Create a fresh in-memory SQLite engine with shared connection pool."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    enable_sqlite_foreign_keys(engine)

    with engine.connect() as conn:
        for statement in SCHEMA_DDL.strip().split(";"):
            stmt = statement.strip()
            if stmt:
                conn.execute(text(stmt))
        conn.commit()

    return engine


def create_user_in_db(engine, username, password=TEST_PASSWORD, role=ROLE_USER):
    with engine.connect() as conn:
        return UserService(SQLAlchemyUserRepository(conn)).create_user(username, password, role=role)


def get_user_from_db(engine, username):
    with engine.connect() as conn:
        return SQLAlchemyUserRepository(conn).get_by_username(username)


def get_audit_logs(engine, event_type=None):
    """Query audit_logs from the test DB. Optionally filter by event_type."""
    with engine.connect() as conn:
        return SQLAlchemyAuditLogRepository(conn).list_recent(limit=100, event_type=event_type)


def login(client, username="testuser", password=TEST_PASSWORD):
    return client.post("/auth/login", json={"identifier": username, "password": password})


@pytest.fixture(autouse=True)
def web_test_db(monkeypatch):
    """Set up in-memory DB and patch the web app to use it."""
    engine = _make_test_engine()

    import web.deps as deps_module

    monkeypatch.setattr(deps_module, "get_engine", lambda: engine)

    import web.app as app_module

    monkeypatch.setattr(app_module, "initialize_db", lambda: None)
    monkeypatch.setattr(app_module.app.state, "provider_gateway", None)
    monkeypatch.setattr(app_module.app.state, "email_verification_sink", None)

    import web.auth as auth_module

    auth_module._login_attempts.clear()

    yield engine

    engine.dispose()


@pytest.fixture()
def test_engine(web_test_db):
    """Expose the test engine for helpers that need direct DB access."""
    return web_test_db


@pytest.fixture()
def client():
    from starlette.testclient import TestClient

    from web.app import app

    return TestClient(app)


@pytest.fixture()
def auth_client(client, test_engine):
    """Client that is already logged in as ``testuser``."""
    create_user_in_db(test_engine, "testuser")
    response = login(client)
    assert response.status_code == 200
    return client
