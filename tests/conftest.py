from datetime import timedelta

import pytest
from sqlalchemy import Connection, create_engine, text
from sqlalchemy.engine import Engine

from praxis.constants import utcnow
from praxis.db import enable_sqlite_foreign_keys
from praxis.models.mfa import UserPasskey
from praxis.models.user import User
from praxis.settings import settings

SCHEMA_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    username VARCHAR(64) NOT NULL UNIQUE,
    email VARCHAR(255) UNIQUE,
    email_verified TINYINT NOT NULL DEFAULT 0,
    role VARCHAR(20) NOT NULL DEFAULT 'user',
    password_hash VARCHAR(255),
    email_verification_hash VARCHAR(64),
    email_verification_expires_at DATETIME,
    created_at DATETIME NOT NULL
);

CREATE TABLE user_totp (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
    secret VARCHAR(64) NOT NULL,
    enabled TINYINT NOT NULL DEFAULT 0,
    last_used_step BIGINT,
    created_at DATETIME NOT NULL,
    enabled_at DATETIME
);

CREATE TABLE user_recovery_codes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    code_hash VARCHAR(255) NOT NULL,
    used_at DATETIME,
    created_at DATETIME NOT NULL
);

CREATE TABLE user_passkeys (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    credential_id VARCHAR(512) NOT NULL UNIQUE,
    public_key TEXT NOT NULL,
    sign_count BIGINT NOT NULL DEFAULT 0,
    name VARCHAR(100) NOT NULL DEFAULT '',
    transports VARCHAR(255),
    created_at DATETIME NOT NULL,
    last_used_at DATETIME
);

CREATE TABLE linked_accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    provider VARCHAR(32) NOT NULL,
    provider_subject VARCHAR(255) NOT NULL,
    provider_email VARCHAR(255),
    created_at DATETIME NOT NULL,
    UNIQUE(user_id, provider),
    UNIQUE(provider, provider_subject)
);

CREATE TABLE challenges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    purpose VARCHAR(32) NOT NULL,
    nonce VARCHAR(64) NOT NULL,
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    provider VARCHAR(32),
    expires_at DATETIME NOT NULL,
    consumed_at DATETIME,
    created_at DATETIME NOT NULL
);

CREATE TABLE pending_logins (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    token_hash VARCHAR(64) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    user_agent VARCHAR(255) NOT NULL DEFAULT '',
    ip_address VARCHAR(64) NOT NULL DEFAULT '',
    attempts INTEGER NOT NULL DEFAULT 0,
    expires_at DATETIME NOT NULL,
    consumed_at DATETIME,
    created_at DATETIME NOT NULL
);

CREATE TABLE sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    token_hash VARCHAR(64) NOT NULL UNIQUE,
    user_agent VARCHAR(255) NOT NULL DEFAULT '',
    ip_address VARCHAR(64) NOT NULL DEFAULT '',
    created_at DATETIME NOT NULL,
    last_active_at DATETIME NOT NULL,
    expires_at DATETIME NOT NULL,
    revoked_at DATETIME
);

CREATE TABLE audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid VARCHAR(26) NOT NULL UNIQUE,
    event_type VARCHAR(50) NOT NULL,
    actor_id INTEGER,
    actor_username VARCHAR(255) NOT NULL DEFAULT '',
    source VARCHAR(10) NOT NULL,
    entity_type VARCHAR(50) NOT NULL DEFAULT '',
    entity_id INTEGER,
    entity_uuid VARCHAR(26) NOT NULL DEFAULT '',
    previous_state TEXT,
    new_state TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at DATETIME NOT NULL
)
"""


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture()
def db_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    return engine


@pytest.fixture()
def db_connection(db_engine: Engine) -> Connection:
    conn = db_engine.connect()
    for statement in SCHEMA_DDL.strip().split(";"):
        stmt = statement.strip()
        if stmt:
            conn.execute(text(stmt))
    conn.commit()
    yield conn
    conn.close()


def _sample_user(**overrides) -> User:
    defaults = dict(username="alice", email="alice@example.com", password_hash="hash")
    defaults.update(overrides)
    return User(**defaults)


def _sample_passkey(user_id: int, **overrides) -> UserPasskey:
    defaults = dict(
        user_id=user_id,
        credential_id="Y3JlZC0x",
        public_key="cHVibGljLWtleQ",
        sign_count=0,
        name="Laptop",
        transports="internal,hybrid",
    )
    defaults.update(overrides)
    return UserPasskey(**defaults)


def in_future(seconds: int = 300):
    return utcnow() + timedelta(seconds=seconds)


def in_past(seconds: int = 300):
    return utcnow() - timedelta(seconds=seconds)


@pytest.fixture()
def sample_user():
    return _sample_user


@pytest.fixture()
def sample_passkey():
    return _sample_passkey
