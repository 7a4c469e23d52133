import pytest
from sqlalchemy import Connection

from praxis.models.user import User
from praxis.repositories.sqlalchemy import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyChallengeRepository,
    SQLAlchemyLinkedAccountRepository,
    SQLAlchemyMFATOTPRepository,
    SQLAlchemyPasskeyRepository,
    SQLAlchemyPendingLoginRepository,
    SQLAlchemyRecoveryCodeRepository,
    SQLAlchemySessionRepository,
    SQLAlchemyUserRepository,
)


@pytest.fixture()
def user_repo(db_connection: Connection) -> SQLAlchemyUserRepository:
    return SQLAlchemyUserRepository(db_connection)


@pytest.fixture()
def totp_repo(db_connection: Connection) -> SQLAlchemyMFATOTPRepository:
    return SQLAlchemyMFATOTPRepository(db_connection)


@pytest.fixture()
def recovery_repo(db_connection: Connection) -> SQLAlchemyRecoveryCodeRepository:
    return SQLAlchemyRecoveryCodeRepository(db_connection)


@pytest.fixture()
def passkey_repo(db_connection: Connection) -> SQLAlchemyPasskeyRepository:
    return SQLAlchemyPasskeyRepository(db_connection)


@pytest.fixture()
def challenge_repo(db_connection: Connection) -> SQLAlchemyChallengeRepository:
    return SQLAlchemyChallengeRepository(db_connection)


@pytest.fixture()
def pending_repo(db_connection: Connection) -> SQLAlchemyPendingLoginRepository:
    return SQLAlchemyPendingLoginRepository(db_connection)


@pytest.fixture()
def session_repo(db_connection: Connection) -> SQLAlchemySessionRepository:
    return SQLAlchemySessionRepository(db_connection)


@pytest.fixture()
def linked_repo(db_connection: Connection) -> SQLAlchemyLinkedAccountRepository:
    return SQLAlchemyLinkedAccountRepository(db_connection)


@pytest.fixture()
def audit_repo(db_connection: Connection) -> SQLAlchemyAuditLogRepository:
    return SQLAlchemyAuditLogRepository(db_connection)


@pytest.fixture()
def user(user_repo, sample_user) -> User:
    return user_repo.create(sample_user())
