from unittest.mock import MagicMock, patch

import pytest

from praxis.repositories import factory
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


class TestRepoFactory:
    @pytest.mark.parametrize(
        "getter, expected",
        [
            (factory.get_user_repository, SQLAlchemyUserRepository),
            (factory.get_mfa_totp_repository, SQLAlchemyMFATOTPRepository),
            (factory.get_recovery_code_repository, SQLAlchemyRecoveryCodeRepository),
            (factory.get_passkey_repository, SQLAlchemyPasskeyRepository),
            (factory.get_challenge_repository, SQLAlchemyChallengeRepository),
            (factory.get_pending_login_repository, SQLAlchemyPendingLoginRepository),
            (factory.get_session_repository, SQLAlchemySessionRepository),
            (factory.get_linked_account_repository, SQLAlchemyLinkedAccountRepository),
            (factory.get_audit_log_repository, SQLAlchemyAuditLogRepository),
        ],
    )
    @patch("praxis.db.get_connection")
    def test_returns_sqlalchemy_repository(self, mock_conn, getter, expected):
        mock_conn.return_value = MagicMock()
        repo = getter()
        assert isinstance(repo, expected)
        assert repo.conn is mock_conn.return_value
