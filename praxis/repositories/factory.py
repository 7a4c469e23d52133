from praxis.repositories.base import (
    AuditLogRepository,
    ChallengeRepository,
    LinkedAccountRepository,
    MFATOTPRepository,
    PasskeyRepository,
    PendingLoginRepository,
    RecoveryCodeRepository,
    SessionRepository,
    UserRepository,
)


def get_user_repository() -> UserRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyUserRepository

    return SQLAlchemyUserRepository(get_connection())


def get_mfa_totp_repository() -> MFATOTPRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyMFATOTPRepository

    return SQLAlchemyMFATOTPRepository(get_connection())


def get_recovery_code_repository() -> RecoveryCodeRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyRecoveryCodeRepository

    return SQLAlchemyRecoveryCodeRepository(get_connection())


def get_passkey_repository() -> PasskeyRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyPasskeyRepository

    return SQLAlchemyPasskeyRepository(get_connection())


def get_challenge_repository() -> ChallengeRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyChallengeRepository

    return SQLAlchemyChallengeRepository(get_connection())


def get_pending_login_repository() -> PendingLoginRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyPendingLoginRepository

    return SQLAlchemyPendingLoginRepository(get_connection())


def get_session_repository() -> SessionRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemySessionRepository

    return SQLAlchemySessionRepository(get_connection())


def get_linked_account_repository() -> LinkedAccountRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyLinkedAccountRepository

    return SQLAlchemyLinkedAccountRepository(get_connection())


def get_audit_log_repository() -> AuditLogRepository:
    from praxis.db import get_connection
    from praxis.repositories.sqlalchemy import SQLAlchemyAuditLogRepository

    return SQLAlchemyAuditLogRepository(get_connection())
