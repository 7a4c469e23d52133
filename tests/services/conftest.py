"""Service fixtures wired to real repositories over in-memory SQLite."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pyotp
import pytest
from sqlalchemy import Connection

from praxis.models.session import DeviceDescriptor
from praxis.repositories.sqlalchemy import (
    SQLAlchemyChallengeRepository,
    SQLAlchemyLinkedAccountRepository,
    SQLAlchemyMFATOTPRepository,
    SQLAlchemyPasskeyRepository,
    SQLAlchemyPendingLoginRepository,
    SQLAlchemyRecoveryCodeRepository,
    SQLAlchemySessionRepository,
    SQLAlchemyUserRepository,
)
from praxis.services.account_link_service import AccountLinkService
from praxis.services.challenge_service import ChallengeService
from praxis.services.credential_service import CredentialService
from praxis.services.login_service import LoginService
from praxis.services.passkey_service import PasskeyService
from praxis.services.session_service import SessionService
from praxis.services.totp_service import TOTPService
from praxis.services.user_service import UserService

DEVICE = DeviceDescriptor(user_agent="pytest", ip_address="127.0.0.1")


def current_code(secret: str, offset_steps: int = 0) -> str:
    """TOTP code for the current time step shifted by ``offset_steps``."""
    totp = pyotp.TOTP(secret)
    now = datetime.now(timezone.utc)
    return totp.generate_otp(totp.timecode(now) + offset_steps)


@dataclass
class Stack:
    users: SQLAlchemyUserRepository
    passkeys: SQLAlchemyPasskeyRepository
    linked: SQLAlchemyLinkedAccountRepository
    totp_repo: SQLAlchemyMFATOTPRepository
    session_repo: SQLAlchemySessionRepository
    credential_service: CredentialService
    challenge_service: ChallengeService
    session_service: SessionService
    totp_service: TOTPService
    passkey_service: PasskeyService
    login_service: LoginService
    link_service: AccountLinkService
    user_service: UserService


@pytest.fixture()
def stack(db_connection: Connection) -> Stack:
    users = SQLAlchemyUserRepository(db_connection)
    passkeys = SQLAlchemyPasskeyRepository(db_connection)
    linked = SQLAlchemyLinkedAccountRepository(db_connection)
    totp_repo = SQLAlchemyMFATOTPRepository(db_connection)
    pending = SQLAlchemyPendingLoginRepository(db_connection)
    session_repo = SQLAlchemySessionRepository(db_connection)

    credential_service = CredentialService(users)
    challenge_service = ChallengeService(SQLAlchemyChallengeRepository(db_connection))
    session_service = SessionService(session_repo, pending)
    totp_service = TOTPService(totp_repo, SQLAlchemyRecoveryCodeRepository(db_connection), challenge_service)
    passkey_service = PasskeyService(passkeys, users, challenge_service, credential_service)
    login_service = LoginService(
        users,
        pending,
        credential_service,
        totp_service,
        session_service,
        passkey_service=passkey_service,
        linked_repo=linked,
    )
    return Stack(
        users=users,
        passkeys=passkeys,
        linked=linked,
        totp_repo=totp_repo,
        session_repo=session_repo,
        credential_service=credential_service,
        challenge_service=challenge_service,
        session_service=session_service,
        totp_service=totp_service,
        passkey_service=passkey_service,
        login_service=login_service,
        link_service=AccountLinkService(linked, challenge_service, login_service=login_service),
        user_service=UserService(users, credential_service, session_service),
    )
