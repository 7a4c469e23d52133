from abc import ABC, abstractmethod
from datetime import datetime

from praxis.models.audit_log import AuditLog
from praxis.models.challenge import Challenge
from praxis.models.linked_account import LinkedAccount
from praxis.models.login import PendingLogin
from praxis.models.mfa import RecoveryCode, UserPasskey, UserTOTP
from praxis.models.session import Session
from praxis.models.user import User


class UserRepository(ABC):
    @abstractmethod
    def create(self, user: User) -> User: ...

    @abstractmethod
    def get_by_id(self, user_id: int) -> User | None: ...

    @abstractmethod
    def get_by_uuid(self, uuid: str) -> User | None: ...

    @abstractmethod
    def get_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    def get_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    def get_by_email_verification_hash(self, token_hash: str) -> User | None: ...

    @abstractmethod
    def list_all(self) -> list[User]: ...

    @abstractmethod
    def update_password_hash(self, user_id: int, password_hash: str) -> None: ...

    @abstractmethod
    def update_email(self, user_id: int, email: str) -> None: ...

    @abstractmethod
    def update_role(self, user_id: int, role: str) -> None: ...

    @abstractmethod
    def set_email_verification(self, user_id: int, token_hash: str, expires_at: datetime) -> None: ...

    @abstractmethod
    def mark_email_verified(self, user_id: int) -> None: ...

    @abstractmethod
    def count_login_methods(self, user_id: int) -> int: ...

    @abstractmethod
    def delete(self, user_id: int) -> None: ...


class MFATOTPRepository(ABC):
    @abstractmethod
    def get_by_user_id(self, user_id: int) -> UserTOTP | None: ...

    @abstractmethod
    def create(self, totp: UserTOTP) -> UserTOTP: ...

    @abstractmethod
    def enable(self, user_id: int) -> None: ...

    @abstractmethod
    def advance_last_used_step(self, user_id: int, step: int) -> bool: ...

    @abstractmethod
    def delete_by_user_id(self, user_id: int) -> None: ...


class RecoveryCodeRepository(ABC):
    @abstractmethod
    def create_batch(self, user_id: int, code_hashes: list[str]) -> None: ...

    @abstractmethod
    def list_unused_by_user(self, user_id: int) -> list[RecoveryCode]: ...

    @abstractmethod
    def mark_used(self, code_id: int) -> bool: ...

    @abstractmethod
    def delete_all_by_user(self, user_id: int) -> None: ...


class PasskeyRepository(ABC):
    @abstractmethod
    def create(self, passkey: UserPasskey) -> UserPasskey: ...

    @abstractmethod
    def get_by_uuid(self, uuid: str) -> UserPasskey | None: ...

    @abstractmethod
    def get_by_credential_id(self, credential_id: str) -> UserPasskey | None: ...

    @abstractmethod
    def list_by_user(self, user_id: int) -> list[UserPasskey]: ...

    @abstractmethod
    def advance_sign_count(self, passkey_id: int, expected: int, sign_count: int) -> bool: ...

    @abstractmethod
    def update_last_used(self, passkey_id: int) -> None: ...

    @abstractmethod
    def rename(self, passkey_id: int, name: str) -> None: ...

    @abstractmethod
    def delete_keeping_login_method(self, passkey_id: int, user_id: int) -> bool: ...


class ChallengeRepository(ABC):
    @abstractmethod
    def create(self, challenge: Challenge) -> Challenge: ...

    @abstractmethod
    def get_by_uuid(self, uuid: str) -> Challenge | None: ...

    @abstractmethod
    def consume(self, challenge_id: int) -> bool: ...

    @abstractmethod
    def delete_expired(self, before: datetime) -> int: ...


class PendingLoginRepository(ABC):
    @abstractmethod
    def create(self, pending: PendingLogin) -> PendingLogin: ...

    @abstractmethod
    def get_by_token_hash(self, token_hash: str) -> PendingLogin | None: ...

    @abstractmethod
    def record_failure(self, pending_id: int) -> int: ...

    @abstractmethod
    def consume(self, pending_id: int) -> bool: ...

    @abstractmethod
    def delete_expired(self, before: datetime) -> int: ...


class SessionRepository(ABC):
    @abstractmethod
    def create(self, session: Session) -> Session: ...

    @abstractmethod
    def get_by_uuid(self, uuid: str) -> Session | None: ...

    @abstractmethod
    def get_by_token_hash(self, token_hash: str) -> Session | None: ...

    @abstractmethod
    def list_by_user(self, user_id: int) -> list[Session]: ...

    @abstractmethod
    def touch(self, session_id: int, now: datetime) -> bool: ...

    @abstractmethod
    def revoke(self, session_id: int, now: datetime) -> bool: ...

    @abstractmethod
    def revoke_all_except(self, user_id: int, except_session_id: int, issued_before: datetime, now: datetime) -> int: ...

    @abstractmethod
    def revoke_all_by_user(self, user_id: int, now: datetime) -> int: ...

    @abstractmethod
    def delete_stale(self, expired_before: datetime, idle_before: datetime) -> int: ...


class LinkedAccountRepository(ABC):
    @abstractmethod
    def get(self, user_id: int, provider: str) -> LinkedAccount | None: ...

    @abstractmethod
    def get_by_subject(self, provider: str, provider_subject: str) -> LinkedAccount | None: ...

    @abstractmethod
    def list_by_user(self, user_id: int) -> list[LinkedAccount]: ...

    @abstractmethod
    def upsert(self, account: LinkedAccount) -> LinkedAccount | None: ...

    @abstractmethod
    def delete_keeping_login_method(self, user_id: int, provider: str) -> bool: ...


class AuditLogRepository(ABC):
    @abstractmethod
    def create(self, audit_log: AuditLog) -> AuditLog: ...

    @abstractmethod
    def list_for_user(self, user_id: int, limit: int = 50) -> list[AuditLog]: ...

    @abstractmethod
    def list_recent(self, limit: int = 50, event_type: str | None = None) -> list[AuditLog]: ...
