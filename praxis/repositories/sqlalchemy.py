from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import Connection, text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from ulid import ULID

from praxis.constants import utcnow
from praxis.models.audit_log import AuditLog
from praxis.models.challenge import Challenge, ChallengePurpose
from praxis.models.linked_account import LinkedAccount
from praxis.models.login import PendingLogin
from praxis.models.mfa import RecoveryCode, UserPasskey, UserTOTP
from praxis.models.session import Session
from praxis.models.user import User
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

_COUNT_LOGIN_METHODS = (
    "SELECT "
    "(SELECT COUNT(*) FROM users WHERE id = :user_id AND password_hash IS NOT NULL AND password_hash != '') "
    "+ (SELECT COUNT(*) FROM user_passkeys WHERE user_id = :user_id) "
    "+ (SELECT COUNT(*) FROM linked_accounts WHERE user_id = :user_id) AS total"
)


def _now() -> datetime:
    return utcnow()


def _count_login_methods(conn: Connection, user_id: int) -> int:
    return int(conn.execute(text(_COUNT_LOGIN_METHODS), {"user_id": user_id}).scalar() or 0)


def _lock_user(conn: Connection, user_id: int) -> None:
    """Serialize credential removals for one user until the transaction ends."""
    sql = "SELECT id FROM users WHERE id = :id"
    if conn.dialect.name != "sqlite":
        sql += " FOR UPDATE"
    conn.execute(text(sql), {"id": user_id})


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_user(row: RowMapping) -> User:
        return User(
            id=row["id"],
            uuid=row["uuid"],
            username=row["username"],
            email=row.get("email"),
            email_verified=bool(row["email_verified"]),
            role=row["role"],
            password_hash=row.get("password_hash"),
            email_verification_hash=row.get("email_verification_hash"),
            email_verification_expires_at=row.get("email_verification_expires_at"),
            created_at=row["created_at"],
        )

    def _get_one(self, where: str, params: dict) -> User | None:
        row = self.conn.execute(text(f"SELECT * FROM users WHERE {where}"), params).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def create(self, user: User) -> User:
        user_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO users (uuid, username, email, email_verified, role, password_hash, created_at) "
                "VALUES (:uuid, :username, :email, :email_verified, :role, :password_hash, :created_at)"
            ),
            {
                "uuid": user_uuid,
                "username": user.username,
                "email": user.email,
                "email_verified": user.email_verified,
                "role": user.role,
                "password_hash": user.password_hash,
                "created_at": _now(),
            },
        )
        self.conn.commit()
        result = self.get_by_uuid(user_uuid)
        if result is None:
            raise RuntimeError(f"Failed to retrieve user after create (username={user.username})")
        return result

    def get_by_id(self, user_id: int) -> User | None:
        return self._get_one("id = :id", {"id": user_id})

    def get_by_uuid(self, uuid: str) -> User | None:
        return self._get_one("uuid = :uuid", {"uuid": uuid})

    def get_by_username(self, username: str) -> User | None:
        return self._get_one("username = :username", {"username": username})

    def get_by_email(self, email: str) -> User | None:
        return self._get_one("email = :email", {"email": email})

    def get_by_email_verification_hash(self, token_hash: str) -> User | None:
        return self._get_one("email_verification_hash = :hash", {"hash": token_hash})

    def list_all(self) -> list[User]:
        rows = self.conn.execute(text("SELECT * FROM users ORDER BY created_at DESC")).mappings().fetchall()
        return [self._row_to_user(row) for row in rows]

    def update_password_hash(self, user_id: int, password_hash: str) -> None:
        self.conn.execute(
            text("UPDATE users SET password_hash = :password_hash WHERE id = :id"),
            {"password_hash": password_hash, "id": user_id},
        )
        self.conn.commit()

    def update_email(self, user_id: int, email: str) -> None:
        self.conn.execute(
            text("UPDATE users SET email = :email, email_verified = 0 WHERE id = :id"),
            {"email": email, "id": user_id},
        )
        self.conn.commit()

    def update_role(self, user_id: int, role: str) -> None:
        self.conn.execute(
            text("UPDATE users SET role = :role WHERE id = :id"),
            {"role": role, "id": user_id},
        )
        self.conn.commit()

    def set_email_verification(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        self.conn.execute(
            text(
                "UPDATE users SET email_verification_hash = :hash, "
                "email_verification_expires_at = :expires_at WHERE id = :id"
            ),
            {"hash": token_hash, "expires_at": expires_at, "id": user_id},
        )
        self.conn.commit()

    def mark_email_verified(self, user_id: int) -> None:
        self.conn.execute(
            text(
                "UPDATE users SET email_verified = 1, email_verification_hash = NULL, "
                "email_verification_expires_at = NULL WHERE id = :id"
            ),
            {"id": user_id},
        )
        self.conn.commit()

    def count_login_methods(self, user_id: int) -> int:
        return _count_login_methods(self.conn, user_id)

    def delete(self, user_id: int) -> None:
        self.conn.execute(text("DELETE FROM users WHERE id = :id"), {"id": user_id})
        self.conn.commit()


class SQLAlchemyMFATOTPRepository(MFATOTPRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_totp(row: RowMapping) -> UserTOTP:
        return UserTOTP(
            id=row["id"],
            user_id=row["user_id"],
            secret=row["secret"],
            enabled=bool(row["enabled"]),
            last_used_step=row.get("last_used_step"),
            created_at=row["created_at"],
            enabled_at=row.get("enabled_at"),
        )

    def get_by_user_id(self, user_id: int) -> UserTOTP | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM user_totp WHERE user_id = :user_id"),
                {"user_id": user_id},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_totp(row)

    def create(self, totp: UserTOTP) -> UserTOTP:
        self.conn.execute(
            text(
                "INSERT INTO user_totp (user_id, secret, enabled, created_at) "
                "VALUES (:user_id, :secret, :enabled, :created_at)"
            ),
            {
                "user_id": totp.user_id,
                "secret": totp.secret,
                "enabled": totp.enabled,
                "created_at": _now(),
            },
        )
        self.conn.commit()
        result = self.get_by_user_id(totp.user_id)
        if result is None:
            raise RuntimeError("Failed to retrieve TOTP after create")
        return result

    def enable(self, user_id: int) -> None:
        self.conn.execute(
            text("UPDATE user_totp SET enabled = 1, enabled_at = :now WHERE user_id = :user_id"),
            {"now": _now(), "user_id": user_id},
        )
        self.conn.commit()

    def advance_last_used_step(self, user_id: int, step: int) -> bool:
        result = self.conn.execute(
            text(
                "UPDATE user_totp SET last_used_step = :step "
                "WHERE user_id = :user_id AND (last_used_step IS NULL OR last_used_step < :step)"
            ),
            {"step": step, "user_id": user_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def delete_by_user_id(self, user_id: int) -> None:
        self.conn.execute(
            text("DELETE FROM user_totp WHERE user_id = :user_id"),
            {"user_id": user_id},
        )
        self.conn.commit()


class SQLAlchemyRecoveryCodeRepository(RecoveryCodeRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_code(row: RowMapping) -> RecoveryCode:
        return RecoveryCode(
            id=row["id"],
            user_id=row["user_id"],
            code_hash=row["code_hash"],
            used_at=row.get("used_at"),
            created_at=row["created_at"],
        )

    def create_batch(self, user_id: int, code_hashes: list[str]) -> None:
        now = _now()
        for code_hash in code_hashes:
            self.conn.execute(
                text(
                    "INSERT INTO user_recovery_codes (user_id, code_hash, created_at) "
                    "VALUES (:user_id, :code_hash, :created_at)"
                ),
                {"user_id": user_id, "code_hash": code_hash, "created_at": now},
            )
        self.conn.commit()

    def list_unused_by_user(self, user_id: int) -> list[RecoveryCode]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM user_recovery_codes WHERE user_id = :user_id AND used_at IS NULL ORDER BY id"),
                {"user_id": user_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_code(row) for row in rows]

    def mark_used(self, code_id: int) -> bool:
        result = self.conn.execute(
            text("UPDATE user_recovery_codes SET used_at = :now WHERE id = :id AND used_at IS NULL"),
            {"now": _now(), "id": code_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def delete_all_by_user(self, user_id: int) -> None:
        self.conn.execute(
            text("DELETE FROM user_recovery_codes WHERE user_id = :user_id"),
            {"user_id": user_id},
        )
        self.conn.commit()


class SQLAlchemyPasskeyRepository(PasskeyRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_passkey(row: RowMapping) -> UserPasskey:
        return UserPasskey(
            id=row["id"],
            uuid=row["uuid"],
            user_id=row["user_id"],
            credential_id=row["credential_id"],
            public_key=row["public_key"],
            sign_count=row["sign_count"],
            name=row["name"],
            transports=row.get("transports"),
            created_at=row["created_at"],
            last_used_at=row.get("last_used_at"),
        )

    def create(self, passkey: UserPasskey) -> UserPasskey:
        passkey_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO user_passkeys (uuid, user_id, credential_id, public_key, "
                "sign_count, name, transports, created_at) "
                "VALUES (:uuid, :user_id, :credential_id, :public_key, "
                ":sign_count, :name, :transports, :created_at)"
            ),
            {
                "uuid": passkey_uuid,
                "user_id": passkey.user_id,
                "credential_id": passkey.credential_id,
                "public_key": passkey.public_key,
                "sign_count": passkey.sign_count,
                "name": passkey.name,
                "transports": passkey.transports,
                "created_at": _now(),
            },
        )
        self.conn.commit()
        created = self.get_by_uuid(passkey_uuid)
        if created is None:
            raise RuntimeError("Failed to retrieve passkey after create")
        return created

    def get_by_uuid(self, uuid: str) -> UserPasskey | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM user_passkeys WHERE uuid = :uuid"),
                {"uuid": uuid},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_passkey(row)

    def get_by_credential_id(self, credential_id: str) -> UserPasskey | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM user_passkeys WHERE credential_id = :cid"),
                {"cid": credential_id},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_passkey(row)

    def list_by_user(self, user_id: int) -> list[UserPasskey]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM user_passkeys WHERE user_id = :user_id ORDER BY created_at, id"),
                {"user_id": user_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_passkey(row) for row in rows]

    def advance_sign_count(self, passkey_id: int, expected: int, sign_count: int) -> bool:
        result = self.conn.execute(
            text("UPDATE user_passkeys SET sign_count = :sign_count WHERE id = :id AND sign_count = :expected"),
            {"sign_count": sign_count, "id": passkey_id, "expected": expected},
        )
        self.conn.commit()
        return result.rowcount == 1

    def update_last_used(self, passkey_id: int) -> None:
        self.conn.execute(
            text("UPDATE user_passkeys SET last_used_at = :now WHERE id = :id"),
            {"now": _now(), "id": passkey_id},
        )
        self.conn.commit()

    def rename(self, passkey_id: int, name: str) -> None:
        self.conn.execute(
            text("UPDATE user_passkeys SET name = :name WHERE id = :id"),
            {"name": name, "id": passkey_id},
        )
        self.conn.commit()

    def delete_keeping_login_method(self, passkey_id: int, user_id: int) -> bool:
        _lock_user(self.conn, user_id)
        self.conn.execute(
            text("DELETE FROM user_passkeys WHERE id = :id AND user_id = :user_id"),
            {"id": passkey_id, "user_id": user_id},
        )
        if _count_login_methods(self.conn, user_id) == 0:
            self.conn.rollback()
            return False
        self.conn.commit()
        return True


class SQLAlchemyChallengeRepository(ChallengeRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_challenge(row: RowMapping) -> Challenge:
        return Challenge(
            id=row["id"],
            uuid=row["uuid"],
            purpose=ChallengePurpose(row["purpose"]),
            nonce=row["nonce"],
            user_id=row.get("user_id"),
            provider=row.get("provider"),
            expires_at=row["expires_at"],
            consumed_at=row.get("consumed_at"),
            created_at=row["created_at"],
        )

    def create(self, challenge: Challenge) -> Challenge:
        challenge_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO challenges (uuid, purpose, nonce, user_id, provider, expires_at, created_at) "
                "VALUES (:uuid, :purpose, :nonce, :user_id, :provider, :expires_at, :created_at)"
            ),
            {
                "uuid": challenge_uuid,
                "purpose": challenge.purpose.value,
                "nonce": challenge.nonce,
                "user_id": challenge.user_id,
                "provider": challenge.provider,
                "expires_at": challenge.expires_at,
                "created_at": _now(),
            },
        )
        self.conn.commit()
        created = self.get_by_uuid(challenge_uuid)
        if created is None:
            raise RuntimeError("Failed to retrieve challenge after create")
        return created

    def get_by_uuid(self, uuid: str) -> Challenge | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM challenges WHERE uuid = :uuid"),
                {"uuid": uuid},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_challenge(row)

    def consume(self, challenge_id: int) -> bool:
        result = self.conn.execute(
            text("UPDATE challenges SET consumed_at = :now WHERE id = :id AND consumed_at IS NULL"),
            {"now": _now(), "id": challenge_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def delete_expired(self, before: datetime) -> int:
        result = self.conn.execute(
            text("DELETE FROM challenges WHERE expires_at < :before"),
            {"before": before},
        )
        self.conn.commit()
        return result.rowcount


class SQLAlchemyPendingLoginRepository(PendingLoginRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_pending(row: RowMapping) -> PendingLogin:
        return PendingLogin(
            id=row["id"],
            uuid=row["uuid"],
            token_hash=row["token_hash"],
            user_id=row["user_id"],
            user_agent=row["user_agent"] or "",
            ip_address=row["ip_address"] or "",
            attempts=row["attempts"],
            expires_at=row["expires_at"],
            consumed_at=row.get("consumed_at"),
            created_at=row["created_at"],
        )

    def create(self, pending: PendingLogin) -> PendingLogin:
        pending_uuid = str(ULID())
        self.conn.execute(
            text(
                "INSERT INTO pending_logins (uuid, token_hash, user_id, user_agent, ip_address, "
                "attempts, expires_at, created_at) "
                "VALUES (:uuid, :token_hash, :user_id, :user_agent, :ip_address, 0, :expires_at, :created_at)"
            ),
            {
                "uuid": pending_uuid,
                "token_hash": pending.token_hash,
                "user_id": pending.user_id,
                "user_agent": pending.user_agent,
                "ip_address": pending.ip_address,
                "expires_at": pending.expires_at,
                "created_at": _now(),
            },
        )
        self.conn.commit()
        created = self.get_by_token_hash(pending.token_hash)
        if created is None:
            raise RuntimeError("Failed to retrieve pending login after create")
        return created

    def get_by_token_hash(self, token_hash: str) -> PendingLogin | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM pending_logins WHERE token_hash = :token_hash"),
                {"token_hash": token_hash},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_pending(row)

    def record_failure(self, pending_id: int) -> int:
        self.conn.execute(
            text("UPDATE pending_logins SET attempts = attempts + 1 WHERE id = :id AND consumed_at IS NULL"),
            {"id": pending_id},
        )
        attempts = self.conn.execute(
            text("SELECT attempts FROM pending_logins WHERE id = :id"),
            {"id": pending_id},
        ).scalar()
        self.conn.commit()
        return int(attempts or 0)

    def consume(self, pending_id: int) -> bool:
        result = self.conn.execute(
            text("UPDATE pending_logins SET consumed_at = :now WHERE id = :id AND consumed_at IS NULL"),
            {"now": _now(), "id": pending_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def delete_expired(self, before: datetime) -> int:
        result = self.conn.execute(
            text("DELETE FROM pending_logins WHERE expires_at < :before"),
            {"before": before},
        )
        self.conn.commit()
        return result.rowcount


class SQLAlchemySessionRepository(SessionRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_session(row: RowMapping) -> Session:
        return Session(
            id=row["id"],
            uuid=row["uuid"],
            user_id=row["user_id"],
            token_hash=row["token_hash"],
            user_agent=row["user_agent"] or "",
            ip_address=row["ip_address"] or "",
            created_at=row["created_at"],
            last_active_at=row["last_active_at"],
            expires_at=row["expires_at"],
            revoked_at=row.get("revoked_at"),
        )

    def create(self, session: Session) -> Session:
        session_uuid = str(ULID())
        now = session.created_at or _now()
        self.conn.execute(
            text(
                "INSERT INTO sessions (uuid, user_id, token_hash, user_agent, ip_address, "
                "created_at, last_active_at, expires_at) "
                "VALUES (:uuid, :user_id, :token_hash, :user_agent, :ip_address, "
                ":created_at, :last_active_at, :expires_at)"
            ),
            {
                "uuid": session_uuid,
                "user_id": session.user_id,
                "token_hash": session.token_hash,
                "user_agent": session.user_agent,
                "ip_address": session.ip_address,
                "created_at": now,
                "last_active_at": now,
                "expires_at": session.expires_at,
            },
        )
        self.conn.commit()
        created = self.get_by_uuid(session_uuid)
        if created is None:
            raise RuntimeError("Failed to retrieve session after create")
        return created

    def get_by_uuid(self, uuid: str) -> Session | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM sessions WHERE uuid = :uuid"),
                {"uuid": uuid},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_session(row)

    def get_by_token_hash(self, token_hash: str) -> Session | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM sessions WHERE token_hash = :token_hash"),
                {"token_hash": token_hash},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_session(row)

    def list_by_user(self, user_id: int) -> list[Session]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM sessions WHERE user_id = :user_id ORDER BY last_active_at DESC, id DESC"),
                {"user_id": user_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_session(row) for row in rows]

    def touch(self, session_id: int, now: datetime) -> bool:
        result = self.conn.execute(
            text("UPDATE sessions SET last_active_at = :now WHERE id = :id AND revoked_at IS NULL"),
            {"now": now, "id": session_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def revoke(self, session_id: int, now: datetime) -> bool:
        result = self.conn.execute(
            text("UPDATE sessions SET revoked_at = :now WHERE id = :id AND revoked_at IS NULL"),
            {"now": now, "id": session_id},
        )
        self.conn.commit()
        return result.rowcount == 1

    def revoke_all_except(self, user_id: int, except_session_id: int, issued_before: datetime, now: datetime) -> int:
        result = self.conn.execute(
            text(
                "UPDATE sessions SET revoked_at = :now "
                "WHERE user_id = :user_id AND id != :except_id AND revoked_at IS NULL "
                "AND created_at <= :issued_before"
            ),
            {"now": now, "user_id": user_id, "except_id": except_session_id, "issued_before": issued_before},
        )
        self.conn.commit()
        return result.rowcount

    def revoke_all_by_user(self, user_id: int, now: datetime) -> int:
        result = self.conn.execute(
            text("UPDATE sessions SET revoked_at = :now WHERE user_id = :user_id AND revoked_at IS NULL"),
            {"now": now, "user_id": user_id},
        )
        self.conn.commit()
        return result.rowcount

    def delete_stale(self, expired_before: datetime, idle_before: datetime) -> int:
        result = self.conn.execute(
            text(
                "DELETE FROM sessions WHERE revoked_at IS NOT NULL "
                "OR expires_at < :expired_before OR last_active_at < :idle_before"
            ),
            {"expired_before": expired_before, "idle_before": idle_before},
        )
        self.conn.commit()
        return result.rowcount


class SQLAlchemyLinkedAccountRepository(LinkedAccountRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_account(row: RowMapping) -> LinkedAccount:
        return LinkedAccount(
            id=row["id"],
            user_id=row["user_id"],
            provider=row["provider"],
            provider_subject=row["provider_subject"],
            provider_email=row.get("provider_email"),
            created_at=row["created_at"],
        )

    def get(self, user_id: int, provider: str) -> LinkedAccount | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM linked_accounts WHERE user_id = :user_id AND provider = :provider"),
                {"user_id": user_id, "provider": provider},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_account(row)

    def get_by_subject(self, provider: str, provider_subject: str) -> LinkedAccount | None:
        row = (
            self.conn.execute(
                text("SELECT * FROM linked_accounts WHERE provider = :provider AND provider_subject = :subject"),
                {"provider": provider, "subject": provider_subject},
            )
            .mappings()
            .fetchone()
        )
        if row is None:
            return None
        return self._row_to_account(row)

    def list_by_user(self, user_id: int) -> list[LinkedAccount]:
        rows = (
            self.conn.execute(
                text("SELECT * FROM linked_accounts WHERE user_id = :user_id ORDER BY provider"),
                {"user_id": user_id},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_account(row) for row in rows]

    def upsert(self, account: LinkedAccount) -> LinkedAccount | None:
        """Insert or update the user's link for a provider.

        Returns None when the (provider, subject) pair is already taken by a
        concurrent link for another user.
        """
        params = {
            "user_id": account.user_id,
            "provider": account.provider,
            "subject": account.provider_subject,
            "email": account.provider_email,
            "created_at": _now(),
        }
        try:
            if self.get(account.user_id, account.provider) is None:
                self.conn.execute(
                    text(
                        "INSERT INTO linked_accounts (user_id, provider, provider_subject, provider_email, created_at) "
                        "VALUES (:user_id, :provider, :subject, :email, :created_at)"
                    ),
                    params,
                )
            else:
                self.conn.execute(
                    text(
                        "UPDATE linked_accounts SET provider_subject = :subject, provider_email = :email "
                        "WHERE user_id = :user_id AND provider = :provider"
                    ),
                    params,
                )
            self.conn.commit()
        except IntegrityError:
            self.conn.rollback()
            return None
        return self.get(account.user_id, account.provider)

    def delete_keeping_login_method(self, user_id: int, provider: str) -> bool:
        _lock_user(self.conn, user_id)
        self.conn.execute(
            text("DELETE FROM linked_accounts WHERE user_id = :user_id AND provider = :provider"),
            {"user_id": user_id, "provider": provider},
        )
        if _count_login_methods(self.conn, user_id) == 0:
            self.conn.rollback()
            return False
        self.conn.commit()
        return True


def _load_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


def _dump_json(value) -> str | None:
    return json.dumps(value) if value is not None else None


class SQLAlchemyAuditLogRepository(AuditLogRepository):
    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_to_audit_log(row: RowMapping) -> AuditLog:
        return AuditLog(
            id=row["id"],
            uuid=row["uuid"],
            event_type=row["event_type"],
            actor_id=row["actor_id"],
            actor_username=row["actor_username"],
            source=row["source"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            entity_uuid=row["entity_uuid"],
            previous_state=_load_json(row["previous_state"]),
            new_state=_load_json(row["new_state"]),
            metadata=_load_json(row["metadata"]) or {},
            created_at=row["created_at"],
        )

    def _select(self, where: str, params: dict, limit: int) -> list[AuditLog]:
        rows = (
            self.conn.execute(
                text(f"SELECT * FROM audit_logs {where} ORDER BY created_at DESC, id DESC LIMIT :limit"),
                {**params, "limit": limit},
            )
            .mappings()
            .fetchall()
        )
        return [self._row_to_audit_log(row) for row in rows]

    def create(self, audit_log: AuditLog) -> AuditLog:
        params = audit_log.model_dump(exclude={"id", "created_at"})
        params.update(
            uuid=str(ULID()),
            previous_state=_dump_json(audit_log.previous_state),
            new_state=_dump_json(audit_log.new_state),
            metadata=json.dumps(audit_log.metadata),
            created_at=_now(),
        )
        columns = ", ".join(params)
        placeholders = ", ".join(f":{name}" for name in params)
        self.conn.execute(text(f"INSERT INTO audit_logs ({columns}) VALUES ({placeholders})"), params)
        self.conn.commit()

        row = (
            self.conn.execute(text("SELECT * FROM audit_logs WHERE uuid = :uuid"), {"uuid": params["uuid"]})
            .mappings()
            .fetchone()
        )
        if row is None:
            raise RuntimeError(f"Failed to retrieve audit log after create (uuid={params['uuid']})")
        return self._row_to_audit_log(row)

    def list_for_user(self, user_id: int, limit: int = 50) -> list[AuditLog]:
        # events the user caused plus events done to the account by someone else
        return self._select(
            "WHERE actor_id = :user_id OR (entity_type = 'user' AND entity_id = :user_id)",
            {"user_id": user_id},
            limit,
        )

    def list_recent(self, limit: int = 50, event_type: str | None = None) -> list[AuditLog]:
        if event_type:
            return self._select("WHERE event_type = :event_type", {"event_type": event_type}, limit)
        return self._select("", {}, limit)
