from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from praxis.constants import utcnow
from praxis.models.session import DeviceDescriptor, IssuedSession, Session, SessionInfo
from praxis.repositories.base import PendingLoginRepository, SessionRepository
from praxis.settings import settings

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class SessionService:
    def __init__(
        self,
        repo: SessionRepository,
        pending_repo: PendingLoginRepository | None = None,
        lifetime_seconds: int | None = None,
        idle_seconds: int | None = None,
    ) -> None:
        self.repo = repo
        self.pending_repo = pending_repo
        self.lifetime_seconds = lifetime_seconds or settings.session_lifetime_seconds
        self.idle_seconds = idle_seconds or settings.session_idle_seconds

    def issue(self, user_id: int, device: DeviceDescriptor) -> IssuedSession:
        """Mint a session; only the SHA-256 of the returned token is stored."""
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = utcnow()
        session = self.repo.create(
            Session(
                user_id=user_id,
                token_hash=hash_token(token),
                user_agent=device.user_agent,
                ip_address=device.ip_address,
                created_at=now,
                expires_at=now + timedelta(seconds=self.lifetime_seconds),
            )
        )
        logger.info("Session issued: user=%s session=%s ip=%s", user_id, session.uuid, device.ip_address)
        return IssuedSession(session=session, token=token)

    def _is_active(self, session: Session, now: datetime) -> bool:
        if session.is_revoked:
            return False
        if session.expires_at is not None and now >= session.expires_at:
            return False
        if session.last_active_at is not None and now - session.last_active_at > timedelta(seconds=self.idle_seconds):
            return False
        return True

    def authenticate(self, token: str) -> Session | None:
        """Resolve a bearer token to its live session and refresh last-active."""
        if not token:
            return None
        session = self.repo.get_by_token_hash(hash_token(token))
        if session is None:
            return None
        now = utcnow()
        if not self._is_active(session, now):
            logger.debug("Session inactive: session=%s", session.uuid)
            return None
        if not self.repo.touch(session.id, now):
            # revoked between the read and the refresh
            return None
        return session.model_copy(update={"last_active_at": now})

    def list_sessions(self, user_id: int, current_session_id: str | None = None) -> list[SessionInfo]:
        now = utcnow()
        return [
            SessionInfo(
                id=s.uuid,
                user_agent=s.user_agent,
                ip_address=s.ip_address,
                created_at=s.created_at,
                last_active_at=s.last_active_at,
                expires_at=s.expires_at,
                is_current=s.uuid == current_session_id,
            )
            for s in self.repo.list_by_user(user_id)
            if self._is_active(s, now)
        ]

    def revoke(self, user_id: int, session_id: str) -> bool:
        """Revoke one of the user's sessions. Idempotent; unknown or foreign ids are a no-op."""
        session = self.repo.get_by_uuid(session_id)
        if session is None or session.user_id != user_id:
            logger.warning("Session revoke ignored: user=%s session=%s not owned", user_id, session_id)
            return False
        revoked = self.repo.revoke(session.id, utcnow())
        if revoked:
            logger.info("Session revoked: user=%s session=%s", user_id, session_id)
        return revoked

    def revoke_all_others(self, user_id: int, except_session_id: str) -> int:
        """Revoke every other session issued up to now, in one statement.

        Sessions minted after this call starts are left alone, and the
        caller's own session is excluded by id.
        """
        current = self.repo.get_by_uuid(except_session_id)
        if current is None or current.user_id != user_id:
            logger.warning("Revoke-others refused: user=%s session=%s not owned", user_id, except_session_id)
            return 0
        now = utcnow()
        count = self.repo.revoke_all_except(user_id, current.id, issued_before=now, now=now)
        logger.info("Revoked %d other sessions for user=%s", count, user_id)
        return count

    def revoke_all(self, user_id: int) -> int:
        count = self.repo.revoke_all_by_user(user_id, utcnow())
        logger.info("Revoked all %d sessions for user=%s", count, user_id)
        return count

    def sweep(self, now: datetime | None = None) -> dict[str, int]:
        """Delete revoked, expired and idle sessions plus expired pending logins."""
        now = now or utcnow()
        removed = {
            "sessions": self.repo.delete_stale(
                expired_before=now,
                idle_before=now - timedelta(seconds=self.idle_seconds),
            ),
            "pending_logins": 0,
        }
        if self.pending_repo is not None:
            removed["pending_logins"] = self.pending_repo.delete_expired(now)
        logger.info("Session sweep: %s", removed)
        return removed
