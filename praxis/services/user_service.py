from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from praxis.constants import ROLE_ADMIN, ROLE_USER, utcnow
from praxis.errors import InvalidCredentials, PasswordRejected, SignupRejected
from praxis.models.user import User
from praxis.repositories.base import UserRepository
from praxis.services.credential_service import CredentialService, hash_secret
from praxis.services.session_service import SessionService, hash_token
from praxis.settings import settings

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 64


class UserService:
    def __init__(
        self,
        repo: UserRepository,
        credential_service: CredentialService | None = None,
        session_service: SessionService | None = None,
    ) -> None:
        self.repo = repo
        self.credential_service = credential_service or CredentialService(repo)
        self.session_service = session_service

    @staticmethod
    def _check_password_policy(password: str) -> None:
        if len(password) < settings.password_min_length:
            raise PasswordRejected(f"password must be at least {settings.password_min_length} characters")

    def signup(self, username: str, password: str, email: str | None = None) -> User:
        username = username.strip()
        email = email.strip().lower() if email else None
        if not username or len(username) > USERNAME_MAX_LENGTH:
            raise SignupRejected("username is required")
        try:
            self._check_password_policy(password)
        except PasswordRejected as e:
            raise SignupRejected(str(e)) from e
        if self.repo.get_by_username(username) is not None:
            logger.warning("Signup rejected: username taken username=%s", username)
            raise SignupRejected("username already taken")
        if email and self.repo.get_by_email(email) is not None:
            logger.warning("Signup rejected: e-mail taken username=%s", username)
            raise SignupRejected("e-mail already registered")

        user = self.repo.create(User(username=username, email=email, password_hash=hash_secret(password)))
        logger.info("User registered: %s", username)
        return user

    def create_user(self, username: str, password: str, role: str = ROLE_USER) -> User:
        user = self.repo.create(User(username=username, role=role, password_hash=hash_secret(password)))
        logger.info("User created: %s role=%s", username, role)
        return user

    def get_by_id(self, user_id: int) -> User | None:
        return self.repo.get_by_id(user_id)

    def get_by_uuid(self, uuid: str) -> User | None:
        return self.repo.get_by_uuid(uuid)

    def get_by_username(self, username: str) -> User | None:
        return self.repo.get_by_username(username)

    def authenticate(self, identifier: str, password: str) -> User | None:
        return self.credential_service.authenticate(identifier, password)

    def list_users(self) -> list[User]:
        return self.repo.list_all()

    # --- Passwords ---

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        keep_session_id: str | None = None,
    ) -> int:
        """Replace the password and revoke every other session.

        Returns the number of sessions revoked.
        """
        user = self.repo.get_by_id(user_id)
        if not self.credential_service.verify_password(user, current_password):
            logger.warning("Change password rejected: bad current password user=%s", user_id)
            raise InvalidCredentials()
        self._check_password_policy(new_password)
        self.repo.update_password_hash(user_id, hash_secret(new_password))
        logger.info("Password changed for user=%s", user_id)
        return self._revoke_after_password_change(user_id, keep_session_id)

    def set_password(self, user_id: int, new_password: str) -> None:
        """Give a password to an account created through a provider."""
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise InvalidCredentials()
        if user.has_password:
            raise PasswordRejected("a password is already set; change it instead")
        self._check_password_policy(new_password)
        self.repo.update_password_hash(user_id, hash_secret(new_password))
        logger.info("Password set for user=%s", user_id)

    def reset_password(self, username: str, new_password: str) -> None:
        """Administrative reset from the CLI or the admin API; revokes every session."""
        user = self.repo.get_by_username(username)
        if user is None:
            raise ValueError(f"User '{username}' not found")
        self._check_password_policy(new_password)
        self.repo.update_password_hash(user.id, hash_secret(new_password))
        logger.info("Password reset for user=%s", username)
        self._revoke_after_password_change(user.id, None)

    def _revoke_after_password_change(self, user_id: int, keep_session_id: str | None) -> int:
        if self.session_service is None:
            return 0
        if keep_session_id:
            return self.session_service.revoke_all_others(user_id, keep_session_id)
        return self.session_service.revoke_all(user_id)

    # --- E-mail verification ---

    def start_email_verification(self, user_id: int) -> str:
        """Issue a verification token for the user's e-mail; delivery is up to the caller."""
        user = self.repo.get_by_id(user_id)
        if user is None or not user.email:
            raise InvalidCredentials()
        token = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(seconds=settings.email_verification_ttl_seconds)
        self.repo.set_email_verification(user_id, hash_token(token), expires_at)
        logger.info("E-mail verification issued for user=%s", user_id)
        return token

    def verify_email(self, token: str) -> User:
        user = self.repo.get_by_email_verification_hash(hash_token(token or ""))
        if user is None:
            raise InvalidCredentials()
        if user.email_verification_expires_at is None or utcnow() >= user.email_verification_expires_at:
            logger.warning("E-mail verification rejected: token expired user=%s", user.id)
            raise InvalidCredentials()
        self.repo.mark_email_verified(user.id)
        logger.info("E-mail verified for user=%s", user.id)
        return user.model_copy(update={"email_verified": True, "email_verification_hash": None})

    # --- Administration ---

    def promote_admin(self, user_id: int) -> User:
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise ValueError(f"User {user_id} not found")
        self.repo.update_role(user_id, ROLE_ADMIN)
        logger.info("User promoted to admin: %s", user.username)
        return user.model_copy(update={"role": ROLE_ADMIN})

    def delete_user(self, user_id: int) -> User:
        """Revoke every session, then delete the user and (by cascade) its credentials."""
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise ValueError(f"User {user_id} not found")
        if self.session_service is not None:
            self.session_service.revoke_all(user_id)
        self.repo.delete(user_id)
        logger.info("User deleted: %s", user.username)
        return user
