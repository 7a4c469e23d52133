from __future__ import annotations

import logging
from functools import lru_cache

import bcrypt

from praxis.models.user import User
from praxis.repositories.base import UserRepository
from praxis.settings import settings

logger = logging.getLogger(__name__)


def hash_secret(value: str) -> str:
    return bcrypt.hashpw(value.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def check_secret(value: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(value.encode(), hashed.encode())
    except ValueError:
        logger.warning("Stored hash is not a valid bcrypt hash")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_secret("praxis-timing-equalizer")


class CredentialService:
    """Password checks and the "at least one login method" bookkeeping."""

    def __init__(self, user_repo: UserRepository) -> None:
        self.user_repo = user_repo

    def find_user(self, identifier: str) -> User | None:
        """Look a user up by username, falling back to e-mail."""
        identifier = identifier.strip()
        if not identifier:
            return None
        user = self.user_repo.get_by_username(identifier)
        if user is None and "@" in identifier:
            user = self.user_repo.get_by_email(identifier.lower())
        return user

    def verify_password(self, user: User | None, password: str) -> bool:
        if user is None or not user.has_password:
            # burn a comparison so unknown users cost the same as wrong passwords
            check_secret(password, _dummy_hash())
            return False
        return check_secret(password, user.password_hash)

    def authenticate(self, identifier: str, password: str) -> User | None:
        user = self.find_user(identifier)
        if not self.verify_password(user, password):
            return None
        return user
