from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from praxis.constants import ROLE_ADMIN, ROLE_USER


class User(BaseModel):
    id: int | None = None
    uuid: str = ""
    username: str
    email: str | None = None
    email_verified: bool = False
    role: str = ROLE_USER
    password_hash: str | None = None
    email_verification_hash: str | None = None
    email_verification_expires_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
