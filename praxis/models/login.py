from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class LoginState(str, Enum):
    AWAITING_PRIMARY = "awaiting_primary"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class LoginMethod(str, Enum):
    PASSWORD = "password"
    TOTP = "totp"
    RECOVERY_CODE = "recovery_code"
    PASSKEY = "passkey"
    PROVIDER = "provider"


class PendingLogin(BaseModel):
    id: int | None = None
    uuid: str = ""
    token_hash: str = ""
    user_id: int = 0
    user_agent: str = ""
    ip_address: str = ""
    attempts: int = 0
    expires_at: datetime
    consumed_at: datetime | None = None
    created_at: datetime | None = None


class LoginResult(BaseModel):
    """Outcome of one login step, tagged by the state it leaves the attempt in."""

    state: LoginState
    user_id: int
    method: LoginMethod
    session_token: str | None = None
    session_id: str | None = None
    pending_token: str | None = None
    pending_expires_at: datetime | None = None
    used_recovery_code: bool = False

    @property
    def requires_second_factor(self) -> bool:
        return self.state == LoginState.AWAITING_SECOND_FACTOR
