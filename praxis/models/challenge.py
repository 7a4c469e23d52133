from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class ChallengePurpose(str, Enum):
    PASSKEY_REGISTRATION = "passkey_registration"
    PASSKEY_AUTHENTICATION = "passkey_authentication"
    TOTP_SETUP = "totp_setup"
    ACCOUNT_LINK = "account_link"


class Challenge(BaseModel):
    id: int | None = None
    uuid: str = ""
    purpose: ChallengePurpose
    nonce: str = ""
    user_id: int | None = None
    provider: str | None = None
    expires_at: datetime
    consumed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
