from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class UserTOTP(BaseModel):
    id: int | None = None
    user_id: int = 0
    secret: str = ""
    enabled: bool = False
    last_used_step: int | None = None
    created_at: datetime | None = None
    enabled_at: datetime | None = None


class RecoveryCode(BaseModel):
    id: int | None = None
    user_id: int = 0
    code_hash: str = ""
    used_at: datetime | None = None
    created_at: datetime | None = None


class UserPasskey(BaseModel):
    id: int | None = None
    uuid: str = ""
    user_id: int = 0
    credential_id: str = ""
    public_key: str = ""
    sign_count: int = 0
    name: str = ""
    transports: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None


class TOTPSetup(BaseModel):
    """Returned once by setup; the secret is never served again after enable."""

    secret: str
    provisioning_uri: str
    qr_code_base64: str
    challenge_id: str
    expires_at: datetime


class TOTPStatus(BaseModel):
    enabled: bool = False
    recovery_codes_remaining: int = 0


class CeremonyOptions(BaseModel):
    """Challenge reference plus the WebAuthn options JSON handed to the browser."""

    challenge_id: str
    options: dict
