from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class DeviceDescriptor(BaseModel):
    user_agent: str = ""
    ip_address: str = ""


class Session(BaseModel):
    id: int | None = None
    uuid: str = ""
    user_id: int = 0
    token_hash: str = ""
    user_agent: str = ""
    ip_address: str = ""
    created_at: datetime | None = None
    last_active_at: datetime | None = None
    expires_at: datetime | None = None
    revoked_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


class IssuedSession(BaseModel):
    """A freshly minted session and its bearer token; the token is not stored."""

    session: Session
    token: str


class SessionInfo(BaseModel):
    id: str
    user_agent: str = ""
    ip_address: str = ""
    created_at: datetime | None = None
    last_active_at: datetime | None = None
    expires_at: datetime | None = None
    is_current: bool = False
