from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LinkedAccount(BaseModel):
    id: int | None = None
    user_id: int = 0
    provider: str
    provider_subject: str
    provider_email: str | None = None
    created_at: datetime | None = None


class ProviderIdentity(BaseModel):
    """What a provider hands back after the redirect: its subject id and e-mail."""

    subject: str
    email: str | None = None
    name: str | None = None


class LinkStart(BaseModel):
    state: str
    authorization_url: str
