"""Serializers that convert models to dicts suitable for audit log state fields.

Secret material (password hashes, token hashes, TOTP secrets, public keys)
is never included. Datetime fields are converted to ISO 8601 strings for JSON
compatibility.
"""

from __future__ import annotations

from datetime import datetime

from praxis.models.audit_log import AuditLog
from praxis.models.linked_account import LinkedAccount
from praxis.models.mfa import UserPasskey
from praxis.models.session import Session
from praxis.models.user import User


def _dt(val: datetime | None) -> str | None:
    """Convert datetime to ISO string, or None."""
    if val is None:
        return None
    return val.isoformat()


def serialize_user(user: User) -> dict:
    """Serialize a User for audit state. Excludes password_hash."""
    return {
        "id": user.id,
        "uuid": user.uuid,
        "username": user.username,
        "email": user.email,
        "email_verified": user.email_verified,
        "role": user.role,
        "has_password": user.has_password,
        "created_at": _dt(user.created_at),
    }


def serialize_passkey(passkey: UserPasskey) -> dict:
    return {
        "uuid": passkey.uuid,
        "name": passkey.name,
        "sign_count": passkey.sign_count,
        "created_at": _dt(passkey.created_at),
        "last_used_at": _dt(passkey.last_used_at),
    }


def serialize_session(session: Session) -> dict:
    return {
        "uuid": session.uuid,
        "user_agent": session.user_agent,
        "ip_address": session.ip_address,
        "created_at": _dt(session.created_at),
        "revoked_at": _dt(session.revoked_at),
    }


def serialize_linked_account(account: LinkedAccount) -> dict:
    return {
        "provider": account.provider,
        "provider_subject": account.provider_subject,
        "provider_email": account.provider_email,
        "created_at": _dt(account.created_at),
    }


def serialize_activity(entry: AuditLog, user_id: int) -> dict:
    """Serialize an audit entry for the account's own activity feed.

    State snapshots are left out; only the event, its origin and metadata are shown.
    """
    return {
        "uuid": entry.uuid,
        "event": entry.event_type,
        "source": entry.source,
        "by_self": entry.actor_id == user_id,
        "metadata": entry.metadata,
        "created_at": _dt(entry.created_at),
    }


def serialize_audit_entry(entry: AuditLog) -> dict:
    """Serialize an audit entry for the admin listing, state snapshots included."""
    return {
        "uuid": entry.uuid,
        "event": entry.event_type,
        "actor_id": entry.actor_id,
        "actor_username": entry.actor_username,
        "source": entry.source,
        "entity_type": entry.entity_type,
        "entity_uuid": entry.entity_uuid,
        "previous_state": entry.previous_state,
        "new_state": entry.new_state,
        "metadata": entry.metadata,
        "created_at": _dt(entry.created_at),
    }
