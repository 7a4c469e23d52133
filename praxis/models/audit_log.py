from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditEventType:
    """String constants for all audit event types."""

    # User events
    USER_SIGNUP = "user.signup"
    USER_CREATE = "user.create"
    USER_LOGIN = "user.login"
    USER_LOGIN_FAILED = "user.login_failed"
    USER_LOGOUT = "user.logout"
    USER_CHANGE_PASSWORD = "user.change_password"
    USER_SET_PASSWORD = "user.set_password"
    USER_VERIFY_EMAIL = "user.verify_email"
    USER_PROMOTE_ADMIN = "user.promote_admin"
    USER_DELETE = "user.delete"

    # MFA events
    MFA_TOTP_SETUP = "mfa.totp_setup"
    MFA_TOTP_ENABLED = "mfa.totp_enabled"
    MFA_TOTP_DISABLED = "mfa.totp_disabled"
    MFA_CHALLENGE_ISSUED = "mfa.challenge_issued"
    MFA_VERIFY_SUCCESS = "mfa.verify_success"
    MFA_VERIFY_FAILED = "mfa.verify_failed"
    MFA_RECOVERY_USED = "mfa.recovery_used"
    MFA_RECOVERY_REGENERATED = "mfa.recovery_regenerated"
    MFA_PASSKEY_REGISTERED = "mfa.passkey_registered"
    MFA_PASSKEY_DELETED = "mfa.passkey_deleted"
    MFA_PASSKEY_USED = "mfa.passkey_used"
    MFA_PASSKEY_FAILED = "mfa.passkey_failed"

    # Session events
    SESSION_REVOKE = "session.revoke"
    SESSION_REVOKE_OTHERS = "session.revoke_others"

    # Linked account events
    ACCOUNT_LINK = "account.link"
    ACCOUNT_UNLINK = "account.unlink"


class AuditLog(BaseModel):
    id: int | None = None
    uuid: str = ""
    event_type: str
    actor_id: int | None = None
    actor_username: str = ""
    source: str = ""  # 'web' or 'cli'
    entity_type: str = ""
    entity_id: int | None = None
    entity_uuid: str = ""
    previous_state: dict | None = None  # JSON (None for creates)
    new_state: dict | None = None  # JSON (None for deletes)
    metadata: dict = {}
    created_at: datetime | None = None
