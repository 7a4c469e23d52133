from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from praxis.models.audit_log import AuditEventType
from praxis.services.audit_serializers import serialize_activity, serialize_passkey
from web.deps import (
    current_session,
    current_user,
    get_audit_service,
    get_passkey_service,
    get_totp_service,
    get_user_service,
)
from web.schemas import (
    CodeRequest,
    PasskeyFinishRequest,
    PasskeyRegisterStartRequest,
    PasskeyRenameRequest,
    PasswordChangeRequest,
    TOTPEnableRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/security")


@router.post("/password")
async def change_password(request: Request, body: PasswordChangeRequest):
    """Change the password, or set one on an account that has none.

    Changing revokes every other session of the account.
    """
    user = current_user(request)
    user_service = get_user_service(request)

    if not user.has_password:
        user_service.set_password(user.id, body.new_password)
        get_audit_service(request).security_event(AuditEventType.USER_SET_PASSWORD, user.id, username=user.username)
        return JSONResponse({"status": "ok", "revoked_sessions": 0})

    revoked = user_service.change_password(
        user.id,
        body.current_password or "",
        body.new_password,
        keep_session_id=current_session(request).uuid,
    )
    get_audit_service(request).security_event(
        AuditEventType.USER_CHANGE_PASSWORD,
        user.id,
        username=user.username,
        metadata={"revoked_sessions": revoked},
    )
    return JSONResponse({"status": "ok", "revoked_sessions": revoked})


# --- TOTP ---


@router.get("/totp")
async def totp_status(request: Request):
    status = get_totp_service(request).status(current_user(request).id)
    return JSONResponse(status.model_dump())


@router.post("/totp/setup")
async def totp_setup(request: Request):
    user = current_user(request)
    setup = get_totp_service(request).setup(user.id, user.email or user.username)
    get_audit_service(request).security_event(AuditEventType.MFA_TOTP_SETUP, user.id, username=user.username)
    return JSONResponse(setup.model_dump(mode="json"))


@router.post("/totp/enable")
async def totp_enable(request: Request, body: TOTPEnableRequest):
    user = current_user(request)
    codes = get_totp_service(request).enable(user.id, body.challenge_id, body.code)
    get_audit_service(request).security_event(AuditEventType.MFA_TOTP_ENABLED, user.id, username=user.username)
    return JSONResponse({"enabled": True, "recovery_codes": codes})


@router.post("/totp/disable")
async def totp_disable(request: Request, body: CodeRequest):
    user = current_user(request)
    get_totp_service(request).disable(user.id, body.code)
    get_audit_service(request).security_event(AuditEventType.MFA_TOTP_DISABLED, user.id, username=user.username)
    return JSONResponse({"enabled": False})


@router.post("/recovery-codes/regenerate")
async def regenerate_recovery_codes(request: Request, body: CodeRequest):
    user = current_user(request)
    codes = get_totp_service(request).regenerate_recovery_codes(user.id, body.code)
    get_audit_service(request).security_event(
        AuditEventType.MFA_RECOVERY_REGENERATED, user.id, username=user.username
    )
    return JSONResponse({"recovery_codes": codes})


# --- Passkeys ---


@router.get("/passkeys")
async def list_passkeys(request: Request):
    passkeys = get_passkey_service(request).list_passkeys(current_user(request).id)
    return JSONResponse({"passkeys": [serialize_passkey(pk) for pk in passkeys]})


@router.post("/passkeys/register/start")
async def passkey_register_start(request: Request, body: PasskeyRegisterStartRequest | None = None):
    password = body.password if body is not None else None
    ceremony = get_passkey_service(request).start_registration(current_user(request).id, password)
    return JSONResponse(ceremony.model_dump())


@router.post("/passkeys/register/finish")
async def passkey_register_finish(request: Request, body: PasskeyFinishRequest):
    user = current_user(request)
    passkey = get_passkey_service(request).finish_registration(user.id, body.challenge_id, body.credential, body.name)
    get_audit_service(request).security_event(
        AuditEventType.MFA_PASSKEY_REGISTERED,
        user.id,
        username=user.username,
        metadata={"passkey_uuid": passkey.uuid, "passkey_name": passkey.name},
    )
    return JSONResponse(serialize_passkey(passkey), status_code=201)


@router.patch("/passkeys/{passkey_uuid}")
async def passkey_rename(request: Request, passkey_uuid: str, body: PasskeyRenameRequest):
    passkey = get_passkey_service(request).rename_passkey(current_user(request).id, passkey_uuid, body.name)
    return JSONResponse(serialize_passkey(passkey))


@router.delete("/passkeys/{passkey_uuid}")
async def passkey_delete(request: Request, passkey_uuid: str):
    user = current_user(request)
    passkey = get_passkey_service(request).delete_passkey(user.id, passkey_uuid)
    get_audit_service(request).security_event(
        AuditEventType.MFA_PASSKEY_DELETED,
        user.id,
        username=user.username,
        metadata={"passkey_uuid": passkey.uuid},
    )
    return JSONResponse({"status": "ok"})


# --- Activity ---


@router.get("/activity")
async def activity(request: Request):
    """Recent security events on the caller's account, newest first."""
    user = current_user(request)
    entries = get_audit_service(request).activity(user.id)
    return JSONResponse({"events": [serialize_activity(entry, user.id) for entry in entries]})
