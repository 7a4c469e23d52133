from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from praxis.models.audit_log import AuditEventType
from praxis.models.user import User
from praxis.services.audit_serializers import serialize_audit_entry, serialize_user
from web.deps import current_user, get_audit_service, get_user_service
from web.schemas import AdminPasswordResetRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")

AUDIT_PAGE_MAX = 200


def _require_admin(request: Request) -> User | None:
    actor = current_user(request)
    if not actor.is_admin:
        logger.warning("Admin route refused: user=%s is not an admin", actor.id)
        return None
    return actor


def _forbidden() -> JSONResponse:
    return JSONResponse({"error": "forbidden"}, status_code=403)


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "not found"}, status_code=404)


@router.get("/users")
async def list_users(request: Request):
    if _require_admin(request) is None:
        return _forbidden()
    users = get_user_service(request).list_users()
    return JSONResponse({"users": [serialize_user(u) for u in users]})


@router.post("/users/{user_uuid}/reset-password")
async def reset_password(request: Request, user_uuid: str, body: AdminPasswordResetRequest):
    """Set a new password for any user; every session of theirs is revoked."""
    actor = _require_admin(request)
    if actor is None:
        return _forbidden()

    user_service = get_user_service(request)
    target = user_service.get_by_uuid(user_uuid)
    if target is None:
        return _not_found()

    user_service.reset_password(target.username, body.new_password)
    get_audit_service(request).safe_log(
        AuditEventType.USER_CHANGE_PASSWORD,
        actor_id=actor.id,
        actor_username=actor.username,
        source="web",
        entity_type="user",
        entity_id=target.id,
        entity_uuid=target.uuid,
        metadata={"username": target.username, "reset_by_admin": True},
    )
    return JSONResponse({"status": "ok"})


@router.delete("/users/{user_uuid}")
async def delete_user(request: Request, user_uuid: str):
    actor = _require_admin(request)
    if actor is None:
        return _forbidden()

    user_service = get_user_service(request)
    target = user_service.get_by_uuid(user_uuid)
    if target is None:
        return _not_found()

    user_service.delete_user(target.id)
    get_audit_service(request).safe_log(
        AuditEventType.USER_DELETE,
        actor_id=actor.id,
        actor_username=actor.username,
        source="web",
        entity_type="user",
        entity_id=target.id,
        entity_uuid=target.uuid,
        previous_state=serialize_user(target),
    )
    return JSONResponse({"status": "ok"})


@router.get("/audit")
async def audit_log(request: Request, event_type: str | None = None, limit: int = 50):
    if _require_admin(request) is None:
        return _forbidden()
    limit = max(1, min(limit, AUDIT_PAGE_MAX))
    entries = get_audit_service(request).list_recent(limit, event_type)
    return JSONResponse({"events": [serialize_audit_entry(e) for e in entries]})
