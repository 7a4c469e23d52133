from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from praxis.models.audit_log import AuditEventType
from web.deps import SESSION_TOKEN_KEY, current_session, current_user, get_audit_service, get_session_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions")


@router.get("")
async def list_sessions(request: Request):
    sessions = get_session_service(request).list_sessions(current_user(request).id, current_session(request).uuid)
    return JSONResponse({"sessions": [s.model_dump(mode="json") for s in sessions]})


@router.delete("/{session_id}")
async def revoke_session(request: Request, session_id: str):
    user = current_user(request)
    revoked = get_session_service(request).revoke(user.id, session_id)
    if revoked:
        get_audit_service(request).security_event(
            AuditEventType.SESSION_REVOKE, user.id, username=user.username, metadata={"session": session_id}
        )
    if session_id == current_session(request).uuid:
        request.session.pop(SESSION_TOKEN_KEY, None)
    return JSONResponse({"revoked": revoked})


@router.post("/revoke-others")
async def revoke_other_sessions(request: Request):
    user = current_user(request)
    count = get_session_service(request).revoke_all_others(user.id, current_session(request).uuid)
    get_audit_service(request).security_event(
        AuditEventType.SESSION_REVOKE_OTHERS, user.id, username=user.username, metadata={"revoked": count}
    )
    return JSONResponse({"revoked": count})
