from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from praxis.models.audit_log import AuditEventType
from praxis.services.audit_serializers import serialize_linked_account
from web.deps import current_session, current_user, get_account_link_service, get_audit_service, get_user_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me")
async def me(request: Request):
    user = current_user(request)
    return JSONResponse(
        {
            "uuid": user.uuid,
            "username": user.username,
            "email": user.email,
            "email_verified": user.email_verified,
            "role": user.role,
            "has_password": user.has_password,
            "session_id": current_session(request).uuid,
        }
    )


@router.post("/me/email-verification")
async def start_email_verification(request: Request):
    user = current_user(request)
    token = get_user_service(request).start_email_verification(user.id)
    # the token goes to the mailer, never back to the client
    sink = getattr(request.app.state, "email_verification_sink", None)
    if sink is None:
        logger.warning("No e-mail verification sink configured; token for user=%s dropped", user.id)
    else:
        sink(user, token)
    return JSONResponse({"status": "sent"}, status_code=202)


@router.get("/linked-accounts")
async def list_linked_accounts(request: Request):
    accounts = get_account_link_service(request).list_accounts(current_user(request).id)
    return JSONResponse({"linked_accounts": [serialize_linked_account(a) for a in accounts]})


@router.post("/linked-accounts/{provider}/start")
async def start_link(request: Request, provider: str):
    start = get_account_link_service(request).start_link(current_user(request).id, provider)
    logger.info("Account link started: user=%s provider=%s", current_user(request).id, provider)
    return JSONResponse({"authorization_url": start.authorization_url})


@router.delete("/linked-accounts/{provider}")
async def unlink(request: Request, provider: str):
    user = current_user(request)
    account = get_account_link_service(request).unlink(user.id, provider)
    get_audit_service(request).safe_log(
        AuditEventType.ACCOUNT_UNLINK,
        actor_id=user.id,
        actor_username=user.username,
        source="web",
        entity_type="user",
        entity_id=user.id,
        previous_state=serialize_linked_account(account),
    )
    return JSONResponse({"status": "ok"})
