from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from praxis.errors import AuthError, CeremonyVerificationFailed, RateLimited
from praxis.models.audit_log import AuditEventType
from praxis.models.linked_account import LinkedAccount
from praxis.models.login import LoginMethod, LoginResult, LoginState
from praxis.providers import redirect_uri
from praxis.services.audit_serializers import serialize_linked_account, serialize_user
from praxis.settings import settings
from web.deps import (
    SESSION_TOKEN_KEY,
    current_session,
    current_user,
    device_from_request,
    get_account_link_service,
    get_audit_service,
    get_login_service,
    get_passkey_service,
    get_provider_gateway,
    get_session_service,
    get_user_service,
)
from web.schemas import (
    EmailVerifyRequest,
    LoginRequest,
    PasskeyAuthStartRequest,
    PasskeyFinishRequest,
    SecondFactorRequest,
    SignupRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

# Simple in-memory rate limiter for password attempts, per client address
_login_attempts: dict[str, list[float]] = {}


def _recent_attempts(ip: str) -> list[float]:
    now = time.monotonic()
    attempts = [t for t in _login_attempts.get(ip, []) if now - t < settings.login_lockout_seconds]
    _login_attempts[ip] = attempts
    return attempts


def _is_rate_limited(ip: str) -> bool:
    """Check if an IP is rate-limited. Returns True if locked out."""
    return len(_recent_attempts(ip)) >= settings.login_max_attempts


def _record_failed_attempt(ip: str) -> None:
    _recent_attempts(ip).append(time.monotonic())


def _clear_attempts(ip: str) -> None:
    _login_attempts.pop(ip, None)


def _establish(request: Request, result: LoginResult) -> JSONResponse:
    """Bind a freshly issued session to the caller's cookie."""
    request.session.clear()
    request.session[SESSION_TOKEN_KEY] = result.session_token
    return JSONResponse(
        {
            "requires_second_factor": False,
            "session_id": result.session_id,
            "method": result.method.value,
            "used_recovery_code": result.used_recovery_code,
        }
    )


def _audit_login(request: Request, result: LoginResult, mfa: bool = False) -> None:
    get_audit_service(request).security_event(
        AuditEventType.USER_LOGIN,
        result.user_id,
        metadata={
            "ip": device_from_request(request).ip_address,
            "method": result.method.value,
            "mfa": mfa,
            "session": result.session_id,
        },
    )


@router.post("/signup")
async def signup(request: Request, body: SignupRequest):
    user = get_user_service(request).signup(body.username, body.password, body.email)
    issued = get_session_service(request).issue(user.id, device_from_request(request))
    result = LoginResult(
        state=LoginState.AUTHENTICATED,
        user_id=user.id,
        method=LoginMethod.PASSWORD,
        session_token=issued.token,
        session_id=issued.session.uuid,
    )

    get_audit_service(request).safe_log(
        AuditEventType.USER_SIGNUP,
        actor_id=user.id,
        actor_username=user.username,
        source="web",
        entity_type="user",
        entity_id=user.id,
        new_state=serialize_user(user),
    )
    logger.info("User %s signed up", user.username)
    response = _establish(request, result)
    response.status_code = 201
    return response


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    device = device_from_request(request)
    client_ip = device.ip_address

    if _is_rate_limited(client_ip):
        logger.warning("Rate-limited login attempt from %s", client_ip)
        raise RateLimited()

    try:
        result = get_login_service(request).submit_primary(body.identifier, body.password, device)
    except AuthError:
        _record_failed_attempt(client_ip)
        get_audit_service(request).safe_log(
            AuditEventType.USER_LOGIN_FAILED,
            source="web",
            entity_type="user",
            new_state={"identifier": body.identifier},
            metadata={"ip": client_ip},
        )
        raise

    _clear_attempts(client_ip)
    if result.requires_second_factor:
        get_audit_service(request).security_event(
            AuditEventType.MFA_CHALLENGE_ISSUED, result.user_id, metadata={"ip": client_ip}
        )
        return JSONResponse(
            {
                "requires_second_factor": True,
                "pending_token": result.pending_token,
                "expires_at": result.pending_expires_at.isoformat() if result.pending_expires_at else None,
            }
        )

    _audit_login(request, result)
    return _establish(request, result)


@router.post("/login/second-factor")
async def second_factor(request: Request, body: SecondFactorRequest):
    audit = get_audit_service(request)
    client_ip = device_from_request(request).ip_address
    try:
        result = get_login_service(request).submit_second_factor(body.pending_token, body.code)
    except AuthError as e:
        audit.safe_log(
            AuditEventType.MFA_VERIFY_FAILED,
            source="web",
            entity_type="user",
            metadata={"ip": client_ip, "reason": type(e).__name__},
        )
        raise

    audit.security_event(AuditEventType.MFA_VERIFY_SUCCESS, result.user_id, metadata={"method": result.method.value})
    if result.used_recovery_code:
        audit.security_event(AuditEventType.MFA_RECOVERY_USED, result.user_id, metadata={"ip": client_ip})
    _audit_login(request, result, mfa=True)
    return _establish(request, result)


@router.post("/logout")
async def logout(request: Request):
    session = current_session(request)
    user = current_user(request)
    if session is not None and user is not None:
        get_session_service(request).revoke(user.id, session.uuid)
        get_audit_service(request).security_event(
            AuditEventType.USER_LOGOUT, user.id, username=user.username, metadata={"session": session.uuid}
        )
        logger.info("User %s logged out", user.username)
    request.session.clear()
    return JSONResponse({"status": "ok"})


@router.post("/verify-email")
async def verify_email(request: Request, body: EmailVerifyRequest):
    user = get_user_service(request).verify_email(body.token)
    get_audit_service(request).security_event(AuditEventType.USER_VERIFY_EMAIL, user.id, username=user.username)
    return JSONResponse({"status": "ok", "email": user.email})


# --- Passkey authentication ---


@router.post("/passkeys/authenticate/start")
async def passkey_authenticate_start(request: Request, body: PasskeyAuthStartRequest | None = None):
    identifier = body.identifier if body is not None else None
    ceremony = get_passkey_service(request).start_authentication(identifier)
    return JSONResponse(ceremony.model_dump())


@router.post("/passkeys/authenticate/finish")
async def passkey_authenticate_finish(request: Request, body: PasskeyFinishRequest):
    device = device_from_request(request)
    audit = get_audit_service(request)
    try:
        result = get_login_service(request).login_with_passkey(body.challenge_id, body.credential, device)
    except AuthError as e:
        audit.safe_log(
            AuditEventType.MFA_PASSKEY_FAILED,
            source="web",
            entity_type="user",
            metadata={"ip": device.ip_address, "reason": type(e).__name__},
        )
        raise

    audit.security_event(AuditEventType.MFA_PASSKEY_USED, result.user_id, metadata={"ip": device.ip_address})
    _audit_login(request, result)
    return _establish(request, result)


# --- Provider redirect delegation ---


@router.get("/providers/{provider}/start")
async def provider_login_start(request: Request, provider: str):
    start = get_account_link_service(request).start_link(None, provider)
    logger.info("Provider login started: provider=%s", provider)
    return RedirectResponse(start.authorization_url, status_code=302)


@router.get("/providers/{provider}/callback")
async def provider_callback(request: Request, provider: str, code: str = "", state: str = ""):
    gateway = get_provider_gateway(request)
    if gateway is None:
        logger.error("Provider callback received but no provider gateway is configured")
        return JSONResponse({"error": "provider login unavailable"}, status_code=503)

    link_service = get_account_link_service(request)
    challenge = link_service.consume_state(state, provider)
    try:
        identity = gateway.exchange_code(provider, code, redirect_uri(provider))
    except Exception as e:
        logger.warning("Provider code exchange failed: provider=%s %s", provider, e)
        raise CeremonyVerificationFailed() from e

    user = current_user(request)
    outcome = link_service.complete_link(
        challenge,
        identity,
        device_from_request(request),
        user_id=user.id if user is not None else None,
    )
    if isinstance(outcome, LinkedAccount):
        get_audit_service(request).safe_log(
            AuditEventType.ACCOUNT_LINK,
            actor_id=outcome.user_id,
            actor_username=user.username if user is not None else "",
            source="web",
            entity_type="user",
            entity_id=outcome.user_id,
            new_state=serialize_linked_account(outcome),
        )
        return JSONResponse({"status": "linked", "provider": outcome.provider})

    _audit_login(request, outcome)
    return _establish(request, outcome)
