from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from praxis.db import get_engine
from praxis.errors import GENERIC_FAILURE
from praxis.models.session import DeviceDescriptor, Session
from praxis.models.user import User
from praxis.providers import ProviderGateway
from praxis.repositories.sqlalchemy import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyChallengeRepository,
    SQLAlchemyLinkedAccountRepository,
    SQLAlchemyMFATOTPRepository,
    SQLAlchemyPasskeyRepository,
    SQLAlchemyPendingLoginRepository,
    SQLAlchemyRecoveryCodeRepository,
    SQLAlchemySessionRepository,
    SQLAlchemyUserRepository,
)
from praxis.services.account_link_service import AccountLinkService
from praxis.services.audit_service import AuditService
from praxis.services.challenge_service import ChallengeService
from praxis.services.credential_service import CredentialService
from praxis.services.login_service import LoginService
from praxis.services.passkey_service import PasskeyService
from praxis.services.session_service import SessionService
from praxis.services.totp_service import TOTPService
from praxis.services.user_service import UserService

logger = logging.getLogger(__name__)

PUBLIC_PREFIX_PATHS = {"/auth/"}
PUBLIC_EXACT_PATHS = {"/", "/health"}

SESSION_TOKEN_KEY = "session_token"
USER_AGENT_MAX_LENGTH = 255


def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return ""


class AuthMiddleware:
    """Pure ASGI middleware resolving the caller's session.

    The bearer token comes from an ``Authorization: Bearer`` header or the
    signed session cookie. Protected paths answer 401 without one.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        request.state.auth_session = None
        request.state.user = None

        token = _bearer_token(request) or request.session.get(SESSION_TOKEN_KEY, "")
        if token:
            session = get_session_service(request).authenticate(token)
            if session is not None:
                request.state.auth_session = session
                request.state.user = get_user_service(request).get_by_id(session.user_id)
            elif request.session.get(SESSION_TOKEN_KEY):
                request.session.pop(SESSION_TOKEN_KEY, None)

        path = request.url.path
        if path in PUBLIC_EXACT_PATHS or any(path.startswith(p) for p in PUBLIC_PREFIX_PATHS):
            await self.app(scope, receive, send)
            return
        if request.state.user is None:
            logger.info("Auth rejected: %s %s - no live session", request.method, path)
            response = JSONResponse({"error": GENERIC_FAILURE}, status_code=401)
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


class DBConnectionMiddleware:
    """Pure ASGI middleware: creates a single DB connection per request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request.state.db_conn = None
        try:
            await self.app(scope, receive, send)
        finally:
            conn = getattr(request.state, "db_conn", None)
            if conn is not None:
                conn.close()
                logger.debug("DB connection closed for %s %s", request.method, request.url.path)


def _get_conn(request: Request):
    """Lazy per-request connection: created on first use, closed by middleware."""
    if request.state.db_conn is None:
        logger.debug("Creating DB connection for %s %s", request.method, request.url.path)
        request.state.db_conn = get_engine().connect()
    return request.state.db_conn


def current_user(request: Request) -> User:
    return request.state.user


def current_session(request: Request) -> Session:
    return request.state.auth_session


def device_from_request(request: Request) -> DeviceDescriptor:
    return DeviceDescriptor(
        user_agent=request.headers.get("user-agent", "")[:USER_AGENT_MAX_LENGTH],
        ip_address=request.client.host if request.client else "unknown",
    )


def get_provider_gateway(request: Request) -> ProviderGateway | None:
    return getattr(request.app.state, "provider_gateway", None)


def get_user_service(request: Request) -> UserService:
    conn = _get_conn(request)
    user_repo = SQLAlchemyUserRepository(conn)
    return UserService(user_repo, CredentialService(user_repo), get_session_service(request))


def get_session_service(request: Request) -> SessionService:
    conn = _get_conn(request)
    return SessionService(SQLAlchemySessionRepository(conn), SQLAlchemyPendingLoginRepository(conn))


def get_challenge_service(request: Request) -> ChallengeService:
    return ChallengeService(SQLAlchemyChallengeRepository(_get_conn(request)))


def get_totp_service(request: Request) -> TOTPService:
    conn = _get_conn(request)
    return TOTPService(
        SQLAlchemyMFATOTPRepository(conn),
        SQLAlchemyRecoveryCodeRepository(conn),
        ChallengeService(SQLAlchemyChallengeRepository(conn)),
    )


def get_passkey_service(request: Request) -> PasskeyService:
    conn = _get_conn(request)
    user_repo = SQLAlchemyUserRepository(conn)
    return PasskeyService(
        SQLAlchemyPasskeyRepository(conn),
        user_repo,
        get_challenge_service(request),
        CredentialService(user_repo),
    )


def get_login_service(request: Request) -> LoginService:
    conn = _get_conn(request)
    user_repo = SQLAlchemyUserRepository(conn)
    return LoginService(
        user_repo,
        SQLAlchemyPendingLoginRepository(conn),
        CredentialService(user_repo),
        get_totp_service(request),
        get_session_service(request),
        passkey_service=get_passkey_service(request),
        linked_repo=SQLAlchemyLinkedAccountRepository(conn),
    )


def get_account_link_service(request: Request) -> AccountLinkService:
    return AccountLinkService(
        SQLAlchemyLinkedAccountRepository(_get_conn(request)),
        get_challenge_service(request),
        login_service=get_login_service(request),
    )


def get_audit_service(request: Request) -> AuditService:
    return AuditService(SQLAlchemyAuditLogRepository(_get_conn(request)))
