from __future__ import annotations

import logging
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from praxis.db import initialize_db
from praxis.errors import AuthError, CredentialNotFound, RateLimited, UnknownProvider
from praxis.logging import configure_logging, reconfigure
from praxis.settings import settings
from web.auth import router as auth_router
from web.deps import AuthMiddleware, DBConnectionMiddleware
from web.routes.accounts import router as accounts_router
from web.routes.admin import router as admin_router
from web.routes.security import router as security_router
from web.routes.sessions import router as sessions_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    initialize_db()
    # Re-apply logging config: Alembic's fileConfig may have overridden it
    reconfigure()
    logger.info("Application started")
    yield


app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
app.state.provider_gateway = None
app.state.email_verification_sink = None

# Outermost last: cookie session, then the per-request connection, then auth.
app.add_middleware(AuthMiddleware)
app.add_middleware(DBConnectionMiddleware)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.get_secret_key(),
    max_age=settings.session_lifetime_seconds,
    same_site="lax",
    https_only=settings.webauthn_origin.startswith("https://"),
)

app.include_router(auth_router)
app.include_router(security_router)
app.include_router(sessions_router)
app.include_router(accounts_router)
app.include_router(admin_router)


def error_status(exc: AuthError) -> int:
    if isinstance(exc, RateLimited):
        return 429
    if isinstance(exc, (UnknownProvider, CredentialNotFound)):
        return 404
    if exc.public:
        return 409
    return 401


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.info(
        "Request refused on %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
    )
    return JSONResponse({"error": exc.public_message}, status_code=error_status(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s:\n%s",
        request.method,
        request.url.path,
        traceback.format_exc(),
    )
    return JSONResponse({"error": "internal server error"}, status_code=500)


@app.get("/health")
async def health():
    return {"status": "ok"}
