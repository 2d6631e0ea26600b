"""Main FastAPI application for the DigiInsta storefront back-office auth."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from limits.aio.storage import Storage

from storefront.clock import Clock, utcnow
from storefront.config import (
    ADMIN_EMAILS,
    APP_VERSION,
    DB_PATH,
    REDIS_URL,
)
from storefront.db import Database
from storefront.errors import AuthError, RateLimited, StoreUnavailable
from storefront.middleware import SessionGuardMiddleware
from storefront.rate_limit import SlidingWindowLimiter, redis_storage
from storefront.routers import auth, contact, health, pages
from storefront.services.auth import SendCode
from storefront.services.email import send_otp_email

logger = logging.getLogger(__name__)


def create_app(
    *,
    db_path: str | None = None,
    rate_limit_storage: Storage | None = None,
    rate_limit_clock: Callable[[], float] | None = None,
    clock: Clock = utcnow,
    send_code: SendCode = send_otp_email,
    admin_emails: Iterable[str] = ADMIN_EMAILS,
) -> FastAPI:
    """
    Build the application. Store handles are opened in the lifespan and
    kept on ``app.state``; arguments exist so tests can swap them.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(db_path or DB_PATH)
        await db.connect()

        storage = rate_limit_storage
        if storage is None and REDIS_URL:
            storage = redis_storage(REDIS_URL)
        if storage is None:
            logger.warning("REDIS_URL not set: rate limiting disabled (fail open)")

        limiter_kwargs = {"clock": rate_limit_clock} if rate_limit_clock else {}
        app.state.db = db
        app.state.rate_limiter = SlidingWindowLimiter(storage, **limiter_kwargs)
        app.state.clock = clock
        app.state.send_code = send_code
        app.state.admin_emails = frozenset(admin_emails)
        try:
            yield
        finally:
            await db.close()

    app = FastAPI(
        title="DigiInsta Storefront Auth API",
        description="Back-office OTP login, session management and rate limiting",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(SessionGuardMiddleware)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(contact.router)
    app.include_router(pages.router)

    @app.exception_handler(RateLimited)
    async def rate_limited_handler(request: Request, exc: RateLimited) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"success": False, "error": exc.message, "retry_after": exc.retry_after},
            headers=exc.result.headers,
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error"},
        )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message, "reason": exc.reason},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request body"},
        )

    return app


app = create_app()
