import logging
from typing import Annotated

from fastapi import Depends, Request, Response

from storefront.config import SESSION_COOKIE_NAME, SESSION_LIFETIME_MS, is_production
from storefront.db import Database
from storefront.services.auth import AuthenticationService
from storefront.services.otp import OtpService
from storefront.services.sessions import SessionStore

logger = logging.getLogger(__name__)


# ── Services ───────────────────────────────────────────────────────────────


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_session_store(request: Request) -> SessionStore:
    state = request.app.state
    return SessionStore(state.db, clock=state.clock)


def get_auth_service(request: Request) -> AuthenticationService:
    """Build the request-scoped facade from the handles opened in the lifespan."""
    state = request.app.state
    return AuthenticationService(
        OtpService(state.db, clock=state.clock),
        SessionStore(state.db, clock=state.clock),
        send_code=state.send_code,
        allowed_emails=state.admin_emails,
    )


AuthService = Annotated[AuthenticationService, Depends(get_auth_service)]


# ── Session cookie ─────────────────────────────────────────────────────────


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE_NAME) or None


SessionToken = Annotated[str | None, Depends(get_session_token)]


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=is_production(),
        max_age=SESSION_LIFETIME_MS // 1000,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")

