"""
Session guard for back-office pages.

Per request to a protected path:
  • no session cookie          → redirect to /login
  • cookie, session valid      → proceed, ``request.state.session_email`` set
  • cookie, invalid or expired → clear cookie, redirect to /login
  • store unavailable          → redirect to /login, cookie kept

Signed-in visitors hitting /login are sent on to the dashboard. The guard
never refreshes a session; that is the client's periodic
/api/auth/refresh-session call.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from storefront.config import (
    AFTER_LOGIN_PATH,
    LOGIN_PATH,
    PROTECTED_PREFIXES,
    SESSION_COOKIE_NAME,
)
from storefront.errors import StoreUnavailable
from storefront.models import Session
from storefront.services.sessions import SessionStore, mask_token

logger = logging.getLogger(__name__)


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == p or path.startswith(f"{p}/") for p in prefixes)


def is_protected_route(path: str) -> bool:
    return _matches(path, PROTECTED_PREFIXES)


def is_auth_route(path: str) -> bool:
    return _matches(path, (LOGIN_PATH,))


class SessionGuardMiddleware(BaseHTTPMiddleware):
    async def _lookup(self, request: Request, token: str) -> Session | None:
        state = request.app.state
        return await SessionStore(state.db, clock=state.clock).get_session(token)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        protected = is_protected_route(path)
        if not protected and not is_auth_route(path):
            return await call_next(request)

        token = request.cookies.get(SESSION_COOKIE_NAME)

        if protected:
            if not token:
                return RedirectResponse(LOGIN_PATH, status_code=303)
            try:
                session = await self._lookup(request, token)
            except StoreUnavailable:
                # The session may still be live; leave the cookie alone.
                logger.exception("Session lookup failed for %s", mask_token(token))
                return RedirectResponse(LOGIN_PATH, status_code=303)
            if session is None:
                response = RedirectResponse(LOGIN_PATH, status_code=303)
                response.delete_cookie(SESSION_COOKIE_NAME, path="/")
                return response
            request.state.session_email = session.email
            return await call_next(request)

        # Login page: skip the form when already signed in.
        if token:
            try:
                session = await self._lookup(request, token)
            except StoreUnavailable:
                logger.exception("Session lookup failed for %s", mask_token(token))
                session = None
            if session is not None:
                return RedirectResponse(AFTER_LOGIN_PATH, status_code=303)
        return await call_next(request)
