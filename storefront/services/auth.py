"""
Authentication facade consumed by the auth routes.

Orchestrates OTP issuance/verification, out-of-band delivery and session
creation. Domain failures come back as ``AuthResult(success=False)``;
``StoreUnavailable`` propagates to the route boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from storefront.config import ADMIN_EMAILS, EMAIL_TIMEOUT_SECONDS
from storefront.errors import AuthError, EmailDeliveryError, NotAuthorized, StoreUnavailable
from storefront.models import AuthResult
from storefront.services.email import send_otp_email
from storefront.services.otp import OtpService, normalize_email
from storefront.services.sessions import SessionStore

logger = logging.getLogger(__name__)

SendCode = Callable[[str, str], Awaitable[None]]


class AuthenticationService:
    def __init__(
        self,
        otp: OtpService,
        sessions: SessionStore,
        *,
        send_code: SendCode = send_otp_email,
        allowed_emails: Iterable[str] = ADMIN_EMAILS,
        delivery_timeout: float = EMAIL_TIMEOUT_SECONDS,
    ) -> None:
        self._otp = otp
        self._sessions = sessions
        self._send_code = send_code
        self._allowed = frozenset(e.strip().lower() for e in allowed_emails)
        self._delivery_timeout = delivery_timeout

    def is_email_allowed(self, email: str | None) -> bool:
        """Allow-list check; an empty allow-list admits every address."""
        if not email or not isinstance(email, str):
            return False
        if not self._allowed:
            return True
        return email.strip().lower() in self._allowed

    def get_session_manager(self) -> SessionStore:
        return self._sessions

    async def send_otp(self, email: str | None) -> AuthResult:
        try:
            normalized = normalize_email(email)
            if not self.is_email_allowed(normalized):
                raise NotAuthorized("This email is not authorized to access the admin dashboard")

            issued = await self._otp.generate(normalized)
            try:
                await asyncio.wait_for(
                    self._send_code(issued.email, issued.code),
                    timeout=self._delivery_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise EmailDeliveryError("Failed to send OTP. Please try again.") from exc
        except StoreUnavailable:
            raise
        except AuthError as exc:
            logger.info("send_otp rejected (%s)", exc.reason)
            return AuthResult(success=False, error=exc.message, reason=exc.reason)

        return AuthResult(success=True, email=normalized)

    async def verify_otp(self, email: str | None, code: str | None) -> AuthResult:
        try:
            normalized = await self._otp.verify(email, code)
        except StoreUnavailable:
            raise
        except AuthError as exc:
            return AuthResult(success=False, error=exc.message, reason=exc.reason)

        session = await self._sessions.create_session(normalized)
        return AuthResult(
            success=True,
            session_token=session.session_token,
            email=session.email,
        )
