"""
Authentication endpoints – email OTP flow with opaque session cookies.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from storefront.config import CRON_SECRET, SESSION_REFRESH_INTERVAL_SECONDS
from storefront.dependencies import (
    AuthService,
    SessionToken,
    clear_session_cookie,
    set_session_cookie,
)
from storefront.errors import StoreUnavailable
from storefront.models import (
    CleanupResponse,
    SendOtpRequest,
    SessionResponse,
    SuccessResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from storefront.rate_limit import rate_limit
from storefront.services.sessions import mask_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_SEND_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_authorized": status.HTTP_403_FORBIDDEN,
    "delivery_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _json(model, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", exclude_none=True),
    )


@router.post(
    "/send-otp",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    operation_id="sendOtp",
    summary="Email a one-time login code",
    dependencies=[Depends(rate_limit("otp"))],
)
async def send_otp(body: SendOtpRequest, auth: AuthService) -> JSONResponse:
    """
    Generate a 6-digit OTP for the email, store it and send it out of band.
    The code itself is never part of the response.
    """
    result = await auth.send_otp(body.email)
    if not result.success:
        code = _SEND_STATUS.get(result.reason or "", status.HTTP_400_BAD_REQUEST)
        return _json(SuccessResponse(success=False, error=result.error), code)
    return _json(SuccessResponse(success=True, message="OTP sent"))


@router.post(
    "/verify-otp",
    response_model=VerifyOtpResponse,
    response_model_exclude_none=True,
    operation_id="verifyOtp",
    summary="Verify an OTP and receive a session cookie",
    dependencies=[Depends(rate_limit("verify"))],
)
async def verify_otp(body: VerifyOtpRequest, auth: AuthService) -> JSONResponse:
    """
    Validate the OTP. On success, create a session and set it as an
    HTTP-only cookie; the token is not echoed in the body.
    """
    if not body.email:
        logger.warning("OTP verify failed: validation (email missing)")
        return _json(VerifyOtpResponse(success=False, error="Email is required", reason="validation"), 400)
    if not body.otp:
        logger.warning("OTP verify failed for %r: validation (otp missing)", body.email)
        return _json(VerifyOtpResponse(success=False, error="OTP is required", reason="validation"), 400)

    result = await auth.verify_otp(body.email, body.otp)
    if not result.success:
        return _json(
            VerifyOtpResponse(success=False, error=result.error, reason=result.reason),
            status.HTTP_400_BAD_REQUEST,
        )

    response = _json(VerifyOtpResponse(success=True, email=result.email))
    set_session_cookie(response, result.session_token)
    return response


@router.get(
    "/session",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    operation_id="getSession",
    summary="Report whether the session cookie is valid",
    dependencies=[Depends(rate_limit("api"))],
)
async def get_session(token: SessionToken, auth: AuthService) -> JSONResponse:
    if token is None:
        return _json(SessionResponse(valid=False, error="No session token found"), 401)

    session = await auth.get_session_manager().get_session(token)
    if session is None:
        return _json(SessionResponse(valid=False, error="Session is invalid or expired"), 401)

    return _json(
        SessionResponse(
            valid=True,
            email=session.email,
            expires_at=session.expires_at,
            refresh_interval_seconds=SESSION_REFRESH_INTERVAL_SECONDS,
        )
    )


@router.post(
    "/refresh-session",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    operation_id="refreshSession",
    summary="Extend the current session",
    dependencies=[Depends(rate_limit("api"))],
)
async def refresh_session(token: SessionToken, auth: AuthService) -> JSONResponse:
    if token is None:
        return _json(SuccessResponse(success=False, error="No session token found"), 401)

    if not await auth.get_session_manager().refresh_session(token):
        return _json(SuccessResponse(success=False, error="Session is invalid or expired"), 401)

    response = _json(SuccessResponse(success=True, message="Session refreshed successfully"))
    set_session_cookie(response, token)
    return response


@router.api_route(
    "/logout",
    methods=["POST", "GET"],
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    summary="Invalidate the session and clear the cookie",
)
async def logout(token: SessionToken, auth: AuthService) -> JSONResponse:
    if token is not None:
        try:
            await auth.get_session_manager().invalidate_session(token)
        except StoreUnavailable:
            # The cookie is cleared regardless; the row ages out via cleanup.
            logger.exception("Failed to invalidate session %s on logout", mask_token(token))

    response = _json(SuccessResponse(success=True, message="Logged out successfully"))
    clear_session_cookie(response)
    return response


@router.post(
    "/cleanup-sessions",
    response_model=CleanupResponse,
    operation_id="cleanupSessions",
    summary="Sweep expired sessions (scheduled job)",
)
async def cleanup_sessions(request: Request, auth: AuthService) -> JSONResponse:
    if CRON_SECRET:
        supplied = request.headers.get("authorization", "")
        if not hmac.compare_digest(supplied, f"Bearer {CRON_SECRET}"):
            return _json(SuccessResponse(success=False, error="Unauthorized"), 401)

    deleted = await auth.get_session_manager().cleanup_expired_sessions()
    return _json(CleanupResponse(success=True, deleted=deleted))
