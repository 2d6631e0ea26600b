"""
Error taxonomy for the authentication flow.

Services raise these; routers translate them into HTTP responses.
Each error carries a machine-readable ``reason`` and a user-facing
``message`` that is safe to return to the client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storefront.rate_limit import RateLimitResult


class AuthError(Exception):
    """Base class for every error the auth services raise."""

    reason: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AuthError):
    """Malformed email or code, rejected before any store access."""

    reason = "validation"
    status_code = 400


class NotAuthorized(AuthError):
    """Email is not on the back-office allow-list."""

    reason = "not_authorized"
    status_code = 403


class OtpNotFound(AuthError):
    """No code on file: never issued, already consumed or swept."""

    reason = "not_found"
    status_code = 400

    def __init__(self, message: str = "No active OTP for this email. Please request a new one.") -> None:
        super().__init__(message)


class OtpExpired(AuthError):
    reason = "expired"
    status_code = 400

    def __init__(self, message: str = "OTP has expired. Please request a new one.") -> None:
        super().__init__(message)


class OtpMismatch(AuthError):
    reason = "mismatch"
    status_code = 400

    def __init__(self, message: str = "Invalid OTP code") -> None:
        super().__init__(message)


class RateLimited(AuthError):
    """Client exceeded a sliding-window budget (429)."""

    reason = "rate_limited"
    status_code = 429

    def __init__(self, result: RateLimitResult) -> None:
        self.result = result
        super().__init__("Too many requests. Please try again later.")

    @property
    def retry_after(self) -> int:
        return self.result.retry_after_seconds


class StoreUnavailable(AuthError):
    """Backing store failed or timed out."""

    reason = "store_unavailable"
    status_code = 500


class EmailDeliveryError(AuthError):
    """Out-of-band delivery of an OTP failed; the client may retry."""

    reason = "delivery_failed"
    status_code = 503
