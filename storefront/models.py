"""Pydantic models for the storefront auth API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ── Domain records ─────────────────────────────────────────────────────────


class Session(BaseModel):
    """A live session as surfaced to callers."""
    session_token: str = Field(..., description="Opaque bearer credential")
    email: str = Field(..., description="Normalized owner email")
    created_at: datetime
    expires_at: datetime


class AuthResult(BaseModel):
    """Outcome of an Authentication Service call."""
    success: bool
    error: Optional[str] = None
    reason: Optional[str] = Field(None, description="Machine-readable failure reason")
    session_token: Optional[str] = None
    email: Optional[str] = None


# ── Requests ───────────────────────────────────────────────────────────────
# Fields are optional on purpose: missing values are reported as 400 by the
# routes rather than pydantic's 422.


class SendOtpRequest(BaseModel):
    email: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    source: Optional[str] = None


# ── Responses ──────────────────────────────────────────────────────────────


class SuccessResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None


class VerifyOtpResponse(BaseModel):
    success: bool
    email: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None


class SessionResponse(BaseModel):
    valid: bool
    email: Optional[str] = None
    expires_at: Optional[datetime] = None
    refresh_interval_seconds: Optional[int] = None
    error: Optional[str] = None


class CleanupResponse(BaseModel):
    success: bool
    deleted: int = 0


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    version: str
    timestamp: datetime
