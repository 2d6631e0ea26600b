"""
One-time code issuance and verification.

Codes are 6 random digits (leading zeros allowed), stored only as a
SHA-256 hash keyed by the normalized email. A new code for an email
replaces the previous one, and a code verifies at most once.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from storefront.clock import Clock, from_ms, to_ms, utcnow
from storefront.config import OTP_LENGTH, OTP_TTL_SECONDS
from storefront.db import Database
from storefront.errors import OtpExpired, OtpMismatch, OtpNotFound, ValidationError

logger = logging.getLogger(__name__)

_EMAIL = TypeAdapter(EmailStr)
_CODE_RE = re.compile(rf"^[0-9]{{{OTP_LENGTH}}}$")


@dataclass(frozen=True)
class IssuedOtp:
    email: str
    code: str
    expires_at: datetime


def normalize_email(email: str | None) -> str:
    """Trim and lowercase, rejecting anything that is not an email address."""
    if not email or not isinstance(email, str):
        raise ValidationError("Email is required")
    cleaned = email.strip().lower()
    try:
        _EMAIL.validate_python(cleaned)
    except PydanticValidationError:
        raise ValidationError("Invalid email address") from None
    return cleaned


def validate_code_format(code: str | None) -> str:
    if not code or not isinstance(code, str):
        raise ValidationError("OTP is required")
    if not _CODE_RE.match(code):
        raise ValidationError(f"OTP must be exactly {OTP_LENGTH} digits")
    return code


def _loggable(email: object) -> str | None:
    return email.strip().lower()[:254] if isinstance(email, str) else None


def generate_code() -> str:
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("ascii")).hexdigest()


class OtpService:
    def __init__(
        self,
        db: Database,
        *,
        ttl_seconds: int = OTP_TTL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    async def generate(self, email: str) -> IssuedOtp:
        """
        Issue a fresh code for ``email``, invalidating any earlier one.

        The returned code is for out-of-band delivery only; callers must
        not echo it back to the client.
        """
        normalized = normalize_email(email)
        now = self._clock()
        code = generate_code()
        expires_at = now + self._ttl
        await self._db.replace_otp(normalized, hash_code(code), to_ms(now), to_ms(expires_at))
        logger.info("OTP issued for %s (expires %s)", normalized, expires_at.isoformat())
        return IssuedOtp(email=normalized, code=code, expires_at=expires_at)

    async def verify(self, email: str, code: str) -> str:
        """
        Check ``code`` for ``email`` and consume it.

        Returns the normalized email on success; raises ``OtpNotFound``,
        ``OtpExpired`` or ``OtpMismatch`` otherwise.
        """
        try:
            normalized = normalize_email(email)
            validate_code_format(code)
        except ValidationError as exc:
            logger.warning("OTP verify failed for %r: validation (%s)", _loggable(email), exc.message)
            raise

        row = await self._db.get_otp(normalized)
        if row is None:
            logger.warning("OTP verify failed for %s: not_found", normalized)
            raise OtpNotFound()

        now = self._clock()
        if now > from_ms(row["expires_at"]):
            await self._db.delete_expired_otp(normalized, row["code_hash"], row["expires_at"])
            logger.warning("OTP verify failed for %s: expired", normalized)
            raise OtpExpired()

        candidate = hash_code(code)
        if not hmac.compare_digest(candidate, row["code_hash"]):
            logger.warning("OTP verify failed for %s: mismatch", normalized)
            raise OtpMismatch()

        # Another request may have consumed the same code in the meantime.
        if not await self._db.consume_otp(normalized, candidate):
            logger.warning("OTP verify failed for %s: already consumed", normalized)
            raise OtpNotFound()

        logger.info("OTP verified for %s", normalized)
        return normalized
