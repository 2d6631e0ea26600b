"""
Session token lifecycle backed by the ``sessions`` table.

Tokens are opaque 256-bit random strings. Expiry is checked on every
read, refresh only extends a session that is still live, and expired
rows are removed lazily on lookup or in bulk by the cleanup sweep.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from storefront.clock import Clock, from_ms, to_ms, utcnow
from storefront.config import SESSION_LIFETIME_MS
from storefront.db import Database
from storefront.models import Session

logger = logging.getLogger(__name__)


def generate_session_token() -> str:
    return secrets.token_hex(32)


def mask_token(token: str | None) -> str:
    """Log-safe prefix of a session token."""
    if not token:
        return "<none>"
    return f"{token[:8]}…"


class SessionStore:
    def __init__(
        self,
        db: Database,
        *,
        lifetime_ms: int = SESSION_LIFETIME_MS,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._lifetime = timedelta(milliseconds=lifetime_ms)
        self._clock = clock

    async def create_session(self, email: str) -> Session:
        now = self._clock()
        session = Session(
            session_token=generate_session_token(),
            email=email,
            created_at=now,
            expires_at=now + self._lifetime,
        )
        await self._db.insert_session(
            session.session_token, email, to_ms(now), to_ms(session.expires_at)
        )
        logger.info("Session %s created for %s", mask_token(session.session_token), email)
        return session

    async def get_session(self, token: str | None) -> Session | None:
        """Return the session if it exists and has not expired."""
        if not token:
            return None
        row = await self._db.get_session(token)
        if row is None:
            return None
        now = self._clock()
        if to_ms(now) >= row["expires_at"]:
            await self._db.delete_expired_session(token, to_ms(now))
            logger.debug("Session %s expired, swept on read", mask_token(token))
            return None
        return Session(
            session_token=row["token"],
            email=row["email"],
            created_at=from_ms(row["created_at"]),
            expires_at=from_ms(row["expires_at"]),
        )

    async def validate_session(self, token: str | None) -> bool:
        return await self.get_session(token) is not None

    async def refresh_session(self, token: str | None) -> bool:
        """Extend a live session to now + lifetime. Expired or unknown tokens are left untouched."""
        if not token:
            return False
        now = self._clock()
        refreshed = await self._db.extend_session(
            token, to_ms(now), to_ms(now + self._lifetime)
        )
        if refreshed:
            logger.debug("Session %s refreshed", mask_token(token))
        else:
            logger.info("Refresh rejected for session %s (invalid or expired)", mask_token(token))
        return refreshed

    async def invalidate_session(self, token: str | None) -> bool:
        if not token:
            return False
        existed = await self._db.delete_session(token)
        if existed:
            logger.info("Session %s invalidated", mask_token(token))
        return existed

    async def cleanup_expired_sessions(self) -> int:
        """Delete every expired session (and stale OTP row). Returns sessions removed."""
        now = to_ms(self._clock())
        removed = await self._db.delete_expired_sessions(now)
        stale_otps = await self._db.delete_expired_otps(now)
        logger.info("Cleanup removed %d expired sessions, %d stale OTPs", removed, stale_otps)
        return removed
