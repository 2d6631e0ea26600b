"""
SQLite database layer using aiosqlite.

Stores OTP codes, sessions and contact-form submissions.
Tables are created automatically on first connect.

The ``Database`` handle is created once in the app lifespan and passed
to the services that need it; nothing here is a module-level singleton.
Every statement is bounded by ``timeout`` and any driver failure is
re-raised as ``StoreUnavailable``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from storefront.config import STORE_TIMEOUT_SECONDS
from storefront.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS otps (
    email           TEXT PRIMARY KEY,   -- normalized (trimmed, lowercase)
    code_hash       TEXT NOT NULL,      -- sha256 hex, the code itself is never stored
    created_at      INTEGER NOT NULL,   -- epoch ms
    expires_at      INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    token           TEXT PRIMARY KEY,
    email           TEXT NOT NULL,
    created_at      INTEGER NOT NULL,
    expires_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_email ON sessions(email);
CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);

CREATE TABLE IF NOT EXISTS contact_submissions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    email           TEXT NOT NULL,
    phone           TEXT,
    subject         TEXT NOT NULL,
    message         TEXT NOT NULL,
    source          TEXT NOT NULL DEFAULT 'contact-page',
    ip_address      TEXT,
    status          TEXT NOT NULL DEFAULT 'new',
    created_at      INTEGER NOT NULL
);
"""


class Database:
    """Async handle over a single SQLite connection."""

    def __init__(self, path: str, *, timeout: float = STORE_TIMEOUT_SECONDS) -> None:
        self.path = path
        self.timeout = timeout
        self._conn: aiosqlite.Connection | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the database and create tables if they don't exist."""
        db_path = Path(self.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(db_path))
        self._conn.row_factory = aiosqlite.Row  # dict-like rows
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        logger.info("Database initialized at %s", db_path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreUnavailable("Database not initialized")
        return self._conn

    # ── Low-level helpers ─────────────────────────────────────────────

    async def _bounded(self, op: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(op, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable("Database operation timed out") from exc
        except (aiosqlite.Error, OSError) as exc:
            raise StoreUnavailable(f"Database operation failed: {exc}") from exc

    async def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Run a write statement, commit, and return the affected row count."""

        async def _run() -> int:
            cur = await self.conn.execute(sql, params)
            await self.conn.commit()
            return cur.rowcount

        return await self._bounded(_run())

    async def fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Row | None:
        async def _run() -> aiosqlite.Row | None:
            async with self.conn.execute(sql, params) as cur:
                return await cur.fetchone()

        return await self._bounded(_run())

    # ══════════════════════════════════════════════════════════════════
    #                         OTP REPOSITORY
    # ══════════════════════════════════════════════════════════════════

    async def replace_otp(self, email: str, code_hash: str, created_at: int, expires_at: int) -> None:
        """Store a code for ``email``, overwriting any earlier one."""
        await self.execute(
            """
            INSERT INTO otps (email, code_hash, created_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                code_hash = excluded.code_hash,
                created_at = excluded.created_at,
                expires_at = excluded.expires_at
            """,
            (email, code_hash, created_at, expires_at),
        )

    async def get_otp(self, email: str) -> aiosqlite.Row | None:
        return await self.fetchone("SELECT * FROM otps WHERE email = ?", (email,))

    async def consume_otp(self, email: str, code_hash: str) -> bool:
        """Delete the matching code. True only for the caller that removed it."""
        deleted = await self.execute(
            "DELETE FROM otps WHERE email = ? AND code_hash = ?",
            (email, code_hash),
        )
        return deleted == 1

    async def delete_expired_otp(self, email: str, code_hash: str, expires_at: int) -> None:
        """Remove the row that was read as expired; a code reissued since then is kept."""
        await self.execute(
            "DELETE FROM otps WHERE email = ? AND code_hash = ? AND expires_at = ?",
            (email, code_hash, expires_at),
        )

    async def delete_expired_otps(self, now: int) -> int:
        return await self.execute("DELETE FROM otps WHERE expires_at < ?", (now,))

    # ══════════════════════════════════════════════════════════════════
    #                       SESSION REPOSITORY
    # ══════════════════════════════════════════════════════════════════

    async def insert_session(self, token: str, email: str, created_at: int, expires_at: int) -> None:
        await self.execute(
            "INSERT INTO sessions (token, email, created_at, expires_at) VALUES (?, ?, ?, ?)",
            (token, email, created_at, expires_at),
        )

    async def get_session(self, token: str) -> aiosqlite.Row | None:
        return await self.fetchone("SELECT * FROM sessions WHERE token = ?", (token,))

    async def extend_session(self, token: str, now: int, expires_at: int) -> bool:
        """Move expiry forward only while the session is still live."""
        updated = await self.execute(
            """
            UPDATE sessions SET expires_at = MAX(expires_at, ?)
            WHERE token = ? AND expires_at > ?
            """,
            (expires_at, token, now),
        )
        return updated == 1

    async def delete_session(self, token: str) -> bool:
        deleted = await self.execute("DELETE FROM sessions WHERE token = ?", (token,))
        return deleted > 0

    async def delete_expired_session(self, token: str, now: int) -> None:
        """Lazy sweep of one row; leaves it alone if a refresh got there first."""
        await self.execute(
            "DELETE FROM sessions WHERE token = ? AND expires_at <= ?",
            (token, now),
        )

    async def delete_expired_sessions(self, now: int) -> int:
        return await self.execute("DELETE FROM sessions WHERE expires_at < ?", (now,))

    # ══════════════════════════════════════════════════════════════════
    #                   CONTACT SUBMISSION REPOSITORY
    # ══════════════════════════════════════════════════════════════════

    async def create_contact_submission(
        self,
        *,
        name: str,
        email: str,
        subject: str,
        message: str,
        created_at: int,
        phone: str | None = None,
        source: str = "contact-page",
        ip_address: str | None = None,
    ) -> None:
        await self.execute(
            """
            INSERT INTO contact_submissions
                (name, email, phone, subject, message, source, ip_address, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'new', ?)
            """,
            (name, email, phone, subject, message, source, ip_address, created_at),
        )
