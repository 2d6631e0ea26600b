"""
Shared test fixtures.

Provides FastAPI TestClients wired to:
  • a temporary SQLite database (via app lifespan)
  • a FakeClock for both sessions and rate-limit windows
  • a CodeOutbox instead of SMTP delivery

The `client` fixture has no rate-limit store configured, so every check
fails open. `limited_client` plugs in an in-memory `limits` storage
so limits are enforced.
"""

from __future__ import annotations

import limits.aio.storage.memory
import pytest
from fastapi.testclient import TestClient
from limits.aio.storage import MemoryStorage

from storefront.db import Database
from storefront.main import create_app
from tests.mocks.models import ADMIN_EMAIL
from tests.mocks.services import CodeOutbox, FakeClock


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def outbox() -> CodeOutbox:
    return CodeOutbox()


@pytest.fixture()
async def db(tmp_path):
    """Connected Database on a temp file, for service-level tests."""
    database = Database(str(tmp_path / "test.db"))
    await database.connect()
    yield database
    await database.close()


@pytest.fixture()
def memory_storage(monkeypatch, clock) -> MemoryStorage:
    """
    In-process moving-window storage that reads time from ``clock``, so
    windows can be crossed with ``clock.advance``.
    """
    monkeypatch.setattr(limits.aio.storage.memory, "time", clock)
    return MemoryStorage()


def _make_app(tmp_path, clock, outbox, storage=None, admin_emails=(ADMIN_EMAIL,)):
    return create_app(
        db_path=str(tmp_path / "test.db"),
        rate_limit_storage=storage,
        rate_limit_clock=clock.time,
        clock=clock,
        send_code=outbox,
        admin_emails=admin_emails,
    )


@pytest.fixture()
def client(tmp_path, clock, outbox) -> TestClient:
    """TestClient with rate limiting unconfigured (fail open)."""
    app = _make_app(tmp_path, clock, outbox)
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def open_client(tmp_path, clock, outbox) -> TestClient:
    """TestClient with an empty allow-list: any email may request a code."""
    app = _make_app(tmp_path, clock, outbox, admin_emails=())
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def limited_client(tmp_path, clock, outbox, memory_storage) -> TestClient:
    """TestClient with rate limiting **enabled** against in-memory storage."""
    app = _make_app(tmp_path, clock, outbox, storage=memory_storage)
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def login(client, outbox):
    """Run the full OTP flow for ``email``; the client then carries the session cookie."""

    def _login(email: str = ADMIN_EMAIL) -> str:
        resp = client.post("/api/auth/send-otp", json={"email": email})
        assert resp.status_code == 200, resp.text
        resp = client.post(
            "/api/auth/verify-otp",
            json={"email": email, "otp": outbox.last_code(email)},
        )
        assert resp.status_code == 200, resp.text
        return resp.cookies["digiinsta_session"]

    return _login
