"""Tests for the moving-window rate limiter and its HTTP surface."""

import asyncio

import pytest
from limits.aio.storage import RedisStorage
from starlette.requests import Request

from storefront.rate_limit import (
    RATE_LIMITS,
    RateLimitConfig,
    SlidingWindowLimiter,
    check_rate_limit,
    get_client_ip,
    redis_storage,
)
from tests.mocks.models import CONTACT_FORM


def _request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


@pytest.fixture()
def limiter(memory_storage, clock) -> SlidingWindowLimiter:
    return SlidingWindowLimiter(memory_storage, clock=clock.time)


# ── Policies ───────────────────────────────────────────────────────────────


class TestPolicies:
    @pytest.mark.parametrize(
        "name,limit,window_ms",
        [
            ("otp", 5, 3_600_000),
            ("verify", 10, 60_000),
            ("newsletter", 3, 3_600_000),
            ("contact", 5, 3_600_000),
            ("checkout", 10, 60_000),
            ("search", 30, 60_000),
            ("api", 100, 60_000),
        ],
    )
    def test_named_policies(self, name, limit, window_ms):
        cfg = RATE_LIMITS[name]
        assert cfg.limit == limit
        assert cfg.window_ms == window_ms


# ── Sliding window ─────────────────────────────────────────────────────────


class TestSlidingWindow:
    async def test_allows_up_to_limit_then_blocks(self, limiter):
        cfg = RateLimitConfig("t", "3/minute")
        results = [await limiter.check(cfg, "1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].retry_after_seconds == 60

    async def test_window_slides(self, limiter, clock):
        cfg = RateLimitConfig("t", "2/minute")
        await limiter.check(cfg, "ip")
        clock.advance(seconds=30)
        await limiter.check(cfg, "ip")

        blocked = await limiter.check(cfg, "ip")
        assert not blocked.allowed
        assert blocked.retry_after_seconds == 30

        # First hit leaves the window, one slot frees up
        clock.advance(seconds=30, milliseconds=1)
        assert (await limiter.check(cfg, "ip")).allowed
        assert not (await limiter.check(cfg, "ip")).allowed

    async def test_rejected_hits_do_not_consume_budget(self, limiter, clock):
        cfg = RateLimitConfig("t", "1/minute")
        assert (await limiter.check(cfg, "ip")).allowed
        for _ in range(20):
            assert not (await limiter.check(cfg, "ip")).allowed

        clock.advance(seconds=61)
        assert (await limiter.check(cfg, "ip")).allowed

    async def test_identifiers_and_policies_are_isolated(self, limiter):
        cfg = RateLimitConfig("t", "1/minute")
        other = RateLimitConfig("u", "1/minute")
        assert (await limiter.check(cfg, "a")).allowed
        assert (await limiter.check(cfg, "b")).allowed
        assert (await limiter.check(other, "a")).allowed
        assert not (await limiter.check(cfg, "a")).allowed

    async def test_reset_and_headers(self, limiter, clock):
        cfg = RateLimitConfig("t", "1/minute")
        first = await limiter.check(cfg, "ip")
        now_ms = int(clock.time() * 1000)
        assert first.reset_at_ms == now_ms + 60_000
        assert "Retry-After" not in first.headers

        clock.advance(seconds=15)
        blocked = await check_rate_limit(limiter, cfg, "ip")
        assert blocked.headers == {
            "X-RateLimit-Limit": "1",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(now_ms + 60_000),
            "Retry-After": "45",
        }


class TestFailOpen:
    async def test_unconfigured_store_allows_everything(self, clock):
        limiter = SlidingWindowLimiter(None, clock=clock.time)
        cfg = RateLimitConfig("t", "1/minute")
        for _ in range(5):
            result = await limiter.check(cfg, "ip")
            assert result.allowed
            assert result.remaining == 1

    async def test_unreachable_redis_allows_and_warns(self, caplog):
        storage = redis_storage("redis://127.0.0.1:1/0", timeout=0.2)
        limiter = SlidingWindowLimiter(storage, timeout=1)
        cfg = RateLimitConfig("t", "1/minute")

        with caplog.at_level("WARNING", logger="storefront.rate_limit"):
            assert (await limiter.check(cfg, "ip")).allowed
            assert (await limiter.check(cfg, "ip")).allowed
        assert any("allowing request" in r.getMessage() for r in caplog.records)

    async def test_storage_error_allows(self, memory_storage, clock, monkeypatch):
        async def _refused(*args, **kwargs):
            raise ConnectionRefusedError()

        monkeypatch.setattr(memory_storage, "acquire_entry", _refused)
        limiter = SlidingWindowLimiter(memory_storage, clock=clock.time)
        assert (await limiter.check(RateLimitConfig("t", "1/minute"), "ip")).allowed

    async def test_slow_storage_allows(self, memory_storage, clock, monkeypatch):
        async def _hang(*args, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(memory_storage, "acquire_entry", _hang)
        limiter = SlidingWindowLimiter(memory_storage, clock=clock.time, timeout=0.05)
        assert (await limiter.check(RateLimitConfig("t", "1/minute"), "ip")).allowed


def test_redis_storage_accepts_plain_redis_urls():
    assert isinstance(redis_storage("redis://localhost:6379/0"), RedisStorage)
    assert isinstance(redis_storage("async+redis://localhost:6379/0"), RedisStorage)


# ── Client IP ──────────────────────────────────────────────────────────────


class TestClientIp:
    @pytest.mark.parametrize(
        "headers,expected",
        [
            ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, "203.0.113.7"),
            ({"X-Forwarded-For": " 203.0.113.7 "}, "203.0.113.7"),
            ({"X-Forwarded-For": "1.1.1.1", "X-Real-IP": "2.2.2.2"}, "1.1.1.1"),
            ({"X-Real-IP": "2.2.2.2"}, "2.2.2.2"),
            ({"X-Forwarded-For": "", "X-Real-IP": "2.2.2.2"}, "2.2.2.2"),
            ({}, "unknown"),
        ],
    )
    def test_derivation(self, headers, expected):
        assert get_client_ip(_request(headers)) == expected


# ── HTTP surface ───────────────────────────────────────────────────────────


class TestRateLimitedRoutes:
    def test_sixth_contact_post_is_429(self, limited_client):
        headers = {"X-Forwarded-For": "198.51.100.9"}
        for _ in range(5):
            resp = limited_client.post("/api/contact", json=CONTACT_FORM, headers=headers)
            assert resp.status_code == 201

        resp = limited_client.post("/api/contact", json=CONTACT_FORM, headers=headers)
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) >= 1
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        body = resp.json()
        assert body["success"] is False
        assert body["retry_after"] == int(resp.headers["Retry-After"])

    def test_other_client_unaffected(self, limited_client):
        for _ in range(6):
            limited_client.post("/api/contact", json=CONTACT_FORM, headers={"X-Forwarded-For": "198.51.100.9"})
        resp = limited_client.post("/api/contact", json=CONTACT_FORM, headers={"X-Forwarded-For": "198.51.100.10"})
        assert resp.status_code == 201

    def test_send_otp_limited_per_ip(self, limited_client, outbox):
        for _ in range(5):
            resp = limited_client.post("/api/auth/send-otp", json={"email": "user@example.com"})
            assert resp.status_code == 200
        resp = limited_client.post("/api/auth/send-otp", json={"email": "user@example.com"})
        assert resp.status_code == 429
        assert len(outbox.sent) == 5

    def test_limit_lifts_after_window(self, limited_client, clock):
        for _ in range(6):
            limited_client.post("/api/contact", json=CONTACT_FORM)
        clock.advance(hours=1, seconds=1)
        resp = limited_client.post("/api/contact", json=CONTACT_FORM)
        assert resp.status_code == 201

    def test_unconfigured_store_never_429s(self, client):
        for _ in range(10):
            assert client.post("/api/contact", json=CONTACT_FORM).status_code == 201
