"""
Moving-window rate limiting on a shared ``limits`` storage.

Named policies (per client IP):
  • otp        – 5/hour    (send-otp, blunts enumeration and email spam)
  • verify     – 10/minute (verify-otp, slows brute force)
  • newsletter – 3/hour
  • contact    – 5/hour
  • checkout   – 10/minute
  • search     – 30/minute
  • api        – 100/minute (everything else under /api)

Hits are counted by ``limits``' moving-window strategy: Redis in
deployments (``REDIS_URL``), in-process memory in tests. A rejected hit is
not recorded, so hammering a blocked endpoint does not extend the lockout.

Failure policy: if no storage is configured or it cannot be reached, the
check FAILS OPEN and the request is allowed. This favours availability over
strictness and must not be flipped without revisiting that decision.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request
from limits import RateLimitItem, parse
from limits.aio.storage import RedisStorage, Storage
from limits.aio.strategies import MovingWindowRateLimiter
from limits.errors import StorageError
from redis.exceptions import RedisError

from storefront.config import RATE_LIMIT_TIMEOUT_SECONDS
from storefront.errors import RateLimited

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    name: str
    rate: str  # limits notation, e.g. "5/hour"

    @property
    def item(self) -> RateLimitItem:
        return parse(self.rate)

    @property
    def limit(self) -> int:
        return self.item.amount

    @property
    def window_ms(self) -> int:
        return self.item.get_expiry() * 1000


RATE_LIMITS: dict[str, RateLimitConfig] = {
    cfg.name: cfg
    for cfg in (
        RateLimitConfig("otp", "5/hour"),
        RateLimitConfig("verify", "10/minute"),
        RateLimitConfig("newsletter", "3/hour"),
        RateLimitConfig("contact", "5/hour"),
        RateLimitConfig("checkout", "10/minute"),
        RateLimitConfig("search", "30/minute"),
        RateLimitConfig("api", "100/minute"),
    )
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_seconds: int = 0

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at_ms),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


def redis_storage(url: str, *, timeout: float = RATE_LIMIT_TIMEOUT_SECONDS) -> RedisStorage:
    """Async ``limits`` storage for a ``redis://`` URL, using the redis-py client."""
    uri = url if url.startswith("async+") else f"async+{url}"
    return RedisStorage(
        uri,
        implementation="redispy",
        wrap_exceptions=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


class SlidingWindowLimiter:
    """
    Counts accepted hits per identifier over a moving window.

    ``storage=None`` means the store is unconfigured and every check is
    allowed. ``clock`` returns epoch seconds and must agree with the
    storage's notion of time; it is injectable for tests.
    """

    def __init__(
        self,
        storage: Storage | None,
        *,
        clock: Callable[[], float] = time.time,
        timeout: float = RATE_LIMIT_TIMEOUT_SECONDS,
    ) -> None:
        self.storage = storage
        self._strategy = MovingWindowRateLimiter(storage) if storage is not None else None
        self._clock = clock
        self._timeout = timeout

    def _allow(self, config: RateLimitConfig, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=config.limit,
            reset_at_ms=int(now * 1000) + config.window_ms,
        )

    async def check(self, config: RateLimitConfig, identifier: str) -> RateLimitResult:
        if self._strategy is None:
            logger.debug("Rate limiting not configured; allowing %s/%s", config.name, identifier)
            return self._allow(config, self._clock())

        try:
            return await asyncio.wait_for(self._hit(config, identifier), timeout=self._timeout)
        except (StorageError, RedisError, OSError, asyncio.TimeoutError) as exc:
            # Fail open
            logger.warning(
                "Rate limit check failed for %s/%s, allowing request: %s",
                config.name, identifier, exc,
            )
            return self._allow(config, self._clock())

    async def _hit(self, config: RateLimitConfig, identifier: str) -> RateLimitResult:
        item = config.item
        allowed = await self._strategy.hit(item, config.name, identifier)
        stats = await self._strategy.get_window_stats(item, config.name, identifier)
        reset_at_ms = int(stats.reset_time * 1000)
        remaining = max(0, stats.remaining)

        if not allowed:
            retry_after = max(1, math.ceil(stats.reset_time - self._clock()))
            logger.info(
                "Rate limit exceeded for %s/%s (limit %d), retry in %ds",
                config.name, identifier, config.limit, retry_after,
            )
            return RateLimitResult(
                allowed=False,
                limit=config.limit,
                remaining=0,
                reset_at_ms=reset_at_ms,
                retry_after_seconds=retry_after,
            )

        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=remaining,
            reset_at_ms=reset_at_ms,
        )


async def check_rate_limit(
    limiter: SlidingWindowLimiter,
    config: RateLimitConfig,
    identifier: str,
) -> RateLimitResult:
    return await limiter.check(config, identifier)


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else X-Real-IP, else ``"unknown"``."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT


def rate_limit(name: str) -> Callable:
    """FastAPI dependency enforcing the named policy on the calling route."""
    config = RATE_LIMITS[name]

    async def _dependency(request: Request) -> RateLimitResult:
        limiter: SlidingWindowLimiter = request.app.state.rate_limiter
        result = await check_rate_limit(limiter, config, get_client_ip(request))
        if not result.allowed:
            raise RateLimited(result)
        return result

    return _dependency
