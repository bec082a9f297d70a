"""
Rate Limiter - Fixed-window admission control backed by Redis.

NO DICTIONARIES - Decisions are returned as RateLimitDecision dataclasses.

The limiter fails OPEN: if Redis is not configured or errors, the request is
admitted with degraded=True, logged and counted.
"""

import time
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import settings
from app.models.domain import RateLimitDecision
from app.observability.logging import get_logger
from app.observability.metrics import metrics

logger = get_logger(__name__)


class RateLimiter(Protocol):
    """Rate limiter interface used by the orchestrator."""

    async def allow(self, identity_key: str) -> RateLimitDecision:
        """Decide whether one more request for identity_key is admitted."""
        ...


class RedisRateLimiter:
    """
    Fixed window counter: INCR the window key, set its TTL on first hit.

    Key layout: {prefix}:{identity}:{window_index}
    """

    def __init__(
        self,
        client: Redis | None,
        limit: int = 5,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit",
    ) -> None:
        """Initialize limiter. A None client means always degraded."""
        self._client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    def _window(self, now: float) -> tuple[int, int]:
        """Return (window_index, reset_at epoch seconds) for a timestamp."""
        window_index = int(now) // self.window_seconds
        reset_at = (window_index + 1) * self.window_seconds
        return window_index, reset_at

    def _key(self, identity_key: str, window_index: int) -> str:
        return f"{self.key_prefix}:{identity_key}:{window_index}"

    def _degraded(self, reset_at: int) -> RateLimitDecision:
        metrics.rate_limiter_degraded_total.inc()
        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=self.limit,
            reset_at=reset_at,
            degraded=True,
        )

    async def allow(self, identity_key: str) -> RateLimitDecision:
        """Count this request against the current window."""
        window_index, reset_at = self._window(time.time())

        if self._client is None:
            logger.warning("rate_limiter_degraded", reason="not_configured")
            return self._degraded(reset_at)

        key = self._key(identity_key, window_index)
        try:
            count = int(await self._client.incr(key))
            if count == 1:
                await self._client.expire(key, self.window_seconds)
        except (RedisError, OSError) as e:
            logger.warning("rate_limiter_degraded", reason="store_error", error=str(e))
            return self._degraded(reset_at)

        allowed = count <= self.limit
        if not allowed:
            metrics.rate_limit_denials_total.inc()
            logger.info("rate_limit_denied", identity=identity_key, count=count, limit=self.limit)

        return RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=reset_at,
        )

    async def close(self) -> None:
        """Release the Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()


def create_rate_limiter() -> RedisRateLimiter:
    """Build the limiter from settings."""
    client = Redis.from_url(settings.redis_url) if settings.redis_url else None
    return RedisRateLimiter(
        client=client,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        key_prefix=settings.rate_limit_key_prefix,
    )
