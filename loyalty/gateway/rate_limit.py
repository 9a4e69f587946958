from __future__ import annotations

import time
from dataclasses import dataclass
from functools import lru_cache

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from loyalty.core.config import get_settings

logger = structlog.get_logger(__name__)
POS_RATE_LIMIT_KEY_PREFIX = "loyalty:rl:pos"


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class FixedWindowRateLimiter:
    """Counts requests per identifier in fixed windows using Redis INCR."""

    def __init__(
        self,
        redis_client: Redis,
        *,
        limit: int,
        window_seconds: int,
        key_prefix: str = POS_RATE_LIMIT_KEY_PREFIX,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._redis = redis_client
        self._limit = limit
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix

    def _window_key(self, identifier: str, window_index: int) -> str:
        return f"{self._key_prefix}:{identifier}:{window_index}"

    async def hit(self, identifier: str, *, now_ts: float | None = None) -> RateLimitDecision:
        now_ts = time.time() if now_ts is None else now_ts
        window_index = int(now_ts // self._window_seconds)
        window_ends_at = (window_index + 1) * self._window_seconds
        retry_after = max(1, int(window_ends_at - now_ts))

        key = self._window_key(identifier, window_index)
        count = int(await self._redis.incr(key))
        if count == 1:
            await self._redis.expire(key, self._window_seconds)

        allowed = count <= self._limit
        return RateLimitDecision(
            allowed=allowed,
            limit=self._limit,
            remaining=max(self._limit - count, 0),
            retry_after_seconds=0 if allowed else retry_after,
        )


@lru_cache(maxsize=1)
def get_rate_limit_redis() -> Redis:
    return Redis.from_url(get_settings().redis_url, encoding="utf-8", decode_responses=True)


async def check_pos_rate_limit(identifier: str) -> RateLimitDecision:
    settings = get_settings()
    limiter = FixedWindowRateLimiter(
        get_rate_limit_redis(),
        limit=settings.pos_rate_limit_per_window,
        window_seconds=settings.pos_rate_limit_window_seconds,
    )
    try:
        return await limiter.hit(identifier)
    except RedisError:
        logger.exception("pos_rate_limit_unavailable", identifier=identifier)
        return RateLimitDecision(
            allowed=True,
            limit=settings.pos_rate_limit_per_window,
            remaining=settings.pos_rate_limit_per_window,
            retry_after_seconds=0,
        )
