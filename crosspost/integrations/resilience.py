"""Per-platform rate limiting for external API calls.

Counters live in Redis (fixed window) so every worker process and every job
execution sees the same budget.
"""
import logging

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class RateLimiter:
    """Fixed-window request counter per platform."""

    def __init__(
        self,
        redis: Redis,
        limits: dict[str, int],
        window: int = 60,
        prefix: str = "social_media_rate_limit",
    ):
        self.redis = redis
        self.limits = limits
        self.window = window
        self.prefix = prefix

    def key(self, platform: str) -> str:
        return f"{self.prefix}:{platform}"

    async def acquire(self, platform: str) -> bool:
        """Record one request; return False if the platform's window is exhausted."""
        limit = self.limits.get(platform, DEFAULT_LIMIT)
        key = self.key(platform)

        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, self.window)

        if count > limit:
            logger.warning("Rate limit exceeded for %s: %d/%d", platform, count, limit)
            return False

        if count >= int(limit * 0.8):
            logger.warning("Rate limit 80%% reached for %s: %d/%d", platform, count, limit)

        return True

    async def reset(self, platform: str) -> None:
        await self.redis.delete(self.key(platform))
