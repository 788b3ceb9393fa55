"""Redis client helper -- provides an async Redis connection per job invocation."""
import logging

from redis.asyncio import Redis, from_url

logger = logging.getLogger(__name__)


def create_redis(url: str) -> Redis:
    """Create an async Redis client bound to the caller's event loop."""
    return from_url(url, decode_responses=True)


async def close_redis(client: Redis | None) -> None:
    """Close a Redis client, tolerating one that never connected."""
    if client is None:
        return
    try:
        await client.aclose()
    except OSError:
        logger.warning("Redis connection did not close cleanly")
