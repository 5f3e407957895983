"""Shared Redis connection pool (rate limiting counters)."""

import redis.asyncio as redis

from promptverse.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Initialize the shared Redis connection pool."""
    global _redis

    if _redis is not None:
        return

    settings = get_settings()
    redis_url = url or settings.redis_url

    _redis = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
    )

    # Verify connectivity
    await _redis.ping()


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def set_redis(client: redis.Redis | None) -> None:
    """Install an already-built client (tests pass a FakeAsyncRedis)."""
    global _redis
    _redis = client


def get_redis() -> redis.Redis:
    """Return the shared Redis client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
