"""Redis connection management."""

from __future__ import annotations

import redis.asyncio as redis


def create_redis(redis_url: str) -> redis.Redis:
    """Create the Redis client used for the event fan-out."""
    return redis.from_url(redis_url, decode_responses=True)


async def close_redis(client: redis.Redis | None) -> None:
    """Close the Redis connection pool."""
    if client is not None:
        await client.aclose()
