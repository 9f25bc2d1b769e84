"""Redis client for locks and timer signals."""

import redis.asyncio as redis
from redis.asyncio import ConnectionPool

from pokerleague.config import Settings, get_settings


def build_redis(settings: Settings | None = None) -> redis.Redis:
    """Create a pooled client. No connection is opened until the first command."""
    settings = settings or get_settings()

    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        health_check_interval=30,
        encoding="utf-8",
        # lock owner tokens are compared as str
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


async def close_redis(client: redis.Redis) -> None:
    """Close client and pool."""
    await client.aclose()
    await client.connection_pool.disconnect()
