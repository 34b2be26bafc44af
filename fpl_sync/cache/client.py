"""Redis client factory.

The composition root owns the client lifecycle: it creates one client with
create_redis() at startup, injects it into every CacheGateway and closes it on
shutdown with close_redis().
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from fpl_sync.config import Settings
from fpl_sync.errors import CacheError, ErrorKind
from fpl_sync.monitoring import get_logger

logger = get_logger()


def create_redis(settings: Settings) -> redis.Redis:
    """Create an async Redis client from settings (no I/O performed)."""
    return redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        health_check_interval=30,
    )


async def ping_redis(client: redis.Redis) -> None:
    """Verify the cache store is reachable.

    Raises:
        CacheError: kind CONNECTION when the ping fails
    """
    try:
        await client.ping()
    except RedisError as e:
        logger.error("redis_ping_failed", error=str(e), error_type=type(e).__name__)
        raise CacheError(ErrorKind.CONNECTION, "Redis unreachable", cause=e) from e
    logger.info("redis_connected")


async def close_redis(client: redis.Redis) -> None:
    await client.aclose()
    logger.info("redis_closed")
