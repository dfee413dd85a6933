"""
Redis client configuration using redis-py (asyncio).
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import logging
import secrets

from redis import asyncio as aioredis
from redis.asyncio.client import Redis

from app.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper."""

    _client: Optional[Redis] = None

    @classmethod
    def get_client(cls) -> Redis:
        """Get or create Redis client."""
        if cls._client is None:
            cls._client = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5.0,
                health_check_interval=30
            )
            logger.info("Redis client initialized")

        return cls._client

    @classmethod
    async def close(cls):
        """Close Redis client."""
        if cls._client:
            await cls._client.close()
            cls._client = None
            logger.info("Redis client closed")


async def get_redis() -> Redis:
    """Dependency for getting redis connection."""
    return RedisClient.get_client()


# Delete the key only while it still holds this caller's token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


@asynccontextmanager
async def job_lock(name: str, ttl_seconds: int = 600) -> AsyncGenerator[bool, None]:
    """
    Best-effort exclusive lock for batch jobs.

    Yields True when this caller holds the lock (or Redis is unreachable,
    in which case the job runs unlocked), False when another run holds it.
    A run that outlives the TTL never releases a lock taken after it expired.
    """
    key = f"payssd:lock:{name}"
    token = secrets.token_hex(16)
    redis = None
    acquired = True

    try:
        redis = await get_redis()
        acquired = bool(await redis.set(key, token, nx=True, ex=ttl_seconds))
    except Exception as e:
        logger.warning(f"Redis lock unavailable for {name}, running unlocked: {e}")
        redis = None

    try:
        yield acquired
    finally:
        if redis is not None and acquired:
            try:
                released = await redis.eval(RELEASE_LOCK_SCRIPT, 1, key, token)
                if not released:
                    logger.warning(f"Lock {name} expired before the run finished")
            except Exception as e:
                logger.warning(f"Failed to release lock {name}: {e}")
