"""Redis connection and client management."""

import redis.asyncio as redis

from ragkb.settings import settings
from ragkb.utils.logging_config import logger


async def check_redis_connection():
    """
    Checks the connection to the Redis broker used by the Celery task backend.
    Raises an exception if the connection fails.
    """
    try:
        async with redis.from_url(
            str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
        ) as redis_client:
            if await redis_client.ping():
                logger.info("Redis connection successful")
            else:
                raise ConnectionError(
                    "Redis connection failed: PING command returned False"
                )
    except Exception as e:
        logger.error(f"Redis connection error: {e}")
        raise
