"""
Redis connection for the emergency alert stream.

Alerts are published to, and consumed from, a single Pub/Sub channel
(``settings.alerts_channel``). Nothing else is kept in Redis.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from dutylink.app.core.config import settings

logger = logging.getLogger("dutylink.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared alert stream client."""
    return redis_client


async def ping_alert_stream() -> bool:
    """
    Check that the alert stream broker answers.

    Returns:
        True if Redis responded to PING, False otherwise
    """
    try:
        return bool(await redis_client.ping())
    except RedisError as e:
        logger.warning("Alert stream unreachable at %s: %s", settings.alerts_channel, e)
        return False
