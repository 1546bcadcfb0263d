"""
Redis connection for the shared rate-limit store.
Without REDIS_URL, or when the server does not answer a ping at startup, counters stay in process.
"""
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def redacted(url: str) -> str:
    """Host part of a redis URL, without credentials, for log lines."""
    return url.rsplit("@", 1)[-1]


async def connect_redis(url: str) -> Any:
    url = (url or "").strip()
    if not url:
        logger.info("REDIS_URL not set; rate limits are per process")
        return None
    client = Redis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis at %s unreachable, rate limits are per process: %s", redacted(url), e)
        await client.aclose()
        return None
    logger.info("Rate-limit counters shared through Redis at %s", redacted(url))
    return client


async def disconnect_redis(client: Any) -> None:
    if client is None:
        return
    try:
        await client.aclose()
    except RedisError as e:
        logger.warning("Redis close error: %s", e)
