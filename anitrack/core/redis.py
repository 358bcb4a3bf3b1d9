"""
Redis client for shared rate limit counters.

Optional: when REDIS_URL is unset the app keeps all limits in process memory.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from anitrack.core.config import settings

logger = logging.getLogger(__name__)

# Global Redis client instance
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """
    Get or create async Redis client.

    Raises:
        RuntimeError: If REDIS_URL is not configured
    """
    global _redis_client

    if _redis_client is None:
        if not settings.REDIS_URL:
            raise RuntimeError(
                "REDIS_URL is not configured. "
                "Set REDIS_URL environment variable to enable distributed rate limiting."
            )

        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_keepalive=settings.REDIS_SOCKET_KEEPALIVE,
        )
        logger.info(
            f"Redis client initialized (max_connections={settings.REDIS_MAX_CONNECTIONS})"
        )

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis client closed")
