"""Shared Redis connection.

Services import the module-level ``redis_client`` and use ``redis_client.client``;
the connection pool is created on first use.
"""

from typing import Optional

import redis.asyncio as redis

from syncweave.core.config import settings
from syncweave.core.logging import logger


class RedisClient:
    """Lazily connected asyncio Redis client."""

    def __init__(self, url: Optional[str] = None):
        """Initialize without connecting.

        Args:
            url: Redis URL, defaults to the configured one
        """
        self._url = url
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        """The Redis client, created on first access."""
        if self._client is None:
            url = self._url or settings.redis_url
            self._client = redis.Redis.from_url(
                url,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            )
            logger.debug("Redis client created")
        return self._client

    async def close(self) -> None:
        """Close the connection pool, if one was opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


redis_client = RedisClient()
