"""
Redis Connection Manager
Provides the Redis connection pool used by the dispatch queue.
"""

import logging
from typing import Optional
from redis import Redis, ConnectionPool
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Seconds a socket read may exceed the server-side blocking timeout
SOCKET_TIMEOUT_MARGIN = 10


class RedisManager:
    """
    Manages Redis connections with connection pooling.

    Features:
    - Connection pooling for efficient resource usage
    - Health checks
    - Explicit close on shutdown

    One instance is created per process at startup and handed to the
    components that need it.
    """

    def __init__(self, url: str, client: Optional[Redis] = None, poll_timeout: int = 5):
        self.url = url
        # Must outlive the blocking BLPOP/BLMOVE poll
        self.socket_timeout = poll_timeout + SOCKET_TIMEOUT_MARGIN
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client

    def _create_pool(self) -> ConnectionPool:
        """Create Redis connection pool."""
        return ConnectionPool.from_url(
            self.url,
            max_connections=10,
            socket_connect_timeout=5,
            socket_timeout=self.socket_timeout,
            retry_on_timeout=True,
            decode_responses=True,
        )

    def get_connection(self) -> Redis:
        """
        Get a Redis connection from the pool.

        Returns:
            Redis client instance
        """
        if self._client is None:
            self._pool = self._create_pool()
            self._client = Redis(connection_pool=self._pool)
            logger.info(f"Created Redis connection pool for {self._mask_url(self.url)}")

        return self._client

    def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            dict with status and info
        """
        try:
            client = self.get_connection()
            ping_result = client.ping()
            info = client.info("server")

            return {
                "status": "healthy" if ping_result else "unhealthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": self._mask_url(self.url)
            }
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
                "url": self._mask_url(self.url)
            }

    def _mask_url(self, url: str) -> str:
        """Mask password in Redis URL for logging."""
        if "@" in url:
            # redis://:password@host:port -> redis://***@host:port
            parts = url.split("@")
            return f"redis://***@{parts[-1]}"
        return url

    def close(self):
        """Close all connections in the pool."""
        if self._pool:
            self._pool.disconnect()
            logger.info("Redis connection pool closed")
        self._pool = None
        self._client = None


__all__ = ["RedisManager"]
