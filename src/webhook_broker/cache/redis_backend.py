"""Redis cache backend, the shared primary of the cache tier.

Uses ``redis.asyncio``. The client is created without automatic retries: once a
transport failure is observed the tier stops using this backend for the rest of
the process lifetime, so retrying here would only delay the downgrade.

Examples:
    Creating a backend from a URL::

        from webhook_broker.cache.redis_backend import RedisCacheBackend

        backend = RedisCacheBackend.from_url("redis://cache:6379/0")
        await backend.ping()

    Wrapping an existing client (tests, shared pools)::

        backend = RedisCacheBackend(client=my_redis_client)
"""

from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from webhook_broker.cache.base import CacheBackend
from webhook_broker.exceptions import CacheBackendError


class RedisCacheBackend(CacheBackend):
    """Cache backend backed by a Redis server.

    All Redis and socket errors are wrapped in CacheBackendError.

    Attributes:
        client: The ``redis.asyncio`` client (decode_responses=True).
    """

    name = "redis"

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        socket_connect_timeout: float = 2.0,
        socket_timeout: float = 2.0,
    ) -> "RedisCacheBackend":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_connect_timeout,
            socket_timeout=socket_timeout,
            retry_on_timeout=False,
        )
        return cls(client=client)

    async def get(self, key: str) -> str | None:
        try:
            value = await self.client.get(key)
        except (RedisError, OSError) as e:
            raise CacheBackendError(message=f"Failed to read key from Redis: {e}", cause=e) from e
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(key, value)
        except (RedisError, OSError) as e:
            raise CacheBackendError(message=f"Failed to write key to Redis: {e}", cause=e) from e

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self.client.scan_iter(match=f"{prefix}*")]
        except (RedisError, OSError) as e:
            raise CacheBackendError(message=f"Failed to list keys in Redis: {e}", cause=e) from e

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            raise CacheBackendError(message=f"Redis is unreachable: {e}", cause=e) from e

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError):
            # Server may already be gone
            return None
