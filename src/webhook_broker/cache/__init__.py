"""Result cache for the webhook broker.

This package provides the two-level cache tier and its backends. All backends
implement the CacheBackend protocol defined in base.py.

Available Backends:
    - MemoryCacheBackend: process-local dictionary, the always-available fallback
    - RedisCacheBackend: shared Redis primary (redis.asyncio)
"""

from webhook_broker.cache.base import CacheBackend
from webhook_broker.cache.memory import MemoryCacheBackend
from webhook_broker.cache.redis_backend import RedisCacheBackend
from webhook_broker.cache.tier import CacheTier

__all__ = [
    "CacheBackend",
    "CacheTier",
    "MemoryCacheBackend",
    "RedisCacheBackend",
]
