"""In-memory cache backend.

This is the process-local fallback of the cache tier. It is always available and
mirrors every write made through the tier, so it holds a superset of what the
process has written to the primary.
"""

from webhook_broker.cache.base import CacheBackend


class MemoryCacheBackend(CacheBackend):
    """Cache backend storing values in a Python dictionary.

    Attributes:
        _store: Dictionary mapping namespaced keys to serialized values.
    """

    name = "memory"

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        self._store[key] = value

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in self._store if key.startswith(prefix)]

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._store)
