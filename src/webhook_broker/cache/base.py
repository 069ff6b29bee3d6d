"""Cache backend protocol for the broker's result cache.

A cache backend is a plain string key/value store. The CacheTier composes two of
them: a shared primary (which may be unavailable) and a process-local fallback
(which always is). Backends know nothing about normalization, namespacing or
serialization; the tier handles those so every backend stores the same bytes.

Error Handling:
    Backends MUST raise CacheBackendError for transport failures (connection
    refused, timeouts, protocol errors) and MUST NOT leak backend-specific
    exceptions. The tier relies on this to downgrade to the fallback.

Examples:
    Implementing a custom backend::

        class DictBackend:
            name = "dict"

            def __init__(self) -> None:
                self._data: dict[str, str] = {}

            async def get(self, key: str) -> str | None:
                return self._data.get(key)

            async def set(self, key: str, value: str) -> None:
                self._data[key] = value

            async def keys(self, prefix: str) -> list[str]:
                return [k for k in self._data if k.startswith(prefix)]

            async def ping(self) -> None:
                return None

            async def close(self) -> None:
                return None
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    """Protocol defining the interface for cache backends.

    Attributes:
        name: Short backend name reported in cache statistics.
    """

    name: str

    async def get(self, key: str) -> str | None:
        """Return the stored value for ``key``, or None when absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` without expiry, replacing any previous value."""
        ...

    async def keys(self, prefix: str) -> list[str]:
        """Return every stored key starting with ``prefix``."""
        ...

    async def ping(self) -> None:
        """Check the backend is reachable.

        Raises:
            CacheBackendError: If the backend cannot be reached.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        ...
