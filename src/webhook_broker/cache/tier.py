"""Two-level result cache: shared primary with a process-local fallback.

Reads and writes go to the primary first. The first transport failure marks the
primary unavailable for the rest of the process lifetime (no reconnect) and the
tier continues with the fallback only. Failures are logged, never raised.

Write path:
    1. primary.set (skipped once the primary is unavailable)
    2. fallback.set, unconditionally, so the fallback mirrors every write

Read path:
    1. primary.get (skipped once the primary is unavailable)
    2. fallback.get, only when the primary is unavailable or had no value

Keys are normalized (case-folded, trimmed) and namespaced before they reach a
backend. Values are JSON-encoded so both tiers return identical payloads.

Examples:
    Local-only tier::

        tier = CacheTier(fallback=MemoryCacheBackend())
        await tier.set("Volvo A30G", {"estimatedValue": 365580})
        await tier.get("  volvo a30g ")  # {'estimatedValue': 365580}

    Redis primary with memory fallback::

        tier = CacheTier(
            primary=RedisCacheBackend.from_url("redis://cache:6379/0"),
            fallback=MemoryCacheBackend(),
        )
        await tier.connect()
"""

import json
from typing import Any

from webhook_broker.cache.base import CacheBackend
from webhook_broker.cache.memory import MemoryCacheBackend
from webhook_broker.exceptions import CacheBackendError
from webhook_broker.keys import normalize_subject_key
from webhook_broker.models import CacheStats
from webhook_broker.observability.logging import get_logger
from webhook_broker.observability.metrics import record_cache_lookup, set_primary_available

logger = get_logger(__name__)


class CacheTier:
    """Best-effort two-level key/value cache.

    Attributes:
        primary: Shared backend, or None for a local-only tier.
        fallback: Process-local backend, always available.
        namespace: Prefix prepended to every normalized key.
    """

    def __init__(
        self,
        fallback: CacheBackend | None = None,
        primary: CacheBackend | None = None,
        namespace: str = "residual_analysis",
    ) -> None:
        self.primary = primary
        self.fallback = fallback if fallback is not None else MemoryCacheBackend()
        self.namespace = namespace
        self._primary_available = primary is not None
        set_primary_available(self._primary_available)

    @property
    def primary_available(self) -> bool:
        return self._primary_available

    @property
    def source(self) -> str:
        """Tiers currently in use, as reported by cache statistics."""
        if self._primary_available and self.primary is not None:
            return f"{self.primary.name} + {self.fallback.name}"
        return f"{self.fallback.name} only"

    def _prefix(self) -> str:
        return f"{self.namespace}:"

    def _full_key(self, key: str) -> str:
        return f"{self._prefix()}{normalize_subject_key(key)}"

    def _mark_primary_unavailable(self, operation: str, error: CacheBackendError) -> None:
        self._primary_available = False
        set_primary_available(False)
        logger.warning(
            "cache.primary_unavailable",
            operation=operation,
            backend=self.primary.name if self.primary is not None else None,
            error=error.message,
        )

    async def connect(self) -> None:
        """Check the primary at startup and downgrade immediately if it is unreachable."""
        if not self._primary_available or self.primary is None:
            logger.info("cache.local_only", backend=self.fallback.name)
            return
        try:
            await self.primary.ping()
        except CacheBackendError as e:
            self._mark_primary_unavailable("ping", e)
            return
        logger.info("cache.primary_connected", backend=self.primary.name)

    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``, or None when absent in every tier."""
        full_key = self._full_key(key)

        if self._primary_available and self.primary is not None:
            try:
                raw = await self.primary.get(full_key)
            except CacheBackendError as e:
                self._mark_primary_unavailable("get", e)
            else:
                if raw is not None:
                    record_cache_lookup(self.primary.name, hit=True)
                    logger.debug("cache.hit", key=full_key, backend=self.primary.name)
                    return json.loads(raw)

        raw = await self.fallback.get(full_key)
        if raw is not None:
            record_cache_lookup(self.fallback.name, hit=True)
            logger.debug("cache.hit", key=full_key, backend=self.fallback.name)
            return json.loads(raw)

        record_cache_lookup(self.fallback.name, hit=False)
        logger.debug("cache.miss", key=full_key)
        return None

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` in the primary (if available) and the fallback."""
        full_key = self._full_key(key)
        raw = json.dumps(value)

        if self._primary_available and self.primary is not None:
            try:
                await self.primary.set(full_key, raw)
            except CacheBackendError as e:
                self._mark_primary_unavailable("set", e)

        await self.fallback.set(full_key, raw)
        logger.info("cache.stored", key=full_key, source=self.source)

    async def stats(self) -> CacheStats:
        """Return the de-duplicated keys of every tier with the namespace stripped."""
        prefix = self._prefix()
        primary_keys: list[str] = []
        if self._primary_available and self.primary is not None:
            try:
                primary_keys = await self.primary.keys(prefix)
            except CacheBackendError as e:
                self._mark_primary_unavailable("keys", e)
                primary_keys = []

        fallback_keys = await self.fallback.keys(prefix)

        seen: dict[str, None] = {}
        for full_key in [*primary_keys, *fallback_keys]:
            seen[full_key[len(prefix) :]] = None

        keys = list(seen)
        return CacheStats(total_keys=len(keys), keys=keys, source=self.source)

    async def close(self) -> None:
        if self.primary is not None:
            await self.primary.close()
        await self.fallback.close()
