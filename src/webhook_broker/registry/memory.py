"""In-memory request registry with explicit retention.

Entries live in an insertion-ordered dictionary. Retention is bounded two ways:

    - max_entries: when exceeded, the oldest entries are evicted first
    - ttl_seconds: optional; entries whose last activity is older are removed by
      cleanup_expired() (driven by the cleanup loop)

With ttl_seconds=None entries are kept for the lifetime of the process, subject
only to the size bound.
"""

from collections import OrderedDict
from datetime import UTC, datetime, timedelta
from typing import Any

from webhook_broker.models import RegistryEntry, RequestStatus
from webhook_broker.observability.logging import get_logger
from webhook_broker.observability.metrics import set_registry_size
from webhook_broker.registry.base import RequestRegistry

logger = get_logger(__name__)


class MemoryRequestRegistry(RequestRegistry):
    """Process-local request registry.

    Attributes:
        max_entries: Maximum number of entries kept.
        ttl_seconds: Lifetime of an entry since its last activity, or None.
    """

    def __init__(self, max_entries: int = 10000, ttl_seconds: int | None = None) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._entries: OrderedDict[str, RegistryEntry] = OrderedDict()

    async def put(self, handle: str, entry: RegistryEntry) -> None:
        if handle in self._entries:
            self._entries.move_to_end(handle)
        self._entries[handle] = entry
        self._evict_overflow()
        set_registry_size(len(self._entries))

    async def get(self, handle: str) -> RegistryEntry | None:
        return self._entries.get(handle)

    async def list_keys(self) -> list[str]:
        return list(self._entries)

    async def complete(
        self,
        handle: str,
        result: Any,
        source: str,
        matched_from: str | None = None,
    ) -> bool:
        existing = self._entries.get(handle)
        if existing is not None and existing.is_completed:
            logger.info("registry.already_completed", handle=handle, source=source)
            return False

        completed = RegistryEntry(
            handle=handle,
            status=RequestStatus.COMPLETED,
            result=result,
            subject_key=existing.subject_key if existing is not None else None,
            started_at=existing.started_at if existing is not None else None,
            completed_at=datetime.now(UTC),
            source=source,
            matched_from=matched_from,
        )
        await self.put(handle, completed)
        logger.info(
            "registry.completed",
            handle=handle,
            source=source,
            matched_from=matched_from,
        )
        return True

    async def cleanup_expired(self) -> int:
        if self.ttl_seconds is None:
            return 0

        cutoff = datetime.now(UTC) - timedelta(seconds=self.ttl_seconds)
        expired_keys = [
            handle for handle, entry in self._entries.items() if entry.last_activity < cutoff
        ]
        for handle in expired_keys:
            del self._entries[handle]

        set_registry_size(len(self._entries))
        return len(expired_keys)

    async def size(self) -> int:
        return len(self._entries)

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_entries:
            handle, _ = self._entries.popitem(last=False)
            logger.warning("registry.evicted", handle=handle, max_entries=self.max_entries)

    def __len__(self) -> int:
        return len(self._entries)
