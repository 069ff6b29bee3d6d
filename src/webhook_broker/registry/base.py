"""Request registry protocol.

The registry maps a tracking handle (or an upstream-supplied alternate id) to the
status and result of a unit of work. Entries are created when a dispatch starts
asynchronously and completed when the deferred result arrives.

The protocol is the seam for a shared store: the in-memory implementation is
process-local, so a poller routed to a different process never sees entries
registered elsewhere. A shared implementation removes that limitation without
touching the broker.

Completion Semantics:
    complete() transitions an entry to COMPLETED at most once. The first inbound
    channel to deliver a result wins; later deliveries for the same key leave
    the entry unchanged and return False. Completing an unknown key creates a
    completed entry (the upstream may call back with an id the broker never
    registered).

Examples:
    Using a registry::

        registry = MemoryRequestRegistry()
        await registry.put(
            "acme_1700000000000",
            RegistryEntry(handle="acme_1700000000000", status=RequestStatus.PROCESSING),
        )
        await registry.complete("acme_1700000000000", {"value": 1}, source="result")
"""

from typing import Any, Protocol, runtime_checkable

from webhook_broker.models import RegistryEntry


@runtime_checkable
class RequestRegistry(Protocol):
    """Protocol defining the interface for request registries.

    Concurrency:
        Writes for one key happen on dispatch start and on result arrival, which
        do not race under the expected workflow. Implementations need atomic
        single-key read-modify-write, nothing more.
    """

    async def put(self, handle: str, entry: RegistryEntry) -> None:
        """Store ``entry`` under ``handle``, replacing any previous entry."""
        ...

    async def get(self, handle: str) -> RegistryEntry | None:
        """Return the entry for ``handle``, or None when absent."""
        ...

    async def list_keys(self) -> list[str]:
        """Return every tracked key in insertion order."""
        ...

    async def complete(
        self,
        handle: str,
        result: Any,
        source: str,
        matched_from: str | None = None,
    ) -> bool:
        """Mark ``handle`` completed with ``result``.

        Returns:
            True if the entry transitioned to COMPLETED, False if it already was.
        """
        ...

    async def cleanup_expired(self) -> int:
        """Remove entries past their retention period.

        Returns:
            The number of entries removed.
        """
        ...

    async def size(self) -> int:
        """Return the number of tracked entries."""
        ...
