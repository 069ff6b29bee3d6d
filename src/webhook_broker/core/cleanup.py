"""Background retention sweep over the request registry.

Only started when the registry has a TTL. Each pass drops entries whose last
activity is older than the TTL. A failing pass is logged and the next pass runs
on schedule.

Examples:
    Around the application lifetime::

        task = await start_cleanup_task(registry, interval_seconds=300)
        ...
        await stop_cleanup_task(task)
"""

import asyncio
import contextlib

from webhook_broker.observability.logging import get_logger
from webhook_broker.observability.metrics import record_cleanup
from webhook_broker.registry.base import RequestRegistry

logger = get_logger(__name__)


async def sweep_once(registry: RequestRegistry) -> int:
    """Run one retention pass and return the number of entries dropped."""
    removed = await registry.cleanup_expired()
    record_cleanup(removed)
    log = logger.info if removed else logger.debug
    log("cleanup.completed", records_removed=removed, registry_size=await registry.size())
    return removed


async def cleanup_loop(
    registry: RequestRegistry,
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Sweep every ``interval_seconds`` until ``stop_event`` is set.

    The event is checked before each pass, and setting it interrupts the wait
    between passes.
    """
    if stop_event is None:
        stop_event = asyncio.Event()
    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            await sweep_once(registry)
        except Exception as e:
            logger.exception("cleanup.failed", error_type=type(e).__name__)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    registry: RequestRegistry,
    interval_seconds: float = 300,
) -> asyncio.Task[None]:
    stop_event = asyncio.Event()
    task = asyncio.create_task(cleanup_loop(registry, interval_seconds, stop_event))
    task._stop_event = stop_event  # type: ignore[attr-defined]
    return task


async def stop_cleanup_task(task: asyncio.Task[None], timeout: float = 5.0) -> None:
    """Let the sweep finish its current pass and exit; cancel it past ``timeout``."""
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)
    if stop_event is not None:
        stop_event.set()

    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return

    logger.warning("cleanup.stop_timeout", timeout=timeout)
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
