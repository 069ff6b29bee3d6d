"""Asynchronous response broker.

The broker reconciles a caller that expects one request/response cycle with an
upstream workflow engine that may answer synchronously, start work silently in
the background, or fail in several ways.

Submission flow:
    1. Derive the WorkRequest (subject key, tracking handle) from the payload
    2. Serve a cached result for the subject key if one exists
    3. Otherwise claim the subject, re-check the cache, dispatch to the upstream
    4. Classify the reply and apply its side effects:
       SyncSuccess -> cache under the subject key
       AsyncStarted -> register the handle as processing
    5. Build the caller-facing response

Delivery flow (upstream calls back out-of-band):
    1. Cache the result under the originating subject and ``request_{id}``
    2. Complete the registry entry for the id (first delivery wins)
    3. Complete every registry key that ends with ``_{id}`` or contains the id,
       since the upstream may only know the numeric token of the handle

Examples:
    Building a broker from configuration::

        config = BrokerConfig(upstream_url="https://engine.example.com/webhook/x")
        broker = AsyncResponseBroker.from_config(config)

        response = await broker.submit(
            {"lesseeName": "acme", "timestamp": 1700000000000, "itemDescription": "Volvo A30G"}
        )
        if response.status == 524:
            report = await broker.status(response.body["handle"])
"""

import asyncio
import json
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from webhook_broker.cache.memory import MemoryCacheBackend
from webhook_broker.cache.redis_backend import RedisCacheBackend
from webhook_broker.cache.tier import CacheTier
from webhook_broker.config import BrokerConfig
from webhook_broker.core.classifier import classify_response
from webhook_broker.core.matcher import ReconciliationMatcher
from webhook_broker.core.responses import (
    BrokerResponse,
    async_started_response,
    cached_result_response,
    http_error_response,
    malformed_body_response,
    network_error_response,
    not_active_response,
    sync_success_response,
)
from webhook_broker.core.upstream import UpstreamClient
from webhook_broker.exceptions import UpstreamNetworkError
from webhook_broker.keys import normalize_subject_key, request_cache_key
from webhook_broker.models import (
    AsyncStarted,
    ClassifiedOutcome,
    HttpError,
    MalformedBody,
    NotActive,
    RegistryEntry,
    RequestStatus,
    StatusReport,
    SyncSuccess,
    WorkRequest,
)
from webhook_broker.observability.logging import get_logger
from webhook_broker.observability.metrics import record_delivery, record_dispatch
from webhook_broker.registry.base import RequestRegistry
from webhook_broker.registry.memory import MemoryRequestRegistry

logger = get_logger(__name__)

CHANNEL_RESULT = "result"
CHANNEL_CALLBACK = "callback"
CHANNEL_MANUAL = "manual"


class AsyncResponseBroker:
    """Dispatches work upstream, tracks it, and answers status queries.

    Attributes:
        config: Broker configuration
        cache: Two-level result cache
        registry: Request registry for asynchronous work
        upstream: Upstream webhook client
        matcher: Reconciliation matcher used for status queries
    """

    def __init__(
        self,
        config: BrokerConfig,
        cache: CacheTier,
        registry: RequestRegistry,
        upstream: UpstreamClient,
    ) -> None:
        self.config = config
        self.cache = cache
        self.registry = registry
        self.upstream = upstream
        self.matcher = ReconciliationMatcher(
            registry=registry,
            cache=cache,
            fallback_subjects=list(config.fallback_subjects),
        )
        self._subject_locks: dict[str, asyncio.Lock] = {}
        self._subject_lock_users: dict[str, int] = {}

    @classmethod
    def from_config(cls, config: BrokerConfig) -> "AsyncResponseBroker":
        """Wire a broker with the backends named by ``config``."""
        primary = RedisCacheBackend.from_url(config.redis_url) if config.cache_backend == "redis" else None
        cache = CacheTier(
            fallback=MemoryCacheBackend(),
            primary=primary,
            namespace=config.cache_namespace,
        )
        registry = MemoryRequestRegistry(
            max_entries=config.registry_max_entries,
            ttl_seconds=config.registry_ttl_seconds,
        )
        upstream = UpstreamClient(
            config.upstream_url,
            timeout_seconds=config.upstream_timeout_seconds,
        )
        return cls(config=config, cache=cache, registry=registry, upstream=upstream)

    @asynccontextmanager
    async def _claim_subject(self, subject_key: str) -> AsyncIterator[None]:
        """Serialize cache-check-and-dispatch per subject key.

        Locks are created on demand and dropped once no coroutine uses them.
        """
        lock = self._subject_locks.setdefault(subject_key, asyncio.Lock())
        self._subject_lock_users[subject_key] = self._subject_lock_users.get(subject_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._subject_lock_users[subject_key] -= 1
            if self._subject_lock_users[subject_key] == 0:
                del self._subject_lock_users[subject_key]
                del self._subject_locks[subject_key]

    async def submit(self, payload: dict[str, Any]) -> BrokerResponse:
        """Submit work and return either a result or a tracking handle.

        Args:
            payload: The submitted payload, forwarded to the upstream unchanged.

        Returns:
            BrokerResponse for the caller. Never raises for upstream behavior.
        """
        request = WorkRequest.from_payload(payload, self.config)

        cached = await self.cache.get(request.subject_key)
        if cached is not None:
            return self._cache_hit(request, cached)

        async with self._claim_subject(request.subject_key):
            # A concurrent submission for the same subject may have filled the cache
            cached = await self.cache.get(request.subject_key)
            if cached is not None:
                return self._cache_hit(request, cached)

            logger.info(
                "dispatch.started",
                subject=request.subject_key,
                handle=request.handle,
                url=self.upstream.url,
            )
            started = time.perf_counter()
            try:
                reply = await self.upstream.dispatch(request.payload)
            except UpstreamNetworkError as e:
                record_dispatch("network_error", duration_seconds=time.perf_counter() - started)
                return network_error_response(e)
            duration = time.perf_counter() - started

            outcome = classify_response(
                reply.status_code,
                reply.text,
                handle=request.handle,
                min_text_length=self.config.min_text_length,
                text_result_field=self.config.text_result_field,
                startup_failure_marker=self.config.startup_failure_marker,
            )
            logger.info(
                "dispatch.classified",
                subject=request.subject_key,
                handle=request.handle,
                upstream_status=reply.status_code,
                outcome=outcome.kind.value,
                duration_seconds=round(duration, 3),
            )
            record_dispatch(outcome.kind.value, duration_seconds=duration)
            return await self._apply_outcome(outcome, request)

    def _cache_hit(self, request: WorkRequest, cached: Any) -> BrokerResponse:
        logger.info("dispatch.cache_hit", subject=request.subject_key)
        record_dispatch("cache_hit")
        return cached_result_response(cached)

    async def _apply_outcome(
        self, outcome: ClassifiedOutcome, request: WorkRequest
    ) -> BrokerResponse:
        if isinstance(outcome, SyncSuccess):
            await self.cache.set(request.subject_key, outcome.payload)
            return sync_success_response(outcome)

        if isinstance(outcome, AsyncStarted):
            await self.registry.put(
                outcome.handle,
                RegistryEntry(
                    handle=outcome.handle,
                    status=RequestStatus.PROCESSING,
                    subject_key=request.subject_key,
                    started_at=datetime.now(UTC),
                ),
            )
            return async_started_response(outcome)

        if isinstance(outcome, NotActive):
            return not_active_response(outcome, self.upstream.url)

        if isinstance(outcome, HttpError):
            return http_error_response(outcome, self.upstream.url)

        if isinstance(outcome, MalformedBody):
            return malformed_body_response(outcome)

        raise TypeError(f"Unexpected outcome: {outcome!r}")

    async def status(self, handle: str) -> StatusReport:
        """Answer a status query for ``handle`` through the reconciliation matcher."""
        return await self.matcher.resolve(handle)

    async def _subject_for(self, request_id: str) -> str:
        """Find the subject of the dispatch a delivery belongs to."""
        entry = await self.registry.get(request_id)
        if entry is not None and entry.subject_key:
            return entry.subject_key

        for key in await self.registry.list_keys():
            if key.endswith(f"_{request_id}") or request_id in key:
                matched = await self.registry.get(key)
                if matched is not None and matched.subject_key:
                    return matched.subject_key

        return normalize_subject_key(self.config.default_subject)

    async def deliver(self, request_id: str, result: Any, channel: str = CHANNEL_RESULT) -> list[str]:
        """Record a result delivered out-of-band by the upstream.

        Args:
            request_id: Id the upstream delivered under: a full handle or only
                its numeric token.
            result: Delivered result payload.
            channel: Inbound channel name, for logging and metrics.

        Returns:
            Registry keys that transitioned to completed.
        """
        subject = await self._subject_for(request_id)
        await self.cache.set(subject, result)
        await self.cache.set(request_cache_key(request_id), result)

        completed: list[str] = []
        if await self.registry.complete(request_id, result, source=channel):
            completed.append(request_id)

        for key in await self.registry.list_keys():
            if key == request_id:
                continue
            if key.endswith(f"_{request_id}") or request_id in key:
                if await self.registry.complete(
                    key, result, source=channel, matched_from=request_id
                ):
                    completed.append(key)

        record_delivery(channel)
        logger.info(
            "delivery.received",
            request_id=request_id,
            channel=channel,
            subject=subject,
            completed=completed,
        )
        return completed

    async def deliver_from_query(self, handle: str, query: dict[str, str]) -> list[str]:
        """Record a result delivered through a GET callback.

        The result is the ``response`` query parameter parsed as JSON when
        possible, the raw parameter otherwise, and the whole query dictionary
        when no ``response`` parameter is present.
        """
        result: Any = dict(query)
        raw = query.get("response")
        if raw is not None:
            try:
                result = json.loads(raw)
            except ValueError:
                result = raw
        return await self.deliver(handle, result, channel=CHANNEL_CALLBACK)

    async def complete_manually(self, handle: str, result: Any) -> bool:
        """Operator override: mark ``handle`` completed with ``result``."""
        completed = await self.registry.complete(handle, result, source=CHANNEL_MANUAL)
        record_delivery(CHANNEL_MANUAL)
        logger.warning("delivery.manual_completion", handle=handle, completed=completed)
        return completed

    async def lookup_cache(self, key: str) -> Any | None:
        return await self.cache.get(key)

    async def aclose(self) -> None:
        await self.upstream.aclose()
        await self.cache.close()
