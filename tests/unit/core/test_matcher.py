"""Unit tests for the ReconciliationMatcher.

Every pair of adjacent stages is checked so that an earlier stage always wins.
"""

from datetime import UTC, datetime

import pytest

from webhook_broker.cache.tier import CacheTier
from webhook_broker.core.matcher import (
    STAGE_CACHE_FALLBACK_SUBJECT,
    STAGE_CACHE_REQUEST_ID,
    STAGE_CACHE_TOKEN,
    STAGE_REGISTRY,
    STAGE_REGISTRY_TOKEN,
    ReconciliationMatcher,
)
from webhook_broker.models import RegistryEntry, RequestStatus
from webhook_broker.registry.memory import MemoryRequestRegistry

HANDLE = "acme_1700000000000"
TOKEN = "1700000000000"


@pytest.fixture
def registry() -> MemoryRequestRegistry:
    return MemoryRequestRegistry()


@pytest.fixture
def cache() -> CacheTier:
    return CacheTier()


@pytest.fixture
def matcher(registry: MemoryRequestRegistry, cache: CacheTier) -> ReconciliationMatcher:
    return ReconciliationMatcher(registry, cache, fallback_subjects=["unknown equipment"])


async def put_processing(registry: MemoryRequestRegistry, handle: str) -> None:
    await registry.put(
        handle,
        RegistryEntry(
            handle=handle,
            status=RequestStatus.PROCESSING,
            subject_key="volvo a30g",
            started_at=datetime.now(UTC),
        ),
    )


class TestSingleStages:
    @pytest.mark.asyncio
    async def test_nothing_matches(self, matcher: ReconciliationMatcher) -> None:
        report = await matcher.resolve(HANDLE)
        assert report.status == "pending"
        assert report.source is None

    @pytest.mark.asyncio
    async def test_exact_processing_entry_is_pending(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry
    ) -> None:
        await put_processing(registry, HANDLE)
        report = await matcher.resolve(HANDLE)
        assert report.status == "pending"
        assert report.source == STAGE_REGISTRY
        assert report.started_at is not None

    @pytest.mark.asyncio
    async def test_exact_completed_entry(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry
    ) -> None:
        await put_processing(registry, HANDLE)
        await registry.complete(HANDLE, {"value": 1}, source="result")

        report = await matcher.resolve(HANDLE)
        assert report.status == "completed"
        assert report.result == {"value": 1}
        assert report.source == STAGE_REGISTRY
        assert report.completed_at is not None

    @pytest.mark.asyncio
    async def test_registry_key_equal_to_token(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry
    ) -> None:
        await registry.complete(TOKEN, {"value": 2}, source="result")

        report = await matcher.resolve(HANDLE)
        assert report.status == "completed"
        assert report.result == {"value": 2}
        assert report.source == STAGE_REGISTRY_TOKEN

    @pytest.mark.asyncio
    async def test_registry_key_containing_token(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry
    ) -> None:
        await registry.complete(f"job-{TOKEN}-done", {"value": 3}, source="callback")

        report = await matcher.resolve(HANDLE)
        assert report.result == {"value": 3}
        assert report.source == STAGE_REGISTRY_TOKEN

    @pytest.mark.asyncio
    async def test_cache_request_id(self, matcher: ReconciliationMatcher, cache: CacheTier) -> None:
        await cache.set(f"request_{HANDLE}", {"value": 4})
        report = await matcher.resolve(HANDLE)
        assert report.result == {"value": 4}
        assert report.source == STAGE_CACHE_REQUEST_ID

    @pytest.mark.asyncio
    async def test_cache_token(self, matcher: ReconciliationMatcher, cache: CacheTier) -> None:
        await cache.set(f"request_{TOKEN}", {"value": 5})
        report = await matcher.resolve(HANDLE)
        assert report.result == {"value": 5}
        assert report.source == STAGE_CACHE_TOKEN

    @pytest.mark.asyncio
    async def test_fallback_subject(self, matcher: ReconciliationMatcher, cache: CacheTier) -> None:
        await cache.set("Unknown Equipment", {"value": 6})
        report = await matcher.resolve(HANDLE)
        assert report.result == {"value": 6}
        assert report.source == STAGE_CACHE_FALLBACK_SUBJECT

    @pytest.mark.asyncio
    async def test_handle_without_token_skips_token_stages(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry, cache: CacheTier
    ) -> None:
        await registry.complete("plainhandle-extra", {"value": 7}, source="result")
        report = await matcher.resolve("plainhandle")
        assert report.status == "pending"


class TestStageOrdering:
    @pytest.mark.asyncio
    async def test_processing_exact_beats_completed_token_key(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry
    ) -> None:
        await put_processing(registry, HANDLE)
        await registry.complete(TOKEN, {"value": 1}, source="result")

        report = await matcher.resolve(HANDLE)
        assert report.status == "pending"
        assert report.source == STAGE_REGISTRY

    @pytest.mark.asyncio
    async def test_processing_exact_beats_cached_token(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry, cache: CacheTier
    ) -> None:
        await put_processing(registry, HANDLE)
        await cache.set(f"request_{TOKEN}", {"value": 1})

        report = await matcher.resolve(HANDLE)
        assert report.status == "pending"

    @pytest.mark.asyncio
    async def test_registry_token_beats_cache_request_id(
        self, matcher: ReconciliationMatcher, registry: MemoryRequestRegistry, cache: CacheTier
    ) -> None:
        await registry.complete(TOKEN, "from-registry", source="result")
        await cache.set(f"request_{HANDLE}", "from-cache")

        report = await matcher.resolve(HANDLE)
        assert report.result == "from-registry"
        assert report.source == STAGE_REGISTRY_TOKEN

    @pytest.mark.asyncio
    async def test_cache_request_id_beats_cache_token(
        self, matcher: ReconciliationMatcher, cache: CacheTier
    ) -> None:
        await cache.set(f"request_{HANDLE}", "by-handle")
        await cache.set(f"request_{TOKEN}", "by-token")

        report = await matcher.resolve(HANDLE)
        assert report.result == "by-handle"

    @pytest.mark.asyncio
    async def test_cache_token_beats_fallback_subject(
        self, matcher: ReconciliationMatcher, cache: CacheTier
    ) -> None:
        await cache.set(f"request_{TOKEN}", "by-token")
        await cache.set("unknown equipment", "by-subject")

        report = await matcher.resolve(HANDLE)
        assert report.result == "by-token"

    @pytest.mark.asyncio
    async def test_fallback_subjects_in_order(
        self, registry: MemoryRequestRegistry, cache: CacheTier
    ) -> None:
        matcher = ReconciliationMatcher(registry, cache, fallback_subjects=["crane", "dozer"])
        await cache.set("dozer", "second")
        await cache.set("crane", "first")

        report = await matcher.resolve(HANDLE)
        assert report.result == "first"

    @pytest.mark.asyncio
    async def test_no_fallback_subjects_configured(
        self, registry: MemoryRequestRegistry, cache: CacheTier
    ) -> None:
        matcher = ReconciliationMatcher(registry, cache)
        await cache.set("unknown equipment", "anything")

        report = await matcher.resolve(HANDLE)
        assert report.status == "pending"
