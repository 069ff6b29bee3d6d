"""Unit tests for the two-level CacheTier.

Covers key normalization, JSON round trips, the fallback mirror on writes, and
the permanent downgrade when the primary fails.
"""

from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from webhook_broker.cache.memory import MemoryCacheBackend
from webhook_broker.cache.tier import CacheTier
from webhook_broker.exceptions import CacheBackendError

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=20),
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=10), children, max_size=4),
    max_leaves=10,
)


class FailingBackend:
    """Primary backend that fails every operation once ``down`` is set."""

    name = "redis"

    def __init__(self, down: bool = True) -> None:
        self.down = down
        self.store = MemoryCacheBackend()
        self.calls: list[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.down:
            raise CacheBackendError(f"{operation} failed: connection refused")

    async def get(self, key: str) -> str | None:
        self._check("get")
        return await self.store.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check("set")
        await self.store.set(key, value)

    async def keys(self, prefix: str) -> list[str]:
        self._check("keys")
        return await self.store.keys(prefix)

    async def ping(self) -> None:
        self._check("ping")

    async def close(self) -> None:
        return None


class TestLocalOnlyTier:
    @pytest.mark.asyncio
    async def test_get_missing(self) -> None:
        assert await CacheTier().get("volvo a30g") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self) -> None:
        tier = CacheTier()
        await tier.set("Volvo A30G", {"estimatedValue": 365580})
        assert await tier.get("volvo a30g") == {"estimatedValue": 365580}

    @pytest.mark.asyncio
    async def test_keys_are_normalized(self) -> None:
        tier = CacheTier()
        await tier.set("  VOLVO A30G ", {"v": 1})
        assert await tier.get("volvo a30g") == {"v": 1}
        assert await tier.get("Volvo A30G") == {"v": 1}

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self) -> None:
        fallback = MemoryCacheBackend()
        tier = CacheTier(fallback=fallback, namespace="valuations")
        await tier.set("Crane", [1, 2])
        assert await fallback.get("valuations:crane") == "[1, 2]"

    @pytest.mark.asyncio
    async def test_overwrite_last_writer_wins(self) -> None:
        tier = CacheTier()
        await tier.set("crane", {"v": 1})
        await tier.set("crane", {"v": 2})
        assert await tier.get("crane") == {"v": 2}

    @pytest.mark.asyncio
    async def test_source_and_availability(self) -> None:
        tier = CacheTier()
        assert tier.source == "memory only"
        assert tier.primary_available is False

    @pytest.mark.asyncio
    async def test_connect_without_primary(self) -> None:
        tier = CacheTier()
        await tier.connect()
        assert tier.source == "memory only"

    @pytest.mark.asyncio
    @settings(max_examples=50)
    @given(key=st.text(min_size=1, max_size=30), value=json_values)
    async def test_roundtrip_any_json_value(self, key: str, value: Any) -> None:
        tier = CacheTier()
        await tier.set(key, value)
        if value is None:
            # A stored JSON null reads the same as a miss
            assert await tier.get(key) is None
        else:
            assert await tier.get(key) == value


class TestTwoLevelTier:
    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self) -> None:
        primary = FailingBackend(down=False)
        fallback = MemoryCacheBackend()
        tier = CacheTier(fallback=fallback, primary=primary)

        await tier.set("crane", {"v": 1})

        assert await primary.store.get("residual_analysis:crane") == '{"v": 1}'
        assert await fallback.get("residual_analysis:crane") == '{"v": 1}'

    @pytest.mark.asyncio
    async def test_get_prefers_primary(self) -> None:
        primary = FailingBackend(down=False)
        fallback = MemoryCacheBackend()
        await primary.store.set("residual_analysis:crane", '"primary"')
        await fallback.set("residual_analysis:crane", '"fallback"')
        tier = CacheTier(fallback=fallback, primary=primary)

        assert await tier.get("crane") == "primary"

    @pytest.mark.asyncio
    async def test_get_falls_through_on_primary_miss(self) -> None:
        fallback = MemoryCacheBackend()
        await fallback.set("residual_analysis:crane", '"local"')
        tier = CacheTier(fallback=fallback, primary=FailingBackend(down=False))

        assert await tier.get("crane") == "local"

    @pytest.mark.asyncio
    async def test_source_reports_both(self) -> None:
        tier = CacheTier(primary=FailingBackend(down=False))
        assert tier.source == "redis + memory"
        assert tier.primary_available is True


class TestPrimaryDowngrade:
    @pytest.mark.asyncio
    async def test_get_failure_downgrades_and_answers_from_fallback(self) -> None:
        fallback = MemoryCacheBackend()
        await fallback.set("residual_analysis:crane", '{"v": 1}')
        tier = CacheTier(fallback=fallback, primary=FailingBackend())

        assert await tier.get("crane") == {"v": 1}
        assert tier.primary_available is False
        assert tier.source == "memory only"

    @pytest.mark.asyncio
    async def test_set_failure_is_not_raised(self) -> None:
        tier = CacheTier(primary=FailingBackend())
        await tier.set("crane", {"v": 1})
        assert tier.primary_available is False
        assert await tier.get("crane") == {"v": 1}

    @pytest.mark.asyncio
    async def test_downgrade_is_permanent(self) -> None:
        primary = FailingBackend()
        tier = CacheTier(primary=primary)

        await tier.get("crane")
        primary.down = False
        await tier.set("crane", {"v": 1})
        await tier.get("crane")

        assert primary.calls == ["get"]
        assert tier.primary_available is False

    @pytest.mark.asyncio
    async def test_connect_ping_failure_downgrades(self) -> None:
        primary = FailingBackend()
        tier = CacheTier(primary=primary)
        await tier.connect()
        assert tier.primary_available is False
        assert primary.calls == ["ping"]

    @pytest.mark.asyncio
    async def test_connect_success_keeps_primary(self) -> None:
        tier = CacheTier(primary=FailingBackend(down=False))
        await tier.connect()
        assert tier.primary_available is True


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_union_without_duplicates(self) -> None:
        primary = FailingBackend(down=False)
        fallback = MemoryCacheBackend()
        tier = CacheTier(fallback=fallback, primary=primary)
        await tier.set("crane", 1)
        await primary.store.set("residual_analysis:loader", "2")
        await fallback.set("residual_analysis:dozer", "3")

        stats = await tier.stats()

        assert sorted(stats.keys) == ["crane", "dozer", "loader"]
        assert stats.total_keys == 3
        assert stats.source == "redis + memory"

    @pytest.mark.asyncio
    async def test_stats_ignores_other_namespaces(self) -> None:
        fallback = MemoryCacheBackend()
        await fallback.set("other:key", "1")
        tier = CacheTier(fallback=fallback)
        await tier.set("crane", 1)

        stats = await tier.stats()
        assert stats.keys == ["crane"]

    @pytest.mark.asyncio
    async def test_stats_after_primary_failure(self) -> None:
        tier = CacheTier(primary=FailingBackend())
        await tier.set("crane", 1)

        stats = await tier.stats()
        assert stats.keys == ["crane"]
        assert stats.source == "memory only"
