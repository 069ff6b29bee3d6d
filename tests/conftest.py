"""
Pytest configuration and shared fixtures for webhook_broker tests.
"""

import json
from typing import Any

import httpx
import pytest

from webhook_broker.cache.memory import MemoryCacheBackend
from webhook_broker.cache.tier import CacheTier
from webhook_broker.config import BrokerConfig
from webhook_broker.core.broker import AsyncResponseBroker
from webhook_broker.core.upstream import UpstreamClient
from webhook_broker.registry.memory import MemoryRequestRegistry

UPSTREAM_URL = "http://upstream.test/webhook/analysis"


class FakeUpstream:
    """Scripted upstream workflow engine behind an httpx.MockTransport.

    Replies are consumed in order; once exhausted, ``default`` is used. A reply
    is a ``(status, text)`` or ``(status, text, headers)`` tuple, or an exception
    instance to raise.
    """

    def __init__(self, default: tuple[int, str] = (200, "")) -> None:
        self.default = default
        self.replies: list[tuple[Any, ...] | Exception] = []
        self.calls: list[dict[str, Any]] = []

    def reply(self, *replies: tuple[Any, ...] | Exception) -> "FakeUpstream":
        self.replies.extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(json.loads(request.content or b"{}"))
        item = self.replies.pop(0) if self.replies else self.default
        if isinstance(item, Exception):
            raise item
        status, text, *rest = item
        return httpx.Response(status, text=text, headers=rest[0] if rest else None)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def config() -> BrokerConfig:
    """Broker configuration pointing at the fake upstream."""
    return BrokerConfig(upstream_url=UPSTREAM_URL)


@pytest.fixture
def upstream() -> FakeUpstream:
    """Fresh scripted upstream for each test."""
    return FakeUpstream()


@pytest.fixture
def cache() -> CacheTier:
    """Local-only cache tier."""
    return CacheTier(fallback=MemoryCacheBackend())


@pytest.fixture
def registry() -> MemoryRequestRegistry:
    """Fresh in-memory request registry."""
    return MemoryRequestRegistry()


@pytest.fixture
def broker(
    config: BrokerConfig,
    upstream: FakeUpstream,
    cache: CacheTier,
    registry: MemoryRequestRegistry,
) -> AsyncResponseBroker:
    """Broker wired to in-memory backends and the fake upstream."""
    return AsyncResponseBroker(
        config=config,
        cache=cache,
        registry=registry,
        upstream=UpstreamClient(config.upstream_url, transport=upstream.transport),
    )


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """A typical submission payload."""
    return {
        "lesseeName": "acme",
        "timestamp": 1700000000000,
        "itemDescription": "Volvo A30G",
        "hoursUsed": 4200,
    }
