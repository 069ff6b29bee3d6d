"""Scenario 3: Upstream Errors

This module tests how upstream failures reach the caller:
- 404 becomes WebhookNotActive with troubleshooting steps
- 500 with the startup-failure marker becomes WorkflowStartupError
- Other error statuses are echoed as WebhookHttpError
- Transport failures and timeouts become 500 NetworkError
- Short non-JSON replies become MalformedBody
- Redirects are followed; anything still outside 2xx becomes a 502 WebhookHttpError
- None of these write to the registry or the cache
"""

from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from webhook_broker.adapters.asgi import create_app
from webhook_broker.cache.tier import CacheTier
from webhook_broker.core.broker import AsyncResponseBroker
from webhook_broker.registry.memory import MemoryRequestRegistry

UPSTREAM_URL = "http://upstream.test/webhook/analysis"


# Fixtures
@pytest.fixture
def client(broker: AsyncResponseBroker) -> TestClient:
    return TestClient(create_app(broker=broker))


def assert_no_side_effects(registry: MemoryRequestRegistry, cache: CacheTier) -> None:
    assert len(registry) == 0
    assert len(cache.fallback) == 0


class TestNotActive:
    def test_404_not_active(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply((404, '{"code": 404, "message": "The requested webhook is not registered."}'))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 404
        body = response.json()
        assert body["error"] is True
        assert body["errorType"] == "WebhookNotActive"
        assert body["webhookUrl"] == UPSTREAM_URL
        assert len(body["troubleshooting"]) == 3
        assert_no_side_effects(registry, cache)

    def test_404_is_not_cached(
        self, client: TestClient, upstream: Any, sample_payload: dict[str, Any]
    ) -> None:
        upstream.reply((404, ""), (200, '{"estimatedValue": 1}'))

        client.post("/api/work", json=sample_payload)
        retry = client.post("/api/work", json=sample_payload)

        assert retry.status_code == 200
        assert len(upstream.calls) == 2


class TestHttpErrors:
    def test_startup_failure(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply((500, '{"message": "Workflow could not be started!"}'))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 500
        body = response.json()
        assert body["errorType"] == "WorkflowStartupError"
        assert "hint" in body
        assert body["responseText"] == '{"message": "Workflow could not be started!"}'
        assert_no_side_effects(registry, cache)

    @pytest.mark.parametrize("status", [400, 403, 500, 502, 503])
    def test_generic_error_echoed(
        self, client: TestClient, upstream: Any, sample_payload: dict[str, Any], status: int
    ) -> None:
        upstream.reply((status, "upstream exploded"))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == status
        body = response.json()
        assert body["errorType"] == "WebhookHttpError"
        assert body["status"] == status
        assert body["responseText"] == "upstream exploded"
        assert body["errorMessage"] == f"Webhook returned HTTP {status}"

    def test_empty_error_body_is_not_async(
        self, client: TestClient, upstream: Any, sample_payload: dict[str, Any]
    ) -> None:
        upstream.reply((502, ""))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 502
        assert "handle" not in response.json()


class TestTransportFailures:
    def test_connection_refused(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply(httpx.ConnectError("All connection attempts failed"))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 500
        body = response.json()
        assert body["errorType"] == "NetworkError"
        assert "All connection attempts failed" in body["errorMessage"]
        assert body["webhookUrl"] == UPSTREAM_URL
        assert_no_side_effects(registry, cache)

    def test_timeout(self, client: TestClient, upstream: Any, sample_payload: dict[str, Any]) -> None:
        upstream.reply(httpx.ReadTimeout("timed out"))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 500
        assert response.json()["errorType"] == "NetworkError"


class TestMalformedBody:
    def test_short_text(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply((200, "Accepted"))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["error"] is True
        assert body["errorType"] == "MalformedBody"
        assert body["responseText"] == "Accepted"
        assert_no_side_effects(registry, cache)


class TestRedirects:
    def test_permanent_redirect_is_followed(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply(
            (308, "", {"location": "http://upstream.test/webhook/v2/analysis"}),
            (200, '{"estimatedValue": 365580}'),
        )

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 200
        assert response.json() == {"estimatedValue": 365580}
        assert len(upstream.calls) == 2
        assert upstream.calls[1] == sample_payload
        assert len(registry) == 0

    def test_unresolved_redirect_is_not_async_start(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply((300, ""))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 502
        body = response.json()
        assert body["errorType"] == "WebhookHttpError"
        assert body["status"] == 300
        assert "handle" not in body
        assert_no_side_effects(registry, cache)


class TestOutOfRangeStatus:
    def test_status_above_599_is_reported(
        self,
        client: TestClient,
        upstream: Any,
        registry: MemoryRequestRegistry,
        cache: CacheTier,
        sample_payload: dict[str, Any],
    ) -> None:
        upstream.reply((600, "weird"))

        response = client.post("/api/work", json=sample_payload)

        assert response.status_code == 502
        body = response.json()
        assert body["error"] is True
        assert body["errorType"] == "WebhookHttpError"
        assert body["status"] == 600
        assert body["responseText"] == "weird"
        assert_no_side_effects(registry, cache)
