"""Caller-facing responses built from classified outcomes.

Every classified outcome yields a response; the caller renders error payloads
rather than retrying. Error payloads share the fields ``error``, ``errorType``
and ``errorMessage`` plus kind-specific details.

Status codes:
    - 200: synchronous result (from the cache or the upstream)
    - 524: asynchronous start; keep polling the returned handle. The body also
      carries ``outcome: "async_started"`` so clients need not rely on the code.
    - 404: upstream endpoint not active
    - upstream status: upstream HTTP errors (4xx, 5xx) are echoed
    - 502: any other non-2xx upstream status, reported in the body
    - 500: upstream unreachable (the only broker-originated 5xx)
"""

from typing import Any

from webhook_broker.exceptions import UpstreamNetworkError
from webhook_broker.models import (
    AsyncStarted,
    HttpError,
    MalformedBody,
    NotActive,
    OutcomeKind,
    SyncSuccess,
)

ASYNC_STATUS_CODE = 524

SOURCE_HEADER = "x-broker-source"

NOT_ACTIVE_TROUBLESHOOTING = [
    "Activate the workflow in the upstream engine editor",
    "Use the production webhook URL rather than the test endpoint",
    "Verify the webhook URL is correct",
]


class BrokerResponse:
    """A response ready to be rendered by an HTTP adapter.

    Attributes:
        status: HTTP status code
        body: JSON-compatible response body
        headers: Extra response headers
        outcome: Outcome tag for metrics and logging
    """

    def __init__(
        self,
        status: int,
        body: Any,
        outcome: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self.body = body
        self.outcome = outcome
        self.headers = headers or {}


def cached_result_response(payload: Any) -> BrokerResponse:
    return BrokerResponse(
        status=200,
        body=payload,
        outcome="cache_hit",
        headers={SOURCE_HEADER: "cache"},
    )


def sync_success_response(outcome: SyncSuccess) -> BrokerResponse:
    return BrokerResponse(
        status=200,
        body=outcome.payload,
        outcome=OutcomeKind.SYNC_SUCCESS.value,
        headers={SOURCE_HEADER: "upstream"},
    )


def async_started_response(outcome: AsyncStarted) -> BrokerResponse:
    return BrokerResponse(
        status=ASYNC_STATUS_CODE,
        body={
            "status": ASYNC_STATUS_CODE,
            "outcome": OutcomeKind.ASYNC_STARTED.value,
            "handle": outcome.handle,
            "requestId": outcome.handle,
            "message": "Workflow started - processing in background",
        },
        outcome=OutcomeKind.ASYNC_STARTED.value,
    )


def not_active_response(outcome: NotActive, upstream_url: str) -> BrokerResponse:
    return BrokerResponse(
        status=404,
        body={
            "error": True,
            "errorType": "WebhookNotActive",
            "errorMessage": (
                "The upstream webhook is not active. Activate the workflow or "
                "contact the workflow owner."
            ),
            "status": 404,
            "webhookUrl": upstream_url,
            "troubleshooting": list(NOT_ACTIVE_TROUBLESHOOTING),
        },
        outcome=outcome.kind.value,
    )


def _echoed_status(upstream_status: int) -> int:
    return upstream_status if 400 <= upstream_status <= 599 else 502


def http_error_response(outcome: HttpError, upstream_url: str) -> BrokerResponse:
    if outcome.startup_failure:
        body: dict[str, Any] = {
            "error": True,
            "errorType": "WorkflowStartupError",
            "errorMessage": (
                "The upstream workflow could not be started. Check that it is active "
                "and properly configured."
            ),
            "hint": "Activate the workflow and ensure its webhook accepts this request method.",
            "status": outcome.status_code,
            "responseText": outcome.body,
            "webhookUrl": upstream_url,
        }
    else:
        body = {
            "error": True,
            "errorType": "WebhookHttpError",
            "errorMessage": f"Webhook returned HTTP {outcome.status_code}",
            "status": outcome.status_code,
            "responseText": outcome.body,
            "webhookUrl": upstream_url,
        }
    return BrokerResponse(
        status=_echoed_status(outcome.status_code), body=body, outcome=outcome.kind.value
    )


def malformed_body_response(outcome: MalformedBody) -> BrokerResponse:
    return BrokerResponse(
        status=200,
        body={
            "error": True,
            "errorType": "MalformedBody",
            "errorMessage": "The upstream answered with a body that is neither JSON nor a result",
            "responseText": outcome.raw_text,
        },
        outcome=outcome.kind.value,
    )


def network_error_response(error: UpstreamNetworkError) -> BrokerResponse:
    return BrokerResponse(
        status=500,
        body={
            "error": True,
            "errorType": "NetworkError",
            "errorMessage": error.message,
            "webhookUrl": error.url,
        },
        outcome="network_error",
    )
