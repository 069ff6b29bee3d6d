"""Caller-side polling client for the broker.

The broker answers a submission whose work started asynchronously with a
tracking handle. BrokerClient submits work and, when handed a handle, polls
the status endpoint until a terminal state is reached.

State machine:
    idle -> submitting -> completed | failed
    submitting -> waiting (async start signalled)
    waiting -> completed | timed_out | failed

Polling rules:
    - at most ``max_attempts`` status queries
    - ``interval_seconds`` of sleep between queries, none after the last one
    - a query that fails or returns an unreadable body ends in ``failed``
      without retrying that query
    - exhausting the attempts ends in ``timed_out``, distinct from ``failed``

Examples:
    Submitting and waiting::

        async with BrokerClient("http://localhost:8000") as client:
            outcome = await client.submit({"lesseeName": "acme", "itemDescription": "Volvo A30G"})
            if outcome.state is PollState.COMPLETED:
                print(outcome.result)

    Polling settings can come from the broker configuration::

        client = BrokerClient.from_config("http://localhost:8000", BrokerConfig.from_env())
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from webhook_broker.config import BrokerConfig
from webhook_broker.core.responses import ASYNC_STATUS_CODE
from webhook_broker.exceptions import PollingError, PollingTimeout
from webhook_broker.models import OutcomeKind
from webhook_broker.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 130.0


class PollState(str, Enum):
    """Client-side lifecycle state of a submission."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    WAITING = "waiting"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class PollOutcome(BaseModel):
    """Terminal result of a submission.

    Attributes:
        state: One of completed, timed_out, failed.
        handle: Tracking handle, when the work started asynchronously.
        result: Result payload when completed.
        attempts: Status queries issued.
        error: Error payload (``error``, ``errorType``, ``errorMessage``) when
            failed or timed out.
    """

    state: PollState
    handle: str | None = None
    result: Any = None
    attempts: int = 0
    error: dict[str, Any] | None = None


def _error_payload(error_type: str, message: str) -> dict[str, Any]:
    return {"error": True, "errorType": error_type, "errorMessage": message}


def _is_async_start(status_code: int, body: Any) -> bool:
    if isinstance(body, dict) and body.get("outcome") == OutcomeKind.ASYNC_STARTED.value:
        return True
    return status_code == ASYNC_STATUS_CODE


class BrokerClient:
    """Submits work to a broker and waits for deferred results.

    Args:
        base_url: Broker base URL.
        interval_seconds: Sleep between status queries.
        max_attempts: Maximum number of status queries.
        http_client: Optional pre-built httpx.AsyncClient; not closed by aclose().
        transport: Optional httpx transport for the owned client.
        sleep: Coroutine used to wait between queries.
    """

    def __init__(
        self,
        base_url: str,
        *,
        interval_seconds: float = 5.0,
        max_attempts: int = 120,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.base_url = base_url.rstrip("/")
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.state = PollState.IDLE
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            transport=transport,
            timeout=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        )

    @classmethod
    def from_config(cls, base_url: str, config: BrokerConfig, **kwargs: Any) -> "BrokerClient":
        """Build a client that polls with the interval and attempt ceiling of ``config``."""
        return cls(
            base_url,
            interval_seconds=config.poll_interval_seconds,
            max_attempts=config.poll_max_attempts,
            **kwargs,
        )

    async def __aenter__(self) -> "BrokerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def budget_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts

    async def submit(self, payload: dict[str, Any]) -> PollOutcome:
        """Submit ``payload`` and wait for a terminal state."""
        self.state = PollState.SUBMITTING
        try:
            response = await self._client.post(f"{self.base_url}/api/work", json=payload)
        except httpx.HTTPError as e:
            logger.error("client.submit_failed", error=str(e), error_type=type(e).__name__)
            return self._finish(
                PollOutcome(
                    state=PollState.FAILED,
                    error=_error_payload(
                        "NetworkError",
                        f"Could not reach the broker: {str(e) or type(e).__name__}",
                    ),
                )
            )

        try:
            body: Any = response.json()
        except ValueError:
            body = {"responseText": response.text}

        if _is_async_start(response.status_code, body):
            handle = (body.get("handle") or body.get("requestId")) if isinstance(body, dict) else None
            if not handle:
                return self._finish(
                    PollOutcome(
                        state=PollState.FAILED,
                        error=_error_payload(
                            "PollingError", "Async start signalled without a tracking handle"
                        ),
                    )
                )
            return await self.wait_for(handle)

        if response.is_success and not (isinstance(body, dict) and body.get("error") is True):
            return self._finish(PollOutcome(state=PollState.COMPLETED, result=body))

        error = body if isinstance(body, dict) else {"responseText": body}
        return self._finish(PollOutcome(state=PollState.FAILED, error=error))

    async def wait_for(self, handle: str) -> PollOutcome:
        """Poll the status of ``handle`` until completion, failure, or the attempt ceiling."""
        self.state = PollState.WAITING
        logger.info(
            "client.waiting",
            handle=handle,
            interval_seconds=self.interval_seconds,
            max_attempts=self.max_attempts,
        )
        attempts = 0
        try:
            while True:
                attempts += 1
                status = await self._query_status(handle)
                if status.get("status") == "completed":
                    logger.info("client.completed", handle=handle, attempts=attempts)
                    return self._finish(
                        PollOutcome(
                            state=PollState.COMPLETED,
                            handle=handle,
                            result=status.get("result"),
                            attempts=attempts,
                        )
                    )
                if attempts >= self.max_attempts:
                    raise PollingTimeout(
                        f"Analysis still processing after {self.budget_seconds / 60:g} minutes",
                        handle=handle,
                        attempts=attempts,
                    )
                await self._sleep(self.interval_seconds)
        except PollingTimeout as e:
            logger.warning("client.timed_out", handle=handle, attempts=e.attempts)
            return self._finish(
                PollOutcome(
                    state=PollState.TIMED_OUT,
                    handle=handle,
                    attempts=e.attempts,
                    error=_error_payload("PollingTimeout", e.message),
                )
            )
        except PollingError as e:
            logger.error("client.poll_failed", handle=handle, attempts=attempts, error=e.message)
            return self._finish(
                PollOutcome(
                    state=PollState.FAILED,
                    handle=handle,
                    attempts=attempts,
                    error=_error_payload("PollingError", e.message),
                )
            )

    async def _query_status(self, handle: str) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"{self.base_url}/api/work/status/{quote(handle, safe='')}"
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise PollingError(
                f"Status query failed: {str(e) or type(e).__name__}", handle=handle, cause=e
            ) from e
        except ValueError as e:
            raise PollingError("Status query returned an unreadable body", handle=handle, cause=e) from e

        if not isinstance(body, dict):
            raise PollingError("Status query returned an unexpected body", handle=handle)
        return body

    def _finish(self, outcome: PollOutcome) -> PollOutcome:
        self.state = outcome.state
        return outcome
