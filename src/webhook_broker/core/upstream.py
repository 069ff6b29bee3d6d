"""HTTP client for the upstream workflow engine.

Dispatches a submitted payload as JSON and returns the raw status and body text
for classification. Redirects are followed, so a moved webhook URL is
resolved before its reply is classified. Every transport failure, including
hitting the explicit dispatch timeout, is raised as UpstreamNetworkError.
"""

from typing import Any

import httpx

from webhook_broker.exceptions import UpstreamNetworkError
from webhook_broker.observability.logging import get_logger

logger = get_logger(__name__)


class UpstreamReply:
    """Raw upstream reply.

    Attributes:
        status_code: HTTP status code
        text: Body text (possibly empty)
    """

    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


class UpstreamClient:
    """Async client posting work to the upstream webhook.

    Args:
        url: Upstream webhook URL.
        timeout_seconds: Upper bound for one dispatch.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    async def dispatch(self, payload: dict[str, Any]) -> UpstreamReply:
        """POST ``payload`` to the upstream and return its raw reply.

        Raises:
            UpstreamNetworkError: If the upstream cannot be reached or times out.
        """
        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Accept": "application/json, text/plain, */*"},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "upstream.transport_failed",
                url=self.url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamNetworkError(
                message=f"Upstream request failed: {str(exc) or type(exc).__name__}",
                url=self.url,
                cause=exc,
            ) from exc

        logger.debug(
            "upstream.replied",
            url=self.url,
            status=response.status_code,
            body_length=len(response.text),
        )
        return UpstreamReply(status_code=response.status_code, text=response.text)

    async def aclose(self) -> None:
        await self._client.aclose()
