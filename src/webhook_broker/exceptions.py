"""Custom exceptions for the webhook broker.

This module defines the exception hierarchy used throughout the broker to signal
transport-level failures. Classified upstream replies (inactive endpoint, HTTP
errors, malformed bodies) are not exceptions; they are ClassifiedOutcome values.

Examples:
    Handling a cache backend error::

        from webhook_broker.exceptions import CacheBackendError

        try:
            value = await backend.get(key)
        except CacheBackendError as e:
            logger.warning("cache.primary_unavailable", error=str(e))
            # Downgrade to the local fallback
            value = await fallback.get(key)

    Handling an upstream network error::

        from webhook_broker.exceptions import UpstreamNetworkError

        try:
            reply = await upstream.dispatch(payload)
        except UpstreamNetworkError as e:
            return network_error_response(e)
"""


class BrokerError(Exception):
    """Base exception for all broker errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class CacheBackendError(BrokerError):
    """A cache backend operation failed at the transport level.

    Raised by cache backends when the underlying store cannot be reached or
    answers with a protocol error. The CacheTier absorbs this error by marking
    the primary backend unavailable and continuing with the local fallback; it
    is never surfaced to broker callers.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.

    Examples:
        Raising a cache backend error::

            try:
                await redis.get(key)
            except RedisError as e:
                raise CacheBackendError(
                    message=f"Failed to read key from Redis: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class UpstreamNetworkError(BrokerError):
    """The upstream engine could not be reached or did not answer in time.

    This is the only failure the broker reports to its caller as a 500-class
    error: every reply the upstream does send is classified instead.

    Attributes:
        message: Human-readable error description.
        url: The upstream URL that was dispatched to.
        cause: The underlying transport exception.
    """

    def __init__(self, message: str, url: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.cause = cause


class PollingError(BrokerError):
    """A status query made by the polling client failed.

    Attributes:
        message: Human-readable error description.
        handle: The tracking handle being polled.
        cause: The underlying transport or decoding exception.
    """

    def __init__(self, message: str, handle: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.handle = handle
        self.cause = cause


class PollingTimeout(BrokerError):
    """The polling client reached its attempt ceiling without observing completion.

    This does not claim the work failed, only that observation stopped.

    Attributes:
        message: Human-readable error description.
        handle: The tracking handle being polled.
        attempts: Number of status queries issued.
    """

    def __init__(self, message: str, handle: str, attempts: int) -> None:
        super().__init__(message)
        self.handle = handle
        self.attempts = attempts
