"""Response classifier for upstream workflow engine replies.

The upstream answers a dispatch in one of several inconsistent ways. This module
maps the raw HTTP status and body text onto a tagged ClassifiedOutcome. It is
pure: cache and registry side effects are applied by the broker.

Priority:
    1. 404                                   -> NotActive
    2. 500 with the startup-failure marker   -> HttpError(startup_failure=True)
    3. any other status >= 400               -> HttpError
    4. any other status outside 2xx          -> HttpError
    5. 2xx, empty/whitespace body            -> AsyncStarted(handle)
    6. 2xx, JSON body                        -> SyncSuccess(parsed)
    7. 2xx, text > min_text_length           -> SyncSuccess(text envelope)
    8. 2xx, shorter non-JSON text            -> MalformedBody

Examples:
    >>> classify_response(200, "", handle="acme_1").kind.value
    'async_started'
    >>> classify_response(200, '{"value": 1}', handle="acme_1").payload
    {'value': 1}
    >>> classify_response(404, "not registered", handle="acme_1").kind.value
    'not_active'
"""

import json
from datetime import UTC, datetime
from typing import Any

from webhook_broker.models import (
    AsyncStarted,
    ClassifiedOutcome,
    HttpError,
    MalformedBody,
    NotActive,
    SyncSuccess,
)

DEFAULT_STARTUP_FAILURE_MARKER = "Workflow could not be started"


def _parse_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def wrap_text_result(text: str, field: str = "residualAnalysis") -> dict[str, Any]:
    """Wrap a textual analysis result in a minimal structured envelope."""
    return {
        field: text,
        "status": "completed",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def classify_response(
    status_code: int,
    body_text: str,
    *,
    handle: str,
    min_text_length: int = 10,
    text_result_field: str = "residualAnalysis",
    startup_failure_marker: str = DEFAULT_STARTUP_FAILURE_MARKER,
) -> ClassifiedOutcome:
    """Classify an upstream reply.

    Args:
        status_code: HTTP status returned by the upstream.
        body_text: Raw body text returned by the upstream.
        handle: Tracking handle to register if the work started asynchronously.
        min_text_length: Non-JSON bodies longer than this are textual results.
        text_result_field: Envelope field for textual results.
        startup_failure_marker: Body marker of a workflow that could not start.

    Returns:
        One of SyncSuccess, AsyncStarted, NotActive, HttpError, MalformedBody.
    """
    if status_code == 404:
        return NotActive()

    if status_code >= 400:
        startup_failure = (
            status_code == 500
            and bool(startup_failure_marker)
            and startup_failure_marker in body_text
        )
        return HttpError(status_code=status_code, body=body_text, startup_failure=startup_failure)

    if not 200 <= status_code < 300:
        return HttpError(status_code=status_code, body=body_text)

    if not body_text or not body_text.strip():
        return AsyncStarted(handle=handle)

    parsed_ok, parsed = _parse_json(body_text)
    if parsed_ok:
        return SyncSuccess(payload=parsed)

    if len(body_text) > min_text_length:
        return SyncSuccess(payload=wrap_text_result(body_text, text_result_field), textual=True)

    return MalformedBody(raw_text=body_text)
