"""Core type definitions for the webhook broker.

This module provides the data structures shared by the broker components: the
work request derived from a submitted payload, the registry entry that tracks
asynchronous work, the tagged outcomes produced by the response classifier, and
the reports returned by status reconciliation and cache statistics.

Examples:
    Deriving a work request from a payload::

        from webhook_broker.config import BrokerConfig
        from webhook_broker.models import WorkRequest

        request = WorkRequest.from_payload(
            {"lesseeName": "acme", "timestamp": 1700000000000, "itemDescription": " Volvo A30G "},
            BrokerConfig(),
        )
        request.subject_key  # 'volvo a30g'
        request.handle       # 'acme_1700000000000'

    Tracking an asynchronous dispatch::

        entry = RegistryEntry(
            handle="acme_1700000000000",
            status=RequestStatus.PROCESSING,
            subject_key="volvo a30g",
            started_at=datetime.now(UTC),
        )
"""

import time
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from webhook_broker.config import BrokerConfig
from webhook_broker.keys import make_tracking_handle, normalize_subject_key


class RequestStatus(str, Enum):
    """Lifecycle state of a tracked unit of work.

    Attributes:
        PROCESSING: The upstream accepted the work and computes it out-of-band.
        COMPLETED: A deferred result has been delivered.
    """

    PROCESSING = "processing"
    COMPLETED = "completed"


class OutcomeKind(str, Enum):
    """Tags of the classified upstream outcomes."""

    SYNC_SUCCESS = "sync_success"
    ASYNC_STARTED = "async_started"
    NOT_ACTIVE = "not_active"
    HTTP_ERROR = "http_error"
    MALFORMED_BODY = "malformed_body"


class WorkRequest(BaseModel):
    """A submitted unit of work, alive only for the duration of dispatch.

    Attributes:
        subject_key: Normalized descriptive subject; the durable cache key.
        client_id: Client identifier, first half of the tracking handle.
        submitted_at: Submission timestamp in milliseconds, second half of the handle.
        payload: The raw submitted payload, forwarded to the upstream as-is.
    """

    subject_key: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    submitted_at: int | str
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def handle(self) -> str:
        """Tracking handle ``{client_id}_{submitted_at}``."""
        return make_tracking_handle(self.client_id, self.submitted_at)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], config: BrokerConfig) -> "WorkRequest":
        """Derive a work request from a submitted payload.

        A missing or blank subject falls back to ``config.default_subject``; a
        missing client identifier becomes ``anonymous``; a missing timestamp is
        replaced by the current time in milliseconds.
        """
        raw_subject = payload.get(config.subject_field)
        subject = str(raw_subject) if raw_subject not in (None, "") else ""
        subject_key = normalize_subject_key(subject) or normalize_subject_key(
            config.default_subject
        )

        client_id = payload.get(config.client_id_field)
        if client_id in (None, ""):
            client_id = "anonymous"

        submitted_at = payload.get(config.timestamp_field)
        if submitted_at in (None, ""):
            submitted_at = int(time.time() * 1000)
        elif isinstance(submitted_at, float) and submitted_at.is_integer():
            submitted_at = int(submitted_at)

        return cls(
            subject_key=subject_key,
            client_id=str(client_id),
            submitted_at=submitted_at if isinstance(submitted_at, int) else str(submitted_at),
            payload=payload,
        )


class RegistryEntry(BaseModel):
    """Status and result of a tracked unit of work.

    Attributes:
        handle: Tracking handle or upstream-supplied id the entry is keyed by.
        status: Current lifecycle state.
        result: Delivered result payload, present only when completed.
        subject_key: Subject of the originating dispatch, when known.
        started_at: When the asynchronous dispatch was registered.
        completed_at: When the result was delivered.
        source: Channel that completed the entry (result, callback, manual).
        matched_from: Upstream id that completed this entry by token matching.
    """

    handle: str = Field(..., min_length=1)
    status: RequestStatus
    result: Any = None
    subject_key: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    source: str | None = None
    matched_from: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == RequestStatus.COMPLETED

    @property
    def last_activity(self) -> datetime:
        """Most recent lifecycle timestamp, used for retention decisions."""
        return self.completed_at or self.started_at or datetime.now(UTC)


class SyncSuccess(BaseModel):
    """The upstream answered with a result in the same cycle."""

    kind: Literal[OutcomeKind.SYNC_SUCCESS] = OutcomeKind.SYNC_SUCCESS
    payload: Any
    textual: bool = False


class AsyncStarted(BaseModel):
    """The upstream accepted the work and computes it out-of-band."""

    kind: Literal[OutcomeKind.ASYNC_STARTED] = OutcomeKind.ASYNC_STARTED
    handle: str


class NotActive(BaseModel):
    """The upstream endpoint exists but is not enabled."""

    kind: Literal[OutcomeKind.NOT_ACTIVE] = OutcomeKind.NOT_ACTIVE


class HttpError(BaseModel):
    """The upstream answered with an error or otherwise unusable HTTP status.

    Attributes:
        status_code: Upstream HTTP status.
        body: Raw upstream body text.
        startup_failure: True when the body reports a workflow that could not be started.
    """

    kind: Literal[OutcomeKind.HTTP_ERROR] = OutcomeKind.HTTP_ERROR
    status_code: int = Field(..., ge=100)
    body: str = ""
    startup_failure: bool = False


class MalformedBody(BaseModel):
    """The upstream answered successfully with a body that is neither JSON nor a textual result."""

    kind: Literal[OutcomeKind.MALFORMED_BODY] = OutcomeKind.MALFORMED_BODY
    raw_text: str


ClassifiedOutcome = Annotated[
    SyncSuccess | AsyncStarted | NotActive | HttpError | MalformedBody,
    Field(discriminator="kind"),
]


class StatusReport(BaseModel):
    """Answer to a status query for a tracking handle.

    Attributes:
        status: "completed" once a result is observable, "pending" otherwise.
        result: The result payload when completed.
        source: Reconciliation stage that answered, None when nothing matched.
        started_at: Start of the matched registry entry, when known.
        completed_at: Completion of the matched registry entry, when known.
    """

    status: Literal["pending", "completed"]
    result: Any = None
    source: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        """Render the caller-facing JSON body, omitting unset fields."""
        payload: dict[str, Any] = {"status": self.status}
        if self.status == "completed":
            payload["result"] = self.result
        if self.source is not None:
            payload["source"] = self.source
        if self.started_at is not None:
            payload["startedAt"] = self.started_at.isoformat()
        if self.completed_at is not None:
            payload["completedAt"] = self.completed_at.isoformat()
        return payload


class CacheStats(BaseModel):
    """Snapshot of the cache tier contents."""

    total_keys: int = Field(..., ge=0, serialization_alias="totalKeys")
    keys: list[str] = Field(default_factory=list)
    source: str
