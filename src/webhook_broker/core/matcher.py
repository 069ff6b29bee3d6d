"""Reconciliation matcher for status queries.

The client polls with its composite handle (``{clientIdentifier}_{timestamp}``)
while the upstream may deliver its result under a different key, often only the
numeric timestamp. The matcher searches in stages and stops at the first hit:

    1. registry      exact registry key
    2. registry_token  registry key equal to or containing the handle's numeric token
    3. cache_request_id  cache ``request_{handle}``
    4. cache_token      cache ``request_{token}``
    5. cache_fallback_subject  cache lookup of each configured fallback subject

An exact registry entry wins even while it is still processing: the report is
then ``pending``, regardless of what later stages hold.
"""

from webhook_broker.cache.tier import CacheTier
from webhook_broker.keys import extract_numeric_token, request_cache_key
from webhook_broker.models import RegistryEntry, StatusReport
from webhook_broker.observability.logging import get_logger
from webhook_broker.observability.metrics import record_status_resolution
from webhook_broker.registry.base import RequestRegistry

logger = get_logger(__name__)

STAGE_REGISTRY = "registry"
STAGE_REGISTRY_TOKEN = "registry_token"
STAGE_CACHE_REQUEST_ID = "cache_request_id"
STAGE_CACHE_TOKEN = "cache_token"
STAGE_CACHE_FALLBACK_SUBJECT = "cache_fallback_subject"


def _report_from_entry(entry: RegistryEntry, stage: str) -> StatusReport:
    return StatusReport(
        status="completed" if entry.is_completed else "pending",
        result=entry.result if entry.is_completed else None,
        source=stage,
        started_at=entry.started_at,
        completed_at=entry.completed_at,
    )


class ReconciliationMatcher:
    """Resolves a tracking handle against the registry and the cache tier.

    Attributes:
        registry: Request registry holding in-flight and completed work.
        cache: Cache tier holding completed results.
        fallback_subjects: Normalized subjects tried as the last stage.
    """

    def __init__(
        self,
        registry: RequestRegistry,
        cache: CacheTier,
        fallback_subjects: list[str] | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.fallback_subjects = list(fallback_subjects or [])

    async def resolve(self, handle: str) -> StatusReport:
        """Return the status of ``handle``; ``pending`` when no stage matches."""
        report = await self._resolve(handle)
        record_status_resolution(report.source)
        logger.info(
            "status.resolved",
            handle=handle,
            status=report.status,
            stage=report.source,
        )
        return report

    async def _resolve(self, handle: str) -> StatusReport:
        entry = await self.registry.get(handle)
        if entry is not None:
            return _report_from_entry(entry, STAGE_REGISTRY)

        token = extract_numeric_token(handle)
        if token is not None:
            for key in await self.registry.list_keys():
                if key == token or token in key:
                    matched = await self.registry.get(key)
                    if matched is not None:
                        return _report_from_entry(matched, STAGE_REGISTRY_TOKEN)

        cached = await self.cache.get(request_cache_key(handle))
        if cached is not None:
            return StatusReport(status="completed", result=cached, source=STAGE_CACHE_REQUEST_ID)

        if token is not None:
            cached = await self.cache.get(request_cache_key(token))
            if cached is not None:
                return StatusReport(status="completed", result=cached, source=STAGE_CACHE_TOKEN)

        for subject in self.fallback_subjects:
            cached = await self.cache.get(subject)
            if cached is not None:
                return StatusReport(
                    status="completed",
                    result=cached,
                    source=STAGE_CACHE_FALLBACK_SUBJECT,
                )

        return StatusReport(status="pending")
