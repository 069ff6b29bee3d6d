"""Key derivation for subjects, tracking handles and request-scoped cache entries.

A subject key is the normalized descriptive string of "what was analyzed"; it is
the durable cache key. A tracking handle is the correlation string a caller polls,
built as ``{clientIdentifier}_{submissionTimestamp}``. The upstream engine may
call back with only the numeric timestamp part of a handle, so the trailing
numeric token is extracted for reconciliation.
"""

import re

REQUEST_KEY_PREFIX = "request_"

_NUMERIC_TOKEN_RE = re.compile(r"_(\d+)$")


def normalize_subject_key(subject: str) -> str:
    """Case-fold and trim a subject so cosmetic variants share one cache entry.

    Examples:
        >>> normalize_subject_key("  Volvo A30G Articulating Dump ")
        'volvo a30g articulating dump'
    """
    return subject.strip().casefold()


def make_tracking_handle(client_id: str, submitted_at: int | str) -> str:
    """Build the tracking handle ``{client_id}_{submitted_at}``.

    Examples:
        >>> make_tracking_handle("acme", 1700000000000)
        'acme_1700000000000'
    """
    return f"{client_id}_{submitted_at}"


def extract_numeric_token(handle: str) -> str | None:
    """Return the trailing numeric token of a handle shaped ``*_<digits>``.

    Examples:
        >>> extract_numeric_token("acme_1700000000000")
        '1700000000000'
        >>> extract_numeric_token("1700000000000") is None
        True
    """
    match = _NUMERIC_TOKEN_RE.search(handle)
    if match is None:
        return None
    return match.group(1)


def request_cache_key(request_id: str) -> str:
    """Cache key under which a delivered result is stored for its request id."""
    return f"{REQUEST_KEY_PREFIX}{request_id}"
