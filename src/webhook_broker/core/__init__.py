"""Core broker logic.

This package contains the framework-agnostic broker components:
- Classifier: maps raw upstream replies onto tagged outcomes
- Upstream: HTTP client for the workflow engine
- Broker: submission, delivery and status handling
- Matcher: staged reconciliation of tracking handles
- Polling: caller-side client waiting for deferred results
- Cleanup: registry retention sweep

Adapters wrap the broker for a web framework (see webhook_broker.adapters).
"""

from webhook_broker.core.broker import AsyncResponseBroker
from webhook_broker.core.classifier import classify_response
from webhook_broker.core.polling import BrokerClient, PollOutcome, PollState

__all__ = [
    "AsyncResponseBroker",
    "BrokerClient",
    "PollOutcome",
    "PollState",
    "classify_response",
]
