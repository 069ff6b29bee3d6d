"""structlog setup shared by the broker, its HTTP adapter and the polling client.

Events are named ``<area>.<what>`` (``dispatch.classified``, ``status.resolved``,
``cache.primary_unavailable``) and carry their details as key/value pairs.
Per-request values such as the trace id are bound into contextvars by the HTTP
adapter and merged into every event emitted while the request is handled.
"""

import logging
import sys
from typing import Any

import structlog

SERVICE_NAME = "webhook-broker"


def _add_service(service: str) -> Any:
    def processor(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    service: str = SERVICE_NAME,
) -> None:
    """Send structlog events and stdlib records to stdout at ``level``.

    JSON lines suit deployed brokers; the colored console renderer suits local
    runs. Calling again replaces the previous configuration.

    Args:
        level: Level name, e.g. ``INFO``. Unknown names raise KeyError.
        json_output: Render JSON lines instead of console output.
        service: Value of the ``service`` field added to every event.
    """
    numeric_level = logging.getLevelNamesMapping()[level.upper()]
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_service(service),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
