"""FastAPI application exposing the broker over HTTP.

Routes (prefix /api):
    POST /api/work                     submit work
    GET  /api/work/status/{handle}     status query
    POST /api/work/result/{id}         upstream result delivery
    POST /api/work/callback/{handle}   upstream callback delivery (JSON body)
    GET  /api/work/callback/{handle}   upstream callback delivery (query params)
    POST /api/work/complete/{handle}   operator manual completion
    GET  /api/cache/stats              cache statistics
    GET  /api/cache/{key}              direct cache lookup
    GET  /api/health                   liveness and primary cache state
    GET  /api/metrics                  Prometheus exposition

The broker is built when the app is created, so the routes work with or
without the lifespan running. The lifespan connects the cache tier, runs the
registry retention sweep when a TTL is configured, and closes the upstream
client and cache tier on shutdown.

Handles, delivery ids and cache keys are matched as paths, so a handle built
from a client identifier containing "/" still routes.

Examples:
    Serving with uvicorn::

        app = create_app(BrokerConfig.from_env())
        uvicorn.run(app, host="0.0.0.0", port=8000)

    Testing with an injected broker::

        broker = AsyncResponseBroker(config, cache, registry, upstream)
        client = TestClient(create_app(config, broker=broker))
"""

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from webhook_broker.config import BrokerConfig
from webhook_broker.core.broker import AsyncResponseBroker
from webhook_broker.core.cleanup import start_cleanup_task, stop_cleanup_task
from webhook_broker.core.responses import BrokerResponse
from webhook_broker.observability.logging import get_logger

logger = get_logger(__name__)

TRACE_HEADERS = ("x-trace-id", "x-request-id", "x-correlation-id", "traceparent")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds the request path and any tracing id to the structlog context."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        context: dict[str, Any] = {"path": request.url.path}
        trace_id = self._extract_trace_id(request)
        if trace_id:
            context["trace_id"] = trace_id
        with structlog.contextvars.bound_contextvars(**context):
            return await call_next(request)

    def _extract_trace_id(self, request: Request) -> str | None:
        for header in TRACE_HEADERS:
            value = request.headers.get(header)
            if value:
                return value
        return None


def _render(response: BrokerResponse) -> JSONResponse:
    return JSONResponse(
        content=response.body,
        status_code=response.status,
        headers=response.headers,
    )


def _invalid_body(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": True, "errorType": "InvalidRequest", "errorMessage": message},
    )


async def _read_json(request: Request) -> tuple[bool, Any]:
    """Parse the request body; an empty body reads as an empty object."""
    raw = await request.body()
    if not raw.strip():
        return True, {}
    try:
        return True, json.loads(raw)
    except ValueError:
        return False, None


def create_app(
    config: BrokerConfig | None = None,
    broker: AsyncResponseBroker | None = None,
) -> FastAPI:
    """Build the broker application.

    Args:
        config: Broker configuration (defaults when omitted, or the broker's
            own configuration when a broker is given)
        broker: Pre-wired broker; built from ``config`` when omitted

    Returns:
        The FastAPI application
    """
    if broker is None:
        broker = AsyncResponseBroker.from_config(config or BrokerConfig())
    config = broker.config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await broker.cache.connect()
        cleanup_task = None
        if config.registry_ttl_seconds is not None:
            cleanup_task = await start_cleanup_task(
                broker.registry,
                interval_seconds=config.cleanup_interval_seconds,
            )
        logger.info(
            "broker.started",
            upstream_url=config.upstream_url,
            cache_source=broker.cache.source,
        )
        try:
            yield
        finally:
            if cleanup_task is not None:
                await stop_cleanup_task(cleanup_task)
            await broker.aclose()
            logger.info("broker.stopped")

    app = FastAPI(
        title="Webhook Broker",
        description="Asynchronous response broker for an upstream workflow engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.broker = broker
    app.add_middleware(RequestContextMiddleware)

    @app.post("/api/work")
    async def submit_work(request: Request) -> JSONResponse:
        ok, payload = await _read_json(request)
        if not ok or not isinstance(payload, dict):
            return _invalid_body("Request body must be a JSON object")
        return _render(await broker.submit(payload))

    @app.get("/api/work/status/{handle:path}")
    async def work_status(handle: str) -> JSONResponse:
        report = await broker.status(handle)
        return JSONResponse(content=report.to_payload())

    @app.post("/api/work/result/{request_id:path}")
    async def deliver_result(request_id: str, request: Request) -> JSONResponse:
        ok, result = await _read_json(request)
        if not ok:
            return _invalid_body("Result body must be JSON")
        await broker.deliver(request_id, result)
        return JSONResponse(
            content={
                "success": True,
                "message": "Result received and cached",
                "requestId": request_id,
            }
        )

    @app.post("/api/work/callback/{handle:path}")
    async def deliver_callback(handle: str, request: Request) -> JSONResponse:
        ok, result = await _read_json(request)
        if not ok:
            return _invalid_body("Callback body must be JSON")
        await broker.deliver(handle, result, channel="callback")
        return JSONResponse(
            content={"success": True, "message": "Callback received", "requestId": handle}
        )

    @app.get("/api/work/callback/{handle:path}")
    async def deliver_callback_query(handle: str, request: Request) -> JSONResponse:
        await broker.deliver_from_query(handle, dict(request.query_params))
        return JSONResponse(
            content={"success": True, "message": "Callback received", "requestId": handle}
        )

    @app.post("/api/work/complete/{handle:path}")
    async def complete_manually(handle: str, request: Request) -> JSONResponse:
        ok, result = await _read_json(request)
        if not ok:
            return _invalid_body("Completion body must be JSON")
        if not await broker.complete_manually(handle, result):
            return JSONResponse(
                status_code=409,
                content={
                    "success": False,
                    "message": "Request already completed",
                    "requestId": handle,
                },
            )
        return JSONResponse(
            content={"success": True, "message": "Request marked completed", "requestId": handle}
        )

    @app.get("/api/cache/stats")
    async def cache_stats() -> JSONResponse:
        stats = await broker.cache.stats()
        return JSONResponse(content=stats.model_dump(by_alias=True))

    @app.get("/api/cache/{key:path}")
    async def cache_lookup(key: str) -> JSONResponse:
        data = await broker.lookup_cache(key)
        if data is None:
            return JSONResponse(
                status_code=404,
                content={"found": False, "key": key, "message": "No cached result for this key"},
            )
        return JSONResponse(content={"found": True, "key": key, "data": data})

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "primaryCache": broker.cache.primary_available}

    @app.get("/api/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
