"""Prometheus metrics helpers and middleware."""

from __future__ import annotations

from time import perf_counter
from typing import Tuple

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


_HTTP_REQUEST_COUNT = Counter(
    "manuscript_http_requests_total",
    "Total HTTP requests processed by service",
    labelnames=("service", "method", "route", "status"),
)

_HTTP_REQUEST_LATENCY = Histogram(
    "manuscript_http_request_duration_seconds",
    "Latency of HTTP requests",
    labelnames=("service", "method", "route"),
)

_STAGE_DURATION = Histogram(
    "manuscript_stage_duration_seconds",
    "Duration of pipeline stages",
    labelnames=("service", "stage"),
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200, 1800),
)

_STAGE_COUNTER = Counter(
    "manuscript_stage_runs_total",
    "Count of stage executions by outcome",
    labelnames=("service", "stage", "status"),
)

_LLM_TOKENS = Counter(
    "manuscript_llm_tokens_total",
    "Token usage by provider and operation",
    labelnames=("service", "operation", "provider", "token_type"),
)

_LLM_COST = Counter(
    "manuscript_llm_cost_usd_total",
    "Aggregated provider cost in USD",
    labelnames=("service", "operation", "provider"),
)

_LLM_LATENCY = Histogram(
    "manuscript_llm_latency_seconds",
    "Latency of provider calls",
    labelnames=("service", "operation", "provider"),
)

_LLM_RETRIES = Counter(
    "manuscript_llm_retries_total",
    "Provider call attempts that were retried, by reason",
    labelnames=("service", "provider", "reason"),
)

_QUEUE_EVENTS = Counter(
    "manuscript_queue_events_total",
    "Job queue transitions",
    labelnames=("queue", "event"),
)

_QUEUE_DEPTH = Gauge(
    "manuscript_queue_depth",
    "Jobs per queue structure at the last stats call",
    labelnames=("queue", "state"),
)

_RATE_LIMITED = Counter(
    "manuscript_rate_limited_total",
    "Requests rejected by the rate limiter",
    labelnames=("scope",),
)

_WORKER_HEARTBEAT = Gauge(
    "manuscript_worker_heartbeat_timestamp",
    "Unix timestamp for the latest worker heartbeat",
    labelnames=("service",),
)

_STARTUP_FLAGS: set[Tuple[str, int]] = set()


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for FastAPI services."""

    def __init__(self, app: FastAPI, service_name: str) -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start

        route_template = request.url.path
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            route_template = route.path  # type: ignore[assignment]

        status = getattr(response, "status_code", 500)
        _HTTP_REQUEST_COUNT.labels(self.service_name, request.method, route_template, str(status)).inc()
        _HTTP_REQUEST_LATENCY.labels(self.service_name, request.method, route_template).observe(elapsed)
        return response


def setup_fastapi_metrics(app: FastAPI, service_name: str, endpoint: str = "/metrics") -> None:
    """Register Prometheus middleware and metrics endpoint for a FastAPI app."""

    if getattr(app.state, "metrics_configured", False):
        return

    app.add_middleware(PrometheusMiddleware, service_name=service_name)

    @app.get(endpoint, include_in_schema=False)
    async def _metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.state.metrics_configured = True


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose Prometheus metrics on a standalone HTTP server."""

    key = (addr, port)
    if key in _STARTUP_FLAGS:
        return
    start_http_server(port, addr=addr)
    _STARTUP_FLAGS.add(key)


def observe_stage_duration(
    stage: str,
    duration_seconds: float,
    *,
    service_name: str,
    status: str = "success",
) -> None:
    """Record metrics for stage execution duration and outcome."""

    _STAGE_DURATION.labels(service_name, stage).observe(max(duration_seconds, 0.0))
    _STAGE_COUNTER.labels(service_name, stage, status).inc()


def observe_provider_response(
    *,
    operation: str,
    provider: str,
    service_name: str,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    latency_ms: float | None = None,
    cost_usd: float | None = None,
) -> None:
    """Capture token usage, latency and cost for one provider response."""

    if input_tokens is not None and input_tokens >= 0:
        _LLM_TOKENS.labels(service_name, operation, provider, "input").inc(input_tokens)
    if output_tokens is not None and output_tokens >= 0:
        _LLM_TOKENS.labels(service_name, operation, provider, "output").inc(output_tokens)
    if latency_ms is not None and latency_ms >= 0:
        _LLM_LATENCY.labels(service_name, operation, provider).observe(latency_ms / 1000)
    if cost_usd is not None and cost_usd >= 0:
        _LLM_COST.labels(service_name, operation, provider).inc(cost_usd)


def record_provider_retry(*, provider: str, reason: str, service_name: str) -> None:
    _LLM_RETRIES.labels(service_name, provider, reason).inc()


def record_queue_event(queue: str, event: str) -> None:
    """Count a queue transition (``sent``, ``claimed``, ``completed``, ``retried``, ``dead``)."""

    _QUEUE_EVENTS.labels(queue, event).inc()


def set_queue_depth(queue: str, state: str, value: int) -> None:
    _QUEUE_DEPTH.labels(queue, state).set(value)


def record_rate_limited(scope: str) -> None:
    _RATE_LIMITED.labels(scope).inc()


def record_worker_heartbeat(service_name: str) -> None:
    """Update the heartbeat gauge for long-running worker processes."""

    _WORKER_HEARTBEAT.labels(service_name).set_to_current_time()
