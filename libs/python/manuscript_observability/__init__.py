"""Shared observability helpers used across the manuscript pipeline services."""

from .logging import current_context, log_context, setup_logging
from .metrics import (
    observe_provider_response,
    observe_stage_duration,
    record_provider_retry,
    record_queue_event,
    record_rate_limited,
    record_worker_heartbeat,
    set_queue_depth,
    setup_fastapi_metrics,
    start_metrics_server,
)

__all__ = [
    "setup_logging",
    "log_context",
    "current_context",
    "setup_fastapi_metrics",
    "start_metrics_server",
    "observe_provider_response",
    "observe_stage_duration",
    "record_provider_retry",
    "record_queue_event",
    "record_rate_limited",
    "record_worker_heartbeat",
    "set_queue_depth",
]
