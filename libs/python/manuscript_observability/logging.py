"""JSON logging shared by the ingress and worker processes.

Every line carries the run's correlation fields (``report_id``, ``job_id``,
``stage``...) bound with :func:`log_context`, so one report can be followed
from the enqueue request through each stage of the worker.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("manuscript_log_context", default={})

# Leading keys of every line, in this order.
CORRELATION_FIELDS = ("service", "report_id", "job_id", "queue", "stage", "agent", "provider")
REDACTED = "[redacted]"
SECRET_MARKERS = ("api_key", "secret", "password", "token", "session_id", "cookie")
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore", "prefect")

_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SECRET_MARKERS)


class ContextFilter(logging.Filter):
    """Stamp the service name and the bound run fields onto each record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _LOG_CONTEXT.get().items():
            # Explicit ``extra=`` values win over the surrounding context.
            if key not in record.__dict__:
                setattr(record, key, value)
        if not getattr(record, "service", None):
            record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {}
        for key in CORRELATION_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        payload.update(
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in payload or key.startswith("_") or value is None:
                continue
            if _is_secret(key):
                payload[key] = REDACTED
            elif isinstance(value, (str, int, float, bool)):
                payload[key] = value
            else:
                payload[key] = _jsonable(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def setup_logging(service_name: str, level: str | int | None = None) -> None:
    """Send JSON lines to stdout for ``service_name``.

    ``level`` falls back to ``LOG_LEVEL`` and then ``INFO``. Calling it again
    replaces the handler instead of adding a second one. Chatty client
    libraries (boto, httpx, prefect) are held at ``WARNING``.
    """

    resolved = level or os.getenv("LOG_LEVEL", "INFO").upper()
    handler = {
        "class": "logging.StreamHandler",
        "stream": sys.stdout,
        "formatter": "json",
        "filters": ["context"],
    }
    loggers: dict[str, dict[str, Any]] = {
        name: {"handlers": ["stdout"], "level": resolved, "propagate": False}
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
    }
    loggers.update({name: {"level": "WARNING"} for name in QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JsonFormatter}},
            "filters": {"context": {"()": ContextFilter, "service_name": service_name}},
            "handlers": {"stdout": handler},
            "root": {"level": resolved, "handlers": ["stdout"]},
            "loggers": loggers,
        }
    )
    logging.captureWarnings(os.getenv("LOG_CAPTURE_WARNINGS", "").lower() in {"1", "true", "yes"})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind correlation fields for a block; ``None`` unbinds a field."""

    bound = {**_LOG_CONTEXT.get(), **fields}
    token = _LOG_CONTEXT.set({key: value for key, value in bound.items() if value is not None})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def current_context() -> Dict[str, Any]:
    return dict(_LOG_CONTEXT.get())
