"""Process settings read from the environment."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

_FIELD_ENV = {
    "database_url": "DATABASE_URL",
    "redis_url": "REDIS_URL",
    "b2_endpoint_url": "B2_ENDPOINT_URL",
    "b2_key_id": "B2_KEY_ID",
    "b2_application_key": "B2_APPLICATION_KEY",
    "b2_bucket_name": "B2_BUCKET_NAME",
    "b2_region": "B2_REGION",
    "session_duration": "SESSION_DURATION",
    "session_secret": "SESSION_SECRET",
    "frontend_url": "FRONTEND_URL",
    "max_file_size": "MAX_FILE_SIZE",
    "worker_slots": "WORKER_SLOTS",
    "queue_block_timeout": "QUEUE_BLOCK_TIMEOUT",
    "queue_high_watermark": "QUEUE_HIGH_WATERMARK",
    "job_timeout_seconds": "JOB_TIMEOUT_SECONDS",
    "monthly_budget_usd": "MONTHLY_BUDGET_USD",
    "pipeline_role": "PIPELINE_ROLE",
    "metrics_port": "METRICS_PORT",
    "http_host": "HOST",
    "http_port": "PORT",
    "parallel_analyses": "PARALLEL_ANALYSES",
    "stripe_secret_key": "STRIPE_SECRET_KEY",
    "stripe_webhook_secret": "STRIPE_WEBHOOK_SECRET",
}


class PipelineSettings(BaseModel):
    database_url: str | None = None
    redis_url: str | None = None
    b2_endpoint_url: str | None = None
    b2_key_id: str | None = None
    b2_application_key: str | None = None
    b2_bucket_name: str | None = None
    b2_region: str = "us-west-004"
    session_duration: int = Field(1800, gt=0)
    session_secret: str | None = None
    frontend_url: str = "http://localhost:3000"
    max_file_size: int = Field(50 * 1024 * 1024, gt=0)
    worker_slots: int = Field(2, ge=1, le=64)
    queue_block_timeout: float = Field(5.0, ge=0)
    queue_high_watermark: int = Field(500, ge=1)
    job_timeout_seconds: float = Field(1800.0, gt=0)
    monthly_budget_usd: float | None = Field(None, gt=0)
    pipeline_role: str = Field("ingress", pattern="^(ingress|worker)$")
    metrics_port: int = Field(9102, ge=1, le=65535)
    http_host: str = "0.0.0.0"
    http_port: int = Field(8000, ge=1, le=65535)
    parallel_analyses: bool = False
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    @property
    def uses_object_storage(self) -> bool:
        return bool(self.b2_endpoint_url and self.b2_bucket_name)


def load_settings(environ: dict[str, str] | None = None) -> PipelineSettings:
    """Build settings from ``environ`` (defaults to ``os.environ``).

    Raises:
        pydantic.ValidationError: If a variable is present but malformed.
    """

    source = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for field_name, env_key in _FIELD_ENV.items():
        raw = source.get(env_key)
        if raw not in (None, ""):
            values[field_name] = raw
    return PipelineSettings.model_validate(values)
