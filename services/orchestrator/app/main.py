"""FastAPI entrypoint exposing worker health, metrics and queue depth."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from manuscript_observability import setup_fastapi_metrics, setup_logging
from manuscript_substrate import ANALYSIS_QUEUE, build_substrate, load_settings

SERVICE_NAME = "orchestrator"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

substrate = build_substrate(load_settings())

app = FastAPI(title="Manuscript Pipeline Orchestrator", version="0.1.0")
setup_fastapi_metrics(app, service_name=SERVICE_NAME)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/queue/stats", tags=["orchestrator"])
async def queue_stats() -> dict[str, int]:
    stats = await substrate.queue.stats(ANALYSIS_QUEUE)
    return stats.as_dict()


@app.on_event("shutdown")
async def shutdown() -> None:
    await substrate.aclose()
