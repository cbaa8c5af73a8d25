"""Pipeline process entrypoint.

``PIPELINE_ROLE=ingress`` serves the HTTP API; ``PIPELINE_ROLE=worker`` drains
the analysis queue. Both roles share the same substrate configuration.
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from manuscript_observability import setup_logging, start_metrics_server
from manuscript_substrate import PipelineSettings, build_substrate, load_settings
from services.orchestrator.app.flows import PipelineOrchestrator, run_analysis_flow
from services.orchestrator.app.providers import build_provider_client
from services.orchestrator.app.worker import SERVICE_NAME, AnalysisWorker

INGRESS_APP = "apps.api.app.main:app"

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


async def serve(settings: PipelineSettings) -> None:
    substrate = build_substrate(settings)
    client = build_provider_client(substrate.ledger, service_name=SERVICE_NAME)
    orchestrator = PipelineOrchestrator.from_substrate(substrate, client)
    worker = AnalysisWorker(
        substrate.queue,
        orchestrator,
        runner=run_analysis_flow,
        slots=settings.worker_slots,
        block_timeout=settings.queue_block_timeout,
        job_timeout=settings.job_timeout_seconds,
        budget=substrate.budget,
    )
    start_metrics_server(settings.metrics_port)
    logger.info(
        "analysis worker booted",
        extra={"metrics_port": settings.metrics_port, "slots": settings.worker_slots},
    )
    try:
        await worker.run()
    finally:
        await substrate.aclose()


def main(settings: PipelineSettings | None = None) -> None:
    settings = settings or load_settings()
    if settings.pipeline_role == "ingress":
        logger.info("Starting ingress role", extra={"host": settings.http_host, "port": settings.http_port})
        uvicorn.run(INGRESS_APP, host=settings.http_host, port=settings.http_port)
        return
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
