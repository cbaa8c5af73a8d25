"""Queue consumer running analysis jobs on a fixed number of cooperative slots."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from manuscript_observability import log_context, record_worker_heartbeat
from manuscript_schemas import JobRecord
from manuscript_substrate import ANALYSIS_QUEUE, BudgetPolicy, JobQueue
from manuscript_substrate.errors import ServiceUnavailable

from .flows import PipelineOrchestrator
from .models import RunSummary

logger = logging.getLogger(__name__)

SERVICE_NAME = "analysis_worker"
HEARTBEAT_SECONDS = 60.0
UNAVAILABLE_BACKOFF_SECONDS = 5.0

Runner = Callable[[dict[str, Any], PipelineOrchestrator], Awaitable[RunSummary]]


async def run_directly(payload: dict[str, Any], orchestrator: PipelineOrchestrator) -> RunSummary:
    return await orchestrator.run(payload)


class AnalysisWorker:
    def __init__(
        self,
        queue: JobQueue,
        orchestrator: PipelineOrchestrator,
        *,
        runner: Runner = run_directly,
        queue_name: str = ANALYSIS_QUEUE,
        slots: int = 2,
        block_timeout: float = 5.0,
        job_timeout: float = 1800.0,
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
        budget: BudgetPolicy | None = None,
    ) -> None:
        self.queue = queue
        self.orchestrator = orchestrator
        self.runner = runner
        self.queue_name = queue_name
        self.slots = slots
        self.block_timeout = block_timeout
        self.job_timeout = job_timeout
        self.heartbeat_seconds = heartbeat_seconds
        self.budget = budget
        self._stopping = asyncio.Event()

    async def process(self, job: JobRecord) -> None:
        """Run one claimed job and settle it on the queue."""

        try:
            await self._settle(job)
        finally:
            await self._evaluate_budget()

    async def _settle(self, job: JobRecord) -> None:
        with log_context(job_id=job.id, report_id=job.payload.get("reportId")):
            logger.info("Processing job", extra={"attempt": job.attempts})
            try:
                summary = await asyncio.wait_for(self.runner(job.payload, self.orchestrator), self.job_timeout)
            except asyncio.TimeoutError:
                message = f"Analysis exceeded the {self.job_timeout:.0f}s time limit"
                logger.error("Job timed out", extra={"timeout_seconds": self.job_timeout})
                await self.orchestrator.abort(job.payload, message)
                await self.queue.fail(self.queue_name, job.id, message)
                return
            except Exception as exc:
                logger.warning("Job attempt failed", extra={"attempt": job.attempts, "error": str(exc)})
                await self.queue.fail(self.queue_name, job.id, exc)
                return
            await self.queue.complete(self.queue_name, job.id, summary.to_result())

    async def _evaluate_budget(self) -> None:
        # Spend from this run may cross the cap; the switch only gates new enqueues.
        if self.budget is None:
            return
        try:
            await self.budget.evaluate()
        except Exception:
            logger.exception("Budget evaluation failed")

    async def run_once(self) -> bool:
        """Claim and process at most one job; False when the queue stayed empty."""

        job = await self.queue.next(self.queue_name, self.block_timeout)
        if job is None:
            return False
        await self.process(job)
        return True

    async def _slot(self, number: int) -> None:
        logger.info("Worker slot started", extra={"slot": number})
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except ServiceUnavailable:
                logger.exception("Queue unavailable; backing off", extra={"slot": number})
                await asyncio.sleep(UNAVAILABLE_BACKOFF_SECONDS)

    async def _heartbeat(self) -> None:
        while not self._stopping.is_set():
            record_worker_heartbeat(SERVICE_NAME)
            try:
                stats = await self.queue.stats(self.queue_name)
            except ServiceUnavailable:
                logger.exception("Queue stats unavailable")
            else:
                logger.info("Worker heartbeat", extra={"queue": self.queue_name, **stats.as_dict()})
            try:
                await asyncio.wait_for(self._stopping.wait(), self.heartbeat_seconds)
            except asyncio.TimeoutError:
                continue

    async def run(self) -> None:
        await asyncio.gather(self._heartbeat(), *(self._slot(number) for number in range(self.slots)))

    def stop(self) -> None:
        self._stopping.set()
