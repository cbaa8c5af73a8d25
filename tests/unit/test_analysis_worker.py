"""Queue consumer tests: happy path from enqueue, retries and dead-lettering."""

import asyncio
import re

import pytest

from manuscript_providers import MockImageProvider, MockProvider, ProviderClient
from manuscript_schemas import (
    ArtifactKind,
    Attribution,
    CostCenter,
    CostEntry,
    JobStatus,
    ManuscriptRecord,
    ManuscriptStatus,
    RunState,
    UserRecord,
)
from manuscript_substrate import (
    ANALYSIS_QUEUE,
    InMemoryJobQueue,
    PipelineSettings,
    artifact_key,
    build_substrate,
)

from apps.api.app.ingress import IngressAdapter
from services.orchestrator.app.flows import PipelineOrchestrator
from services.orchestrator.app.worker import AnalysisWorker

from tests.utils.pipeline import STUB_RENDERERS, RecordingIndex, build_harness, fast_sleep, sample_manuscript, seed_run

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def test_enqueued_job_runs_to_completion():
    substrate = build_substrate(PipelineSettings())
    substrate.index = RecordingIndex(substrate.store)
    substrate.users.add(UserRecord(id="U1", email="u1@example.com"))
    substrate.manuscripts.add(
        ManuscriptRecord(id="M1", user_id="U1", filename="book.txt", storage_key="U1/M1/book.txt")
    )
    await substrate.store.put("U1/M1/book.txt", sample_manuscript(2400), "text/plain")
    client = ProviderClient(
        MockProvider(), ledger=substrate.ledger, image_provider=MockImageProvider(), sleep=fast_sleep
    )
    orchestrator = PipelineOrchestrator.from_substrate(
        substrate, client, section_pause=0, sleep=fast_sleep, renderers=STUB_RENDERERS
    )
    worker = AnalysisWorker(substrate.queue, orchestrator, block_timeout=0)
    user = await substrate.users.get("U1")

    report_id = await IngressAdapter(substrate).enqueue_analysis(user, "U1/M1/book.txt", "thriller", "chicago")

    assert re.fullmatch(r"[0-9a-f]{8}", report_id)
    assert (await substrate.index.read_status(report_id)).status is RunState.QUEUED
    assert (await substrate.manuscripts.get("M1")).status is ManuscriptStatus.QUEUED

    assert await worker.run_once() is True
    assert await worker.run_once() is False

    history = substrate.index.history[report_id]
    assert history[0].status is RunState.QUEUED
    assert history[1].status is RunState.PROCESSING
    progress = [record.progress for record in history if record.status is RunState.PROCESSING]
    assert {5, 35, 70}.issubset(progress)
    assert history[-1].status is RunState.COMPLETE
    assert history[-1].progress == 100

    for kind in (ArtifactKind.ANALYSIS, ArtifactKind.LINE_ANALYSIS, ArtifactKind.COPY_ANALYSIS):
        assert await substrate.store.head(artifact_key("U1/M1/book.txt", kind)) is not None
    assert (await substrate.manuscripts.get("M1")).status is ManuscriptStatus.ANALYZED

    stats = await substrate.queue.stats(ANALYSIS_QUEUE)
    assert stats.as_dict() == {"pending": 0, "processing": 0, "delayed": 0, "dead": 0}
    assert substrate.ledger.entries


async def test_job_is_dead_lettered_after_retries_run_out():
    harness = build_harness()
    payload = await seed_run(harness, None)
    queue = InMemoryJobQueue(retry_delays=(0,))
    worker = AnalysisWorker(queue, harness.orchestrator, block_timeout=0)
    job_id = await queue.send(ANALYSIS_QUEUE, payload)

    assert await worker.run_once() is True
    retrying = await queue.get(ANALYSIS_QUEUE, job_id)
    assert retrying.status is JobStatus.RETRYING
    assert retrying.process_at is not None

    for _ in range(3):
        assert await worker.run_once() is True
    assert await worker.run_once() is False

    job = await queue.get(ANALYSIS_QUEUE, job_id)
    assert job.status is JobStatus.DEAD
    assert job.attempts == 4
    assert job.failed_at is not None
    assert "Manuscript not found" in job.last_error
    assert queue.dead_ids(ANALYSIS_QUEUE) == [job_id]

    assert (await harness.manuscripts.get("M1")).status is ManuscriptStatus.FAILED
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR


async def test_job_exceeding_time_limit_is_aborted_and_retried():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(500))
    queue = InMemoryJobQueue()

    async def hang(job_payload, orchestrator):
        await asyncio.Event().wait()

    worker = AnalysisWorker(queue, harness.orchestrator, runner=hang, block_timeout=0, job_timeout=0.05)
    job_id = await queue.send(ANALYSIS_QUEUE, payload)

    await worker.run_once()

    job = await queue.get(ANALYSIS_QUEUE, job_id)
    assert job.status is JobStatus.RETRYING
    assert "time limit" in job.last_error
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR
    assert (await harness.manuscripts.get("M1")).status is ManuscriptStatus.FAILED


async def test_cancelled_run_completes_the_job():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(500))
    await harness.index.request_cancel(payload["reportId"])
    queue = InMemoryJobQueue()
    worker = AnalysisWorker(queue, harness.orchestrator, block_timeout=0)
    job_id = await queue.send(ANALYSIS_QUEUE, payload)

    await worker.run_once()

    job = await queue.get(ANALYSIS_QUEUE, job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.result["status"] == "cancelled"
    assert harness.provider.requests == []


async def test_worker_run_stops_when_asked():
    harness = build_harness()
    queue = InMemoryJobQueue()
    worker = AnalysisWorker(queue, harness.orchestrator, slots=2, block_timeout=0.01, heartbeat_seconds=0.01)

    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.05)
    worker.stop()
    await asyncio.wait_for(task, 1)

    assert task.done()


async def test_finished_job_trips_budget_kill_switch():
    substrate = build_substrate(PipelineSettings(monthly_budget_usd=1.0))
    attribution = Attribution(user_id="U1", manuscript_id="M1", feature_name="analysis", operation="op")
    await substrate.ledger.append(
        CostEntry.from_attribution(attribution, cost_center=CostCenter.CLAUDE_API, cost_usd=1.5, model="m")
    )
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(600))
    await substrate.queue.send(ANALYSIS_QUEUE, payload)
    worker = AnalysisWorker(substrate.queue, harness.orchestrator, block_timeout=0, budget=substrate.budget)

    assert await substrate.budget.is_tripped() is False
    assert await worker.run_once() is True

    assert await substrate.budget.is_tripped() is True
    assert (await substrate.queue.stats(ANALYSIS_QUEUE)).processing == 0
