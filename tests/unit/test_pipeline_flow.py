"""End-to-end runs of the stage graph against the in-memory substrate."""

import asyncio
import json

import pytest

from manuscript_providers import (
    MockImageProvider,
    MockProvider,
    ProviderFailure,
    ProviderHTTPError,
    ProviderRequest,
    ProviderResponse,
)
from manuscript_schemas import ArtifactKind, ManuscriptStatus, PipelineStage, RunState
from manuscript_substrate import artifact_key, cover_variation_key
from manuscript_substrate.errors import NotFoundError, RequestValidationError

from tests.utils.pipeline import build_harness, operations, sample_manuscript, seed_run

pytestmark = pytest.mark.anyio("asyncio")

PREFIX = "U1/M1/book.txt"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class _LineEditingProvider(MockProvider):
    """Answers line editing sections with two issues each, except one broken section."""

    def __init__(self, broken_section: int) -> None:
        super().__init__()
        self.broken_section = broken_section

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        if request.metadata.get("operation") != "analyze_line_editing":
            return await super().generate(request)
        self.requests.append(request)
        if f"Section {self.broken_section} (" in request.prompt:
            text = "I could not analyse this passage, sorry."
        else:
            text = json.dumps(
                {
                    "overallScore": 8,
                    "issues": [
                        {"type": "passive_voice", "severity": "medium", "original": "was taken"},
                        {"type": "adverb", "severity": "low", "original": "quietly"},
                    ],
                    "strengths": ["Tight pacing"],
                    "readabilityMetrics": {
                        "passiveVoiceCount": 1,
                        "adverbCount": 2,
                        "averageSentenceLength": 14,
                        "sentenceVariety": "good",
                    },
                }
            )
        return ProviderResponse(text=text, raw={}, model="mock", prompt_tokens=10, completion_tokens=10, cost_usd=0.0)


class _FailingOperationProvider(MockProvider):
    def __init__(self, operation: str, status_code: int = 503) -> None:
        super().__init__()
        self.operation = operation
        self.status_code = status_code

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        if request.metadata.get("operation") == self.operation:
            self.requests.append(request)
            raise ProviderHTTPError(self.status_code, "upstream unavailable")
        return await super().generate(request)


class _CancellingProvider(MockProvider):
    """Requests cancellation as soon as the developmental synthesis returns."""

    def __init__(self) -> None:
        super().__init__()
        self.index = None
        self.report_id = None

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        response = await super().generate(request)
        if request.metadata.get("operation") == "analyze_developmental":
            await self.index.request_cancel(self.report_id)
        return response


class _SlowLineEditingProvider(MockProvider):
    """Rejects the developmental pass outright while line editing answers slowly."""

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        operation = request.metadata.get("operation", "")
        if operation.startswith("analyze_developmental"):
            self.requests.append(request)
            raise ProviderHTTPError(400, "bad request")
        if operation == "analyze_line_editing":
            await asyncio.sleep(0.05)
        return await super().generate(request)


class _BrokenImageProvider(MockImageProvider):
    async def generate_images(self, request):
        raise ProviderHTTPError(400, "content policy")


async def _json(harness, kind: ArtifactKind, prefix: str = PREFIX):
    return await harness.store.get_json(artifact_key(prefix, kind))


async def test_full_run_writes_every_artifact_and_completes():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(2400))

    summary = await harness.orchestrator.run(payload)

    assert summary.status == "complete"
    assert summary.partial_success is False
    for kind in (
        ArtifactKind.ANALYSIS,
        ArtifactKind.LINE_ANALYSIS,
        ArtifactKind.COPY_ANALYSIS,
        ArtifactKind.ASSETS,
        ArtifactKind.MARKET_ANALYSIS,
        ArtifactKind.SOCIAL_MEDIA,
        ArtifactKind.COVER_BRIEF,
        ArtifactKind.COVER_IMAGES,
        ArtifactKind.FORMATTED_EPUB,
        ArtifactKind.FORMATTED_PDF,
    ):
        assert await harness.store.head(artifact_key(PREFIX, kind)) is not None, kind

    covers = await _json(harness, ArtifactKind.COVER_IMAGES)
    assert covers["requested"] == 3
    assert covers["generated"] == 3
    assert await harness.store.head(cover_variation_key(PREFIX, 3)) is not None

    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.COMPLETE
    assert status.progress == 100
    assert status.current_step == PipelineStage.COMPLETE.value
    assert set(summary.platforms) == {"kdp", "draft2digital", "ingramspark", "apple_books"}

    manuscript = await harness.manuscripts.get("M1")
    assert manuscript.status is ManuscriptStatus.ANALYZED


async def test_progress_never_moves_backwards_until_terminal():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(2400))

    await harness.orchestrator.run(payload)

    history = harness.index.history[payload["reportId"]]
    progress = [record.progress for record in history]
    assert progress == sorted(progress)
    assert {5, 30, 35, 65, 70, 95}.issubset(progress)
    assert history[-1].status is RunState.COMPLETE
    assert all(record.status is RunState.PROCESSING for record in history[:-1])


async def test_each_successful_call_writes_one_cost_entry():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(1200), stages=["developmental"])

    await harness.orchestrator.run(payload)

    assert len(harness.ledger.entries) == len(harness.provider.requests)
    entry = harness.ledger.entries[0]
    assert entry.user_id == "U1"
    assert entry.manuscript_id == "M1"
    assert entry.feature_name == "analysis"


async def test_unparseable_section_becomes_sentinel_and_stage_succeeds():
    provider = _LineEditingProvider(broken_section=5)
    harness = build_harness(provider)
    payload = await seed_run(harness, sample_manuscript(9000), stages=["line-editing"])

    summary = await harness.orchestrator.run(payload)

    artifact = await _json(harness, ArtifactKind.LINE_ANALYSIS)
    sections = artifact["sections"]
    assert len(sections) == 12
    broken = [section for section in sections if section.get("parseError")]
    assert [section["sectionNumber"] for section in broken] == [5]
    assert broken[0]["issues"] == []
    assert artifact["patterns"]["totalSections"] == 12
    assert artifact["patterns"]["failedSections"] == 1
    assert artifact["patterns"]["totalIssues"] == 22
    assert artifact["patterns"]["issueTypeCounts"] == {"passive_voice": 11, "adverb": 11}

    line_outcome = next(stage for stage in summary.stages if stage.stage is PipelineStage.LINE_EDITING)
    assert line_outcome.status == "success"
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.COMPLETE


async def test_failed_asset_sub_agent_leaves_partial_bundle_and_run_completes():
    provider = _FailingOperationProvider("keywords")
    harness = build_harness(provider)
    payload = await seed_run(harness, sample_manuscript(1500))

    summary = await harness.orchestrator.run(payload)

    bundle = await _json(harness, ArtifactKind.ASSETS)
    agent_fields = (
        "bookDescription",
        "keywords",
        "categories",
        "authorBio",
        "backMatter",
        "coverBrief",
        "seriesDescription",
    )
    populated = [name for name in agent_fields if bundle[name] is not None]
    assert len(populated) == 6
    assert bundle["keywords"] is None
    assert [error["type"] for error in bundle["errors"]] == ["keywords"]
    assert operations(provider).count("keywords") == harness.client.max_attempts

    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.MARKET_ANALYSIS)) is not None
    assert summary.partial_success is True
    assert summary.failed_agents == ["keywords"]
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.COMPLETE
    assert status.partial_success is True
    assert status.failed_agents == ["keywords"]


async def test_rerunning_assets_overwrites_previous_bundle():
    harness = build_harness(_FailingOperationProvider("keywords"))
    first = await seed_run(harness, sample_manuscript(1200), stages=["assets"])
    await harness.orchestrator.run(first)
    assert (await _json(harness, ArtifactKind.ASSETS))["errors"]

    harness.provider.operation = "nothing-fails"
    second = {**first, "reportId": await harness.index.mint(PREFIX)}
    await harness.orchestrator.run(second)

    bundle = await _json(harness, ArtifactKind.ASSETS)
    assert bundle["reportId"] == second["reportId"]
    assert bundle["errors"] is None
    assert len(bundle["keywords"]) == 7


async def test_cancellation_between_stages_stops_before_line_editing():
    provider = _CancellingProvider()
    harness = build_harness(provider)
    payload = await seed_run(harness, sample_manuscript(2000))
    provider.index = harness.index
    provider.report_id = payload["reportId"]

    summary = await harness.orchestrator.run(payload)

    assert summary.status == "cancelled"
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR
    assert status.reason == "cancelled"

    called = set(operations(provider))
    assert "analyze_developmental" in called
    assert not called & {"analyze_line_editing", "analyze_copy_editing", "keywords"}
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.ANALYSIS)) is not None
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.LINE_ANALYSIS)) is None
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.COPY_ANALYSIS)) is None

    manuscript = await harness.manuscripts.get("M1")
    assert manuscript.status is ManuscriptStatus.UPLOADED
    assert await harness.index.is_cancelled(payload["reportId"]) is False


async def test_fatal_stage_failure_marks_run_and_manuscript_failed():
    harness = build_harness(_FailingOperationProvider("analyze_developmental", status_code=400))
    payload = await seed_run(harness, sample_manuscript(1200))

    with pytest.raises(ProviderFailure):
        await harness.orchestrator.run(payload)

    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR
    assert "Analysis failed" in status.message
    manuscript = await harness.manuscripts.get("M1")
    assert manuscript.status is ManuscriptStatus.FAILED
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.LINE_ANALYSIS)) is None


async def test_cover_failure_is_not_fatal():
    harness = build_harness(image_provider=_BrokenImageProvider())
    payload = await seed_run(harness, sample_manuscript(1200), coverVariations=2)

    summary = await harness.orchestrator.run(payload)

    assert summary.status == "complete"
    assert summary.partial_success is True
    assert "cover-images" in summary.failed_agents
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.COVER_IMAGES)) is None
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.FORMATTED_PDF)) is not None
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.COMPLETE


async def test_requested_stage_pulls_in_dependencies_only():
    harness = build_harness()
    payload = await seed_run(harness, sample_manuscript(1200), stages=["market-analysis"])

    summary = await harness.orchestrator.run(payload)

    ran = [outcome.stage for outcome in summary.stages]
    assert ran == [
        PipelineStage.DEVELOPMENTAL,
        PipelineStage.LINE_EDITING,
        PipelineStage.COPY_EDITING,
        PipelineStage.ASSETS,
        PipelineStage.MARKET,
    ]
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.SOCIAL_MEDIA)) is None
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.FORMATTED_EPUB)) is None


async def test_market_stage_is_skipped_without_description():
    harness = build_harness(_FailingOperationProvider("book-description", status_code=400))
    payload = await seed_run(harness, sample_manuscript(1200), stages=["social-media"])

    summary = await harness.orchestrator.run(payload)

    assert summary.skipped_stages == ["market-analysis", "social-media"]
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.COMPLETE
    assert status.skipped_stages == ["market-analysis", "social-media"]


async def test_parallel_analyses_share_one_progress_window():
    harness = build_harness(parallel_analyses=True)
    payload = await seed_run(harness, sample_manuscript(2000), stages=["assets"])

    await harness.orchestrator.run(payload)

    for kind in (ArtifactKind.ANALYSIS, ArtifactKind.LINE_ANALYSIS, ArtifactKind.COPY_ANALYSIS):
        assert await harness.store.head(artifact_key(PREFIX, kind)) is not None
    history = harness.index.history[payload["reportId"]]
    steps = {record.current_step for record in history}
    assert "analyses" in steps
    assert PipelineStage.LINE_EDITING.value not in steps
    progress = [record.progress for record in history]
    assert progress == sorted(progress)


async def test_missing_manuscript_object_fails_run():
    harness = build_harness()
    payload = await seed_run(harness, None)

    with pytest.raises(NotFoundError):
        await harness.orchestrator.run(payload)

    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR
    assert harness.provider.requests == []


async def test_empty_manuscript_is_rejected():
    harness = build_harness()
    payload = await seed_run(harness, "   \n\n  ")

    with pytest.raises(RequestValidationError):
        await harness.orchestrator.run(payload)

    manuscript = await harness.manuscripts.get("M1")
    assert manuscript.status is ManuscriptStatus.FAILED


async def test_parallel_analysis_failure_cancels_sibling_stages():
    harness = build_harness(_SlowLineEditingProvider(), parallel_analyses=True)
    payload = await seed_run(harness, sample_manuscript(6000, chapters=6), stages=["assets"])

    with pytest.raises(ProviderFailure):
        await harness.orchestrator.run(payload)

    calls_at_failure = len(harness.provider.requests)
    await asyncio.sleep(0.3)

    assert len(harness.provider.requests) == calls_at_failure
    assert await harness.store.head(artifact_key(PREFIX, ArtifactKind.LINE_ANALYSIS)) is None
    status = await harness.index.read_status(payload["reportId"])
    assert status.status is RunState.ERROR
