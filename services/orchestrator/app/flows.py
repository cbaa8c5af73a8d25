"""Prefect flow coordinating the manuscript analysis stages."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Awaitable, Callable

from prefect import flow

from manuscript_observability import log_context, observe_stage_duration
from manuscript_providers import ProviderClient
from manuscript_schemas import (
    AnalysisJobPayload,
    AssetBundle,
    ExportFormat,
    ManuscriptStatus,
    PipelineStage,
    RunState,
)
from manuscript_substrate import (
    ArtifactStore,
    ManuscriptRepository,
    ReportIndex,
    Substrate,
    artifact_key,
)
from manuscript_substrate.errors import InternalError, JobCancelled, NotFoundError, RequestValidationError

from .assets.engine import run_assets
from .context import extract_text
from .copy_editing.engine import run_copy_editing
from .cover.engine import run_cover_generation
from .developmental.engine import run_developmental
from .export.engine import Renderer, run_export
from .line_editing.engine import run_line_editing
from .market.engine import run_market_analysis
from .models import RunSummary, StageOutcome
from .notifications import LoggingNotifier, Notifier
from .progress import TICK_SECONDS, ProgressPublisher
from .runtime import SECTION_PAUSE_SECONDS, StageContext, gather_scoped
from .social.engine import run_social_campaign
from .stages import (
    ANALYSIS_STAGES,
    COMPLETE_PROGRESS,
    INITIAL_PROGRESS,
    STAGE_DEFINITIONS,
    build_stage_sequence,
    required_artifacts,
)

logger = logging.getLogger(__name__)
SERVICE_NAME = "orchestrator"
PARALLEL_STEP = "analyses"


class StageSkipped(Exception):
    """A stage's inputs are missing; the run carries on without it."""


@dataclass
class FlowState:
    ctx: StageContext
    summary: RunSummary
    bundle: AssetBundle | None = None
    market: dict[str, Any] | None = None
    skipped: set[PipelineStage] = field(default_factory=set)

    def mark_partial(self, *agents: str) -> None:
        self.summary.partial_success = True
        for agent in agents:
            if agent not in self.summary.failed_agents:
                self.summary.failed_agents.append(agent)


StageHandler = Callable[[FlowState], Awaitable[list[str]]]


class PipelineOrchestrator:
    """Runs the stage graph for one analysis job at a time."""

    def __init__(
        self,
        *,
        store: ArtifactStore,
        index: ReportIndex,
        manuscripts: ManuscriptRepository,
        client: ProviderClient,
        notifier: Notifier | None = None,
        renderers: dict[ExportFormat, Renderer] | None = None,
        section_pause: float = SECTION_PAUSE_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        tick_seconds: float = TICK_SECONDS,
        parallel_analyses: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.index = index
        self.manuscripts = manuscripts
        self.client = client
        self.notifier = notifier or LoggingNotifier()
        self.renderers = renderers
        self.section_pause = section_pause
        self.sleep = sleep
        self.tick_seconds = tick_seconds
        self.parallel_analyses = parallel_analyses
        self.rng = rng
        self._handlers: dict[PipelineStage, StageHandler] = {
            PipelineStage.DEVELOPMENTAL: self._developmental,
            PipelineStage.LINE_EDITING: self._line_editing,
            PipelineStage.COPY_EDITING: self._copy_editing,
            PipelineStage.ASSETS: self._assets,
            PipelineStage.MARKET: self._market,
            PipelineStage.SOCIAL: self._social,
            PipelineStage.COVER: self._cover,
            PipelineStage.EXPORT: self._export,
        }

    @classmethod
    def from_substrate(cls, substrate: Substrate, client: ProviderClient, **kwargs: Any) -> "PipelineOrchestrator":
        kwargs.setdefault("parallel_analyses", substrate.settings.parallel_analyses)
        return cls(
            store=substrate.store,
            index=substrate.index,
            manuscripts=substrate.manuscripts,
            client=client,
            **kwargs,
        )

    def _publisher(self, report_id: str) -> ProgressPublisher:
        return ProgressPublisher(
            self.index,
            report_id,
            tick_seconds=self.tick_seconds,
            sleep=self.sleep,
            rng=self.rng,
        )

    async def run(self, payload: AnalysisJobPayload | dict[str, Any]) -> RunSummary:
        if not isinstance(payload, AnalysisJobPayload):
            payload = AnalysisJobPayload.model_validate(payload)
        progress = self._publisher(payload.report_id)
        summary = RunSummary(report_id=payload.report_id, manuscript_key=payload.manuscript_key)

        with log_context(
            report_id=payload.report_id,
            user_id=payload.user_id,
            manuscript_id=payload.manuscript_id,
        ):
            logger.info("Starting analysis run", extra={"genre": payload.genre})
            await progress.publish(
                RunState.PROCESSING,
                INITIAL_PROGRESS,
                "Starting analysis",
                PipelineStage.INITIALIZATION.value,
            )
            try:
                text = await self._load_text(payload)
                await self._set_manuscript_status(payload, ManuscriptStatus.ANALYZING)
                state = FlowState(
                    ctx=StageContext(
                        payload=payload,
                        store=self.store,
                        client=self.client,
                        manuscript_text=text,
                        section_pause=self.section_pause,
                        sleep=self.sleep,
                    ),
                    summary=summary,
                )
                stages = build_stage_sequence(payload.stages)
                await self._run_stages(state, progress, stages)
                await self._verify_artifacts(payload, stages, state.skipped)
            except JobCancelled:
                logger.info("Analysis cancelled")
                await progress.fail("Analysis cancelled", reason="cancelled")
                await self._set_manuscript_status(payload, ManuscriptStatus.UPLOADED)
                await self.index.clear_cancel(payload.report_id)
                summary.status = "cancelled"
                return summary
            except Exception as exc:
                logger.exception("Analysis run failed")
                await progress.fail(f"Analysis failed: {exc}")
                await self._set_manuscript_status(payload, ManuscriptStatus.FAILED)
                raise

            await progress.publish(
                RunState.COMPLETE,
                COMPLETE_PROGRESS,
                "Analysis complete",
                PipelineStage.COMPLETE.value,
                partial_success=summary.partial_success,
                failed_agents=summary.failed_agents or None,
                skipped_stages=summary.skipped_stages or None,
            )
            await self._set_manuscript_status(payload, ManuscriptStatus.ANALYZED)
            await self._notify(payload, summary)
            logger.info(
                "Analysis run finished",
                extra={"partial_success": summary.partial_success, "stage_count": len(summary.stages)},
            )
        return summary

    async def abort(self, payload: AnalysisJobPayload | dict[str, Any], message: str) -> None:
        """Mark a run failed from outside the flow, e.g. after a timeout."""

        if not isinstance(payload, AnalysisJobPayload):
            payload = AnalysisJobPayload.model_validate(payload)
        await self._publisher(payload.report_id).fail(message)
        await self._set_manuscript_status(payload, ManuscriptStatus.FAILED)

    async def _load_text(self, payload: AnalysisJobPayload) -> str:
        stored = await self.store.get(payload.manuscript_key)
        if stored is None:
            raise NotFoundError(f"Manuscript not found: {payload.manuscript_key}")
        text = extract_text(stored.body, payload.manuscript_key, stored.content_type)
        if not text.strip():
            raise RequestValidationError("Manuscript contains no text")
        return text

    async def _set_manuscript_status(self, payload: AnalysisJobPayload, status: ManuscriptStatus) -> None:
        if payload.manuscript_id:
            await self.manuscripts.set_status(payload.manuscript_id, status)

    async def _notify(self, payload: AnalysisJobPayload, summary: RunSummary) -> None:
        try:
            await self.notifier.analysis_complete(payload.user_id, summary)
        except Exception:
            logger.exception("Completion notification failed")

    async def _check_cancelled(self, report_id: str) -> None:
        if await self.index.is_cancelled(report_id):
            raise JobCancelled(f"Report {report_id} was cancelled")

    async def _run_stages(self, state: FlowState, progress: ProgressPublisher, stages: list[PipelineStage]) -> None:
        report_id = state.ctx.report_id
        remaining = list(stages)
        if self.parallel_analyses and all(stage in remaining for stage in ANALYSIS_STAGES):
            await self._check_cancelled(report_id)
            first, last = STAGE_DEFINITIONS[ANALYSIS_STAGES[0]], STAGE_DEFINITIONS[ANALYSIS_STAGES[-1]]
            async with progress.stage(PARALLEL_STEP, first.start, last.end, "Running editorial analyses"):
                await gather_scoped(*(self._execute(state, stage) for stage in ANALYSIS_STAGES))
            remaining = [stage for stage in remaining if stage not in ANALYSIS_STAGES]

        for stage in remaining:
            await self._check_cancelled(report_id)
            definition = STAGE_DEFINITIONS[stage]
            async with progress.stage(stage.value, definition.start, definition.end, definition.message):
                await self._execute(state, stage)

    async def _execute(self, state: FlowState, stage: PipelineStage) -> None:
        definition = STAGE_DEFINITIONS[stage]
        started = perf_counter()
        outcome = StageOutcome(stage=stage, status="success")

        with log_context(stage=stage.value):
            logger.info("Executing stage")
            try:
                outcome.artifacts = await self._handlers[stage](state)
            except StageSkipped as skipped:
                outcome.status = "skipped"
                outcome.error = str(skipped)
                state.skipped.add(stage)
                state.summary.skipped_stages.append(stage.value)
                logger.info("Stage skipped", extra={"reason": str(skipped)})
            except asyncio.CancelledError:
                outcome.status = "cancelled"
                logger.info("Stage cancelled after a sibling failed")
                raise
            except Exception as exc:
                outcome.status = "failed"
                outcome.error = str(exc)
                if definition.fatal:
                    logger.exception("Stage execution failed")
                    raise
                logger.exception("Optional stage failed; continuing")
                state.mark_partial(stage.value)
            finally:
                outcome.duration_seconds = perf_counter() - started
                state.summary.stages.append(outcome)
                observe_stage_duration(
                    stage=stage.value,
                    duration_seconds=outcome.duration_seconds,
                    service_name=SERVICE_NAME,
                    status=outcome.status,
                )

    async def _verify_artifacts(
        self,
        payload: AnalysisJobPayload,
        stages: list[PipelineStage],
        skipped: set[PipelineStage],
    ) -> None:
        missing = []
        for kind in required_artifacts(stages, skipped):
            if await self.store.head(artifact_key(payload.prefix, kind)) is None:
                missing.append(kind.value)
        if missing:
            raise InternalError(f"Required artifacts missing: {', '.join(missing)}")

    async def _developmental(self, state: FlowState) -> list[str]:
        result = await run_developmental(state.ctx)
        return [result.artifact_key]

    async def _line_editing(self, state: FlowState) -> list[str]:
        result = await run_line_editing(state.ctx)
        return [result.artifact_key]

    async def _copy_editing(self, state: FlowState) -> list[str]:
        result = await run_copy_editing(state.ctx)
        return [result.artifact_key]

    async def _assets(self, state: FlowState) -> list[str]:
        result = await run_assets(state.ctx)
        state.bundle = result.bundle
        if result.bundle.partial:
            state.mark_partial(*result.bundle.failed_agents)
        return [key for key in (result.artifact_key, result.cover_brief_key) if key]

    async def _market(self, state: FlowState) -> list[str]:
        bundle = state.bundle
        if bundle is None or bundle.book_description is None or bundle.categories is None:
            raise StageSkipped("Asset bundle has no book description or categories")
        result = await run_market_analysis(state.ctx, bundle)
        state.market = result.analysis
        return [result.artifact_key]

    async def _social(self, state: FlowState) -> list[str]:
        if state.market is None:
            raise StageSkipped("No market analysis available")
        result = await run_social_campaign(state.ctx, state.market)
        return [result.artifact_key]

    async def _cover(self, state: FlowState) -> list[str]:
        brief = state.bundle.cover_brief if state.bundle else None
        if not brief:
            raise StageSkipped("No cover brief available")
        result = await run_cover_generation(state.ctx, brief)
        if result.errors:
            state.mark_partial(PipelineStage.COVER.value)
        return [image["key"] for image in result.images] + [result.artifact_key]

    async def _export(self, state: FlowState) -> list[str]:
        if state.bundle is None:
            raise StageSkipped("No asset bundle available")
        result = await run_export(state.ctx, state.bundle, self.renderers)
        state.summary.platforms = result.platforms
        return list(result.keys.values())


@flow(name="manuscript-analysis-flow", version="0.1.0", validate_parameters=False)
async def run_analysis_flow(payload: dict[str, Any], orchestrator: PipelineOrchestrator) -> RunSummary:
    return await orchestrator.run(payload)
