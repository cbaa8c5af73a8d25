"""Stage graph, progress boundaries and required artifacts."""

from __future__ import annotations

from dataclasses import dataclass

from manuscript_schemas import ArtifactKind, PipelineStage


@dataclass(frozen=True)
class StageDefinition:
    stage: PipelineStage
    start: int
    end: int
    message: str
    artifacts: tuple[ArtifactKind, ...] = ()
    depends_on: tuple[PipelineStage, ...] = ()
    fatal: bool = True


ANALYSIS_STAGES = (
    PipelineStage.DEVELOPMENTAL,
    PipelineStage.LINE_EDITING,
    PipelineStage.COPY_EDITING,
)

STAGE_DEFINITIONS: dict[PipelineStage, StageDefinition] = {
    PipelineStage.DEVELOPMENTAL: StageDefinition(
        PipelineStage.DEVELOPMENTAL,
        5,
        30,
        "Running developmental analysis",
        (ArtifactKind.ANALYSIS,),
    ),
    PipelineStage.LINE_EDITING: StageDefinition(
        PipelineStage.LINE_EDITING,
        35,
        65,
        "Running line editing analysis",
        (ArtifactKind.LINE_ANALYSIS,),
    ),
    PipelineStage.COPY_EDITING: StageDefinition(
        PipelineStage.COPY_EDITING,
        70,
        95,
        "Running copy editing analysis",
        (ArtifactKind.COPY_ANALYSIS,),
    ),
    PipelineStage.ASSETS: StageDefinition(
        PipelineStage.ASSETS,
        95,
        95,
        "Generating marketing assets",
        (ArtifactKind.ASSETS,),
        depends_on=ANALYSIS_STAGES,
    ),
    PipelineStage.MARKET: StageDefinition(
        PipelineStage.MARKET,
        95,
        95,
        "Analysing market positioning",
        (ArtifactKind.MARKET_ANALYSIS,),
        depends_on=(PipelineStage.ASSETS,),
    ),
    PipelineStage.SOCIAL: StageDefinition(
        PipelineStage.SOCIAL,
        95,
        95,
        "Building social media campaign",
        (ArtifactKind.SOCIAL_MEDIA,),
        depends_on=(PipelineStage.MARKET,),
    ),
    PipelineStage.COVER: StageDefinition(
        PipelineStage.COVER,
        95,
        95,
        "Generating cover images",
        (ArtifactKind.COVER_IMAGES,),
        depends_on=(PipelineStage.ASSETS,),
        fatal=False,
    ),
    PipelineStage.EXPORT: StageDefinition(
        PipelineStage.EXPORT,
        95,
        95,
        "Building export package",
        (ArtifactKind.FORMATTED_EPUB, ArtifactKind.FORMATTED_PDF),
        depends_on=(PipelineStage.ASSETS,),
        fatal=False,
    ),
}

DEFAULT_STAGE_SEQUENCE: tuple[PipelineStage, ...] = tuple(STAGE_DEFINITIONS)
INITIAL_PROGRESS = 0
COMPLETE_PROGRESS = 100


def build_stage_sequence(requested: list[PipelineStage] | None = None) -> list[PipelineStage]:
    """Expand ``requested`` with its dependencies, in execution order."""

    if not requested:
        return list(DEFAULT_STAGE_SEQUENCE)

    wanted: set[PipelineStage] = set()
    pending = [stage for stage in requested if stage in STAGE_DEFINITIONS]
    while pending:
        stage = pending.pop()
        if stage in wanted:
            continue
        wanted.add(stage)
        pending.extend(STAGE_DEFINITIONS[stage].depends_on)
    return [stage for stage in DEFAULT_STAGE_SEQUENCE if stage in wanted]


def required_artifacts(stages: list[PipelineStage], skipped: set[PipelineStage] | None = None) -> list[ArtifactKind]:
    """Artifacts a run must have written before it may report ``complete``."""

    skipped = skipped or set()
    required: list[ArtifactKind] = []
    for stage in stages:
        definition = STAGE_DEFINITIONS[stage]
        if definition.fatal and stage not in skipped:
            required.extend(definition.artifacts)
    return required


__all__ = [
    "ANALYSIS_STAGES",
    "COMPLETE_PROGRESS",
    "DEFAULT_STAGE_SEQUENCE",
    "INITIAL_PROGRESS",
    "STAGE_DEFINITIONS",
    "StageDefinition",
    "build_stage_sequence",
    "required_artifacts",
]
