"""Shared pydantic models and enums for the manuscript pipeline."""

from .enums import (
    ArtifactKind,
    AssetAgent,
    CostCenter,
    ExportFormat,
    JobStatus,
    ManuscriptStatus,
    PipelineStage,
    PublishingPlatform,
    RunState,
    UserTier,
)
from .models import (
    REQUIRED_KEYWORD_COUNT,
    AgentError,
    AnalysisJobPayload,
    AssetBundle,
    Attribution,
    CostEntry,
    CostSummaryRow,
    JobRecord,
    ManuscriptRecord,
    ManuscriptSection,
    SectionAnalysis,
    StatusRecord,
    UserRecord,
)

__all__ = [
    "AgentError",
    "AnalysisJobPayload",
    "ArtifactKind",
    "AssetAgent",
    "AssetBundle",
    "Attribution",
    "CostCenter",
    "CostEntry",
    "CostSummaryRow",
    "ExportFormat",
    "JobRecord",
    "JobStatus",
    "ManuscriptRecord",
    "ManuscriptSection",
    "ManuscriptStatus",
    "PipelineStage",
    "PublishingPlatform",
    "REQUIRED_KEYWORD_COUNT",
    "RunState",
    "SectionAnalysis",
    "StatusRecord",
    "UserRecord",
    "UserTier",
]
