"""Pydantic models describing the outcome of a pipeline run."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from manuscript_schemas import PipelineStage
from manuscript_schemas.models.status import utcnow


class StageOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stage: PipelineStage
    status: str = Field(..., description="success, partial, skipped, cancelled or failed")
    duration_seconds: float = Field(0.0, alias="durationSeconds")
    artifacts: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class RunSummary(BaseModel):
    """Result recorded on the completed job."""

    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    manuscript_key: str = Field(alias="manuscriptKey")
    status: str = "complete"
    partial_success: bool = Field(False, alias="partialSuccess")
    failed_agents: List[str] = Field(default_factory=list, alias="failedAgents")
    skipped_stages: List[str] = Field(default_factory=list, alias="skippedStages")
    stages: List[StageOutcome] = Field(default_factory=list)
    platforms: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    finished_at: datetime = Field(default_factory=utcnow, alias="finishedAt")

    def to_result(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
