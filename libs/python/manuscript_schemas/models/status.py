"""Status record published for every report."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..enums import PipelineStage, RunState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusRecord(BaseModel):
    """What a client polls while a report is being produced."""

    model_config = ConfigDict(populate_by_name=True)

    status: RunState
    progress: int = Field(0, ge=0, le=100)
    message: str = ""
    current_step: str = Field(PipelineStage.INITIALIZATION.value, alias="currentStep")
    timestamp: datetime = Field(default_factory=utcnow)
    reason: str | None = None
    partial_success: bool | None = Field(None, alias="partialSuccess")
    failed_agents: list[str] | None = Field(None, alias="failedAgents")
    skipped_stages: list[str] | None = Field(None, alias="skippedStages")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
