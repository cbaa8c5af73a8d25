"""Job records kept by the queue and the payload of an analysis job."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..enums import JobStatus, PipelineStage

_JSON_FIELDS = ("payload", "result")
_OPTIONAL_FLOATS = ("processAt", "lastErrorAt", "completedAt", "failedAt")
MAX_COVER_VARIATIONS = 5


class JobRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    queue_name: str = Field(alias="queueName")
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=0, alias="maxRetries")
    created_at: float = Field(alias="createdAt")
    updated_at: float = Field(alias="updatedAt")
    process_at: float | None = Field(None, alias="processAt")
    last_error: str | None = Field(None, alias="lastError")
    last_error_at: float | None = Field(None, alias="lastErrorAt")
    completed_at: float | None = Field(None, alias="completedAt")
    failed_at: float | None = Field(None, alias="failedAt")
    result: dict[str, Any] | None = None

    def to_mapping(self) -> dict[str, str]:
        """Flatten into string fields for a hash-style store."""

        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        mapping: dict[str, str] = {}
        for key, value in data.items():
            if key in _JSON_FIELDS:
                mapping[key] = json.dumps(value)
            else:
                mapping[key] = str(value)
        return mapping

    @classmethod
    def from_mapping(cls, mapping: dict[str, str]) -> "JobRecord":
        data: dict[str, Any] = dict(mapping)
        for key in _JSON_FIELDS:
            if key in data:
                data[key] = json.loads(data[key])
        for key in _OPTIONAL_FLOATS:
            if data.get(key) in ("", "None"):
                data.pop(key)
        return cls.model_validate(data)


class AnalysisJobPayload(BaseModel):
    """Everything a worker needs to run the stage graph for one report."""

    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    manuscript_key: str = Field(alias="manuscriptKey")
    manuscript_id: str | None = Field(None, alias="manuscriptId")
    user_id: str | None = Field(None, alias="userId")
    genre: str = "general"
    style_guide: str = Field("chicago", alias="styleGuide")
    title: str | None = None
    author_data: dict[str, Any] = Field(default_factory=dict, alias="authorData")
    series_data: dict[str, Any] | None = Field(None, alias="seriesData")
    cover_variations: int = Field(3, alias="coverVariations")
    stages: list[PipelineStage] | None = None

    @field_validator("cover_variations")
    @classmethod
    def _clamp_variations(cls, value: int) -> int:
        return max(1, min(MAX_COVER_VARIATIONS, value))

    @property
    def prefix(self) -> str:
        return self.manuscript_key
