"""Combined output of the asset generation fan-out."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .status import utcnow

REQUIRED_KEYWORD_COUNT = 7


class AgentError(BaseModel):
    type: str
    error: str


class AssetBundle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manuscript_key: str = Field(alias="manuscriptKey")
    report_id: str = Field(alias="reportId")
    generated: datetime = Field(default_factory=utcnow)
    book_description: dict[str, Any] | None = Field(None, alias="bookDescription")
    keywords: list[str] | None = None
    categories: dict[str, Any] | None = None
    author_bio: dict[str, Any] | None = Field(None, alias="authorBio")
    back_matter: dict[str, Any] | None = Field(None, alias="backMatter")
    cover_brief: dict[str, Any] | None = Field(None, alias="coverBrief")
    series_description: dict[str, Any] | None = Field(None, alias="seriesDescription")
    errors: list[AgentError] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    @property
    def failed_agents(self) -> list[str]:
        return [entry.type for entry in self.errors]

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        if not self.errors:
            data["errors"] = None
        return data
