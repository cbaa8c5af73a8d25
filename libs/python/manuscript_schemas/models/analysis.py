"""Section level analysis payloads.

Provider output is loosely shaped, so these models pin down the fields the
pipeline reads and keep everything else the model returned.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PARSE_ERROR_RAW_LIMIT = 1000


class ManuscriptSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_number: int = Field(..., ge=1, alias="sectionNumber")
    start_word: int = Field(..., ge=0, alias="startWord")
    end_word: int = Field(..., ge=0, alias="endWord")
    text: str
    word_count: int = Field(..., ge=0, alias="wordCount")

    @property
    def word_range(self) -> str:
        return f"{self.start_word}-{self.end_word}"


class SectionAnalysis(BaseModel):
    """Result for one section; ``parse_error`` marks the unparseable sentinel."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    section_number: int = Field(..., alias="sectionNumber")
    word_range: str = Field(..., alias="wordRange")
    overall_score: float | None = Field(None, alias="overallScore")
    issues: list[dict[str, Any]] = Field(default_factory=list)
    strengths: list[Any] = Field(default_factory=list)
    parse_error: bool = Field(False, alias="parseError")
    error_message: str | None = Field(None, alias="errorMessage")
    raw_response: str | None = Field(None, alias="rawResponse")

    @classmethod
    def sentinel(
        cls,
        section: ManuscriptSection,
        *,
        error_message: str,
        raw_response: str = "",
        default_score: float = 7,
    ) -> "SectionAnalysis":
        return cls(
            section_number=section.section_number,
            word_range=section.word_range,
            overall_score=default_score,
            parse_error=True,
            error_message=error_message,
            raw_response=raw_response[:PARSE_ERROR_RAW_LIMIT],
            issues=[],
            strengths=["Analysis completed with parsing limitations"],
            readabilityMetrics={},
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
