"""Developmental analysis: structure detection, section reviews and a synthesis pass."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from manuscript_providers import CallParams
from manuscript_schemas import ArtifactKind, SectionAnalysis
from manuscript_schemas.models.status import utcnow

from ..context import chunk_into_sections, split_words, summarise_prompt
from ..runtime import StageContext
from ..sections import analyse_sections, parsed_sections
from .prompts import DEVELOPMENTAL_SECTION_PROMPT, DEVELOPMENTAL_SYNTHESIS_PROMPT, DEVELOPMENTAL_SYSTEM_PROMPT

WORDS_PER_SECTION = 1000
SYNTHESIS_TOKEN_LIMIT = 24000
CHAPTER_EXCERPT_CHARS = 500

CHAPTER_PATTERN = re.compile(
    r"(?:^|\n)(?:Chapter|CHAPTER)\s+(?:\d+|[IVXLCDM]+)(?:\s*[:\-.]?\s*)([^\n]*)",
    re.IGNORECASE,
)

SECTION_PARAMS = CallParams(temperature=0.5, max_output_tokens=4096, system_prompt=DEVELOPMENTAL_SYSTEM_PROMPT)
SYNTHESIS_PARAMS = CallParams(temperature=0.5, max_output_tokens=4096, system_prompt=DEVELOPMENTAL_SYSTEM_PROMPT)


@dataclass
class DevelopmentalResult:
    structure: dict[str, Any]
    analysis: dict[str, Any]
    sections: list[SectionAnalysis]
    artifact_key: str


def analyse_structure(text: str) -> dict[str, Any]:
    """Detect chapter headings and derive per-chapter word counts."""

    matches = list(CHAPTER_PATTERN.finditer(text))
    chapters: list[dict[str, Any]] = []
    for index, match in enumerate(matches):
        start = match.start()
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        chapter_text = text[start:end]
        chapters.append(
            {
                "number": index + 1,
                "title": match.group(1).strip() or f"Chapter {index + 1}",
                "position": start,
                "wordCount": len(split_words(chapter_text)),
                "excerpt": chapter_text.strip()[:CHAPTER_EXCERPT_CHARS],
            }
        )

    total_words = len(split_words(text))
    return {
        "totalWords": total_words,
        "chapterCount": len(chapters),
        "avgChapterLength": round(total_words / len(chapters)) if chapters else 0,
        "chapters": chapters,
        "hasStructuredChapters": bool(chapters),
    }


async def run_developmental(ctx: StageContext) -> DevelopmentalResult:
    payload = ctx.payload
    structure = analyse_structure(ctx.manuscript_text)
    sections = chunk_into_sections(ctx.manuscript_text, WORDS_PER_SECTION)
    stats = {
        "total_words": structure["totalWords"],
        "chapter_count": structure["chapterCount"],
        "avg_chapter_length": structure["avgChapterLength"],
    }

    reviews = await analyse_sections(
        ctx,
        sections,
        operation="analyze_developmental_section",
        build_prompt=lambda section: DEVELOPMENTAL_SECTION_PROMPT.format(
            section_number=section.section_number,
            section_total=len(sections),
            word_range=section.word_range,
            genre=payload.genre,
            text=section.text,
            **stats,
        ),
        params=SECTION_PARAMS,
    )

    notes = json.dumps(
        [review.model_dump(mode="json", by_alias=True, exclude={"raw_response"}) for review in parsed_sections(reviews)],
        ensure_ascii=False,
    )
    notes, trimmed = summarise_prompt(notes, SYNTHESIS_TOKEN_LIMIT)
    synthesis = await ctx.client.call(
        DEVELOPMENTAL_SYNTHESIS_PROMPT.format(genre=payload.genre, section_notes=notes, **stats),
        ctx.attribute("analyze_developmental"),
        SYNTHESIS_PARAMS,
    )

    analysis = dict(synthesis.parsed)
    scored = [review.overall_score for review in parsed_sections(reviews) if review.overall_score is not None]
    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "reportId": payload.report_id,
        "genre": payload.genre,
        "structure": structure,
        "analysis": analysis,
        "sections": [review.to_wire() for review in reviews],
        "sectionSummary": {
            "totalSections": len(reviews),
            "parsedSections": len(scored),
            "averageScore": round(sum(scored) / len(scored), 1) if scored else None,
            "notesTrimmed": trimmed,
        },
        "timestamp": utcnow().isoformat(),
    }
    key = await ctx.write_artifact(ArtifactKind.ANALYSIS, artifact)
    return DevelopmentalResult(structure=structure, analysis=analysis, sections=reviews, artifact_key=key)
