"""Copy editing: per-section technical review plus manuscript-wide consistency checks."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from manuscript_providers import CallParams
from manuscript_schemas import ArtifactKind, SectionAnalysis
from manuscript_schemas.models.status import utcnow

from ..context import chunk_into_sections, split_words
from ..runtime import StageContext
from ..sections import analyse_sections, parsed_sections, section_extra
from .prompts import COPY_EDITING_SECTION_PROMPT, COPY_EDITING_SYSTEM_PROMPT, STYLE_GUIDE_INSTRUCTIONS

WORDS_PER_SECTION = 1000
TOP_ISSUES = 30
MAX_NAME_CANDIDATES = 200
NUMBER_STYLE_THRESHOLD = 10

ERROR_TYPES = ("grammar", "punctuation", "spelling", "capitalization", "formatting")
SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
TYPE_PRIORITY = {kind: index for index, kind in enumerate(ERROR_TYPES)}
SENTENCE_STARTERS = {"The", "A", "An", "I", "It", "He", "She", "They", "We", "But", "And", "In", "On"}

_NON_ALPHA = re.compile(r"[^A-Za-z]")
_NUMBER_WORDS = re.compile(r"\b(one|two|three|four|five|six|seven|eight|nine|ten|\d+)\b", re.IGNORECASE)


@dataclass
class CopyEditingResult:
    sections: list[SectionAnalysis]
    errors_by_type: dict[str, int]
    consistency: dict[str, list[dict[str, Any]]]
    assessment: dict[str, Any]
    artifact_key: str


def extract_proper_nouns(text: str) -> Counter[str]:
    counts: Counter[str] = Counter()
    for word in split_words(text):
        cleaned = _NON_ALPHA.sub("", word)
        if len(cleaned) > 1 and cleaned[0].isupper() and cleaned not in SENTENCE_STARTERS:
            counts[cleaned] += 1
    return counts


def names_similar(first: str, second: str) -> bool:
    """One name contains the other, or they differ by at most two letters."""

    if abs(len(first) - len(second)) > 2:
        return False
    if first in second or second in first:
        return True
    diff = sum(1 for a, b in zip(first, second) if a != b)
    diff += abs(len(first) - len(second))
    return diff <= 2


def check_consistency(text: str, style_guide: str) -> dict[str, list[dict[str, Any]]]:
    issues: dict[str, list[dict[str, Any]]] = {"characterNames": [], "numberStyle": []}

    counts = extract_proper_nouns(text)
    candidates = [name for name, count in counts.most_common(MAX_NAME_CANDIDATES) if count >= 2 and len(name) >= 4]
    for index, first in enumerate(candidates):
        for second in candidates[index + 1 :]:
            if names_similar(first, second):
                issues["characterNames"].append(
                    {
                        "variations": [first, second],
                        "counts": [counts[first], counts[second]],
                        "severity": "high",
                        "suggestion": (
                            f'Possible inconsistency: "{first}" ({counts[first]}x) '
                            f'vs "{second}" ({counts[second]}x)'
                        ),
                    }
                )

    numbers = _NUMBER_WORDS.findall(text)
    numerals = sum(1 for value in numbers if value.isdigit())
    spelled_out = len(numbers) - numerals
    if spelled_out > NUMBER_STYLE_THRESHOLD and numerals > NUMBER_STYLE_THRESHOLD:
        rule = "spell out one through one hundred" if style_guide == "chicago" else "spell out one through nine"
        issues["numberStyle"].append(
            {
                "severity": "medium",
                "spelledOut": spelled_out,
                "numerals": numerals,
                "suggestion": (
                    f"Inconsistent number style: {spelled_out} spelled out vs {numerals} numerals. "
                    f"{style_guide.upper()} style: {rule}"
                ),
            }
        )
    return issues


def aggregate_errors(
    sections: list[SectionAnalysis], consistency: dict[str, list[dict[str, Any]]]
) -> tuple[dict[str, int], list[dict[str, Any]]]:
    errors_by_type: dict[str, int] = {kind: 0 for kind in ERROR_TYPES}
    collected: list[dict[str, Any]] = []
    for section in parsed_sections(sections):
        for error in section_extra(section, "errors", []) or []:
            if not isinstance(error, dict):
                continue
            kind = str(error.get("type", "formatting"))
            errors_by_type[kind] = errors_by_type.get(kind, 0) + 1
            collected.append({**error, "sectionNumber": section.section_number, "wordRange": section.word_range})
    errors_by_type["consistency"] = sum(len(entries) for entries in consistency.values())
    collected.sort(
        key=lambda error: (
            SEVERITY_ORDER.get(error.get("severity"), 3),
            TYPE_PRIORITY.get(error.get("type"), 10),
        )
    )
    return errors_by_type, collected


def overall_assessment(total_errors: int, errors_by_type: dict[str, int]) -> dict[str, Any]:
    if total_errors > 300:
        score = 4.0
    elif total_errors > 150:
        score = 6.0
    elif total_errors > 50:
        score = 7.5
    elif total_errors > 20:
        score = 9.0
    else:
        score = 10.0

    if score >= 9:
        summary = "Excellent technical quality. Minimal corrections needed."
    elif score >= 7:
        summary = "Good technical foundation with moderate corrections needed."
    elif score >= 5:
        summary = "Significant technical issues requiring thorough revision."
    else:
        summary = "Extensive technical errors. Professional copy editing strongly recommended."

    focus = sorted(((kind, count) for kind, count in errors_by_type.items() if count > 10), key=lambda i: -i[1])
    return {
        "overallCopyScore": score,
        "totalErrors": total_errors,
        "summary": summary,
        "focusAreas": [f"{kind}: {count} errors" for kind, count in focus],
        "readyForPublication": score >= 9 and total_errors < 20,
    }


async def run_copy_editing(ctx: StageContext) -> CopyEditingResult:
    payload = ctx.payload
    style_guide = payload.style_guide
    sections = chunk_into_sections(ctx.manuscript_text, WORDS_PER_SECTION)
    params = CallParams(temperature=0.5, max_output_tokens=4096, system_prompt=COPY_EDITING_SYSTEM_PROMPT)
    reviews = await analyse_sections(
        ctx,
        sections,
        operation="analyze_copy_editing",
        build_prompt=lambda section: COPY_EDITING_SECTION_PROMPT.format(
            style_name=style_guide.upper(),
            style_instructions=STYLE_GUIDE_INSTRUCTIONS.get(style_guide, STYLE_GUIDE_INSTRUCTIONS["chicago"]),
            section_number=section.section_number,
            word_range=section.word_range,
            text=section.text,
        ),
        params=params,
    )

    consistency = check_consistency(ctx.manuscript_text, style_guide)
    errors_by_type, prioritised = aggregate_errors(reviews, consistency)
    assessment = overall_assessment(len(prioritised), errors_by_type)
    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "reportId": payload.report_id,
        "styleGuide": style_guide,
        "overallAssessment": assessment,
        "errorsByType": errors_by_type,
        "consistencyIssues": consistency,
        "topIssues": prioritised[:TOP_ISSUES],
        "sections": [review.to_wire() for review in reviews],
        "timestamp": utcnow().isoformat(),
    }
    key = await ctx.write_artifact(ArtifactKind.COPY_ANALYSIS, artifact)
    return CopyEditingResult(
        sections=reviews,
        errors_by_type=errors_by_type,
        consistency=consistency,
        assessment=assessment,
        artifact_key=key,
    )
