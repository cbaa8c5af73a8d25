"""Line editing: sentence-level prose review with pattern aggregation."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

from manuscript_providers import CallParams
from manuscript_schemas import ArtifactKind, SectionAnalysis
from manuscript_schemas.models.status import utcnow

from ..context import chunk_into_sections
from ..runtime import StageContext
from ..sections import analyse_sections, parsed_sections, section_extra
from .prompts import LINE_EDITING_SECTION_PROMPT, LINE_EDITING_SYSTEM_PROMPT

WORDS_PER_SECTION = 800
TOP_SUGGESTIONS = 20

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
TYPE_PRIORITY = {
    "show_not_tell": 0,
    "passive_voice": 1,
    "weak_verb": 2,
    "redundancy": 3,
    "adverb": 4,
    "sentence_variety": 5,
    "cliche": 6,
    "other": 7,
}
VARIETY_BUCKETS = ("good", "needs_work", "poor")


@dataclass
class LineEditingResult:
    sections: list[SectionAnalysis]
    patterns: dict[str, Any]
    assessment: dict[str, Any]
    top_suggestions: list[dict[str, Any]]
    artifact_key: str


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def aggregate_patterns(sections: list[SectionAnalysis]) -> dict[str, Any]:
    """Totals across sections; sentinel sections count toward ``totalSections`` only."""

    usable = parsed_sections(sections)
    issue_counts: Counter[str] = Counter()
    variety = {bucket: 0 for bucket in VARIETY_BUCKETS}
    passive_total = 0.0
    adverb_total = 0.0
    sentence_lengths: list[float] = []
    scores: list[float] = []

    for section in usable:
        if section.overall_score is not None:
            scores.append(section.overall_score)
        for issue in section.issues:
            issue_counts[str(issue.get("type", "other"))] += 1
        metrics = section_extra(section, "readabilityMetrics") or {}
        if not isinstance(metrics, dict):
            continue
        passive_total += _number(metrics.get("passiveVoiceCount"))
        adverb_total += _number(metrics.get("adverbCount"))
        if metrics.get("averageSentenceLength"):
            sentence_lengths.append(_number(metrics["averageSentenceLength"]))
        bucket = metrics.get("sentenceVariety")
        if bucket in variety:
            variety[bucket] += 1

    return {
        "totalSections": len(sections),
        "failedSections": len(sections) - len(usable),
        "averageScore": round(sum(scores) / len(scores), 1) if scores else 0.0,
        "issueTypeCounts": dict(issue_counts),
        "totalIssues": sum(issue_counts.values()),
        "passiveVoiceTotal": int(passive_total),
        "adverbTotal": int(adverb_total),
        "averageSentenceLengthOverall": (
            round(sum(sentence_lengths) / len(sentence_lengths), 1) if sentence_lengths else 0.0
        ),
        "sentenceVarietyDistribution": variety,
    }


def overall_assessment(patterns: dict[str, Any], sections: list[SectionAnalysis]) -> dict[str, Any]:
    score = patterns["averageScore"]
    if score >= 8:
        summary = "Strong prose with minimal issues. Focus on fine-tuning."
    elif score >= 6:
        summary = "Solid foundation with room for improvement in several areas."
    else:
        summary = "Prose needs significant revision to meet publishing standards."

    top_types = sorted(patterns["issueTypeCounts"].items(), key=lambda item: item[1], reverse=True)[:3]
    usable = parsed_sections(sections)

    strengths: list[str] = []
    for section in usable:
        for strength in section.strengths:
            if isinstance(strength, str) and strength not in strengths:
                strengths.append(strength)
    high_severity = sum(1 for section in usable for issue in section.issues if issue.get("severity") == "high")

    urgent: list[str] = []
    if high_severity > 10:
        urgent.append(f"{high_severity} high-severity prose issues need immediate attention")
    if patterns["passiveVoiceTotal"] > 50:
        urgent.append(f"Excessive passive voice ({patterns['passiveVoiceTotal']} instances)")
    if patterns["adverbTotal"] > 100:
        urgent.append(f"Adverb overuse ({patterns['adverbTotal']} instances)")

    return {
        "overallProseScore": score,
        "summary": summary,
        "keyStrengths": strengths[:5],
        "keyWeaknesses": [f"{kind.replace('_', ' ')}: {count} instances" for kind, count in top_types],
        "urgentIssues": urgent,
    }


def prioritise_suggestions(sections: list[SectionAnalysis], limit: int = TOP_SUGGESTIONS) -> list[dict[str, Any]]:
    issues = [
        {**issue, "sectionNumber": section.section_number, "wordRange": section.word_range}
        for section in parsed_sections(sections)
        for issue in section.issues
    ]
    issues.sort(
        key=lambda issue: (
            SEVERITY_ORDER.get(issue.get("severity"), 3),
            TYPE_PRIORITY.get(issue.get("type"), 10),
        )
    )
    return issues[:limit]


async def run_line_editing(ctx: StageContext) -> LineEditingResult:
    payload = ctx.payload
    sections = chunk_into_sections(ctx.manuscript_text, WORDS_PER_SECTION)
    params = CallParams(
        temperature=0.3,
        max_output_tokens=4096,
        system_prompt=LINE_EDITING_SYSTEM_PROMPT.format(genre=payload.genre),
    )
    reviews = await analyse_sections(
        ctx,
        sections,
        operation="analyze_line_editing",
        build_prompt=lambda section: LINE_EDITING_SECTION_PROMPT.format(
            genre=payload.genre,
            section_number=section.section_number,
            word_range=section.word_range,
            text=section.text,
        ),
        params=params,
    )

    patterns = aggregate_patterns(reviews)
    assessment = overall_assessment(patterns, reviews)
    suggestions = prioritise_suggestions(reviews)
    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "reportId": payload.report_id,
        "genre": payload.genre,
        "overallAssessment": assessment,
        "patterns": patterns,
        "topSuggestions": suggestions,
        "sections": [review.to_wire() for review in reviews],
        "timestamp": utcnow().isoformat(),
    }
    key = await ctx.write_artifact(ArtifactKind.LINE_ANALYSIS, artifact)
    return LineEditingResult(
        sections=reviews,
        patterns=patterns,
        assessment=assessment,
        top_suggestions=suggestions,
        artifact_key=key,
    )
