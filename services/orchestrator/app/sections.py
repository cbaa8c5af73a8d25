"""Sequential per-section analysis shared by the three editorial passes."""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError

from manuscript_providers import CallParams
from manuscript_schemas import ManuscriptSection, SectionAnalysis

from .runtime import StageContext

logger = logging.getLogger(__name__)


async def analyse_sections(
    ctx: StageContext,
    sections: list[ManuscriptSection],
    *,
    operation: str,
    build_prompt: Callable[[ManuscriptSection], str],
    params: CallParams,
) -> list[SectionAnalysis]:
    """Run one provider call per section, in order, pausing between calls.

    A section whose answer cannot be parsed becomes a ``parseError`` sentinel
    and the loop carries on.
    """

    results: list[SectionAnalysis] = []
    attribution = ctx.attribute(operation)
    for position, section in enumerate(sections):
        logger.info(
            "Analysing section",
            extra={"operation": operation, "section": section.section_number, "total": len(sections)},
        )
        call = await ctx.client.call_section(build_prompt(section), attribution, params)
        if call.parse_failed:
            result = SectionAnalysis.sentinel(
                section, error_message=call.error_message or "Unparseable response", raw_response=call.text
            )
        else:
            try:
                result = SectionAnalysis.model_validate(
                    {**call.parsed, "sectionNumber": section.section_number, "wordRange": section.word_range}
                )
            except ValidationError as exc:
                logger.warning(
                    "Section response had an unexpected shape",
                    extra={"operation": operation, "section": section.section_number},
                )
                result = SectionAnalysis.sentinel(section, error_message=str(exc), raw_response=call.text)
        results.append(result)

        if position < len(sections) - 1 and ctx.section_pause > 0:
            await ctx.sleep(ctx.section_pause)
    return results


def parsed_sections(sections: list[SectionAnalysis]) -> list[SectionAnalysis]:
    return [section for section in sections if not section.parse_error]


def section_extra(section: SectionAnalysis, name: str, default=None):
    """Read a provider field that the section model keeps as an extra."""

    return (section.model_extra or {}).get(name, default)
