"""Asset generation: seven marketing sub-agents fanned out concurrently."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from manuscript_providers import CallParams, ProviderError
from manuscript_schemas import (
    REQUIRED_KEYWORD_COUNT,
    AgentError,
    ArtifactKind,
    AssetAgent,
    AssetBundle,
)
from manuscript_substrate import artifact_key

from ..context import excerpt
from ..runtime import StageContext
from .prompts import (
    ASSET_SYSTEM_PROMPT,
    AUTHOR_BIO_PROMPT,
    BACK_MATTER_PROMPT,
    BOOK_DESCRIPTION_PROMPT,
    CATEGORIES_PROMPT,
    COVER_BRIEF_PROMPT,
    KEYWORDS_PROMPT,
    SERIES_DESCRIPTION_PROMPT,
    STORY_CONTEXT,
)

logger = logging.getLogger(__name__)

MAX_KEYWORD_LENGTH = 50
FEATURE_NAME = "assets"


@dataclass
class AssetResult:
    bundle: AssetBundle
    artifact_key: str
    cover_brief_key: str | None


def book_title(ctx: StageContext) -> str:
    if ctx.payload.title:
        return ctx.payload.title
    filename = ctx.payload.manuscript_key.rsplit("/", 1)[-1]
    return filename.rsplit(".", 1)[0].replace("_", " ").replace("-", " ").strip().title() or "Untitled"


def _joined(values: Any) -> str:
    if isinstance(values, list) and values:
        return ", ".join(str(value) for value in values)
    return "N/A"


def story_context(ctx: StageContext, analysis_artifact: dict[str, Any] | None) -> str:
    artifact = analysis_artifact or {}
    analysis = artifact.get("analysis") or {}
    structure = artifact.get("structure") or {}
    marketability = analysis.get("marketability") or {}
    return STORY_CONTEXT.format(
        title=book_title(ctx),
        genre=ctx.payload.genre,
        total_words=structure.get("totalWords", "Unknown"),
        chapter_count=structure.get("chapterCount", "Unknown"),
        overall_score=analysis.get("overallScore", "N/A"),
        plot_strengths=_joined((analysis.get("plot") or {}).get("strengths")),
        character_strengths=_joined((analysis.get("characters") or {}).get("strengths")),
        priorities=_joined(analysis.get("topPriorities")),
        genre_strengths=_joined((analysis.get("genreFit") or {}).get("strengths")),
        marketability=marketability.get("summary", "N/A") if isinstance(marketability, dict) else "N/A",
        excerpt=excerpt(ctx.manuscript_text),
    )


def validate_keywords(parsed: dict[str, Any]) -> list[str]:
    """Return the normalised phrases or raise ``ValueError`` if the set is unusable."""

    raw = parsed.get("keywords")
    if not isinstance(raw, list):
        raise ValueError("Keyword response has no keyword list")
    phrases = [str(phrase).strip().lower() for phrase in raw if str(phrase).strip()]
    if len(phrases) != REQUIRED_KEYWORD_COUNT:
        raise ValueError(f"Expected exactly {REQUIRED_KEYWORD_COUNT} keywords, got {len(phrases)}")
    too_long = [phrase for phrase in phrases if len(phrase) > MAX_KEYWORD_LENGTH]
    if too_long:
        raise ValueError(f"Keywords longer than {MAX_KEYWORD_LENGTH} characters: {too_long}")
    return phrases


def _require_dict(parsed: Any, agent: AssetAgent) -> dict[str, Any]:
    if not isinstance(parsed, dict) or not parsed:
        raise ValueError(f"{agent.value} response was empty")
    return parsed


async def run_assets(ctx: StageContext) -> AssetResult:
    payload = ctx.payload
    analysis_artifact = await ctx.read_artifact(ArtifactKind.ANALYSIS)
    context = story_context(ctx, analysis_artifact)
    author_data = json.dumps(payload.author_data or {}, ensure_ascii=False)
    series_data = json.dumps(payload.series_data or {}, ensure_ascii=False)

    async def _ask(agent: AssetAgent, operation: str, prompt: str, params: CallParams) -> dict[str, Any]:
        call = await ctx.client.call(prompt, ctx.attribute(operation, FEATURE_NAME), params)
        return _require_dict(call.parsed, agent)

    async def _keywords() -> list[str]:
        call = await ctx.client.call(
            KEYWORDS_PROMPT.format(context=context),
            ctx.attribute("keywords", FEATURE_NAME),
            CallParams(temperature=0.5, max_output_tokens=2048, system_prompt=ASSET_SYSTEM_PROMPT),
        )
        return validate_keywords(call.parsed)

    def creative(temperature: float) -> CallParams:
        return CallParams(temperature=temperature, max_output_tokens=4096, system_prompt=ASSET_SYSTEM_PROMPT)

    agents: dict[AssetAgent, Callable[[], Awaitable[Any]]] = {
        AssetAgent.BOOK_DESCRIPTION: lambda: _ask(
            AssetAgent.BOOK_DESCRIPTION,
            "book-description",
            BOOK_DESCRIPTION_PROMPT.format(context=context, genre=payload.genre),
            creative(0.7),
        ),
        AssetAgent.KEYWORDS: _keywords,
        AssetAgent.CATEGORIES: lambda: _ask(
            AssetAgent.CATEGORIES, "categories", CATEGORIES_PROMPT.format(context=context), creative(0.5)
        ),
        AssetAgent.AUTHOR_BIO: lambda: _ask(
            AssetAgent.AUTHOR_BIO,
            "author-bio",
            AUTHOR_BIO_PROMPT.format(context=context, author_data=author_data, genre=payload.genre),
            creative(0.7),
        ),
        AssetAgent.BACK_MATTER: lambda: _ask(
            AssetAgent.BACK_MATTER,
            "back-matter",
            BACK_MATTER_PROMPT.format(context=context, author_data=author_data),
            creative(0.8),
        ),
        AssetAgent.COVER_BRIEF: lambda: _ask(
            AssetAgent.COVER_BRIEF,
            "cover-brief",
            COVER_BRIEF_PROMPT.format(context=context, genre=payload.genre),
            creative(0.8),
        ),
        AssetAgent.SERIES_DESCRIPTION: lambda: _ask(
            AssetAgent.SERIES_DESCRIPTION,
            "series-description",
            SERIES_DESCRIPTION_PROMPT.format(context=context, series_data=series_data),
            creative(0.7),
        ),
    }

    async def _guarded(agent: AssetAgent) -> tuple[AssetAgent, Any, str | None]:
        try:
            return agent, await agents[agent](), None
        except (ProviderError, ValueError) as exc:
            logger.warning("Asset sub-agent failed", extra={"agent": agent.value, "error": str(exc)})
            return agent, None, str(exc)

    outcomes = await asyncio.gather(*(_guarded(agent) for agent in agents))

    fields: dict[str, Any] = {}
    errors: list[AgentError] = []
    for agent, value, error in outcomes:
        fields[agent.value] = value
        if error is not None:
            errors.append(AgentError(type=agent.value, error=error))

    bundle = AssetBundle.model_validate(
        {
            "manuscriptKey": payload.manuscript_key,
            "reportId": payload.report_id,
            **fields,
            "errors": errors,
        }
    )
    key = await ctx.write_artifact(ArtifactKind.ASSETS, bundle.to_wire())

    brief_key = None
    if bundle.cover_brief is not None:
        brief_key = await ctx.write_artifact(ArtifactKind.COVER_BRIEF, bundle.cover_brief)
    else:
        await ctx.store.delete(artifact_key(ctx.prefix, ArtifactKind.COVER_BRIEF))

    logger.info(
        "Asset generation finished",
        extra={"report_id": payload.report_id, "failed_agents": bundle.failed_agents},
    )
    return AssetResult(bundle=bundle, artifact_key=key, cover_brief_key=brief_key)
