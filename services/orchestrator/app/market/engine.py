"""Market analysis built on the genre positioning of a manuscript excerpt."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from manuscript_providers import CallParams
from manuscript_schemas import ArtifactKind, AssetBundle
from manuscript_schemas.models.status import utcnow

from ..context import MARKET_EXCERPT_CHARS, excerpt
from ..runtime import StageContext, gather_scoped
from .prompts import (
    AUDIENCE_PROMPT,
    CATEGORY_STRATEGY_PROMPT,
    COMPETITIVE_PROMPT,
    GENRE_POSITIONING_PROMPT,
    KEYWORD_STRATEGY_PROMPT,
    MARKET_SYSTEM_PROMPT,
    PRICING_PROMPT,
)

FEATURE_NAME = "market-analysis"
PARAMS = CallParams(temperature=0.7, max_output_tokens=4000, system_prompt=MARKET_SYSTEM_PROMPT)


@dataclass
class MarketResult:
    analysis: dict[str, Any]
    artifact_key: str


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def description_text(bundle: AssetBundle) -> str:
    description = bundle.book_description or {}
    return str(description.get("medium") or description.get("long") or description.get("short") or "")


async def run_market_analysis(ctx: StageContext, bundle: AssetBundle) -> MarketResult:
    """Raises ``ValueError`` when the bundle lacks a description or categories."""

    if bundle.book_description is None or bundle.categories is None:
        raise ValueError("Market analysis requires a book description and categories")

    payload = ctx.payload
    description = description_text(bundle)

    async def _ask(operation: str, prompt: str) -> dict[str, Any]:
        call = await ctx.client.call(prompt, ctx.attribute(operation, FEATURE_NAME), PARAMS)
        return call.parsed

    genre_analysis = await _ask(
        "analyze_genre_positioning",
        GENRE_POSITIONING_PROMPT.format(
            genre=payload.genre,
            description=description,
            excerpt=excerpt(ctx.manuscript_text, MARKET_EXCERPT_CHARS),
        ),
    )
    genre_json = _dump(genre_analysis)
    analysis_artifact = await ctx.read_artifact(ArtifactKind.ANALYSIS) or {}
    total_words = (analysis_artifact.get("structure") or {}).get("totalWords", "Unknown")

    pricing, categories, keywords, audience, competitive = await gather_scoped(
        _ask("analyze_pricing", PRICING_PROMPT.format(genre_analysis=genre_json, total_words=total_words)),
        _ask(
            "recommend_categories",
            CATEGORY_STRATEGY_PROMPT.format(genre_analysis=genre_json, categories=_dump(bundle.categories)),
        ),
        _ask(
            "keyword_strategy",
            KEYWORD_STRATEGY_PROMPT.format(genre_analysis=genre_json, keywords=_dump(bundle.keywords or [])),
        ),
        _ask("analyze_audience", AUDIENCE_PROMPT.format(genre_analysis=genre_json, excerpt=excerpt(ctx.manuscript_text))),
        _ask("competitive_positioning", COMPETITIVE_PROMPT.format(genre_analysis=genre_json, description=description)),
    )

    analysis = {
        "genreAnalysis": genre_analysis,
        "pricingStrategy": pricing,
        "categoryRecommendations": categories,
        "keywordStrategy": keywords,
        "audienceProfile": audience,
        "competitivePositioning": competitive,
    }
    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "reportId": payload.report_id,
        "analysis": analysis,
        "timestamp": utcnow().isoformat(),
    }
    key = await ctx.write_artifact(ArtifactKind.MARKET_ANALYSIS, artifact)
    return MarketResult(analysis=analysis, artifact_key=key)
