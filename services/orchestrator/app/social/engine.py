"""Social campaign package generated from the market analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from manuscript_providers import CallParams
from manuscript_schemas import ArtifactKind
from manuscript_schemas.models.status import utcnow

from ..assets.engine import book_title
from ..context import excerpt
from ..runtime import StageContext, gather_scoped
from .prompts import (
    BOOK_BLOCK,
    CONTENT_CALENDAR_PROMPT,
    LAUNCH_EMAILS_PROMPT,
    READER_MAGNETS_PROMPT,
    SOCIAL_POSTS_PROMPT,
    SOCIAL_SYSTEM_PROMPT,
    TRAILER_SCRIPT_PROMPT,
)

FEATURE_NAME = "social-media"
TRAILER_EXCERPT_CHARS = 3000
PARAMS = CallParams(temperature=0.8, max_output_tokens=4000, system_prompt=SOCIAL_SYSTEM_PROMPT)


@dataclass
class SocialResult:
    package: dict[str, Any]
    artifact_key: str


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def book_block(ctx: StageContext, market: dict[str, Any]) -> str:
    genre_analysis = _mapping(market.get("genreAnalysis"))
    audience = _mapping(_mapping(market.get("audienceProfile")).get("primaryAudience"))
    positioning = _mapping(market.get("competitivePositioning"))
    return BOOK_BLOCK.format(
        title=book_title(ctx),
        author=ctx.payload.author_data.get("name") or "Unknown Author",
        genre=genre_analysis.get("primaryGenre") or ctx.payload.genre,
        audience=audience.get("ageRange") or "General audience",
        positioning=positioning.get("positioningStatement") or "A compelling new book",
    )


async def run_social_campaign(ctx: StageContext, market: dict[str, Any]) -> SocialResult:
    payload = ctx.payload
    book = book_block(ctx, market)
    short_excerpt = excerpt(ctx.manuscript_text, TRAILER_EXCERPT_CHARS)

    async def _ask(operation: str, prompt: str) -> dict[str, Any]:
        call = await ctx.client.call(prompt, ctx.attribute(operation, FEATURE_NAME), PARAMS)
        return call.parsed

    posts, emails, calendar, trailer, magnets = await gather_scoped(
        _ask("social_posts", SOCIAL_POSTS_PROMPT.format(book=book, excerpt=excerpt(ctx.manuscript_text))),
        _ask("launch_emails", LAUNCH_EMAILS_PROMPT.format(book=book)),
        _ask("content_calendar", CONTENT_CALENDAR_PROMPT.format(book=book)),
        _ask("trailer_script", TRAILER_SCRIPT_PROMPT.format(book=book, excerpt=short_excerpt)),
        _ask("reader_magnets", READER_MAGNETS_PROMPT.format(book=book, excerpt=short_excerpt)),
    )

    package = {
        "socialMediaPosts": posts,
        "launchEmails": emails,
        "contentCalendar": calendar,
        "bookTrailerScript": trailer,
        "readerMagnets": magnets,
    }
    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "reportId": payload.report_id,
        "marketingPackage": package,
        "timestamp": utcnow().isoformat(),
    }
    key = await ctx.write_artifact(ArtifactKind.SOCIAL_MEDIA, artifact)
    return SocialResult(package=package, artifact_key=key)
