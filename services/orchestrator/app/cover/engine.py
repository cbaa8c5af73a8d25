"""Cover image variations rendered from the cover design brief."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from manuscript_providers import ProviderError
from manuscript_schemas import ArtifactKind
from manuscript_schemas.models.status import utcnow
from manuscript_substrate import cover_variation_key

from ..assets.engine import book_title
from ..runtime import StageContext
from .prompts import AUTHOR_LINE, FORMAT_LINE, TITLE_LINE, VARIATION_PREFIXES

logger = logging.getLogger(__name__)

FEATURE_NAME = "cover-images"
MIN_VARIATIONS = 1
MAX_VARIATIONS = 5
VARIATION_PAUSE_SECONDS = 2.0
IMAGE_SIZE = "1024x1792"
IMAGE_QUALITY = "hd"


@dataclass
class CoverResult:
    images: list[dict[str, Any]]
    artifact_key: str
    errors: list[dict[str, Any]] = field(default_factory=list)


def clamp_variations(requested: int | None) -> int:
    return min(max(requested or MIN_VARIATIONS, MIN_VARIATIONS), MAX_VARIATIONS)


def build_image_prompt(brief: dict[str, Any], title: str, author: str, variation: int) -> str:
    """Compose the prompt for the zero-based ``variation`` of a cover."""

    art_prompts = brief.get("aiArtPrompts") or {}
    base = ""
    if isinstance(art_prompts, dict):
        base = art_prompts.get("dalle") or art_prompts.get("midjourney") or ""

    parts = [f"{VARIATION_PREFIXES[variation % len(VARIATION_PREFIXES)]} {base}".strip()]
    parts.append(TITLE_LINE.format(title=title))
    parts.append(AUTHOR_LINE.format(author=author))

    palette = brief.get("colorPalette")
    if isinstance(palette, dict) and palette.get("overall"):
        parts.append(f"Color scheme: {palette['overall']}.")
    if brief.get("moodAtmosphere"):
        parts.append(f"Mood: {brief['moodAtmosphere']}.")
    concept = brief.get("visualConcept")
    if isinstance(concept, dict) and concept.get("composition"):
        parts.append(f"Composition: {concept['composition']}.")
    elements = brief.get("designElements")
    if isinstance(elements, list) and elements:
        parts.append(f"Include: {', '.join(str(item) for item in elements[:2])}.")

    parts.append(FORMAT_LINE)
    return " ".join(parts)


async def run_cover_generation(ctx: StageContext, brief: dict[str, Any]) -> CoverResult:
    """Generate each variation in turn; raises ``ProviderError`` if none succeeded."""

    payload = ctx.payload
    title = book_title(ctx)
    author = payload.author_data.get("name") or "Unknown Author"
    requested = clamp_variations(payload.cover_variations)

    images: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    for index in range(requested):
        number = index + 1
        prompt = build_image_prompt(brief, title, author, index)
        try:
            call = await ctx.client.generate_images(
                prompt,
                1,
                ctx.attribute("generate_cover", FEATURE_NAME),
                size=IMAGE_SIZE,
                quality=IMAGE_QUALITY,
            )
            if not call.images:
                raise ProviderError("Image provider returned no images")
            image = call.images[0]
            key = await ctx.write_binary(
                cover_variation_key(ctx.prefix, number),
                image.data,
                image.content_type,
            )
        except ProviderError as exc:
            logger.warning(
                "Cover variation failed",
                extra={"report_id": payload.report_id, "variation": number, "error": str(exc)},
            )
            errors.append({"variation": number, "error": str(exc)})
        else:
            images.append(
                {
                    "variation": number,
                    "key": key,
                    "prompt": prompt,
                    "revisedPrompt": image.revised_prompt,
                    "model": call.model,
                    "size": IMAGE_SIZE,
                    "quality": IMAGE_QUALITY,
                }
            )
        if number < requested:
            await ctx.sleep(VARIATION_PAUSE_SECONDS)

    if not images:
        raise ProviderError(f"Failed to generate any cover images: {errors}")

    artifact = {
        "manuscriptKey": payload.manuscript_key,
        "title": title,
        "authorName": author,
        "coverImages": images,
        "requested": requested,
        "generated": len(images),
        "errors": errors or None,
        "timestamp": utcnow().isoformat(),
    }
    artifact_key = await ctx.write_artifact(ArtifactKind.COVER_IMAGES, artifact)
    return CoverResult(images=images, artifact_key=artifact_key, errors=errors)
