"""Formatted EPUB and PDF exports plus per-platform publishing metadata."""

from __future__ import annotations

import io
import logging
import re
import uuid
from dataclasses import dataclass, field
from html import escape
from typing import Any, Callable

import fitz
from ebooklib import epub

from manuscript_schemas import ArtifactKind, AssetBundle, ExportFormat, PublishingPlatform
from manuscript_substrate import artifact_key

from ..assets.engine import book_title
from ..developmental.engine import CHAPTER_PATTERN
from ..runtime import StageContext

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 4000
PDF_MARGIN = 56
PDF_CSS = "* {font-family: serif; font-size: 11pt;} h1 {font-size: 20pt;} h2 {font-size: 15pt;}"

PLATFORM_RULES: dict[PublishingPlatform, dict[str, Any]] = {
    PublishingPlatform.KDP: {"keywords": 7, "categories": 2, "formats": ["epub", "pdf"]},
    PublishingPlatform.DRAFT2DIGITAL: {"keywords": 7, "categories": 2, "formats": ["epub"]},
    PublishingPlatform.INGRAMSPARK: {"keywords": 7, "categories": 3, "formats": ["epub", "pdf"]},
    PublishingPlatform.APPLE_BOOKS: {"keywords": 7, "categories": 2, "formats": ["epub"]},
}

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass
class ExportChapter:
    title: str
    paragraphs: list[str]


@dataclass
class ExportDocument:
    title: str
    author: str
    language: str = "en"
    description: str = ""
    chapters: list[ExportChapter] = field(default_factory=list)


Renderer = Callable[[ExportDocument], bytes]


@dataclass
class ExportResult:
    keys: dict[ExportFormat, str]
    platforms: dict[str, dict[str, Any]]


def _paragraphs(text: str) -> list[str]:
    return [" ".join(block.split()) for block in _PARAGRAPH_BREAK.split(text) if block.strip()]


def split_chapters(text: str) -> list[ExportChapter]:
    """Split on chapter headings; text without headings becomes one chapter."""

    matches = list(CHAPTER_PATTERN.finditer(text))
    if not matches:
        return [ExportChapter(title="Chapter 1", paragraphs=_paragraphs(text))]

    chapters: list[ExportChapter] = []
    preface = text[: matches[0].start()].strip()
    if preface:
        chapters.append(ExportChapter(title="Prologue", paragraphs=_paragraphs(preface)))
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        heading = match.group(0).strip()
        body = text[match.end() : end]
        chapters.append(ExportChapter(title=heading, paragraphs=_paragraphs(body)))
    return chapters


def render_epub(document: ExportDocument) -> bytes:
    book = epub.EpubBook()
    book.set_identifier(f"urn:uuid:{uuid.uuid4()}")
    book.set_title(document.title)
    book.set_language(document.language)
    book.add_author(document.author)
    if document.description:
        book.add_metadata("DC", "description", document.description)

    items = []
    for number, chapter in enumerate(document.chapters, start=1):
        item = epub.EpubHtml(title=chapter.title, file_name=f"chapter{number}.xhtml", lang=document.language)
        item.content = _chapter_html(chapter)
        book.add_item(item)
        items.append(item)

    book.toc = items
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", *items]

    buffer = io.BytesIO()
    epub.write_epub(buffer, book)
    return buffer.getvalue()


def _chapter_html(chapter: ExportChapter, heading: str = "h1") -> str:
    body = "".join(f"<p>{escape(paragraph)}</p>" for paragraph in chapter.paragraphs)
    return f"<{heading}>{escape(chapter.title)}</{heading}>{body}"


def render_pdf(document: ExportDocument) -> bytes:
    """Paged A4 PDF laid out by PyMuPDF from the same HTML the EPUB chapters use."""

    parts = [f"<h1>{escape(document.title)}</h1><p><i>by {escape(document.author)}</i></p>"]
    parts.extend(_chapter_html(chapter, "h2") for chapter in document.chapters)
    story = fitz.Story(html="".join(parts), user_css=PDF_CSS)

    buffer = io.BytesIO()
    writer = fitz.DocumentWriter(buffer)
    mediabox = fitz.paper_rect("a4")
    where = mediabox + (PDF_MARGIN, PDF_MARGIN, -PDF_MARGIN, -PDF_MARGIN)
    more = True
    while more:
        device = writer.begin_page(mediabox)
        more, _ = story.place(where)
        story.draw(device)
        writer.end_page()
    writer.close()
    return buffer.getvalue()


DEFAULT_RENDERERS: dict[ExportFormat, Renderer] = {
    ExportFormat.EPUB: render_epub,
    ExportFormat.PDF: render_pdf,
}


def _category_names(categories: dict[str, Any] | None) -> list[str]:
    names: list[str] = []
    for group in ("primary", "secondary", "alternative"):
        for entry in (categories or {}).get(group) or []:
            name = (entry.get("name") or entry.get("code")) if isinstance(entry, dict) else entry
            if name and str(name) not in names:
                names.append(str(name))
    return names


def _description(bundle: AssetBundle) -> str:
    description = bundle.book_description or {}
    text = description.get("long") or description.get("medium") or description.get("short") or ""
    return str(text)[:DESCRIPTION_LIMIT]


def platform_metadata(bundle: AssetBundle, title: str, author: str) -> dict[str, dict[str, Any]]:
    """Upload-ready metadata for each publishing platform, derived from the asset bundle."""

    description = _description(bundle)
    keywords = bundle.keywords or []
    categories = _category_names(bundle.categories)
    metadata: dict[str, dict[str, Any]] = {}
    for platform, rules in PLATFORM_RULES.items():
        metadata[platform.value] = {
            "title": title,
            "author": author,
            "description": description,
            "keywords": keywords[: rules["keywords"]],
            "categories": categories[: rules["categories"]],
            "formats": rules["formats"],
            "ready": bool(description and keywords and categories),
        }
    return metadata


def build_document(ctx: StageContext, bundle: AssetBundle) -> ExportDocument:
    return ExportDocument(
        title=book_title(ctx),
        author=ctx.payload.author_data.get("name") or "Unknown Author",
        description=_description(bundle),
        chapters=split_chapters(ctx.manuscript_text),
    )


async def run_export(
    ctx: StageContext,
    bundle: AssetBundle,
    renderers: dict[ExportFormat, Renderer] | None = None,
) -> ExportResult:
    renderers = renderers or DEFAULT_RENDERERS
    document = build_document(ctx, bundle)

    keys: dict[ExportFormat, str] = {}
    for export_format in ExportFormat:
        kind = export_format.artifact
        body = renderers[export_format](document)
        keys[export_format] = await ctx.write_binary(artifact_key(ctx.prefix, kind), body, kind.content_type)

    platforms = platform_metadata(bundle, document.title, document.author)
    logger.info(
        "Export package built",
        extra={"report_id": ctx.report_id, "chapters": len(document.chapters), "platforms": list(platforms)},
    )
    return ExportResult(keys=keys, platforms=platforms)
