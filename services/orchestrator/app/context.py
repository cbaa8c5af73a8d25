"""Manuscript text helpers: extraction, sectioning and prompt trimming."""

from __future__ import annotations

import io
import os
import re
from typing import Tuple

from docx import Document

from manuscript_schemas import ManuscriptSection

_DEFAULT_LIMIT = int(os.getenv("CONTEXT_TOKEN_LIMIT", "100000"))

DEFAULT_EXCERPT_CHARS = 5000
MARKET_EXCERPT_CHARS = 15000

_WHITESPACE = re.compile(r"\s+")
_DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}


def extract_text(raw: bytes, filename: str, content_type: str | None = None) -> str:
    """Return manuscript text for docx and plaintext uploads."""

    name = filename.lower()
    if name.endswith(".docx") or (content_type or "").lower() in _DOCX_TYPES:
        with io.BytesIO(raw) as buffer:
            document = Document(buffer)
        return "\n\n".join(para.text.strip() for para in document.paragraphs if para.text and para.text.strip())
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1", errors="ignore")


def split_words(text: str) -> list[str]:
    return [word for word in _WHITESPACE.split(text) if word]


def chunk_into_sections(text: str, words_per_section: int) -> list[ManuscriptSection]:
    """Split ``text`` into consecutive sections of at most ``words_per_section`` words."""

    if words_per_section < 1:
        raise ValueError("words_per_section must be positive")
    words = split_words(text)
    sections: list[ManuscriptSection] = []
    for start in range(0, len(words), words_per_section):
        chunk = words[start : start + words_per_section]
        sections.append(
            ManuscriptSection(
                section_number=start // words_per_section + 1,
                start_word=start,
                end_word=start + len(chunk),
                text=" ".join(chunk),
                word_count=len(chunk),
            )
        )
    return sections


def excerpt(text: str, limit: int = DEFAULT_EXCERPT_CHARS) -> str:
    return text[:limit]


def summarise_prompt(prompt: str, token_limit: int | None = None) -> Tuple[str, bool]:
    """Trim long prompts to stay within the configured soft token limit.

    Args:
        prompt: The original prompt text.
        token_limit: Optional override for the maximum token budget.

    Returns:
        A tuple of ``(possibly_trimmed_prompt, was_trimmed)``.
    """

    if not prompt:
        return prompt, False

    limit = max(token_limit or _DEFAULT_LIMIT, 256)
    # Rough heuristic: 1 token ~ 4 characters for mixed English text.
    approx_tokens = len(prompt) // 4
    if approx_tokens <= limit:
        return prompt, False

    max_chars = limit * 4
    head_length = max_chars // 2
    tail_length = max_chars - head_length

    head = prompt[:head_length].strip()
    tail = prompt[-tail_length:].strip()

    trimmed_prompt = (
        f"[manuscript trimmed to ~{limit} tokens]\n"
        "\n-- begin excerpt --\n"
        f"{head}\n"
        "\n...\n"
        f"{tail}\n"
        "-- end excerpt --"
    )
    return trimmed_prompt, True


__all__ = [
    "DEFAULT_EXCERPT_CHARS",
    "MARKET_EXCERPT_CHARS",
    "chunk_into_sections",
    "excerpt",
    "extract_text",
    "split_words",
    "summarise_prompt",
]
