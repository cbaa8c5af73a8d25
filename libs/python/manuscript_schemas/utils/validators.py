"""Reusable validation helpers."""

from __future__ import annotations

import re

REPORT_ID_PATTERN = re.compile(r"^[0-9a-f]{8}$")
STYLE_GUIDES = ("chicago", "ap", "mla", "apa")
_GENRE_PATTERN = re.compile(r"^[a-z][a-z0-9 _-]{0,63}$")
_METADATA_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def is_report_id(value: str) -> bool:
    return bool(REPORT_ID_PATTERN.match(value or ""))


def normalise_genre(value: str | None) -> str:
    genre = (value or "general").strip().lower()
    if not _GENRE_PATTERN.match(genre):
        raise ValueError(f"Invalid genre: {value!r}")
    return genre


def normalise_style_guide(value: str | None) -> str:
    guide = (value or "chicago").strip().lower()
    if guide not in STYLE_GUIDES:
        raise ValueError(f"Unsupported style guide: {value!r}. Expected one of {', '.join(STYLE_GUIDES)}")
    return guide


def validate_metadata(metadata: dict[str, str], *, limit: int = 16) -> dict[str, str]:
    """Object metadata must be a flat map of at most ``limit`` string entries."""

    if len(metadata) > limit:
        raise ValueError(f"Metadata has {len(metadata)} entries; at most {limit} are allowed")
    cleaned: dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not _METADATA_KEY_PATTERN.match(key):
            raise ValueError(f"Invalid metadata key: {key!r}")
        if isinstance(value, (dict, list)):
            raise ValueError(f"Metadata value for {key!r} must be a scalar")
        cleaned[key] = str(value)
    return cleaned
