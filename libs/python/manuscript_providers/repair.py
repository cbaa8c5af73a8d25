"""Best-effort recovery of a JSON object from model output.

Models wrap JSON in prose or code fences, leave trailing commas, emit raw
control characters inside strings and occasionally forget to quote keys. Each
repair step is applied cumulatively and parsing is retried after every step.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

from .exceptions import ParseFailure

_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)")


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    end = text.rfind("}")
    if end > start:
        return text[start : end + 1]
    return None


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def strip_control_characters(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY.sub(r'\1"\2"\3', text)


_STEPS: tuple[Callable[[str], str], ...] = (
    strip_trailing_commas,
    strip_control_characters,
    quote_bare_keys,
)


def _try_object(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def repair_json(text: str) -> dict[str, Any]:
    """Parse ``text`` into a JSON object, repairing it if needed.

    Raises:
        ParseFailure: when no JSON object can be recovered.
    """

    if not text or not text.strip():
        raise ParseFailure("Empty response", raw_text=text or "")

    parsed = _try_object(text.strip())
    if parsed is not None:
        return parsed

    candidate = extract_json_object(text)
    if candidate is None:
        raise ParseFailure("No JSON object found in response", raw_text=text)

    parsed = _try_object(candidate)
    if parsed is not None:
        return parsed

    for step in _STEPS:
        candidate = step(candidate)
        parsed = _try_object(candidate)
        if parsed is not None:
            return parsed

    raise ParseFailure("Response JSON could not be repaired", raw_text=text)


__all__ = [
    "extract_json_object",
    "quote_bare_keys",
    "repair_json",
    "strip_control_characters",
    "strip_trailing_commas",
]
