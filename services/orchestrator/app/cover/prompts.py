"""Image prompt fragments for cover variations."""

from __future__ import annotations

VARIATION_PREFIXES = (
    "Professional book cover design.",
    "Bestselling book cover art style.",
    "Award-winning book cover design.",
    "Premium book cover illustration.",
    "High-end publishing book cover.",
)

TITLE_LINE = 'Include the book title "{title}" prominently at the top in bold, elegant typography.'
AUTHOR_LINE = 'Include the author name "{author}" at the bottom in a complementary font.'
FORMAT_LINE = "Professional book cover format, suitable for Amazon KDP. High quality, print-ready design."
