"""Prompts used by the copy editing stage."""

from __future__ import annotations

COPY_EDITING_SYSTEM_PROMPT = """
You are an expert copy editor. You flag clear, definite technical errors only and answer with a
single valid JSON object and no other text.
""".strip()

STYLE_GUIDE_INSTRUCTIONS = {
    "chicago": """
Chicago Manual of Style (fiction):
- Use the serial (Oxford) comma
- Spell out numbers one through one hundred
- Em dashes without surrounding spaces
- Italicise thoughts
- Double quotation marks for dialogue
- Punctuation inside quotation marks
""".strip(),
    "ap": """
AP Style:
- No serial comma except for clarity
- Spell out numbers one through nine
- En dashes with spaces
- Single quotes inside double quotes
""".strip(),
    "mla": """
MLA Style:
- Use the serial comma
- Spell out numbers that can be written in one or two words
- Double quotation marks; single quotes for quotations within quotations
""".strip(),
    "apa": """
APA Style:
- Use the serial comma
- Spell out numbers below ten; numerals for 10 and above
- Double quotation marks for dialogue and quoted material
""".strip(),
}

COPY_EDITING_SECTION_PROMPT = """
Review this section for grammar, punctuation and technical errors. Follow {style_name} style
guide rules.

{style_instructions}

Focus on grammar (agreement, tense consistency, comma splices, fragments, run-ons),
punctuation (commas, quotation marks, apostrophes, semicolons, colons, dashes), spelling and
commonly confused words, capitalisation, and number, time and date formatting.

Section {section_number} (words {word_range}):
{text}

JSON rules: double quotes for all strings, escape internal quotes, no trailing commas, no
comments, keep every string value on one line.

Return this exact structure:
{{
  "overallScore": 1-10,
  "errorCount": 0,
  "errors": [
    {{
      "type": "grammar|punctuation|spelling|capitalization|formatting",
      "subtype": "specific error type, e.g. subject_verb_agreement",
      "severity": "high|medium|low",
      "location": "approximate position or first few words",
      "original": "exact text with error",
      "correction": "corrected text",
      "rule": "brief explanation of the rule",
      "confidence": "high|medium|low"
    }}
  ],
  "strengths": ["things that are technically correct"]
}}

Only flag clear errors. Stylistic preferences are not errors unless they break the style guide.
""".strip()
