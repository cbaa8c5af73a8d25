"""Prompts used by the line editing stage."""

from __future__ import annotations

LINE_EDITING_SYSTEM_PROMPT = """
You are an expert line editor specialising in {genre} fiction. You focus on prose quality at
the sentence level. Answer with a single valid JSON object and no other text.
""".strip()

LINE_EDITING_SECTION_PROMPT = """
Analyse this section of a {genre} manuscript for prose quality.

Focus on:
1. Weak or vague word choices and weak verbs
2. Passive voice that drains energy from the prose
3. Adverb overuse, especially in dialogue tags
4. Sentence variety and rhythm
5. Showing versus telling
6. Redundancy, filler words and cliches

Section {section_number} (words {word_range}):
{text}

JSON rules: double quotes for all strings, escape internal quotes, no trailing commas, no
comments, keep every string value on one line.

Return this exact structure:
{{
  "overallScore": 1-10,
  "issues": [
    {{
      "type": "weak_verb|passive_voice|adverb|sentence_variety|show_not_tell|redundancy|cliche|other",
      "severity": "high|medium|low",
      "location": "approximate word position or first few words",
      "original": "the exact text with the issue",
      "suggestion": "specific rewrite suggestion",
      "explanation": "brief reason why this is an issue"
    }}
  ],
  "strengths": ["things that are working well in this section"],
  "readabilityMetrics": {{
    "averageSentenceLength": 0,
    "passiveVoiceCount": 0,
    "adverbCount": 0,
    "sentenceVariety": "good|needs_work|poor"
  }}
}}

Be specific with locations and examples. Provide actual rewrites, not descriptions of what is wrong.
""".strip()
