"""Prompts used by the developmental analysis stage."""

from __future__ import annotations

DEVELOPMENTAL_SYSTEM_PROMPT = """
You are an expert developmental editor. You judge story structure, pacing, character arcs,
plot logic, narrative voice and genre fit. Answer with a single JSON object and nothing else.
""".strip()

DEVELOPMENTAL_SECTION_PROMPT = """
You are reviewing section {section_number} of {section_total} (words {word_range}) of a {genre}
manuscript.

Manuscript statistics:
- Total words: {total_words}
- Chapters detected: {chapter_count}
- Average chapter length: {avg_chapter_length} words

Section text:
{text}

Assess this section for story structure and pacing, character development, plot and conflict,
voice and style, and genre expectations for {genre}.

Return this exact structure:
{{
  "overallScore": 1-10,
  "structure": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "characters": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "plot": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "voice": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "genreFit": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "issues": [{{"type": "pacing|character|plot|voice|genre", "severity": "high|medium|low", "note": "..."}}],
  "strengths": ["what is working in this section"]
}}
""".strip()

DEVELOPMENTAL_SYNTHESIS_PROMPT = """
Combine the section reviews below into one developmental assessment of the whole {genre}
manuscript.

Manuscript statistics:
- Total words: {total_words}
- Chapters detected: {chapter_count}
- Average chapter length: {avg_chapter_length} words

Section reviews (JSON):
{section_notes}

Return this exact structure:
{{
  "overallScore": 1-10,
  "structure": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "characters": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "plot": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "voice": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "genreFit": {{"score": 1-10, "strengths": [], "weaknesses": [], "recommendations": []}},
  "topPriorities": ["Most important fix 1", "Most important fix 2", "Most important fix 3"],
  "marketability": {{"score": 1-10, "summary": "Brief assessment of commercial potential"}}
}}
""".strip()
