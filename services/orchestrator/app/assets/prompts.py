"""Prompts used by the asset generation sub-agents."""

from __future__ import annotations

ASSET_SYSTEM_PROMPT = """
You are a publishing marketing specialist for independent authors. Answer with a single valid
JSON object and no other text.
""".strip()

STORY_CONTEXT = """
MANUSCRIPT CONTEXT:
Title: {title}
Genre: {genre}
Word count: {total_words}
Chapters: {chapter_count}

STORY ANALYSIS:
Overall score: {overall_score}/10
Plot strengths: {plot_strengths}
Character strengths: {character_strengths}
Key themes: {priorities}
Genre fit: {genre_strengths}
Marketability: {marketability}

MANUSCRIPT OPENING:
{excerpt}
""".strip()

BOOK_DESCRIPTION_PROMPT = """
{context}

TASK: Write retailer book descriptions that turn browsers into buyers. Hook the reader in the
first sentence, introduce the protagonist and their goal, raise the stakes, hint at the
central conflict without spoilers, and close with a question or call to action. Match {genre}
conventions and avoid cliches.

Lengths: short ~150 words, medium ~250 words, long ~350 words (max 4000 characters).

Return this exact structure:
{{
  "short": "...",
  "medium": "...",
  "long": "...",
  "hooks": ["hook 1", "hook 2", "hook 3"],
  "targetAudience": "ideal reader",
  "comparisonLine": "For fans of ..."
}}
""".strip()

KEYWORDS_PROMPT = """
{context}

TASK: Generate 7 keyword phrases that help the right readers discover this book on Amazon.

Requirements:
- Exactly 7 phrases, no more and no less
- Each phrase at most 50 characters
- Multi-word phrases in lowercase
- Combine genre and subgenre, tropes, themes and reader intent
- Never use the book title or author name

Return this exact structure:
{{
  "keywords": ["phrase 1", "phrase 2", "phrase 3", "phrase 4", "phrase 5", "phrase 6", "phrase 7"],
  "rationale": {{"phrase 1": "why it works"}},
  "searchVolume": {{"phrase 1": "high|medium|low"}},
  "competitionLevel": {{"phrase 1": "high|medium|low"}}
}}
""".strip()

CATEGORIES_PROMPT = """
{context}

TASK: Recommend BISAC categories that give this book the best visibility with the least
competition.

Return this exact structure:
{{
  "primary": [{{"code": "FIC030000", "name": "FICTION / Thrillers / Suspense", "rationale": "...", "competitionLevel": "high|medium|low"}}],
  "secondary": [{{"code": "...", "name": "...", "rationale": "...", "competitionLevel": "high|medium|low"}}],
  "alternative": [{{"code": "...", "name": "...", "rationale": "..."}}],
  "recommendations": ["advice for category selection"]
}}
""".strip()

AUTHOR_BIO_PROMPT = """
{context}

AUTHOR INFORMATION (may be incomplete):
{author_data}

TASK: Write a professional author biography suited to a {genre} author. Do not invent awards
or credentials that are not listed above.

Return this exact structure:
{{
  "short": "50 word bio",
  "medium": "100 word bio",
  "long": "200 word bio",
  "tone": "tone used",
  "suggestions": ["details that would strengthen the bio"],
  "socialMediaBio": "160 character bio"
}}
""".strip()

BACK_MATTER_PROMPT = """
{context}

AUTHOR INFORMATION (may be incomplete):
{author_data}

TASK: Write the back matter readers see after the final chapter.

Return this exact structure:
{{
  "thankYouMessage": "warm thank you to the reader",
  "newsletterCTA": {{"headline": "...", "body": "...", "callToAction": "..."}},
  "connectMessage": "how to connect with the author",
  "closingLine": "final sign-off"
}}
""".strip()

COVER_BRIEF_PROMPT = """
{context}

TASK: Produce a cover design brief for a {genre} book that would stand out in an online
storefront thumbnail while following genre conventions.

Return this exact structure:
{{
  "visualConcept": {{"mainImagery": "...", "composition": "...", "focalPoint": "..."}},
  "colorPalette": {{"primary": "...", "secondary": "...", "accent": "...", "overall": "..."}},
  "typography": {{"titleFont": "...", "authorFont": "...", "hierarchy": "...", "placement": "..."}},
  "moodAtmosphere": "overall emotional tone",
  "genreConventions": ["must-have element"],
  "aiArtPrompts": {{"dalle": "DALL-E 3 prompt", "midjourney": "Midjourney prompt", "stableDiffusion": "Stable Diffusion prompt"}},
  "designElements": ["visual motif"],
  "designerBrief": "two or three paragraph brief for a professional designer"
}}
""".strip()

SERIES_DESCRIPTION_PROMPT = """
{context}

SERIES INFORMATION (may be empty for a standalone book):
{series_data}

TASK: Describe the series this book belongs to, or the series it could anchor.

Return this exact structure:
{{
  "seriesTagline": "one sentence",
  "shortSeriesDescription": "100-150 words",
  "longSeriesDescription": "300-400 words",
  "overarchingConflict": "...",
  "readingOrder": {{"mustReadInOrder": true, "reason": "...", "newReaderStart": "..."}},
  "seriesThemes": ["theme"],
  "targetAudience": "..."
}}
""".strip()
