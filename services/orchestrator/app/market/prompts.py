"""Prompts used by the market analysis stage."""

from __future__ import annotations

MARKET_SYSTEM_PROMPT = """
You are a publishing market analyst specialising in online retail and Amazon KDP. Be specific
and data-driven. Answer with a single valid JSON object and no other text.
""".strip()

GENRE_POSITIONING_PROMPT = """
Analyse this {genre} manuscript excerpt and classify its genre and market position.

BOOK DESCRIPTION:
{description}

MANUSCRIPT EXCERPT:
{excerpt}

Return this exact structure:
{{
  "primaryGenre": "...",
  "subGenres": ["..."],
  "marketPosition": "where this fits in the current market",
  "comparableTitles": ["5-10 comparable bestselling titles"],
  "uniqueSellingPoints": ["..."],
  "tropes": ["..."],
  "tone": "...",
  "pacing": "...",
  "targetAgeRange": "...",
  "marketSize": "small|medium|large",
  "competition": "low|medium|high"
}}
""".strip()

PRICING_PROMPT = """
GENRE ANALYSIS:
{genre_analysis}

Word count: {total_words}

Recommend a pricing strategy for ebook, paperback and launch promotions.

Return this exact structure:
{{
  "ebook": {{"recommended": 4.99, "range": [2.99, 5.99], "rationale": "..."}},
  "paperback": {{"recommended": 14.99, "range": [12.99, 16.99], "rationale": "..."}},
  "launchStrategy": "...",
  "promotionalPricing": ["..."],
  "kindleUnlimited": {{"recommended": true, "rationale": "..."}}
}}
""".strip()

CATEGORY_STRATEGY_PROMPT = """
GENRE ANALYSIS:
{genre_analysis}

CANDIDATE CATEGORIES:
{categories}

Rank the categories above and add any better fits.

Return this exact structure:
{{
  "primary": [{{"name": "...", "rationale": "...", "competitionLevel": "low|medium|high"}}],
  "secondary": [{{"name": "...", "rationale": "..."}}],
  "strategy": "..."
}}
""".strip()

KEYWORD_STRATEGY_PROMPT = """
GENRE ANALYSIS:
{genre_analysis}

CURRENT KEYWORDS:
{keywords}

Build a keyword strategy for retailer search and advertising.

Return this exact structure:
{{
  "keywords": [{{"phrase": "...", "searchVolume": "high|medium|low", "competition": "high|medium|low"}}],
  "adKeywords": ["..."],
  "strategy": "..."
}}
""".strip()

AUDIENCE_PROMPT = """
GENRE ANALYSIS:
{genre_analysis}

MANUSCRIPT OPENING:
{excerpt}

Profile the target readers.

Return this exact structure:
{{
  "primaryAudience": {{"ageRange": "...", "gender": "...", "interests": ["..."], "readingHabits": "..."}},
  "secondaryAudiences": ["..."],
  "whereToReach": ["..."],
  "messaging": "..."
}}
""".strip()

COMPETITIVE_PROMPT = """
GENRE ANALYSIS:
{genre_analysis}

BOOK DESCRIPTION:
{description}

Position this book against its competitors.

Return this exact structure:
{{
  "competitiveAdvantages": ["..."],
  "differentiators": ["..."],
  "risks": ["..."],
  "positioningStatement": "..."
}}
""".strip()
