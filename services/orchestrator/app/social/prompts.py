"""Prompts used by the social campaign stage."""

from __future__ import annotations

SOCIAL_SYSTEM_PROMPT = """
You are a book marketing expert planning an author-led launch campaign. Keep everything
genre-appropriate, authentic and feasible for an independent author. Answer with a single
valid JSON object and no other text.
""".strip()

BOOK_BLOCK = """
BOOK INFORMATION:
Title: {title}
Author: {author}
Genre: {genre}
Target audience: {audience}
Positioning: {positioning}
""".strip()

SOCIAL_POSTS_PROMPT = """
{book}

MANUSCRIPT EXCERPT:
{excerpt}

Write 15 launch posts across Twitter, Facebook, Instagram and TikTok covering teasers,
character introductions, quotes, behind-the-scenes, launch announcement, review requests,
countdowns and thank-you posts.

Return this exact structure:
{{
  "twitter": [{{"postNumber": 1, "type": "teaser", "content": "max 280 chars", "hashtags": ["..."], "timing": "..."}}],
  "facebook": [{{"postNumber": 1, "type": "announcement", "content": "...", "timing": "...", "cta": "..."}}],
  "instagram": [{{"postNumber": 1, "type": "visual", "caption": "...", "imageIdea": "...", "hashtags": ["..."], "timing": "..."}}],
  "tiktok": [{{"postNumber": 1, "type": "behindthescenes", "script": "60 second script", "visualCues": "...", "timing": "..."}}]
}}
""".strip()

LAUNCH_EMAILS_PROMPT = """
{book}

Write the launch email sequence: pre-launch teaser, launch day announcement and a
post-launch review request.

Return this exact structure:
{{
  "preLaunchTeaser": {{"subjectLines": ["..."], "preheader": "...", "bodyPlainText": "...", "timing": "..."}},
  "launchDay": {{"subjectLines": ["..."], "preheader": "...", "bodyPlainText": "...", "timing": "..."}},
  "reviewRequest": {{"subjectLines": ["..."], "preheader": "...", "bodyPlainText": "...", "timing": "..."}}
}}
""".strip()

CONTENT_CALENDAR_PROMPT = """
{book}

Plan a 30-day launch content calendar running from three weeks before launch to one week after.

Return this exact structure:
{{
  "overview": {{"totalPosts": 30, "platforms": ["..."], "strategy": "...", "keyMilestones": ["..."]}},
  "calendar": [{{"day": -21, "platform": "...", "contentType": "...", "description": "..."}}]
}}
""".strip()

TRAILER_SCRIPT_PROMPT = """
{book}

MANUSCRIPT OPENING:
{excerpt}

Write a 60 second book trailer script.

Return this exact structure:
{{
  "title": "...",
  "duration": "60 seconds",
  "scenes": [{{"timestamp": "0:00-0:05", "visual": "...", "textOverlay": "...", "music": "..."}}],
  "callToAction": {{"timestamp": "0:55-1:00", "text": "...", "visual": "..."}},
  "productionTips": {{"budget": "low|medium|high", "toolsNeeded": ["..."]}}
}}
""".strip()

READER_MAGNETS_PROMPT = """
{book}

MANUSCRIPT OPENING:
{excerpt}

Suggest reader magnets and newsletter incentives the author can realistically create.

Return this exact structure:
{{
  "readerMagnets": [{{"type": "...", "title": "...", "description": "...", "format": "PDF|EPUB|both", "creationEffort": "low|medium|high"}}],
  "newsletterIncentives": [{{"incentive": "...", "value": "...", "deliveryMethod": "..."}}],
  "arcProgram": {{"concept": "...", "benefits": "...", "requirements": "...", "size": "..."}}
}}
""".strip()
