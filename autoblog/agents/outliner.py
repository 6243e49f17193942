"""
Outline Agent: one unstructured call that returns a Markdown outline.

The outline drives everything downstream: its bullets and level 2-4
headings become the research points, and the draft follows its sections.
The structure is not validated; later stages accept any Markdown.
"""

import logging

from autoblog.config import Settings
from autoblog.models import TopicSelection
from autoblog.text_utils import extract_markdown_content
from autoblog.tools.gemini_client import GeminiClient

OUTLINE_PROMPT = """Create a detailed outline for a technology blog post.

**Topic:** {title}

**Description:** {hook}

**Areas to consider:** {queries}

Instructions:
- Flow logically from an introduction through the main body to a conclusion.
- Use Markdown headings (## Section) and bullet points (* or -) for sub-topics.
- Break every section into specific, researchable points; write
  "* Lower tail latency for real-time inference" rather than "* Benefits".
- The outline should support a post of roughly 1000-1500 words.

Output only the raw Markdown outline, starting directly with the first heading
(for example ## Introduction). No preamble and no closing remarks.
"""


class OutlineAgent:
    """Generate the post outline for a selected topic."""

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Outliner")

    async def run(self, topic: TopicSelection) -> str:
        """Return the outline Markdown (fence-unwrapped when fenced)."""
        prompt = OUTLINE_PROMPT.format(
            title=topic.title,
            hook=topic.hook_description,
            queries=", ".join(topic.search_queries) or "(none)",
        )
        raw = await self.gemini.generate(
            prompt, temperature=self.settings.outline_temperature
        )
        outline = extract_markdown_content(raw or "").strip()
        self.logger.info(
            "Outline generated: %d lines", len(outline.splitlines())
        )
        return outline
