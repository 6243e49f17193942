"""
Topic Selector Agent.

Condenses the research feed into a short landscape summary, then asks
the model for exactly one new topic via a structured (JSON schema) call.

Inputs:
    - Trend context text from ``ResearchFeed``
    - Recent post titles (the new topic must not repeat them)
    - ``(category, post count)`` pairs, least covered first

Output:
    ``TopicSelection`` with title, hook description and search queries.

Every failure of the selection call (empty reply, invalid JSON, missing
field, blocked response) raises ``TopicSelectionError``; the run cannot
continue without a topic. The summary step is best effort and falls back
to the truncated raw context.
"""

import logging
from typing import Sequence, Tuple

from autoblog.config import Settings
from autoblog.exceptions import LLMResponseBlockedError, TopicSelectionError
from autoblog.models import TopicSelection
from autoblog.parsers import TOPIC_SCHEMA, parse_topic_selection
from autoblog.tools.gemini_client import GeminiClient

RAW_CONTEXT_LIMIT = 6000
"""Characters of raw feed text used when the summary call fails."""


# =============================================================================
# PROMPTS
# =============================================================================

SUMMARY_PROMPT = """You are an expert technology analyst. Below is a digest of recent
news, community threads and research papers from Hacker News, Reddit, arXiv
and major tech publications.

Tasks:
1. Summarise the overall tech landscape in 5-10 bullet points.
2. List the key emerging themes or trending topics, grouping similar items.
3. Highlight notable launches, research results or controversies.

Be concise. Do not add information that is not in the digest.

DIGEST:
{context}
"""

TOPIC_PROMPT = """You choose the topic for the next post on a technology blog read by
developers and tech professionals.

CURRENT TECH LANDSCAPE:
{context}
{existing}{coverage}
SELECTION CRITERIA:
1. Pick ONE specific topic that is relevant right now given the landscape above.
2. It must be clearly distinct from every recent title listed.
3. Be specific: not "Cloud Computing" but "Cost Optimisation Strategies for
   Multi-Cloud Kubernetes Clusters".
4. Prefer practical deep dives, comparisons and how-tos over news recaps.
5. When several topics fit equally well, prefer one from a less covered category.

Return a JSON object with:
- "title": the working title of the post
- "hook_description": one or two sentences on what the post covers and why it matters
- "search_queries": 3-5 web search queries that would surface detailed technical sources
"""


class TopicSelectorAgent:
    """Summarise trend context and choose one topic for the run.

    Args:
        gemini: Gemini client used for both calls.
        settings: Provides the sampling temperatures.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("TopicSelector")

    # -----------------------------------------------------------------
    # CONTEXT SUMMARY
    # -----------------------------------------------------------------

    async def summarize_tech_context(self, raw_context: str) -> str:
        """Condense the feed text; never raises."""
        fallback = raw_context[:RAW_CONTEXT_LIMIT]
        if not raw_context.strip():
            return fallback

        try:
            summary = await self.gemini.generate(
                SUMMARY_PROMPT.format(context=raw_context),
                temperature=self.settings.summary_temperature,
            )
        except Exception as exc:
            self.logger.warning(
                "Tech context summary failed, using raw context: %s", exc
            )
            return fallback

        if not summary.strip():
            self.logger.warning("Tech context summary was empty, using raw context")
            return fallback
        return summary.strip()

    # -----------------------------------------------------------------
    # SELECTION
    # -----------------------------------------------------------------

    async def select(
        self,
        tech_context: str,
        existing_titles: Sequence[str] = (),
        category_counts: Sequence[Tuple[str, int]] = (),
    ) -> TopicSelection:
        """Choose the topic for this run.

        Raises:
            TopicSelectionError: When no valid topic could be parsed.
        """
        prompt = self._build_prompt(tech_context, existing_titles, category_counts)

        try:
            raw = await self.gemini.generate_structured(
                prompt,
                schema=TOPIC_SCHEMA,
                temperature=self.settings.topic_temperature,
            )
        except LLMResponseBlockedError as exc:
            raise TopicSelectionError(
                f"Topic selection returned no text ({exc.finish_reason})"
            ) from exc

        result = parse_topic_selection(raw)
        if not result.ok:
            self.logger.error(
                "Topic selection unparseable (%s). Raw payload: %r",
                result.reason,
                result.raw,
            )
            raise TopicSelectionError(f"Topic selection failed: {result.reason}")

        topic = result.value
        if topic.title in existing_titles:
            self.logger.warning("Selected topic repeats an existing title: %s", topic.title)
        self.logger.info(
            "Selected topic '%s' (%d search queries)",
            topic.title,
            len(topic.search_queries),
        )
        return topic

    @staticmethod
    def _build_prompt(
        tech_context: str,
        existing_titles: Sequence[str],
        category_counts: Sequence[Tuple[str, int]],
    ) -> str:
        existing = ""
        if existing_titles:
            listed = "\n".join(f"- {title}" for title in existing_titles)
            existing = f"\nAVOID these recently covered topics:\n{listed}\n"

        coverage = ""
        if category_counts:
            listed = "\n".join(
                f"- {name}: {count} posts" for name, count in category_counts
            )
            coverage = f"\nCATEGORY COVERAGE (least covered first):\n{listed}\n"

        return TOPIC_PROMPT.format(
            context=tech_context or "(no trend context available)",
            existing=existing,
            coverage=coverage,
        )

