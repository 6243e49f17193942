"""
Metadata Agent: title, meta description, image prompt, tags and category.

One structured call over the final draft (truncated to
``Settings.metadata_char_budget`` characters). Read time is never asked
of the model; it is computed from the full draft's word count.

A reply that is empty, not JSON, missing a field, or whose ``category``
is not an integer raises ``MetadataExtractionError``. A category id that
is not among the fetched categories is logged and kept: the database
enforces the foreign key.
"""

import logging
from typing import Sequence

from autoblog.config import Settings
from autoblog.exceptions import LLMResponseBlockedError, MetadataExtractionError
from autoblog.models import Category, PostMetadata
from autoblog.parsers import METADATA_SCHEMA, parse_post_metadata
from autoblog.text_utils import calculate_read_time
from autoblog.tools.gemini_client import GeminiClient

METADATA_PROMPT = """Analyse the following blog post draft on "{topic}" and generate its metadata.

**Draft:**
```markdown
{draft}
```{truncated}

**Available categories (id: title):**
{categories}

Generate, based only on the draft:
1. title: a compelling, SEO-friendly title (about 70 characters at most)
2. meta_description: a 150-160 character search-result summary that invites clicks
3. image_prompt: a detailed prompt for an AI image model that visualises the
   core idea of the post; name the subject, style and mood
4. tags: 3-7 relevant keywords
5. category: the integer id of the single best-fitting category from the list above

Return only the JSON object.
"""


class MetadataAgent:
    """Derive post metadata from the final draft.

    Args:
        gemini: Gemini client (``generate_structured``).
        settings: Character budget, words per minute and temperature.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Metadata")

    def build_prompt(
        self, draft: str, topic: str, categories: Sequence[Category]
    ) -> str:
        budget = self.settings.metadata_char_budget
        truncated = (
            "\n...(draft truncated for brevity)..." if len(draft) > budget else ""
        )
        listed = "\n".join(f"{c.id}: {c.title}" for c in categories) or "(none available)"
        return METADATA_PROMPT.format(
            topic=topic,
            draft=draft[:budget],
            truncated=truncated,
            categories=listed,
        )

    async def run(
        self,
        draft: str,
        topic: str,
        categories: Sequence[Category] = (),
    ) -> PostMetadata:
        """
        Raises:
            MetadataExtractionError: When the reply is unusable.
        """
        read_time = calculate_read_time(draft, self.settings.words_per_minute)

        try:
            raw = await self.gemini.generate_structured(
                self.build_prompt(draft, topic, categories),
                schema=METADATA_SCHEMA,
                temperature=self.settings.metadata_temperature,
            )
        except LLMResponseBlockedError as exc:
            if exc.is_safety_block:
                self.logger.error("Metadata blocked by safety settings")
            raise MetadataExtractionError(
                f"Metadata returned no text ({exc.finish_reason})"
            ) from exc

        result = parse_post_metadata(raw, read_time)
        if not result.ok:
            self.logger.error(
                "Metadata unparseable (%s). Raw payload: %r", result.reason, result.raw
            )
            raise MetadataExtractionError(f"Metadata extraction failed: {result.reason}")

        metadata = result.value
        known_ids = {category.id for category in categories}
        if metadata.category not in known_ids:
            self.logger.warning(
                "Category id %d is not among the %d fetched categories; keeping it",
                metadata.category,
                len(known_ids),
            )

        self.logger.info(
            "Metadata: title='%s', category=%d, read_time=%d min, %d tags",
            metadata.title,
            metadata.category,
            metadata.read_time_minutes,
            len(metadata.tags),
        )
        return metadata
