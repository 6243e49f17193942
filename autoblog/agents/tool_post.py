"""
"AI Tool of the Day" Agent.

A single call features one AI tool that has not been covered before.
The reply is a labelled block (``TOOL_NAME``, ``TITLE``, ``DESCRIPTION``,
``IMAGE_DESCRIPTION``, ``TAGS``, ``CONTENT``) parsed by
``parse_tool_post()``. Read time is computed from the content.

The resulting ``PostRecord`` carries ``category = TOOL_POST_CATEGORY`` and
the ``tool_name``, which is how later runs learn which tools to skip.
Image generation and persistence are done by the orchestrator with the
same agents a general post uses.
"""

import logging
from typing import Optional, Sequence

from autoblog.config import Settings
from autoblog.exceptions import GenerationFailure, LLMResponseBlockedError
from autoblog.models import TOOL_POST_CATEGORY, PostRecord, ToolPostDraft
from autoblog.parsers import parse_tool_post
from autoblog.text_utils import calculate_read_time, generate_slug
from autoblog.tools.gemini_client import GeminiClient

TOOL_POST_PROMPT = """You are an AI blogger specialising in AI tools. Feature one specific
"AI Tool of the Day".

1. Select a specific, interesting AI tool that people can actually find and
   use today (productivity, creativity, development, data, ...).
2. CRITICAL: do NOT choose any tool from this list of previously featured
   tools: [{used_tools}]. Pick something new.
3. Write a catchy title that clearly names the tool.
4. Write a short, engaging description (1-2 sentences).
5. Describe an image for this post in detail (the tool's interface or a
   conceptual scene), suitable for an image generation model.
6. Give 3-5 relevant tags.
7. In the content, explain what the tool does, its key features, realistic
   use cases and how to get started. Use headings and lists for structure.
   Do not invent links.

Return the response strictly in this format:

TOOL_NAME: Name of the featured tool
TITLE: Post title including the tool name
DESCRIPTION: One-line summary
IMAGE_DESCRIPTION: Detailed description for image generation
TAGS: tag1, tag2, tag3
CONTENT:
The Markdown body of the post.
"""


class ToolPostAgent:
    """Generate an "AI Tool of the Day" post.

    Args:
        gemini: Gemini client.
        settings: Temperature, words per minute and post author.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("ToolPost")

    @staticmethod
    def build_prompt(used_tools: Sequence[str]) -> str:
        listed = ", ".join(used_tools) if used_tools else "None yet"
        return TOOL_POST_PROMPT.format(used_tools=listed)

    async def generate(self, used_tools: Sequence[str] = ()) -> ToolPostDraft:
        """
        Raises:
            GenerationFailure: When the reply is blocked or unparseable.
        """
        self.logger.info("Previously featured tools: %d", len(used_tools))
        try:
            raw = await self.gemini.generate(
                self.build_prompt(used_tools),
                temperature=self.settings.tool_post_temperature,
            )
        except LLMResponseBlockedError as exc:
            raise GenerationFailure(
                f"Tool post returned no text ({exc.finish_reason})"
            ) from exc

        result = parse_tool_post(raw)
        if not result.ok:
            self.logger.error(
                "Tool post unparseable (%s). Raw payload: %r", result.reason, result.raw
            )
            raise GenerationFailure(f"Tool post parsing failed: {result.reason}")

        draft = result.value
        if draft.tool_name.lower() in {name.lower() for name in used_tools}:
            self.logger.warning("Model repeated a featured tool: %s", draft.tool_name)
        self.logger.info("Tool post generated: %s (%s)", draft.title, draft.tool_name)
        return draft

    def to_record(
        self, draft: ToolPostDraft, image_url: Optional[str] = None
    ) -> PostRecord:
        return PostRecord(
            title=draft.title,
            slug=generate_slug(draft.title),
            description=draft.description,
            content=draft.content,
            read_time=calculate_read_time(draft.content, self.settings.words_per_minute),
            tags=list(draft.tags),
            category=TOOL_POST_CATEGORY,
            image_url=image_url,
            tool_name=draft.tool_name,
            author=self.settings.post_author,
        )
