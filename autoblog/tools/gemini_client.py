"""
Async Gemini API client for every model call in the pipeline.

Uses the ``google-genai`` SDK (``genai.Client().aio``). One instance is
built per run and handed to each stage, so tests can substitute a fake
with the same methods.

Key features:
    - Plain text generation with optional system instruction
    - Structured JSON generation constrained by a response schema
    - Search-grounded generation returning sources, queries and the
      rendered search-suggestion widget
    - Image generation (TEXT + IMAGE response modalities)
    - Multi-turn generation from an explicit message history
    - Token usage tracking

No retries here: each stage decides what a failed call means. An empty
reply with an abnormal finish reason raises ``LLMResponseBlockedError``.
"""

import base64
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types

from autoblog.exceptions import LLMResponseBlockedError
from autoblog.models import ResearchSource

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-preview-image-generation"

# Block medium-and-above in the four configurable harm categories
SAFETY_SETTINGS: List[types.SafetySetting] = [
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    ),
]

_NORMAL_FINISH_REASONS = {None, "STOP", "FINISH_REASON_UNSPECIFIED"}


# =========================================================================
# Response models
# =========================================================================


@dataclass
class GroundedResponse:
    """Text plus grounding metadata from a search-grounded call."""

    text: str
    sources: Tuple[ResearchSource, ...] = ()
    search_queries: Tuple[str, ...] = ()
    rendered_content: Optional[str] = None


@dataclass
class GeneratedImage:
    """
    Result of an image generation call.

    ``data`` is ``None`` when the model answered with text only; ``text``
    then usually explains why.
    """

    data: Optional[bytes]
    mime_type: str = "image/png"
    text: str = ""


@dataclass
class _Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)


# =========================================================================
# Client
# =========================================================================


class GeminiClient:
    """Async Gemini client used by all pipeline stages.

    Args:
        api_key: Gemini API key. Falls back to ``GEMINI_API_KEY``, then
            ``GOOGLE_API_KEY``.
        model: Text model identifier.
        image_model: Image-capable model identifier.

    Raises:
        KeyError: If no API key is provided and neither environment
            variable is set.

    Usage::

        gemini = GeminiClient()
        outline = await gemini.generate("Outline a post about eBPF")
        raw     = await gemini.generate_structured(prompt, schema=TOPIC_SCHEMA)
        found   = await gemini.generate_grounded("Latest eBPF adoption data")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_TEXT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
    ) -> None:
        self.client = genai.Client(
            api_key=api_key
            or os.environ.get("GEMINI_API_KEY")
            or os.environ["GOOGLE_API_KEY"],
        )
        self.model = model
        self.image_model = image_model
        self._usage = _Usage()

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """Generate a plain-text response.

        Returns:
            The response text, ``""`` when the model finished normally
            without text.

        Raises:
            LLMResponseBlockedError: No text and an abnormal finish reason.
        """
        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )
        response = await self.client.aio.models.generate_content(
            model=self.model, contents=prompt, config=config
        )
        self._track(response, "text")
        return self._extract_text(response)

    # ------------------------------------------------------------------
    # Structured (JSON) generation
    # ------------------------------------------------------------------

    async def generate_structured(
        self,
        prompt: str,
        schema: Dict[str, Any],
        system: Optional[str] = None,
        temperature: float = 0.3,
    ) -> str:
        """Generate JSON constrained by *schema*.

        The raw text is returned undecoded so that callers can log the
        exact payload when it fails to parse (see ``autoblog.parsers``).
        """
        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
            response_mime_type="application/json",
            response_schema=schema,
        )
        response = await self.client.aio.models.generate_content(
            model=self.model, contents=prompt, config=config
        )
        self._track(response, "structured")
        return self._extract_text(response)

    # ------------------------------------------------------------------
    # Search-grounded generation
    # ------------------------------------------------------------------

    async def generate_grounded(
        self,
        prompt: str,
        temperature: float = 0.2,
    ) -> GroundedResponse:
        """Generate with Google Search grounding enabled.

        Missing grounding metadata is normal (the model answered from its
        own knowledge) and yields empty sources and queries.
        """
        config = types.GenerateContentConfig(
            temperature=temperature,
            tools=[types.Tool(google_search=types.GoogleSearch())],
            safety_settings=SAFETY_SETTINGS,
        )
        response = await self.client.aio.models.generate_content(
            model=self.model, contents=prompt, config=config
        )
        self._track(response, "grounded")
        text = self._extract_text(response)

        candidates = getattr(response, "candidates", None) or []
        metadata = getattr(candidates[0], "grounding_metadata", None) if candidates else None
        if metadata is None:
            return GroundedResponse(text=text)

        sources = tuple(
            ResearchSource(uri=chunk.web.uri, title=chunk.web.title)
            for chunk in (metadata.grounding_chunks or [])
            if getattr(chunk, "web", None) is not None
        )
        queries = tuple(metadata.web_search_queries or [])
        entry_point = getattr(metadata, "search_entry_point", None)
        rendered = getattr(entry_point, "rendered_content", None) if entry_point else None

        logger.debug(
            "Grounded call: %d sources, %d queries", len(sources), len(queries)
        )
        return GroundedResponse(
            text=text,
            sources=sources,
            search_queries=queries,
            rendered_content=rendered,
        )

    # ------------------------------------------------------------------
    # Image generation
    # ------------------------------------------------------------------

    async def generate_image(self, prompt: str) -> GeneratedImage:
        """Ask the image model for a picture; returns the first inline image."""
        config = types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"])
        response = await self.client.aio.models.generate_content(
            model=self.image_model, contents=prompt, config=config
        )
        self._track(response, "image")

        text_parts: List[str] = []
        candidates = getattr(response, "candidates", None) or []
        content = getattr(candidates[0], "content", None) if candidates else None
        for part in (getattr(content, "parts", None) or []):
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return GeneratedImage(
                    data=data,
                    mime_type=inline.mime_type or "image/png",
                    text="\n".join(text_parts),
                )
            if getattr(part, "text", None):
                text_parts.append(part.text)

        return GeneratedImage(data=None, text="\n".join(text_parts))

    # ------------------------------------------------------------------
    # Multi-turn conversation
    # ------------------------------------------------------------------

    async def generate_with_messages(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: float = 0.7,
    ) -> str:
        """Generate the next turn of a conversation.

        Args:
            messages: ``{"role": "user" | "model", "content": ...}`` dicts
                in order. ``"assistant"`` is accepted as an alias of
                ``"model"``.
        """
        contents = [
            types.Content(
                role="model" if message["role"] in ("model", "assistant") else "user",
                parts=[types.Part.from_text(text=message["content"])],
            )
            for message in messages
        ]
        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
        )
        response = await self.client.aio.models.generate_content(
            model=self.model, contents=contents, config=config
        )
        self._track(response, "chat")
        return self._extract_text(response)

    # ------------------------------------------------------------------
    # Response helpers
    # ------------------------------------------------------------------

    @staticmethod
    def finish_reason(response: Any) -> Optional[str]:
        """Name of the first candidate's finish reason, or the block reason."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            block = getattr(feedback, "block_reason", None) if feedback else None
            if block is None:
                return None
            return getattr(block, "name", None) or str(block)
        reason = getattr(candidates[0], "finish_reason", None)
        if reason is None:
            return None
        return getattr(reason, "name", None) or str(reason)

    def _extract_text(self, response: Any) -> str:
        text = getattr(response, "text", None) or ""
        if text.strip():
            return text
        reason = self.finish_reason(response)
        if reason not in _NORMAL_FINISH_REASONS:
            raise LLMResponseBlockedError(reason)
        return ""

    def _track(self, response: Any, kind: str) -> None:
        usage = getattr(response, "usage_metadata", None)
        input_tokens = (getattr(usage, "prompt_token_count", None) or 0) if usage else 0
        output_tokens = (getattr(usage, "candidates_token_count", None) or 0) if usage else 0
        self._usage.input_tokens += input_tokens
        self._usage.output_tokens += output_tokens
        self._usage.calls += 1
        self._usage.by_kind[kind] = self._usage.by_kind.get(kind, 0) + 1
        logger.debug("Gemini %s: in=%d out=%d tokens", kind, input_tokens, output_tokens)

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    @property
    def usage_stats(self) -> Dict[str, Any]:
        """Cumulative usage since this client was created."""
        return {
            "input_tokens": self._usage.input_tokens,
            "output_tokens": self._usage.output_tokens,
            "calls": self._usage.calls,
            "calls_by_kind": dict(self._usage.by_kind),
        }

    def reset_usage(self) -> None:
        self._usage = _Usage()
