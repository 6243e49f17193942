"""
Parsers for every LLM output contract in the pipeline.

Each parser returns a tagged result: ``Ok(value)`` on success or
``ParseError(reason, raw)`` on failure, so callers branch on ``result.ok``
instead of catching exceptions. Fallback heuristics (score patterns,
fence stripping) live here where they can be unit tested.

Contracts:
    - Topic selection JSON      -> parse_topic_selection()
    - Post metadata JSON        -> parse_post_metadata()
    - Evaluator verdict text    -> parse_satisfaction_score(),
                                   parse_satisfactory_flag(),
                                   parse_evaluation()
    - Tool post labelled block  -> parse_tool_post()
    - Outline Markdown          -> extract_outline_points()
"""

import json
import re
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from autoblog.models import EvaluationVerdict, PostMetadata, ToolPostDraft, TopicSelection
from autoblog.text_utils import parse_labeled_fields, strip_code_fences

T = TypeVar("T")


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful parse."""

    value: T
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class ParseError:
    """Failed parse with a human-readable reason and the raw payload."""

    reason: str
    raw: str = ""
    ok: ClassVar[bool] = False


ParseResult = Union[Ok[T], ParseError]


# =============================================================================
# JSON
# =============================================================================


def parse_json_object(raw: Optional[str]) -> "ParseResult[Dict[str, Any]]":
    """Decode a JSON object, tolerating a ```json fence around it."""
    if raw is None or not raw.strip():
        return ParseError("empty response", raw or "")

    cleaned = raw.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        cleaned = cleaned[first_newline + 1:] if first_newline != -1 else cleaned[3:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]

    try:
        data = json.loads(cleaned.strip())
    except json.JSONDecodeError as exc:
        return ParseError(f"invalid JSON: {exc}", raw)

    if not isinstance(data, dict):
        return ParseError(f"expected a JSON object, got {type(data).__name__}", raw)
    return Ok(data)


def _required_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _string_list(value: Any) -> List[str]:
    return [str(item).strip() for item in value if str(item).strip()]


# =============================================================================
# TOPIC SELECTION
# =============================================================================

TOPIC_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "hook_description": {"type": "STRING"},
        "search_queries": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["title", "hook_description", "search_queries"],
}


def parse_topic_selection(raw: Optional[str]) -> "ParseResult[TopicSelection]":
    """Parse the topic selector's structured output."""
    decoded = parse_json_object(raw)
    if not decoded.ok:
        return decoded
    data = decoded.value

    title = _required_text(data, "title")
    if title is None:
        return ParseError("missing required field 'title'", raw or "")
    hook = _required_text(data, "hook_description")
    if hook is None:
        return ParseError("missing required field 'hook_description'", raw or "")
    queries = data.get("search_queries")
    if not isinstance(queries, list):
        return ParseError("missing required field 'search_queries'", raw or "")

    return Ok(
        TopicSelection(
            title=title,
            hook_description=hook,
            search_queries=_string_list(queries),
        )
    )


# =============================================================================
# METADATA
# =============================================================================

METADATA_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "meta_description": {"type": "STRING"},
        "image_prompt": {"type": "STRING"},
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "category": {"type": "INTEGER"},
    },
    "required": ["title", "meta_description", "image_prompt", "tags", "category"],
}


def parse_post_metadata(
    raw: Optional[str], read_time_minutes: int
) -> "ParseResult[PostMetadata]":
    """
    Parse the metadata extractor's structured output.

    All five fields are required and ``category`` must be a JSON integer;
    ``"3"`` or ``3.0`` are rejected. Read time is supplied by the caller.
    """
    decoded = parse_json_object(raw)
    if not decoded.ok:
        return decoded
    data = decoded.value

    values: Dict[str, str] = {}
    for key in ("title", "meta_description", "image_prompt"):
        value = _required_text(data, key)
        if value is None:
            return ParseError(f"missing required field '{key}'", raw or "")
        values[key] = value

    tags = data.get("tags")
    if not isinstance(tags, list):
        return ParseError("missing required field 'tags'", raw or "")

    category = data.get("category")
    if category is None:
        return ParseError("missing required field 'category'", raw or "")
    # bool is a subclass of int
    if isinstance(category, bool) or not isinstance(category, int):
        return ParseError(
            f"category must be an integer id, got {category!r}", raw or ""
        )

    return Ok(
        PostMetadata(
            title=values["title"],
            meta_description=values["meta_description"],
            image_prompt=values["image_prompt"],
            tags=_string_list(tags),
            read_time_minutes=read_time_minutes,
            category=category,
        )
    )


# =============================================================================
# EVALUATOR VERDICT
# =============================================================================

_NUMBER = r"\**\s*(\d+(?:\.\d+)?)"

SCORE_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("satisfaction_score", re.compile(r"SATISFACTION_SCORE\s*[:=]\s*" + _NUMBER, re.IGNORECASE)),
    ("score", re.compile(r"\bscore\**\s*[:=]\s*" + _NUMBER, re.IGNORECASE)),
    ("rating", re.compile(r"\brating\**\s*[:=]\s*" + _NUMBER, re.IGNORECASE)),
    ("out_of_ten", re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\s*/\s*10\b")),
)
"""Primary pattern first, then the fallbacks in the order they are tried."""

_SATISFACTORY_RE = re.compile(
    r"IS_SATISFACTORY\**\s*[:=]\s*\**\s*(YES|NO|TRUE|FALSE)\b", re.IGNORECASE
)

MIN_SCORE = 1.0
MAX_SCORE = 10.0


def parse_satisfaction_score(text: str) -> "ParseResult[Tuple[float, str]]":
    """
    Find the 1-10 satisfaction score in an evaluator reply.

    Patterns are tried in ``SCORE_PATTERNS`` order; a match outside 1-10
    is ignored and the next pattern is tried.

    Returns:
        ``Ok((score, pattern_name))`` or ``ParseError``.
    """
    for name, pattern in SCORE_PATTERNS:
        for match in pattern.finditer(text or ""):
            score = float(match.group(1))
            if MIN_SCORE <= score <= MAX_SCORE:
                return Ok((score, name))
    return ParseError("no satisfaction score found", text or "")


def parse_satisfactory_flag(text: str) -> "ParseResult[bool]":
    match = _SATISFACTORY_RE.search(text or "")
    if not match:
        return ParseError("no IS_SATISFACTORY flag found", text or "")
    return Ok(match.group(1).upper() in ("YES", "TRUE"))


def parse_evaluation(text: str, previous_score: float) -> EvaluationVerdict:
    """
    Build a verdict from an evaluator reply. Never fails.

    When no score pattern matches, the score is synthesised as
    ``previous_score + 1`` so an unparseable reply counts as progress
    rather than a stall. A missing satisfactory flag reads as ``NO``.
    """
    score_result = parse_satisfaction_score(text)
    if score_result.ok:
        score, source = score_result.value
    else:
        score, source = previous_score + 1, "synthesized"

    flag_result = parse_satisfactory_flag(text)
    satisfied = flag_result.value if flag_result.ok else False

    return EvaluationVerdict(
        score=score,
        is_satisfactory=satisfied,
        score_source=source,
        feedback=(text or "").strip(),
    )


# =============================================================================
# TOOL POST
# =============================================================================

TOOL_POST_LABELS = (
    "TOOL_NAME",
    "TITLE",
    "DESCRIPTION",
    "IMAGE_DESCRIPTION",
    "TAGS",
    "CONTENT",
)
_TOOL_POST_REQUIRED = ("TOOL_NAME", "TITLE", "DESCRIPTION", "IMAGE_DESCRIPTION", "CONTENT")


def parse_tool_post(raw: Optional[str]) -> "ParseResult[ToolPostDraft]":
    """
    Parse a labelled "AI Tool of the Day" response.

    ``TAGS`` is optional and comma separated. A ``# Title`` heading that
    opens ``CONTENT`` is dropped because the page renders the title itself.
    """
    if raw is None or not raw.strip():
        return ParseError("empty response", raw or "")

    fields = parse_labeled_fields(raw, TOOL_POST_LABELS, body_label="CONTENT")
    missing = [label for label in _TOOL_POST_REQUIRED if not fields.get(label)]
    if missing:
        return ParseError(f"missing required fields: {', '.join(missing)}", raw)

    content = strip_code_fences(fields["CONTENT"])
    content = re.sub(r"^#\s+[^\n]*\n+", "", content, count=1).strip()
    if not content:
        return ParseError("CONTENT is empty after removing the title heading", raw)

    tags = [tag.strip() for tag in fields.get("TAGS", "").split(",") if tag.strip()]

    return Ok(
        ToolPostDraft(
            tool_name=fields["TOOL_NAME"],
            title=fields["TITLE"],
            description=fields["DESCRIPTION"],
            image_description=fields["IMAGE_DESCRIPTION"],
            content=content,
            tags=tags,
        )
    )


# =============================================================================
# OUTLINE
# =============================================================================

_OUTLINE_POINT_RE = re.compile(r"^\s*(?:[*+-]|#{2,4})\s+(.*\S)\s*$")


def extract_outline_points(outline: str) -> List[str]:
    """
    Research points from an outline, in outline order.

    A point is any line starting with a bullet (``*``, ``-``, ``+``) or a
    level 2-4 heading, with the marker stripped. Repeated points are kept
    once, at their first position.
    """
    points: List[str] = []
    seen = set()
    for line in (outline or "").splitlines():
        match = _OUTLINE_POINT_RE.match(line)
        if not match:
            continue
        point = match.group(1).strip()
        if point and point not in seen:
            seen.add(point)
            points.append(point)
    return points
