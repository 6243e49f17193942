"""
Text helpers shared by the generation stages.

Provides:
    - generate_slug(): URL-safe slug from a post title
    - generate_file_name() / image_file_name(): names derived from the slug
    - calculate_read_time(): minutes to read, from the word count
    - extract_markdown_content(): body of a ```markdown fenced block
    - strip_code_fences(): remove a fence wrapping a whole response
    - parse_labeled_fields(): ``LABEL: value`` blocks from LLM text
    - format_research_for_storage(): ``research_details`` column payload
"""

import math
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Sequence

from autoblog.models import ResearchEntry

AVERAGE_WORDS_PER_MINUTE = 225

_MARKDOWN_BLOCK_RE = re.compile(r"```markdown\s*([\s\S]*?)\s*```", re.IGNORECASE)
_LEADING_FENCE_RE = re.compile(r"^```(?:markdown|md)?[ \t]*\n", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\n?[ \t]*```\s*$")


# ===========================================================================
# SLUGS AND FILE NAMES
# ===========================================================================


def generate_slug(title: str) -> str:
    """
    Derive the URL slug for a title.

    Accents are folded to ASCII, everything except letters, digits,
    whitespace and hyphens is dropped, and runs of whitespace/hyphens
    become a single ``-``. The result always matches
    ``^[a-z0-9]+(-[a-z0-9]+)*$``; a title with no usable characters
    yields ``"untitled"``.

    >>> generate_slug("The Secret Tech That Powers Your Food Delivery!")
    'the-secret-tech-that-powers-your-food-delivery'
    """
    folded = unicodedata.normalize("NFKD", title or "")
    folded = folded.encode("ascii", "ignore").decode("ascii").lower()
    cleaned = re.sub(r"[^a-z0-9\s-]", "", folded)
    slug = re.sub(r"[\s-]+", "-", cleaned.strip()).strip("-")
    return slug or "untitled"


def generate_file_name(title: str) -> str:
    """Markdown file name for a title (``<slug>.md``)."""
    return f"{generate_slug(title)}.md"


IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def image_file_name(title: str, timestamp_ms: int, mime_type: str = "image/png") -> str:
    """Object-storage name for a post image: ``<slug>-<timestamp>.<ext>``.

    The extension follows *mime_type*; unknown types fall back to ``png``.
    """
    extension = IMAGE_EXTENSIONS.get((mime_type or "").lower(), "png")
    return f"{generate_slug(title)}-{timestamp_ms}.{extension}"


# ===========================================================================
# READ TIME
# ===========================================================================


def calculate_read_time(
    text: str, words_per_minute: int = AVERAGE_WORDS_PER_MINUTE
) -> int:
    """
    Estimated minutes to read *text*.

    Whitespace-delimited word count divided by *words_per_minute*, rounded
    up, never below 1.
    """
    words = len((text or "").split())
    if words == 0:
        return 1
    return max(1, math.ceil(words / words_per_minute))


# ===========================================================================
# FENCES
# ===========================================================================


def extract_markdown_content(text: str) -> str:
    """
    Return the body of the first ```markdown fenced block in *text*.

    Falls back to *text* unmodified when there is no such block, so this
    never fails.
    """
    match = _MARKDOWN_BLOCK_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return text


def strip_code_fences(text: str) -> str:
    """
    Remove a code fence wrapping an entire LLM response.

    Only ```` ``` ````, ```` ```markdown ```` or ```` ```md ```` opening the
    response counts as a wrapper; the closing fence is removed only when
    the opening one was. Content that merely starts with e.g. a
    ```` ```python ```` block is left alone.
    """
    if not text:
        return ""
    stripped = text.strip()
    opening = _LEADING_FENCE_RE.match(stripped)
    if opening:
        body = stripped[opening.end():]
        body = _TRAILING_FENCE_RE.sub("", body)
        return body.strip()
    return stripped


# ===========================================================================
# LABELLED FIELDS
# ===========================================================================


def _label_pattern(labels: Iterable[str]) -> "re.Pattern[str]":
    alternatives = "|".join(
        re.escape(label) for label in sorted(labels, key=len, reverse=True)
    )
    # Tolerates markdown bold around the label: **TITLE:** value
    return re.compile(
        rf"^\s*\*{{0,2}}({alternatives})\*{{0,2}}\s*:\s*\*{{0,2}}\s*(.*)$"
    )


def parse_labeled_fields(
    text: str,
    labels: Sequence[str],
    body_label: Optional[str] = None,
) -> Dict[str, str]:
    """
    Parse ``LABEL: value`` blocks from semi-structured LLM output.

    A value runs from its label to the next recognised label, so values
    may span several lines. Once *body_label* is reached every remaining
    line belongs to it, even lines that look like labels.

    Args:
        text: Raw model output.
        labels: Labels to recognise (matched case-sensitively).
        body_label: Label whose value extends to the end of the text.

    Returns:
        Mapping of label to stripped value for every label found. Labels
        that never appear are absent.
    """
    pattern = _label_pattern(labels)
    fields: Dict[str, List[str]] = {}
    current: Optional[str] = None

    for line in (text or "").splitlines():
        if current != body_label or current is None:
            match = pattern.match(line)
            if match:
                current = match.group(1)
                fields[current] = [match.group(2)]
                continue
        if current is not None:
            fields[current].append(line)

    return {label: "\n".join(lines).strip() for label, lines in fields.items()}


# ===========================================================================
# RESEARCH STORAGE
# ===========================================================================


def format_research_for_storage(
    entries: Sequence[ResearchEntry],
) -> Optional[List[Dict[str, Any]]]:
    """
    Serialise research entries for the ``research_details`` column.

    Each item is ``{"id", "point", "data"}`` in entry order, so citation
    markers in the content resolve by id rather than by position.
    Returns ``None`` when there is no research.
    """
    if not entries:
        return None
    return [
        {
            "id": entry.id,
            "point": entry.finding.point,
            "data": entry.finding.to_storage_dict(),
        }
        for entry in entries
    ]
