"""
Draft Writer Agent.

Writes the first full draft from the topic, the outline and the research
entries, asking the model to cite research with ``[ref:ref-N]`` markers.

Citation bookkeeping
--------------------
``build_research_entries()`` assigns ``ref-0 .. ref-(N-1)`` to the
findings once, in research order. The same entry list feeds the draft
prompt and, later, the stored ``research_details``, so a marker id and a
stored id always refer to the same finding.

After generation, ``audit_citations()`` normalises nested markers
(``[ref:ref:ref-2]``) and drops ids that are unknown or that point at a
finding without data. A marker left with no ids is removed.

Failure handling: an empty draft, a blocked response or any API error
returns ``None``. SAFETY and MAX_TOKENS finish reasons are logged
separately so truncation is distinguishable from a safety block.
"""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from autoblog.config import Settings
from autoblog.exceptions import LLMResponseBlockedError
from autoblog.models import ResearchEntry, ResearchFinding
from autoblog.text_utils import strip_code_fences
from autoblog.tools.gemini_client import GeminiClient

REF_ID_PREFIX = "ref-"

_MARKER_RE = re.compile(r"([ \t]*)\[ref:([^\[\]]*)\]")
_REF_ID_RE = re.compile(r"^ref-\d+$")


# =============================================================================
# RESEARCH ENTRIES
# =============================================================================


def build_research_entries(
    findings: Sequence[ResearchFinding],
) -> List[ResearchEntry]:
    """Pair every finding with its ``ref-<index>`` id, starting at 0."""
    return [
        ResearchEntry(id=f"{REF_ID_PREFIX}{index}", finding=finding)
        for index, finding in enumerate(findings)
    ]


def format_research_block(entries: Sequence[ResearchEntry]) -> str:
    """Render entries for the draft prompt."""
    if not entries:
        return "No research data was gathered for this topic.\n"

    blocks: List[str] = []
    for entry in entries:
        finding = entry.finding
        lines = [f'[{entry.id}] Outline point: "{finding.point}"']
        if finding.has_data:
            lines.append(f"Grounded text: {finding.grounded_text}")
            labels = [source.label for source in finding.sources]
            if labels:
                lines.append(f"Sources: {', '.join(labels)}")
        else:
            detail = finding.grounded_text or "empty result"
            lines.append(
                f"Grounded text: (no data available: {detail}). "
                f"Do NOT cite {entry.id}."
            )
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


# =============================================================================
# CITATION AUDIT
# =============================================================================


def _normalise_ref_id(raw: str) -> str:
    item = raw.strip()
    while item.lower().startswith("ref:"):
        item = item[4:].strip()
    return item


def audit_citations(
    text: str, entries: Sequence[ResearchEntry]
) -> Tuple[str, List[str]]:
    """
    Normalise citation markers and drop ids that cannot be resolved.

    Returns:
        ``(cleaned_text, removed_ids)``. Valid ids are the entry ids whose
        finding has data; everything else is removed from its marker.
    """
    valid: Set[str] = {entry.id for entry in entries if entry.finding.has_data}
    removed: List[str] = []

    def _rewrite(match: "re.Match[str]") -> str:
        leading, body = match.group(1), match.group(2)
        kept: List[str] = []
        for raw in body.split(","):
            ref_id = _normalise_ref_id(raw)
            if not ref_id:
                continue
            if _REF_ID_RE.match(ref_id) and ref_id in valid:
                if ref_id not in kept:
                    kept.append(ref_id)
            else:
                removed.append(ref_id)
        if not kept:
            return ""
        return leading + "[" + ", ".join(f"ref:{ref_id}" for ref_id in kept) + "]"

    return _MARKER_RE.sub(_rewrite, text), removed


def cited_ids(text: str) -> List[str]:
    """Distinct ids cited in *text*, in order of first appearance."""
    ids: List[str] = []
    for match in _MARKER_RE.finditer(text or ""):
        for raw in match.group(2).split(","):
            ref_id = _normalise_ref_id(raw)
            if ref_id and ref_id not in ids:
                ids.append(ref_id)
    return ids


# =============================================================================
# PROMPT
# =============================================================================

DRAFT_PROMPT = """You are an expert technical writer creating engaging, accurate blog posts
for developers and technology enthusiasts.

Write the first full draft of a blog post.

**Topic:**
{topic}

**Outline (structure to follow):**
```markdown
{outline}
```

**Research findings:**
{research}
**Instructions:**
1. Follow the outline: use its headings and cover every point under them.
2. Weave the grounded text into flowing paragraphs; synthesise, do not list.
3. Where a point has no data, write from general knowledge without saying so.
4. CITATIONS: immediately after a sentence or phrase that uses information
   from a specific finding's grounded text, add a marker with that finding's
   id, e.g. [ref:ref-2]. Several ids go in one marker: [ref:ref-0, ref:ref-3].
   Only cite ids listed above that have grounded text. Sentences written from
   general knowledge or your own synthesis get no marker.
5. Do not add hyperlinks or a reference list.
6. Open with a compelling introduction and close with a conclusion that
   summarises the key takeaways.
7. Aim for roughly 1000-1500 words; covering the outline matters more than
   the exact length.

Output only the Markdown post, starting with its first line. No preamble.
"""


# =============================================================================
# AGENT
# =============================================================================


class WriterAgent:
    """Generate the first draft with citation markers.

    Args:
        gemini: Gemini client.
        settings: ``draft_temperature`` is used for the call.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Writer")

    def build_prompt(
        self, topic: str, outline: str, entries: Sequence[ResearchEntry]
    ) -> str:
        return DRAFT_PROMPT.format(
            topic=topic,
            outline=outline,
            research=format_research_block(entries),
        )

    async def run(
        self,
        topic: str,
        outline: str,
        entries: Sequence[ResearchEntry],
    ) -> Optional[str]:
        """Return the cleaned draft, or ``None`` when no draft was produced."""
        prompt = self.build_prompt(topic, outline, entries)

        try:
            raw = await self.gemini.generate(
                prompt, temperature=self.settings.draft_temperature
            )
        except LLMResponseBlockedError as exc:
            if exc.is_safety_block:
                self.logger.error("Draft blocked by safety settings")
            elif exc.is_truncated:
                self.logger.error("Draft stopped at the maximum token limit")
            else:
                self.logger.error(
                    "Draft returned no text (finish_reason=%s)", exc.finish_reason
                )
            return None
        except Exception as exc:
            self.logger.error("Draft generation failed: %s", exc)
            return None

        draft = strip_code_fences(raw or "")
        if not draft:
            self.logger.error("Model returned an empty draft")
            return None

        draft, removed = audit_citations(draft, entries)
        if removed:
            self.logger.warning(
                "Removed %d unresolvable citation ids: %s",
                len(removed),
                ", ".join(removed),
            )
        self.logger.info(
            "Draft generated: %d words, %d distinct citations",
            len(draft.split()),
            len(cited_ids(draft)),
        )
        return draft
