"""
Shared data types for the autoblog pipeline.

Every stage reads from and writes to ``PipelineState`` using the types
defined here.

Hierarchy of types
------------------
- **Research models**: ``ResearchSource``, ``ResearchFinding``,
  ``ResearchEntry``
- **Selection models**: ``TopicSelection``, ``Category``
- **Refinement models**: ``EvaluationVerdict``, ``RefinementOutcome``
- **Output models**: ``PostMetadata``, ``ToolPostDraft``, ``PostRecord``
- **Orchestrator state**: ``PipelineState`` (``TypedDict``)
- **Listing predicates**: ``is_tool_post``, ``is_general_post``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, TypedDict, Union


TOOL_POST_CATEGORY = "AI Tool of the Day"
"""Category literal that marks an "AI Tool of the Day" post."""

POST_STATUS_PUBLISHED = "published"


# =============================================================================
# RESEARCH MODELS
# =============================================================================


@dataclass(frozen=True)
class ResearchSource:
    """A single web source returned in grounding metadata."""

    uri: Optional[str] = None
    title: Optional[str] = None

    @property
    def label(self) -> str:
        """Title, else the URI's host, else ``"Unknown Source"``."""
        if self.title:
            return self.title
        if self.uri and "//" in self.uri:
            host = self.uri.split("/")[2]
            if host:
                return host
        return "Unknown Source"

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"uri": self.uri, "title": self.title}


@dataclass(frozen=True)
class ResearchFinding:
    """
    Grounded research for one outline point.

    Created once by the researcher and never mutated. ``grounded_text``
    holds an ``"Error fetching research: ..."`` placeholder when the
    grounded call for this point failed.
    """

    ERROR_PREFIX: ClassVar[str] = "Error fetching research:"

    point: str
    grounded_text: str
    sources: Tuple[ResearchSource, ...] = ()
    search_queries: Tuple[str, ...] = ()
    rendered_content: Optional[str] = None

    @classmethod
    def from_error(cls, point: str, error: BaseException) -> "ResearchFinding":
        return cls(point=point, grounded_text=f"{cls.ERROR_PREFIX} {error}")

    @property
    def is_error(self) -> bool:
        return self.grounded_text.startswith(self.ERROR_PREFIX)

    @property
    def has_data(self) -> bool:
        """True when the finding can back a citation."""
        return bool(self.grounded_text.strip()) and not self.is_error

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialise the ``data`` part of a persisted research entry."""
        return {
            "groundedText": self.grounded_text,
            "sources": [source.to_dict() for source in self.sources],
            "searchQueries": list(self.search_queries),
            "renderedContent": self.rendered_content,
        }


@dataclass(frozen=True)
class ResearchEntry:
    """A finding paired with the ``ref-<N>`` id citation markers use."""

    id: str
    finding: ResearchFinding

    @property
    def marker(self) -> str:
        return f"[ref:{self.id}]"


# =============================================================================
# SELECTION MODELS
# =============================================================================


@dataclass
class TopicSelection:
    """The topic chosen for this run. Produced once, never re-derived."""

    title: str
    hook_description: str
    search_queries: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Category:
    """A row of the ``post_categories`` table."""

    id: int
    title: str


# =============================================================================
# REFINEMENT MODELS
# =============================================================================


@dataclass
class EvaluationVerdict:
    """
    Parsed evaluator reply.

    ``score_source`` records which pattern produced the score
    (``"satisfaction_score"``, ``"score"``, ``"rating"``, ``"out_of_ten"``)
    or ``"synthesized"`` when none matched.
    """

    score: float
    is_satisfactory: bool
    score_source: str
    feedback: str = ""

    @property
    def score_was_parsed(self) -> bool:
        return self.score_source != "synthesized"


@dataclass
class RefinementOutcome:
    """Result of one refinement loop run."""

    content: str
    iterations: int
    revisions: int
    stop_reason: str
    scores: List[float] = field(default_factory=list)
    history: List[Dict[str, str]] = field(default_factory=list)


# =============================================================================
# OUTPUT MODELS
# =============================================================================


@dataclass
class PostMetadata:
    """Metadata derived from the final draft."""

    title: str
    meta_description: str
    image_prompt: str
    tags: List[str]
    read_time_minutes: int
    category: int


@dataclass
class ToolPostDraft:
    """Fields parsed from an "AI Tool of the Day" generation."""

    tool_name: str
    title: str
    description: str
    image_description: str
    content: str
    tags: List[str] = field(default_factory=list)


@dataclass
class PostRecord:
    """
    A row of the ``posts`` table.

    ``category`` is an integer category id for general posts, ``None``
    for uncategorised general posts and ``TOOL_POST_CATEGORY`` for tool
    posts.
    """

    title: str
    slug: str
    description: str
    content: str
    read_time: int
    tags: List[str] = field(default_factory=list)
    category: Optional[Union[int, str]] = None
    image_url: Optional[str] = None
    tool_name: Optional[str] = None
    research_details: Optional[List[Dict[str, Any]]] = None
    author: str = "Gemini"
    status: str = POST_STATUS_PUBLISHED

    def to_row(self) -> Dict[str, Any]:
        """Column mapping for the Supabase insert."""
        return {
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "content": self.content,
            "category": self.category,
            "image_url": self.image_url,
            "tool_name": self.tool_name,
            "read_time": self.read_time,
            "tags": list(self.tags),
            "research_details": self.research_details,
            "author": self.author,
            "status": self.status,
        }


# =============================================================================
# LISTING PREDICATES
# =============================================================================


def is_tool_post(row: Dict[str, Any]) -> bool:
    """True for "AI Tool of the Day" posts."""
    return row.get("category") == TOOL_POST_CATEGORY


def is_general_post(row: Dict[str, Any]) -> bool:
    """True for every post that is not a tool post (null or numeric category)."""
    return not is_tool_post(row)


# =============================================================================
# ORCHESTRATOR STATE
# =============================================================================


class PipelineState(TypedDict, total=False):
    """
    State flowing through the LangGraph pipeline.

    ``total=False`` lets the state be populated incrementally as it moves
    through the graph.
    """

    # Run tracking
    run_id: str
    stage: str

    # Context gathering
    tech_context: str
    existing_titles: List[str]
    category_counts: List[Tuple[str, int]]
    categories: List[Category]

    # Topic and outline
    topic: Optional[TopicSelection]
    outline: str

    # Research (entries are built once and reused for prompt and storage)
    findings: List[ResearchFinding]
    research_entries: List[ResearchEntry]

    # Drafting and refinement
    draft: str
    refinement: Optional[RefinementOutcome]
    refined_draft: str
    polished_draft: str

    # Output
    metadata: Optional[PostMetadata]
    validated_content: str
    image_url: Optional[str]
    post: Optional[PostRecord]
    published: bool
    duplicate: bool

    # Error handling
    critical_error: Optional[str]
    error_stage: Optional[str]
    warnings: List[str]
