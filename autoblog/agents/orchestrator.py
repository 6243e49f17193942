"""
LangGraph Orchestrator -- the state machine for one blog post run.

Ties every stage (context gathering, Topic Selector, Outliner, Researcher,
Writer, Refiner, Polisher, Metadata, Validator, Illustrator, Publisher)
together in a strictly sequential graph with error-aware routing and a
time budget per stage.

Flow
----
gather_context -> select_topic -> write_outline -> research -> write_draft
    -> refine -> polish -> extract_metadata -> validate -> illustrate
    -> persist -> END

Any node that sets ``critical_error`` routes to ``handle_error`` -> END.

Key design decisions
--------------------
- **Injected collaborators**: a ``PipelineContext`` carries settings, the
  Gemini client, the database and the research feed. Nodes never reach
  for module-level clients, so tests pass fakes per run.
- **Pure node updates**: every node returns a dict; no direct state
  mutation.
- **Fatal vs. degradable**: ``@with_error_handling(name)`` turns an
  exception into ``{"critical_error": ...}``. With ``fallback=`` it
  returns the fallback update and a warning instead, and the run goes on.
- **Timeouts**: model calls carry their own ``Settings.call_timeout``;
  ``@with_timeout(name)`` bounds the whole node with
  ``Settings.stage_timeouts``. The research and refine fallbacks keep
  the points and the draft finished before a stage timeout.
- **Citation ids**: research entries are built once in ``research`` and
  reused for the draft prompt, the final citation audit and the stored
  ``research_details``.

``run_pipeline()`` never raises; it returns a result dict whose
``status`` is ``"published"``, ``"duplicate"`` or ``"failed"``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import END, StateGraph

from autoblog.agents.illustrator import IllustratorAgent
from autoblog.agents.metadata import MetadataAgent
from autoblog.agents.outliner import OutlineAgent
from autoblog.agents.publisher import PublisherAgent
from autoblog.agents.refiner import PolishAgent, RefinementLoop
from autoblog.agents.researcher import ResearcherAgent
from autoblog.agents.tool_post import ToolPostAgent
from autoblog.agents.topic_selector import TopicSelectorAgent
from autoblog.agents.validator import ValidatorAgent
from autoblog.agents.writer import (
    WriterAgent,
    audit_citations,
    build_research_entries,
    cited_ids,
)
from autoblog.config import Settings
from autoblog.database import SupabaseDB
from autoblog.exceptions import DraftGenerationError, NodeTimeoutError
from autoblog.logging import AgentLogger, LogComponent, PipelineRunLogger
from autoblog.models import PipelineState, PostRecord
from autoblog.text_utils import format_research_for_storage, generate_slug
from autoblog.tools.feeds import FALLBACK_CONTEXT, ResearchFeed
from autoblog.tools.gemini_client import GeminiClient
from autoblog.utils import generate_id

logger = logging.getLogger("Orchestrator")

STATUS_PUBLISHED = "published"
STATUS_DUPLICATE = "duplicate"
STATUS_FAILED = "failed"

NODE_ORDER: List[str] = [
    "gather_context",
    "select_topic",
    "write_outline",
    "research",
    "write_draft",
    "refine",
    "polish",
    "extract_metadata",
    "validate",
    "illustrate",
    "persist",
]


# =============================================================================
# PIPELINE CONTEXT
# =============================================================================


@dataclass
class PipelineContext:
    """Everything a run needs, constructed once by the caller.

    Attributes:
        settings: Temperatures, budgets and stage timeouts.
        gemini: LLM client shared by all stages.
        database: Content store and object storage.
        feed: Trend source for topic selection; ``None`` uses the
            evergreen fallback text.
        logger: Structured run log; ``None`` disables stage tracking.
    """

    settings: Settings
    gemini: GeminiClient
    database: SupabaseDB
    feed: Optional[ResearchFeed] = None
    logger: Optional[AgentLogger] = None


# =============================================================================
# DECORATORS
# =============================================================================


def with_error_handling(
    node_name: str,
    fallback: Optional[Callable[["ContentPipeline", PipelineState], Dict[str, Any]]] = None,
):
    """Convert node exceptions into state updates.

    Without *fallback* the update is ``{"critical_error", "error_stage"}``
    and the conditional edge routes to ``handle_error``. With *fallback*
    the stage is marked degraded: ``fallback(pipeline, state)`` builds the
    update, a warning is appended and the run continues. The pipeline is
    passed so a fallback can keep partial work its agents recorded.

    Also records stage start/end on the pipeline's run logger.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self: "ContentPipeline", state: PipelineState) -> Dict[str, Any]:
            node_logger = logging.getLogger(f"Node.{node_name}")
            await self.stage_started(node_name)
            try:
                update = await func(self, state)
            except Exception as exc:
                error_msg = f"{type(exc).__name__}: {exc}"
                if fallback is None:
                    node_logger.error(
                        "[%s] Exception caught, routing to error handler: %s",
                        node_name,
                        error_msg,
                    )
                    await self.stage_finished("failed", {"error": error_msg})
                    return {"critical_error": error_msg, "error_stage": node_name}

                node_logger.warning(
                    "[%s] Stage degraded, continuing with fallback: %s",
                    node_name,
                    error_msg,
                )
                await self.stage_finished("degraded", {"error": error_msg})
                degraded = dict(fallback(self, state))
                degraded["warnings"] = list(state.get("warnings") or []) + [
                    f"{node_name}: {error_msg}"
                ]
                return degraded

            await self.stage_finished("success")
            return update

        return wrapper

    return decorator


def with_timeout(node_name: str):
    """Bound a node by ``Settings.stage_timeouts`` for *node_name*.

    Raises:
        NodeTimeoutError: When the stage runs past its budget.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self: "ContentPipeline", state: PipelineState) -> Dict[str, Any]:
            timeout = self.settings.stage_timeouts.get(node_name)
            try:
                return await asyncio.wait_for(func(self, state), timeout=timeout)
            except asyncio.TimeoutError:
                raise NodeTimeoutError(node_name, timeout)

        return wrapper

    return decorator


def _add_warning(state: PipelineState, message: str) -> List[str]:
    return list(state.get("warnings") or []) + [message]


# =============================================================================
# CONTENT PIPELINE
# =============================================================================


class ContentPipeline:
    """One general-post run over an injected ``PipelineContext``.

    Usage::

        pipeline = ContentPipeline(context)
        result = await pipeline.run()
    """

    def __init__(self, context: PipelineContext, run_id: Optional[str] = None) -> None:
        self.context = context
        self.settings = context.settings
        self.run_id = run_id or generate_id()
        self.run_logger: Optional[PipelineRunLogger] = (
            PipelineRunLogger(self.run_id, context.logger) if context.logger else None
        )

        gemini = context.gemini
        self.topic_selector = TopicSelectorAgent(gemini, self.settings)
        self.outliner = OutlineAgent(gemini, self.settings)
        self.researcher = ResearcherAgent(gemini, self.settings)
        self.writer = WriterAgent(gemini, self.settings)
        self.refiner = RefinementLoop(gemini, self.settings)
        self.polisher = PolishAgent(gemini, self.settings)
        self.metadata_agent = MetadataAgent(gemini, self.settings)
        self.validator = ValidatorAgent(gemini, self.settings)
        self.illustrator = IllustratorAgent(gemini, context.database, self.settings)
        self.publisher = PublisherAgent(context.database)

    # ------------------------------------------------------------------
    # Stage tracking
    # ------------------------------------------------------------------

    async def stage_started(self, stage: str) -> None:
        logger.info("[PIPELINE] %s started", stage)
        if self.run_logger is not None:
            await self.run_logger.start_stage(stage)

    async def stage_finished(
        self, status: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        if self.run_logger is not None:
            await self.run_logger.end_stage(status, data)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @with_error_handling(
        "gather_context",
        fallback=lambda pipeline, state: {
            "tech_context": FALLBACK_CONTEXT,
            "existing_titles": [],
            "category_counts": [],
            "categories": [],
        },
    )
    @with_timeout("gather_context")
    async def gather_context(self, state: PipelineState) -> Dict[str, Any]:
        """Feed text, recent titles and category data. Each source is optional."""
        database = self.context.database
        warnings = list(state.get("warnings") or [])

        raw_context = FALLBACK_CONTEXT
        if self.context.feed is not None:
            try:
                raw_context = await self.context.feed.fetch_context()
            except Exception as exc:
                logger.warning("Research feed failed: %s", exc)
                warnings.append(f"gather_context: research feed failed: {exc}")

        async def _optional(label: str, call) -> List[Any]:
            try:
                return await call
            except Exception as exc:
                logger.warning("Could not load %s: %s", label, exc)
                warnings.append(f"gather_context: could not load {label}: {exc}")
                return []

        titles = await _optional(
            "existing titles",
            database.get_existing_post_titles(self.settings.existing_titles_limit),
        )
        counts = await _optional("category counts", database.get_category_post_counts())
        categories = await _optional("categories", database.get_all_categories())

        tech_context = await self.topic_selector.summarize_tech_context(raw_context)
        logger.info(
            "Context: %d chars, %d existing titles, %d categories",
            len(tech_context),
            len(titles),
            len(categories),
        )
        return {
            "stage": "context_gathered",
            "tech_context": tech_context,
            "existing_titles": titles,
            "category_counts": counts,
            "categories": categories,
            "warnings": warnings,
        }

    @with_error_handling("select_topic")
    @with_timeout("select_topic")
    async def select_topic(self, state: PipelineState) -> Dict[str, Any]:
        topic = await self.topic_selector.select(
            state.get("tech_context", ""),
            state.get("existing_titles") or [],
            state.get("category_counts") or [],
        )
        return {"stage": "topic_selected", "topic": topic}

    @with_error_handling("write_outline")
    @with_timeout("write_outline")
    async def write_outline(self, state: PipelineState) -> Dict[str, Any]:
        outline = await self.outliner.run(state["topic"])
        if not outline:
            logger.warning("Outline was empty, drafting from the topic alone")
            return {
                "stage": "outlined",
                "outline": "",
                "warnings": _add_warning(state, "write_outline: empty outline"),
            }
        return {"stage": "outlined", "outline": outline}

    @with_error_handling(
        "research",
        fallback=lambda pipeline, state: {
            "findings": list(pipeline.researcher.completed),
            "research_entries": build_research_entries(pipeline.researcher.completed),
        },
    )
    @with_timeout("research")
    async def research(self, state: PipelineState) -> Dict[str, Any]:
        findings = await self.researcher.run(state["outline"], state["topic"].title)
        return {
            "stage": "researched",
            "findings": findings,
            "research_entries": build_research_entries(findings),
        }

    @with_error_handling("write_draft")
    @with_timeout("write_draft")
    async def write_draft(self, state: PipelineState) -> Dict[str, Any]:
        draft = await self.writer.run(
            state["topic"].title,
            state["outline"],
            state.get("research_entries") or [],
        )
        if draft is None:
            raise DraftGenerationError("Draft generation produced no content")
        return {"stage": "drafted", "draft": draft}

    @with_error_handling(
        "refine",
        fallback=lambda pipeline, state: {
            "refinement": None,
            "refined_draft": pipeline.refiner.last_draft or state["draft"],
        },
    )
    @with_timeout("refine")
    async def refine(self, state: PipelineState) -> Dict[str, Any]:
        topic = state["topic"]
        outcome = await self.refiner.run(
            state["draft"],
            topic.title,
            topic_context=f"TOPIC DESCRIPTION: {topic.hook_description}",
        )
        return {
            "stage": "refined",
            "refinement": outcome,
            "refined_draft": outcome.content,
        }

    @with_error_handling(
        "polish",
        fallback=lambda pipeline, state: {"polished_draft": state["refined_draft"]},
    )
    @with_timeout("polish")
    async def polish(self, state: PipelineState) -> Dict[str, Any]:
        refined = state["refined_draft"]
        polished = await self.polisher.run(refined)
        if not polished:
            return {
                "stage": "polished",
                "polished_draft": refined,
                "warnings": _add_warning(state, "polish: empty result, kept refined draft"),
            }
        return {"stage": "polished", "polished_draft": polished}

    @with_error_handling("extract_metadata")
    @with_timeout("extract_metadata")
    async def extract_metadata(self, state: PipelineState) -> Dict[str, Any]:
        metadata = await self.metadata_agent.run(
            state["polished_draft"],
            state["topic"].title,
            state.get("categories") or [],
        )
        return {"stage": "metadata_extracted", "metadata": metadata}

    @with_error_handling(
        "validate",
        fallback=lambda pipeline, state: {"validated_content": state["polished_draft"]},
    )
    @with_timeout("validate")
    async def validate(self, state: PipelineState) -> Dict[str, Any]:
        content = await self.validator.run(
            state["polished_draft"], state["metadata"].title
        )
        # Refinement and validation rewrite text, so markers are checked again
        content, removed = audit_citations(content, state.get("research_entries") or [])
        if removed:
            logger.warning("Final audit removed citation ids: %s", ", ".join(removed))
        return {"stage": "validated", "validated_content": content}

    @with_error_handling("illustrate", fallback=lambda pipeline, state: {"image_url": None})
    @with_timeout("illustrate")
    async def illustrate(self, state: PipelineState) -> Dict[str, Any]:
        metadata = state["metadata"]
        image_url = await self.illustrator.run(metadata.image_prompt, metadata.title)
        return {"stage": "illustrated", "image_url": image_url}

    @with_error_handling("persist")
    @with_timeout("persist")
    async def persist(self, state: PipelineState) -> Dict[str, Any]:
        metadata = state["metadata"]
        record = PostRecord(
            title=metadata.title,
            slug=generate_slug(metadata.title),
            description=metadata.meta_description,
            content=state["validated_content"],
            read_time=metadata.read_time_minutes,
            tags=list(metadata.tags),
            category=metadata.category,
            image_url=state.get("image_url"),
            research_details=format_research_for_storage(
                state.get("research_entries") or []
            ),
            author=self.settings.post_author,
        )
        if self.context.logger is not None:
            self.context.logger.set_context(slug=record.slug)

        published = await self.publisher.run(record)
        if published:
            return {"stage": "published", "post": record, "published": True}
        if self.publisher.was_duplicate:
            return {
                "stage": "duplicate",
                "post": record,
                "published": False,
                "duplicate": True,
            }
        return {
            "post": record,
            "published": False,
            "critical_error": f"Persistence failed: {self.publisher.last_error}",
            "error_stage": "persist",
        }

    async def handle_error(self, state: PipelineState) -> Dict[str, Any]:
        """Log the failure with its context and terminate."""
        err_logger = logging.getLogger("PipelineErrorHandler")
        critical_error = state.get("critical_error", "Unknown error")
        error_stage = state.get("error_stage", "unknown")
        topic = state.get("topic")

        error_context = {
            "run_id": self.run_id,
            "error_stage": error_stage,
            "last_successful_stage": state.get("stage", "initialized"),
            "topic": topic.title if topic is not None else None,
            "warnings": state.get("warnings") or [],
        }
        err_logger.error(
            "Pipeline failed at stage '%s': %s\nContext: %s",
            error_stage,
            critical_error,
            error_context,
        )
        if self.context.logger is not None:
            await self.context.logger.error(
                LogComponent.ORCHESTRATOR,
                f"Pipeline failed at stage '{error_stage}': {critical_error}",
                data=error_context,
            )
        return {"stage": "error"}

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def build_graph(self) -> Any:
        """Build and compile the LangGraph state machine."""
        workflow = StateGraph(PipelineState)

        for name in NODE_ORDER:
            workflow.add_node(name, getattr(self, name))
        workflow.add_node("handle_error", self.handle_error)

        workflow.set_entry_point(NODE_ORDER[0])

        def make_error_aware_router(next_node: str):
            """Return ``handle_error`` if ``critical_error`` is set, else *next_node*."""

            def router(state: PipelineState) -> str:
                if state.get("critical_error"):
                    return "handle_error"
                return next_node

            return router

        for current, following in zip(NODE_ORDER, NODE_ORDER[1:] + [END]):
            workflow.add_conditional_edges(
                current,
                make_error_aware_router(following),
                {following: following, "handle_error": "handle_error"},
            )

        workflow.add_edge("handle_error", END)
        return workflow.compile()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self) -> Dict[str, Any]:
        initial_state = initialize_pipeline_state(self.run_id)
        logger.info("[PIPELINE] Starting run %s", self.run_id)

        try:
            final_state = await self.build_graph().ainvoke(initial_state)
        except Exception as exc:
            logger.exception("[PIPELINE] Run %s crashed", self.run_id)
            final_state = dict(initial_state)
            final_state["critical_error"] = f"{type(exc).__name__}: {exc}"
            final_state["error_stage"] = final_state.get("error_stage") or "orchestrator"

        if final_state.get("published"):
            status = STATUS_PUBLISHED
        elif final_state.get("duplicate"):
            status = STATUS_DUPLICATE
        else:
            status = STATUS_FAILED

        summary = None
        if self.run_logger is not None:
            summary = await self.run_logger.finish(status)
            logger.info("\n%s", self.run_logger.get_summary_text())

        result = build_result(self.run_id, status, final_state, self.context.gemini)
        result["summary"] = summary
        logger.info(
            "[PIPELINE] Run %s finished: %s%s",
            self.run_id,
            status,
            f" (stage {result['error_stage']}: {result['error']})" if result["error"] else "",
        )
        return result


# =============================================================================
# STATE AND RESULTS
# =============================================================================


def initialize_pipeline_state(run_id: str) -> PipelineState:
    """Create a fully-defaulted ``PipelineState`` for a new run."""
    return PipelineState(
        run_id=run_id,
        stage="initialized",
        tech_context="",
        existing_titles=[],
        category_counts=[],
        categories=[],
        topic=None,
        outline="",
        findings=[],
        research_entries=[],
        draft="",
        refinement=None,
        refined_draft="",
        polished_draft="",
        metadata=None,
        validated_content="",
        image_url=None,
        post=None,
        published=False,
        duplicate=False,
        critical_error=None,
        error_stage=None,
        warnings=[],
    )


def build_result(
    run_id: str, status: str, final_state: Dict[str, Any], gemini: Any = None
) -> Dict[str, Any]:
    """Result dict returned to the caller, with run statistics."""
    post: Optional[PostRecord] = final_state.get("post")
    metadata = final_state.get("metadata")
    findings = final_state.get("findings") or []
    refinement = final_state.get("refinement")

    return {
        "run_id": run_id,
        "status": status,
        "title": post.title if post else (metadata.title if metadata else None),
        "slug": post.slug if post else None,
        "error": final_state.get("critical_error"),
        "error_stage": final_state.get("error_stage"),
        "warnings": list(final_state.get("warnings") or []),
        "statistics": {
            "research_points": len(findings),
            "failed_points": sum(1 for finding in findings if finding.is_error),
            "citations": len(cited_ids(post.content)) if post else 0,
            "refinement_iterations": refinement.iterations if refinement else 0,
            "stop_reason": refinement.stop_reason if refinement else None,
            "read_time": post.read_time if post else None,
            "has_image": bool(post and post.image_url),
            "gemini_usage": getattr(gemini, "usage_stats", None),
        },
    }


async def run_pipeline(
    context: PipelineContext, run_id: Optional[str] = None
) -> Dict[str, Any]:
    """Execute one general-post run. Never raises.

    Returns:
        A dict with ``run_id``, ``status``, ``title``, ``slug``, ``error``,
        ``error_stage``, ``warnings``, ``statistics`` and ``summary``.
    """
    return await ContentPipeline(context, run_id).run()


# =============================================================================
# AI TOOL OF THE DAY
# =============================================================================


async def run_tool_post(
    context: PipelineContext, run_id: Optional[str] = None
) -> Dict[str, Any]:
    """Generate, illustrate and publish an "AI Tool of the Day" post.

    Generation is fatal when it fails; the image is optional. Never raises.
    """
    run_id = run_id or generate_id()
    settings = context.settings
    timeouts = settings.stage_timeouts
    run_logger = PipelineRunLogger(run_id, context.logger) if context.logger else None
    agent = ToolPostAgent(context.gemini, settings)
    illustrator = IllustratorAgent(context.gemini, context.database, settings)
    publisher = PublisherAgent(context.database)

    state: Dict[str, Any] = {"published": False, "duplicate": False, "warnings": []}

    async def _stage(name: str, coro, timeout: int) -> Any:
        if run_logger is not None:
            await run_logger.start_stage(name)
        try:
            value = await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            if run_logger is not None:
                await run_logger.end_stage("failed")
            raise NodeTimeoutError(name, timeout)
        except Exception:
            if run_logger is not None:
                await run_logger.end_stage("failed")
            raise
        if run_logger is not None:
            await run_logger.end_stage("success")
        return value

    logger.info("[TOOL POST] Starting run %s", run_id)
    try:
        try:
            used_tools = await context.database.get_previously_used_tools()
        except Exception as exc:
            logger.warning("Could not load previously used tools: %s", exc)
            state["warnings"].append(f"tool_post: could not load used tools: {exc}")
            used_tools = []

        draft = await _stage("tool_post", agent.generate(used_tools), timeouts.get("tool_post"))

        try:
            image_url = await _stage(
                "illustrate",
                illustrator.run(draft.image_description, draft.title),
                timeouts.get("illustrate"),
            )
        except NodeTimeoutError as exc:
            logger.warning("%s; publishing without an image", exc)
            state["warnings"].append(f"illustrate: {exc}")
            image_url = None

        record = agent.to_record(draft, image_url)
        state["post"] = record
        published = await _stage("persist", publisher.run(record), timeouts.get("persist"))
        state["published"] = published
        state["duplicate"] = publisher.was_duplicate
        if not published and not publisher.was_duplicate:
            state["critical_error"] = f"Persistence failed: {publisher.last_error}"
            state["error_stage"] = "persist"
    except Exception as exc:
        logger.error("[TOOL POST] Run %s failed: %s", run_id, exc)
        state["critical_error"] = f"{type(exc).__name__}: {exc}"
        state["error_stage"] = getattr(exc, "node_name", None) or "tool_post"

    if state["published"]:
        status = STATUS_PUBLISHED
    elif state["duplicate"]:
        status = STATUS_DUPLICATE
    else:
        status = STATUS_FAILED

    summary = await run_logger.finish(status) if run_logger is not None else None
    result = build_result(run_id, status, state, context.gemini)
    result["summary"] = summary
    record = state.get("post")
    result["tool_name"] = record.tool_name if record is not None else None
    logger.info("[TOOL POST] Run %s finished: %s", run_id, status)
    return result


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PipelineContext",
    "ContentPipeline",
    "NODE_ORDER",
    "STATUS_PUBLISHED",
    "STATUS_DUPLICATE",
    "STATUS_FAILED",
    "with_error_handling",
    "with_timeout",
    "initialize_pipeline_state",
    "build_result",
    "run_pipeline",
    "run_tool_post",
]
