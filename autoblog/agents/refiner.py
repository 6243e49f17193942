"""
Refinement loop and final polish.

RefinementLoop
--------------
``Evaluating -> (Revising -> Evaluating)* -> Done``

Each iteration sends the current draft to an evaluator conversation. The
conversation is an explicit message history threaded through every call,
so the evaluator sees its own earlier feedback and a run can be replayed
from the recorded history.

Stop conditions, checked in this order after each evaluation:

1. ``IS_SATISFACTORY`` is YES
2. the score failed to improve on the previous one twice in a row
3. the iteration count reached ``MAX_REFINEMENT_ITERATIONS``

Otherwise a revision is requested. An empty revision, or a failed or
timed-out evaluator or revision call, stops the loop with the last good
draft. Each call is bounded by ``Settings.call_timeout``; ``last_draft``
holds the newest accepted draft even if the caller cancels the loop.
The loop therefore always returns a non-empty string: the input draft or
one of its revisions.

PolishAgent
-----------
One call that strips meta-commentary ("Here is the revised post:") from
the refined draft. Returns ``""`` when the model returns nothing; the
orchestrator then keeps the refined draft.
"""

import asyncio
import logging
from typing import Dict, List

from autoblog.config import Settings
from autoblog.models import EvaluationVerdict, RefinementOutcome
from autoblog.parsers import parse_evaluation
from autoblog.text_utils import strip_code_fences
from autoblog.tools.gemini_client import GeminiClient

MAX_REFINEMENT_ITERATIONS = 5
STALL_LIMIT = 2
"""Consecutive non-improving scores that end the loop."""

STOP_SATISFACTORY = "satisfactory"
STOP_STALLED = "stalled"
STOP_MAX_ITERATIONS = "max_iterations"
STOP_EMPTY_REVISION = "empty_revision"
STOP_EVALUATOR_ERROR = "evaluator_error"
STOP_REVISION_ERROR = "revision_error"
STOP_TIMEOUT = "timeout"


# =============================================================================
# PROMPTS
# =============================================================================

EVALUATOR_SYSTEM = """You are an expert technology blog editor reviewing successive versions
of one post. Judge accuracy and depth, structure and flow, readability and
engagement, and SEO. Citation markers such as [ref:ref-2] are intentional
and must be kept.

Always answer in this format:
STRENGTHS: ...
WEAKNESSES: ...
SUGGESTIONS: specific, actionable changes
SATISFACTION_SCORE: an integer from 1 to 10
IS_SATISFACTORY: YES if the post is ready to publish (score 8 or higher), otherwise NO
"""

EVALUATION_TURN = """Iteration {iteration}. Evaluate this version of the post.

TITLE: {title}
{topic_context}
CONTENT:
{content}
"""

REVISION_PROMPT = """You are an expert blog writer. Revise the post below using the editor's feedback.

TITLE: {title}
{topic_context}
ORIGINAL CONTENT:
{content}

EDITOR'S FEEDBACK:
{feedback}

Rules:
- Keep the overall structure and headings; improve the content as suggested.
- Keep every [ref:...] citation marker attached to the sentence it supports.
- Remove all hyperlinks; keep only their text.
- Return only the revised raw Markdown, without code fences or commentary.
"""

POLISH_PROMPT = """Below is a finished blog post in Markdown. Remove any meta-commentary
that is not part of the post itself, such as "Here is the revised post:",
notes to the editor, or closing remarks about the revision.

Do not change anything else: keep the wording, headings, formatting and
every [ref:...] citation marker exactly as they are.

Return only the cleaned Markdown.

POST:
{content}
"""


# =============================================================================
# REFINEMENT LOOP
# =============================================================================


class RefinementLoop:
    """Bounded evaluate/revise loop.

    Args:
        gemini: Gemini client (``generate_with_messages`` for the
            evaluator, ``generate`` for revisions).
        settings: Evaluator and revision temperatures.
        max_iterations: Iteration ceiling, at most
            ``MAX_REFINEMENT_ITERATIONS``.
    """

    def __init__(
        self,
        gemini: GeminiClient,
        settings: Settings,
        max_iterations: int = MAX_REFINEMENT_ITERATIONS,
    ) -> None:
        self.gemini = gemini
        self.settings = settings
        self.max_iterations = max(1, min(max_iterations, MAX_REFINEMENT_ITERATIONS))
        self.last_draft = ""
        self.logger = logging.getLogger("Refiner")

    async def run(
        self,
        draft: str,
        title: str,
        topic_context: str = "",
    ) -> RefinementOutcome:
        current = draft
        self.last_draft = draft
        history: List[Dict[str, str]] = []
        scores: List[float] = []
        previous_score = 0.0
        stalls = 0
        revisions = 0
        iteration = 0
        stop_reason = STOP_MAX_ITERATIONS
        context_block = f"\n{topic_context.strip()}\n" if topic_context.strip() else ""

        while iteration < self.max_iterations:
            iteration += 1
            self.logger.info("Refinement iteration %d/%d", iteration, self.max_iterations)

            history.append(
                {
                    "role": "user",
                    "content": EVALUATION_TURN.format(
                        iteration=iteration,
                        title=title,
                        topic_context=context_block,
                        content=current,
                    ),
                }
            )
            try:
                reply = await asyncio.wait_for(
                    self.gemini.generate_with_messages(
                        history,
                        system=EVALUATOR_SYSTEM,
                        temperature=self.settings.evaluator_temperature,
                    ),
                    timeout=self.settings.call_timeout,
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Evaluator timed out after %ss, keeping the last draft",
                    self.settings.call_timeout,
                )
                history.pop()
                stop_reason = STOP_TIMEOUT
                break
            except Exception as exc:
                self.logger.warning("Evaluator call failed: %s", exc)
                history.pop()
                stop_reason = STOP_EVALUATOR_ERROR
                break
            history.append({"role": "model", "content": reply})

            verdict = parse_evaluation(reply, previous_score)
            scores.append(verdict.score)
            self._log_verdict(iteration, verdict)

            if verdict.is_satisfactory:
                stop_reason = STOP_SATISFACTORY
                break

            stalls = stalls + 1 if verdict.score <= previous_score else 0
            previous_score = verdict.score
            if stalls >= STALL_LIMIT:
                stop_reason = STOP_STALLED
                break

            if iteration >= self.max_iterations:
                stop_reason = STOP_MAX_ITERATIONS
                break

            try:
                revised = await asyncio.wait_for(
                    self.gemini.generate(
                        REVISION_PROMPT.format(
                            title=title,
                            topic_context=context_block,
                            content=current,
                            feedback=verdict.feedback,
                        ),
                        temperature=self.settings.revision_temperature,
                    ),
                    timeout=self.settings.call_timeout,
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Revision timed out after %ss, keeping the last draft",
                    self.settings.call_timeout,
                )
                stop_reason = STOP_TIMEOUT
                break
            except Exception as exc:
                self.logger.warning("Revision call failed: %s", exc)
                stop_reason = STOP_REVISION_ERROR
                break

            revised = strip_code_fences(revised or "")
            if not revised:
                self.logger.warning("Revision was empty, keeping the last draft")
                stop_reason = STOP_EMPTY_REVISION
                break
            current = revised
            self.last_draft = revised
            revisions += 1

        self.logger.info(
            "Refinement finished: %s after %d iterations, %d revisions",
            stop_reason,
            iteration,
            revisions,
        )
        return RefinementOutcome(
            content=current,
            iterations=iteration,
            revisions=revisions,
            stop_reason=stop_reason,
            scores=scores,
            history=history,
        )

    def _log_verdict(self, iteration: int, verdict: EvaluationVerdict) -> None:
        if verdict.score_was_parsed:
            self.logger.info(
                "Iteration %d: score=%.1f (%s), satisfactory=%s",
                iteration,
                verdict.score,
                verdict.score_source,
                verdict.is_satisfactory,
            )
        else:
            self.logger.warning(
                "Iteration %d: no score in evaluator reply, using %.1f",
                iteration,
                verdict.score,
            )


# =============================================================================
# FINAL POLISH
# =============================================================================


class PolishAgent:
    """Strip residual meta-commentary from the refined draft."""

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Polisher")

    async def run(self, content: str) -> str:
        polished = await self.gemini.generate(
            POLISH_PROMPT.format(content=content),
            temperature=self.settings.polish_temperature,
        )
        polished = strip_code_fences(polished or "")
        if not polished:
            self.logger.warning("Polish returned no text")
        return polished
