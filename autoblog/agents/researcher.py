"""
Grounded Researcher Agent.

Turns every outline point into one Google Search grounded call and
records the answer, its web sources and the queries the model ran.

Points are researched one at a time, in outline order, with exactly one
attempt each, bounded by ``Settings.call_timeout``. A failed or timed-out
point becomes an error finding (``grounded_text`` starting with
``"Error fetching research:"``) and the stage carries on.
"""

import asyncio
import logging
from typing import List

from autoblog.config import Settings
from autoblog.models import ResearchFinding
from autoblog.parsers import extract_outline_points
from autoblog.tools.gemini_client import GeminiClient

RESEARCH_PROMPT = """You are researching a technology blog post titled "{topic}".

Find current, factual and specific information for this section of the outline:
"{point}"

Include concrete facts, figures, dates, named products or projects, and
real-world examples where they exist. Report what the sources say; do not
speculate. Answer in a few compact paragraphs of plain prose.
"""


class ResearcherAgent:
    """Research each outline point with search grounding.

    Args:
        gemini: Gemini client (``generate_grounded`` is used).
        settings: ``research_max_points`` caps the number of points;
            ``None`` researches them all. ``call_timeout`` bounds each
            grounded call.

    ``completed`` holds the findings of the current run as they arrive,
    so a caller that cancels ``run()`` still has the finished points.
    """

    def __init__(self, gemini: GeminiClient, settings: Settings) -> None:
        self.gemini = gemini
        self.settings = settings
        self.logger = logging.getLogger("Researcher")
        self.completed: List[ResearchFinding] = []

    async def run(self, outline: str, topic: str) -> List[ResearchFinding]:
        """Return one finding per outline point, in outline order."""
        points = extract_outline_points(outline)
        max_points = self.settings.research_max_points
        if max_points is not None and len(points) > max_points:
            self.logger.info(
                "Limiting research to %d of %d points", max_points, len(points)
            )
            points = points[:max_points]

        findings: List[ResearchFinding] = []
        self.completed = findings
        for index, point in enumerate(points, start=1):
            self.logger.info("Researching point %d/%d: %s", index, len(points), point)
            findings.append(await self.research_point(point, topic))

        failed = sum(1 for finding in findings if finding.is_error)
        self.logger.info(
            "Research complete: %d points, %d failed", len(findings), failed
        )
        return findings

    async def research_point(self, point: str, topic: str) -> ResearchFinding:
        """Research a single point; failures become an error finding."""
        timeout = self.settings.call_timeout
        try:
            response = await asyncio.wait_for(
                self.gemini.generate_grounded(
                    RESEARCH_PROMPT.format(topic=topic, point=point),
                    temperature=self.settings.research_temperature,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning("Research timed out for '%s' after %ss", point, timeout)
            return ResearchFinding.from_error(
                point, TimeoutError(f"no response within {timeout}s")
            )
        except Exception as exc:
            self.logger.warning("Research failed for '%s': %s", point, exc)
            return ResearchFinding.from_error(point, exc)

        if not response.sources:
            self.logger.debug("No grounding metadata for '%s'", point)
        return ResearchFinding(
            point=point,
            grounded_text=response.text.strip(),
            sources=response.sources,
            search_queries=response.search_queries,
            rendered_content=response.rendered_content,
        )
