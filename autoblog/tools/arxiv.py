"""
Async arXiv client for the research feed.

The ``arxiv`` library is synchronous, so searches run in a worker thread
via ``asyncio.to_thread``. Only the newest AI/ML papers are needed: they
give the topic selector a research angle alongside news and community
threads.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import arxiv

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ["cs.AI", "cs.LG", "cs.CL"]


@dataclass
class ArxivPaper:
    """One arXiv paper, trimmed to what the feed prints."""

    id: str
    title: str
    summary: str
    published: str
    url: str
    categories: List[str] = field(default_factory=list)


class ArxivClient:
    """Async arXiv search restricted to a set of categories.

    Args:
        categories: arXiv category filters. Defaults to
            ``["cs.AI", "cs.LG", "cs.CL"]``.

    Usage::

        papers = await ArxivClient().get_recent_papers(max_results=5)
    """

    def __init__(self, categories: Optional[List[str]] = None) -> None:
        self.categories: List[str] = categories or list(DEFAULT_CATEGORIES)

    async def search_papers(
        self,
        query: str,
        max_results: int = 5,
    ) -> List[ArxivPaper]:
        """Newest papers matching *query* within the configured categories."""
        category_filter = " OR ".join(f"cat:{cat}" for cat in self.categories)
        full_query = f"({query}) AND ({category_filter})"

        def _search() -> List[ArxivPaper]:
            client = arxiv.Client()
            search = arxiv.Search(
                query=full_query,
                max_results=max_results,
                sort_by=arxiv.SortCriterion.SubmittedDate,
                sort_order=arxiv.SortOrder.Descending,
            )
            return [self._to_paper(result) for result in client.results(search)]

        papers = await asyncio.to_thread(_search)
        logger.info("arXiv search: query=%r, results=%d", query, len(papers))
        return papers

    async def get_recent_papers(self, max_results: int = 5) -> List[ArxivPaper]:
        """Most recent papers across the configured categories."""
        return await self.search_papers(
            query="artificial intelligence OR machine learning OR large language model",
            max_results=max_results,
        )

    @staticmethod
    def _to_paper(result: Any) -> ArxivPaper:
        entry_id = result.entry_id
        return ArxivPaper(
            id=entry_id.split("/abs/")[-1] if "/abs/" in entry_id else entry_id,
            title=" ".join(result.title.split()),
            summary=" ".join(result.summary.split()),
            published=result.published.date().isoformat() if result.published else "",
            url=entry_id,
            categories=list(result.categories or []),
        )
