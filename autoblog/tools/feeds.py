"""
Research feed: current tech-news and community signals as one text blob.

Sources (each best effort; a failing source is logged and skipped):
    - Hacker News top stories (Firebase API)
    - Reddit weekly top posts from a few technology subreddits
    - Newest arXiv AI/ML papers
    - RSS feeds of major tech publications (parsed with ``feedparser``,
      HTML summaries flattened with BeautifulSoup)

Sources are fetched concurrently; the feed sits outside the sequential
generation stages. ``collect()`` raises ``ResearchFeedError`` when no source
yields anything; ``fetch_context()`` then returns an evergreen fallback
text so topic selection can still run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import feedparser
import httpx
from bs4 import BeautifulSoup

from autoblog.exceptions import ResearchFeedError
from autoblog.tools.arxiv import ArxivClient
from autoblog.utils import with_retry

logger = logging.getLogger("ResearchFeed")

HN_TOP_STORIES_URL = "https://hacker-news.firebaseio.com/v0/topstories.json"
HN_ITEM_URL = "https://hacker-news.firebaseio.com/v0/item/{item_id}.json"
REDDIT_TOP_URL = "https://www.reddit.com/r/{subreddit}/top.json"

SUBREDDITS = ["programming", "technology", "webdev", "MachineLearning", "datascience"]

RSS_FEEDS: Dict[str, str] = {
    "Ars Technica": "https://feeds.arstechnica.com/arstechnica/index",
    "The Verge": "https://www.theverge.com/rss/index.xml",
    "Wired": "https://www.wired.com/feed/rss",
    "TechCrunch": "https://techcrunch.com/feed/",
}

USER_AGENT = "autoblog-research-feed/1.0 (+https://github.com/autoblog)"

FALLBACK_CONTEXT = """No live trend data could be fetched. Choose from evergreen areas
that stay relevant to developers and technology professionals:
- Software architecture and design patterns
- Cloud infrastructure, cost optimisation and platform engineering
- Applied AI and machine learning in production
- Developer tooling, testing and productivity
- Security practices for modern applications
- Data engineering and analytics
- Web performance and frontend frameworks"""


# =========================================================================
# Feed items
# =========================================================================


@dataclass
class FeedItem:
    """One news item, thread or paper from a source."""

    source: str
    title: str
    url: str = ""
    summary: str = ""
    published: str = ""
    score: Optional[int] = None
    comments: Optional[int] = None

    def render(self) -> str:
        lines = [f"Source: {self.source}", f"Title: {self.title}"]
        if self.published:
            lines.append(f"Date: {self.published}")
        if self.url:
            lines.append(f"Link: {self.url}")
        if self.score is not None or self.comments is not None:
            lines.append(
                f"Engagement: {self.score or 0} points, {self.comments or 0} comments"
            )
        if self.summary:
            lines.append(f"Content: {self.summary}")
        lines.append("------")
        return "\n".join(lines)


def html_to_text(markup: str, limit: int = 500) -> str:
    """Flatten an HTML snippet to at most *limit* characters of text."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text(" ", strip=True)
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


# =========================================================================
# Feed
# =========================================================================


class ResearchFeed:
    """Aggregate trend signals into the text the topic selector reads.

    Args:
        http_client: Shared ``httpx.AsyncClient``. When ``None`` a client
            is opened for each :meth:`fetch_context` call.
        arxiv_client: arXiv client; ``None`` disables the arXiv source.
        hn_limit: Number of Hacker News top stories.
        reddit_limit: Posts per subreddit.
        rss_limit: Items per RSS feed.
        arxiv_limit: Number of arXiv papers.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        arxiv_client: Optional[ArxivClient] = None,
        hn_limit: int = 5,
        reddit_limit: int = 3,
        rss_limit: int = 5,
        arxiv_limit: int = 5,
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self.arxiv = arxiv_client
        self.hn_limit = hn_limit
        self.reddit_limit = reddit_limit
        self.rss_limit = rss_limit
        self.arxiv_limit = arxiv_limit
        self.timeout = timeout

    async def fetch_context(self) -> str:
        """Return the aggregated context text, or the fallback text."""
        try:
            if self._http is not None:
                return await self.collect(self._http)
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                return await self.collect(client)
        except ResearchFeedError as exc:
            logger.warning("[FEED] %s, using evergreen fallback", exc)
            return FALLBACK_CONTEXT

    async def collect(self, client: httpx.AsyncClient) -> str:
        """Fetch every source concurrently and render one section per source.

        Raises:
            ResearchFeedError: When no source returned any item.
        """
        sources = {
            "Hacker News": self._hacker_news(client),
            "Reddit": self._reddit(client),
            "arXiv": self._arxiv(),
            "Tech news": self._rss(client),
        }
        results = await asyncio.gather(*sources.values(), return_exceptions=True)

        sections: List[str] = []
        failures: List[str] = []
        for name, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.warning("[FEED] Source '%s' failed: %s", name, result)
                failures.append(f"{name}: {result}")
                continue
            logger.info("[FEED] Source '%s' returned %d items", name, len(result))
            if result:
                body = "\n".join(item.render() for item in result)
                sections.append(f"=== {name} ===\n{body}")

        if not sections:
            detail = "; ".join(failures) or "every source was empty"
            raise ResearchFeedError(f"No trend data from any source ({detail})")
        return "\n\n".join(sections)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=2,
        base_delay=1.0,
        retryable_exceptions=(httpx.TransportError, httpx.HTTPStatusError),
    )
    async def _get(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _hacker_news(self, client: httpx.AsyncClient) -> List[FeedItem]:
        ids = (await self._get(client, HN_TOP_STORIES_URL)).json()[: self.hn_limit]
        responses = await asyncio.gather(
            *(self._get(client, HN_ITEM_URL.format(item_id=i)) for i in ids),
            return_exceptions=True,
        )
        items: List[FeedItem] = []
        for item_id, response in zip(ids, responses):
            if isinstance(response, BaseException):
                logger.debug("[FEED] HN item %s failed: %s", item_id, response)
                continue
            story = response.json() or {}
            if not story.get("title"):
                continue
            items.append(
                FeedItem(
                    source="Hacker News",
                    title=story["title"],
                    url=story.get("url")
                    or f"https://news.ycombinator.com/item?id={item_id}",
                    summary=html_to_text(story.get("text", ""), limit=300),
                    score=story.get("score"),
                    comments=story.get("descendants"),
                )
            )
        return items

    async def _reddit(self, client: httpx.AsyncClient) -> List[FeedItem]:
        items: List[FeedItem] = []
        for subreddit in SUBREDDITS:
            try:
                response = await self._get(
                    client,
                    REDDIT_TOP_URL.format(subreddit=subreddit),
                    params={"limit": self.reddit_limit, "t": "week"},
                )
            except Exception as exc:
                logger.warning("[FEED] r/%s failed: %s", subreddit, exc)
                continue
            for child in response.json().get("data", {}).get("children", []):
                post = child.get("data", {})
                if not post.get("title"):
                    continue
                items.append(
                    FeedItem(
                        source=f"Reddit r/{subreddit}",
                        title=post["title"],
                        url=f"https://www.reddit.com{post.get('permalink', '')}",
                        summary=" ".join((post.get("selftext") or "").split())[:300],
                        score=post.get("score"),
                        comments=post.get("num_comments"),
                    )
                )
        return items

    async def _arxiv(self) -> List[FeedItem]:
        if self.arxiv is None:
            return []
        papers = await self.arxiv.get_recent_papers(max_results=self.arxiv_limit)
        return [
            FeedItem(
                source="arXiv",
                title=paper.title,
                url=paper.url,
                summary=paper.summary[:400],
                published=paper.published,
            )
            for paper in papers
        ]

    async def _rss(self, client: httpx.AsyncClient) -> List[FeedItem]:
        items: List[FeedItem] = []
        for name, url in RSS_FEEDS.items():
            try:
                response = await self._get(client, url)
            except Exception as exc:
                logger.warning("[FEED] RSS '%s' failed: %s", name, exc)
                continue
            parsed = feedparser.parse(response.text)
            for entry in parsed.entries[: self.rss_limit]:
                title = entry.get("title")
                if not title:
                    continue
                items.append(
                    FeedItem(
                        source=name,
                        title=title,
                        url=entry.get("link", ""),
                        summary=html_to_text(
                            entry.get("summary") or entry.get("description") or ""
                        ),
                        published=entry.get("published", ""),
                    )
                )
        return items
