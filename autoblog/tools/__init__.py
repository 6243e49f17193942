"""
External tool wrappers for the autoblog pipeline.

- GeminiClient: google-genai wrapper for text, JSON, grounded, image and
  multi-turn calls
- ArxivClient: arXiv paper search used by the research feed
- ResearchFeed: Hacker News, Reddit, arXiv and RSS trend digest
"""

from autoblog.tools.gemini_client import GeminiClient, GeneratedImage, GroundedResponse
from autoblog.tools.arxiv import ArxivClient, ArxivPaper
from autoblog.tools.feeds import FeedItem, ResearchFeed

__all__ = [
    "GeminiClient",
    "GeneratedImage",
    "GroundedResponse",
    "ArxivClient",
    "ArxivPaper",
    "FeedItem",
    "ResearchFeed",
]
