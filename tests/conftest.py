"""Shared fixtures for the autoblog test suite."""

import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from autoblog.config import Settings
from autoblog.tools.gemini_client import GeneratedImage, GroundedResponse


# ---------------------------------------------------------------------------
# Ensure we don't hit real APIs during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear all API keys and overrides so tests never hit real services."""
    keys = [
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
        "GEMINI_TEXT_MODEL",
        "GEMINI_IMAGE_MODEL",
        "RESEARCH_MAX_POINTS",
        "LLM_CALL_TIMEOUT",
        "SUPABASE_IMAGE_BUCKET",
        "LOG_LEVEL",
        "LOG_DIR",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    """Default settings, independent of config/settings.yaml."""
    return Settings()


# ---------------------------------------------------------------------------
# Scripted Gemini double
# ---------------------------------------------------------------------------
class FakeGemini:
    """Stand-in for ``GeminiClient`` with one scripted queue per call kind.

    Each call pops the next item of its queue. An exception instance in a
    queue is raised instead of returned. An exhausted queue returns an
    empty result. Every call is recorded in ``calls`` as ``(kind, payload)``.

    ``stall(kind, call_number)`` makes that call of *kind* sleep past any
    short timeout before answering. A stalled call that gets cancelled
    leaves its queue item for the next call.
    """

    def __init__(
        self,
        text: Optional[List[Any]] = None,
        structured: Optional[List[Any]] = None,
        grounded: Optional[List[Any]] = None,
        images: Optional[List[Any]] = None,
        chat: Optional[List[Any]] = None,
    ) -> None:
        self.text = list(text or [])
        self.structured = list(structured or [])
        self.grounded = list(grounded or [])
        self.images = list(images or [])
        self.chat = list(chat or [])
        self.calls: List[Tuple[str, Any]] = []
        self.usage_stats: Dict[str, Any] = {"calls": 0}
        self.stalls: Dict[str, Set[int]] = {}

    def _next(self, queue: List[Any], default: Any) -> Any:
        self.usage_stats["calls"] += 1
        if not queue:
            return default
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_of(self, kind: str) -> List[Any]:
        return [payload for name, payload in self.calls if name == kind]

    def stall(self, kind: str, call_number: int) -> None:
        self.stalls.setdefault(kind, set()).add(call_number)

    async def _maybe_stall(self, kind: str) -> None:
        if len(self.calls_of(kind)) in self.stalls.get(kind, ()):
            await asyncio.sleep(5)

    async def generate(self, prompt, system=None, temperature=0.7, max_output_tokens=None):
        self.calls.append(("generate", prompt))
        await self._maybe_stall("generate")
        return self._next(self.text, "")

    async def generate_structured(self, prompt, schema, system=None, temperature=0.3):
        self.calls.append(("structured", prompt))
        return self._next(self.structured, "")

    async def generate_grounded(self, prompt, temperature=0.2):
        self.calls.append(("grounded", prompt))
        await self._maybe_stall("grounded")
        return self._next(self.grounded, GroundedResponse(text=""))

    async def generate_image(self, prompt):
        self.calls.append(("image", prompt))
        return self._next(self.images, GeneratedImage(data=None))

    async def generate_with_messages(self, messages, system=None, temperature=0.7):
        # Copy: the caller keeps appending to the same history list
        self.calls.append(("chat", [dict(message) for message in messages]))
        await self._maybe_stall("chat")
        return self._next(self.chat, "")


@pytest.fixture
def fake_gemini_factory():
    """Build a ``FakeGemini`` with scripted responses."""
    return FakeGemini


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client.

    ``table(...)`` returns one chainable mock; set ``execute_result`` on
    it (or replace ``execute``) to control what queries return.
    """
    client = MagicMock()
    table_mock = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "order", "limit"):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute = AsyncMock(return_value=MagicMock(data=[], count=0))
    client.table.return_value = table_mock

    bucket = MagicMock()
    bucket.upload = AsyncMock(return_value=MagicMock())
    bucket.get_public_url = AsyncMock(
        return_value="https://project.supabase.co/storage/v1/object/public/blogs/x.png"
    )
    client.storage.from_.return_value = bucket
    return client


# ---------------------------------------------------------------------------
# Structured logger
# ---------------------------------------------------------------------------
@pytest.fixture
def agent_logger(tmp_path):
    """An ``AgentLogger`` writing into a temporary directory."""
    from autoblog.logging import AgentLogger

    return AgentLogger(log_dir=str(tmp_path / "logs"))
