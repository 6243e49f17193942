"""Structured run log: JSON-lines files plus an optional Supabase mirror.

Every entry goes to ``<log_dir>/agent.log``; errors are duplicated into
``errors.log`` and debug chatter into ``debug.log`` so a failed run can be
read without the noise. When a database is attached, entries at or above
``min_level`` are also inserted into ``pipeline_logs`` in background
tasks; ``flush()`` waits for them before shutdown.

Global helpers:
    - ``init_logger()``  -- create and register the process-wide logger
    - ``get_logger()``   -- return it (raises if not initialised)
"""

import asyncio
import sys
from collections import deque
from functools import partialmethod
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set

import aiofiles

from autoblog.logging.models import LogComponent, LogEntry, LogLevel
from autoblog.utils import utc_now

RECENT_BUFFER_SIZE = 1000


class AgentLogger:
    """Run logger shared by the orchestrator and every stage.

    Parameters:
        log_dir: Directory for the log files (created if missing).
        database: Object with an async ``save_pipeline_log(row)``,
            normally ``SupabaseDB``.
        min_level: Lowest level mirrored to the database.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        database: Any = None,
        min_level: LogLevel = LogLevel.INFO,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.database = database
        self.min_level = min_level

        self._run_id: Optional[str] = None
        self._slug: Optional[str] = None
        self._recent: Deque[LogEntry] = deque(maxlen=RECENT_BUFFER_SIZE)
        self._mirror_tasks: Set["asyncio.Task[None]"] = set()

    def set_context(self, run_id: Optional[str] = None, slug: Optional[str] = None) -> None:
        """Attach run id and/or post slug to subsequent entries."""
        if run_id is not None:
            self._run_id = run_id
        if slug is not None:
            self._slug = slug

    def clear_context(self) -> None:
        self._run_id = None
        self._slug = None

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            run_id=self._run_id,
            slug=self._slug,
            data=data or {},
            duration_ms=duration_ms,
        )
        if error is not None:
            entry.attach_error(error)

        self._recent.append(entry)
        await self._append_lines(entry)

        if self.database is not None and level.value >= self.min_level.value:
            task = asyncio.create_task(self._mirror(entry))
            self._mirror_tasks.add(task)
            task.add_done_callback(self._mirror_tasks.discard)

    debug = partialmethod(log, LogLevel.DEBUG)
    info = partialmethod(log, LogLevel.INFO)
    warning = partialmethod(log, LogLevel.WARNING)
    error = partialmethod(log, LogLevel.ERROR)
    critical = partialmethod(log, LogLevel.CRITICAL)

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        run_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Newest ``limit`` buffered entries matching every given filter."""
        matches = [
            entry
            for entry in self._recent
            if (level is None or entry.level == level)
            and (component is None or entry.component == component)
            and (run_id is None or entry.run_id == run_id)
        ]
        return matches[-limit:]

    async def flush(self) -> None:
        """Wait for pending database mirror writes."""
        if self._mirror_tasks:
            await asyncio.gather(*self._mirror_tasks, return_exceptions=True)
            self._mirror_tasks.clear()

    def _files_for(self, entry: LogEntry) -> List[Path]:
        files = [self.log_dir / "agent.log"]
        if entry.level.value >= LogLevel.ERROR.value:
            files.append(self.log_dir / "errors.log")
        elif entry.level is LogLevel.DEBUG:
            files.append(self.log_dir / "debug.log")
        return files

    async def _append_lines(self, entry: LogEntry) -> None:
        line = entry.to_json() + "\n"
        for path in self._files_for(entry):
            async with aiofiles.open(path, "a", encoding="utf-8") as handle:
                await handle.write(line)

    async def _mirror(self, entry: LogEntry) -> None:
        try:
            await self.database.save_pipeline_log(entry.to_dict())
        except Exception as exc:
            # The stdlib logger may itself be mirrored; stderr cannot recurse.
            print(f"[LOGGING] Failed to write to Supabase: {exc}", file=sys.stderr)


# ======================================================================
# PROCESS-WIDE LOGGER
# ======================================================================

_logger: Optional[AgentLogger] = None


def init_logger(
    log_dir: str = "logs",
    database: Any = None,
    min_level: LogLevel = LogLevel.INFO,
) -> AgentLogger:
    """Create the process-wide ``AgentLogger`` and return it."""
    global _logger
    _logger = AgentLogger(log_dir=log_dir, database=database, min_level=min_level)
    return _logger


def get_logger() -> AgentLogger:
    """Return the process-wide ``AgentLogger``.

    Raises:
        RuntimeError: If ``init_logger()`` has not been called yet.
    """
    if _logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _logger
