"""Run-log records: LogLevel, LogComponent, LogEntry and StageRecord."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Severity of a run-log entry, numerically equal to the stdlib levels."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @property
    def name_str(self) -> str:
        return self.name.lower()

    @classmethod
    def from_name(cls, name: str, default: "LogLevel" = None) -> "LogLevel":
        """Parse ``"info"`` / ``"WARN"`` style names from settings."""
        key = (name or "").strip().upper()
        if key == "WARN":
            key = "WARNING"
        try:
            return cls[key]
        except KeyError:
            return default if default is not None else cls.INFO


class LogComponent(Enum):
    """Which part of the pipeline wrote an entry."""

    # Stages, in run order
    RESEARCH_FEED = "research_feed"
    TOPIC_SELECTOR = "topic_selector"
    OUTLINER = "outliner"
    RESEARCHER = "researcher"
    WRITER = "writer"
    REFINER = "refiner"
    METADATA = "metadata"
    VALIDATOR = "validator"
    ILLUSTRATOR = "illustrator"
    PUBLISHER = "publisher"
    TOOL_POST = "tool_post"

    ORCHESTRATOR = "orchestrator"
    DATABASE = "database"
    STARTUP = "startup"
    CONFIG = "config"


_LEVEL_TAGS = {
    LogLevel.DEBUG: "[DEBUG]",
    LogLevel.INFO: "[INFO]",
    LogLevel.WARNING: "[WARN]",
    LogLevel.ERROR: "[ERROR]",
    LogLevel.CRITICAL: "[CRIT]",
}


@dataclass
class LogEntry:
    """One event of a generation run.

    ``run_id`` and ``slug`` tie the entry to a run and, once the title is
    known, to the post it produced. ``to_dict()`` is the row shape of the
    ``pipeline_logs`` table and of each line in the JSON log files.
    """

    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str
    run_id: Optional[str] = None
    slug: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None

    def attach_error(self, error: BaseException) -> None:
        self.error_type = type(error).__name__
        self.error_message = str(error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "run_id": self.run_id,
            "slug": self.slug,
            "data": self.data,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        # default=str keeps dataclass payloads (e.g. datetimes) loggable
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """``[WARN] [12:00:00] [refiner] message (1200ms)``"""
        text = "{} [{}] [{}] {}".format(
            _LEVEL_TAGS.get(self.level, "[?]"),
            self.timestamp.strftime("%H:%M:%S"),
            self.component.value,
            self.message,
        )
        if self.duration_ms:
            text += f" ({self.duration_ms}ms)"
        return text


@dataclass
class StageRecord:
    """Timing and outcome of one orchestrator stage."""

    stage: str
    start: datetime
    end: Optional[datetime] = None
    status: str = "running"
    data: Optional[Dict[str, Any]] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end is None:
            return None
        return int((self.end - self.start).total_seconds() * 1000)

    def close(self, end: datetime, status: str, data: Optional[Dict[str, Any]]) -> None:
        self.end = end
        self.status = status
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "data": self.data,
        }
