"""Structured run logging for the autoblog pipeline."""
from autoblog.logging.models import LogLevel, LogComponent, LogEntry, StageRecord
from autoblog.logging.agent_logger import AgentLogger, init_logger, get_logger
from autoblog.logging.pipeline_run_logger import PipelineRunLogger

__all__ = [
    "LogLevel", "LogComponent", "LogEntry", "StageRecord",
    "AgentLogger", "init_logger", "get_logger",
    "PipelineRunLogger",
]
