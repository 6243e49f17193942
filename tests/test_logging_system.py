"""Tests for the logging package: LogLevel, LogEntry, AgentLogger and PipelineRunLogger."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from autoblog.logging import (
    AgentLogger,
    LogComponent,
    LogEntry,
    LogLevel,
    PipelineRunLogger,
    get_logger,
    init_logger,
)


# ---------------------------------------------------------------------------
# Fixed timestamp used across all tests for determinism
# ---------------------------------------------------------------------------
FIXED_TS = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

EXPECTED_KEYS = {
    "timestamp",
    "level",
    "level_name",
    "component",
    "message",
    "run_id",
    "slug",
    "data",
    "error_type",
    "error_message",
    "duration_ms",
}


def _read_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# ===================================================================
# LogLevel tests
# ===================================================================


class TestLogLevel:
    """Verify LogLevel values and name_str property."""

    def test_numeric_values_match_stdlib(self) -> None:
        assert [level.value for level in LogLevel] == [10, 20, 30, 40, 50]

    def test_name_str_returns_lowercase(self) -> None:
        assert LogLevel.WARNING.name_str == "warning"

    @pytest.mark.parametrize(
        "name, expected",
        [("info", LogLevel.INFO), ("WARN", LogLevel.WARNING), (" error ", LogLevel.ERROR), ("loud", LogLevel.INFO)],
    )
    def test_from_name(self, name, expected) -> None:
        assert LogLevel.from_name(name) is expected


# ===================================================================
# LogEntry tests
# ===================================================================


class TestLogEntry:
    """Verify LogEntry defaults and serialization methods."""

    @staticmethod
    def _make_entry(**overrides) -> LogEntry:
        defaults = dict(
            timestamp=FIXED_TS,
            level=LogLevel.INFO,
            component=LogComponent.WRITER,
            message="Test log message",
        )
        defaults.update(overrides)
        return LogEntry(**defaults)

    def test_defaults(self) -> None:
        entry = self._make_entry()
        assert entry.run_id is None
        assert entry.slug is None
        assert entry.data == {}

    def test_data_default_is_independent_per_instance(self) -> None:
        entry_a = self._make_entry()
        entry_b = self._make_entry()
        entry_a.data["key"] = "value"
        assert "key" not in entry_b.data

    def test_to_dict_keys(self) -> None:
        assert set(self._make_entry().to_dict()) == EXPECTED_KEYS

    def test_to_json_matches_to_dict(self) -> None:
        entry = self._make_entry(
            level=LogLevel.ERROR,
            component=LogComponent.ORCHESTRATOR,
            run_id="run-x",
            slug="edge-ai",
            data={"score": 9.5},
        )
        parsed = json.loads(entry.to_json())
        assert parsed == entry.to_dict()
        assert parsed["level"] == 40
        assert parsed["level_name"] == "error"
        assert parsed["component"] == "orchestrator"

    def test_to_readable_full_format(self) -> None:
        entry = self._make_entry(
            level=LogLevel.WARNING,
            component=LogComponent.REFINER,
            message="Slow evaluator call",
            duration_ms=1200,
        )
        assert entry.to_readable() == (
            "[WARN] [12:00:00] [refiner] Slow evaluator call (1200ms)"
        )

    def test_to_readable_without_duration(self) -> None:
        assert "ms)" not in self._make_entry().to_readable()


# ===================================================================
# AgentLogger tests
# ===================================================================


class TestAgentLogger:
    """File output, context and the database mirror."""

    @pytest.mark.asyncio
    async def test_writes_json_lines(self, agent_logger) -> None:
        agent_logger.set_context(run_id="run-1", slug="edge-ai")
        await agent_logger.info(LogComponent.WRITER, "Draft generated", data={"words": 900})
        await agent_logger.error(
            LogComponent.PUBLISHER, "Insert failed", error=RuntimeError("boom")
        )
        await agent_logger.debug(LogComponent.RESEARCHER, "Point 1")

        main = _read_lines(agent_logger.log_dir / "agent.log")
        assert [row["message"] for row in main] == ["Draft generated", "Insert failed", "Point 1"]
        assert main[0]["run_id"] == "run-1"
        assert main[0]["slug"] == "edge-ai"
        assert main[0]["data"] == {"words": 900}

        errors = _read_lines(agent_logger.log_dir / "errors.log")
        assert len(errors) == 1
        assert errors[0]["error_type"] == "RuntimeError"
        assert errors[0]["error_message"] == "boom"
        assert len(_read_lines(agent_logger.log_dir / "debug.log")) == 1

    @pytest.mark.asyncio
    async def test_get_recent_filters(self, agent_logger) -> None:
        await agent_logger.info(LogComponent.WRITER, "a")
        await agent_logger.warning(LogComponent.REFINER, "b")
        agent_logger.set_context(run_id="run-2")
        await agent_logger.warning(LogComponent.REFINER, "c")

        assert [e.message for e in agent_logger.get_recent(level=LogLevel.WARNING)] == ["b", "c"]
        assert [e.message for e in agent_logger.get_recent(component=LogComponent.WRITER)] == ["a"]
        assert [e.message for e in agent_logger.get_recent(run_id="run-2")] == ["c"]
        assert len(agent_logger.get_recent(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_database_mirror_respects_min_level(self, tmp_path) -> None:
        database = AsyncMock()
        logger = AgentLogger(log_dir=str(tmp_path), database=database, min_level=LogLevel.WARNING)

        await logger.info(LogComponent.WRITER, "not mirrored")
        await logger.warning(LogComponent.WRITER, "mirrored")
        await logger.flush()

        database.save_pipeline_log.assert_awaited_once()
        row = database.save_pipeline_log.await_args.args[0]
        assert row["message"] == "mirrored"

    @pytest.mark.asyncio
    async def test_database_failure_does_not_raise(self, tmp_path, capsys) -> None:
        database = AsyncMock()
        database.save_pipeline_log.side_effect = RuntimeError("offline")
        logger = AgentLogger(log_dir=str(tmp_path), database=database)

        await logger.error(LogComponent.DATABASE, "x")
        await logger.flush()

        assert "Failed to write to Supabase" in capsys.readouterr().err

    def test_clear_context(self, agent_logger) -> None:
        agent_logger.set_context(run_id="r", slug="s")
        agent_logger.clear_context()
        assert agent_logger._run_id is None
        assert agent_logger._slug is None

    def test_singleton(self, tmp_path) -> None:
        logger = init_logger(log_dir=str(tmp_path))
        assert get_logger() is logger


# ===================================================================
# PipelineRunLogger tests
# ===================================================================


class TestPipelineRunLogger:
    """Per-stage timing and the run summary."""

    @pytest.mark.asyncio
    async def test_summary(self, agent_logger) -> None:
        run = PipelineRunLogger("run-9", agent_logger)
        await run.start_stage("research")
        await run.end_stage("success", {"points": 4})
        await run.start_stage("polish")
        await run.end_stage("degraded")

        summary = await run.finish("published")

        assert summary["run_id"] == "run-9"
        assert summary["status"] == "published"
        assert [s["stage"] for s in summary["stages"]] == ["research", "polish"]
        assert summary["stages"][0]["data"] == {"points": 4}
        assert summary["stage_counts"] == {"success": 1, "degraded": 1}
        json.dumps(summary)
        assert agent_logger._run_id is None

        text = run.get_summary_text()
        assert "[OK] research" in text
        assert "[WARN] polish" in text

    @pytest.mark.asyncio
    async def test_entries_carry_run_id(self, agent_logger) -> None:
        run = PipelineRunLogger("run-10", agent_logger)
        await run.start_stage("persist")
        assert agent_logger.get_recent(run_id="run-10")

    @pytest.mark.asyncio
    async def test_end_without_start_is_ignored(self, agent_logger) -> None:
        run = PipelineRunLogger("run-11", agent_logger)
        await run.end_stage("failed")
        assert run.stages == []
