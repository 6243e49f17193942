"""Per-run stage tracking on top of ``AgentLogger``.

The orchestrator opens a ``PipelineRunLogger`` per run, brackets every
stage with ``start_stage()`` / ``end_stage()`` and closes it with
``finish()``, whose summary is returned in the run result.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from autoblog.logging.agent_logger import AgentLogger, get_logger
from autoblog.logging.models import LogComponent, StageRecord
from autoblog.utils import utc_now

_STATUS_MARKERS = {"success": "[OK]", "degraded": "[WARN]"}


class PipelineRunLogger:
    """Stage timings and statuses for one run.

    Parameters:
        run_id: Identifier of the run; set as logger context.
        logger: Structured logger; defaults to the global one.
    """

    def __init__(self, run_id: str, logger: Optional[AgentLogger] = None) -> None:
        self.run_id = run_id
        self.logger = logger or get_logger()
        self.logger.set_context(run_id=run_id)
        self.start_time = utc_now()
        self.stages: List[StageRecord] = []

    @property
    def current(self) -> Optional[StageRecord]:
        return self.stages[-1] if self.stages else None

    async def start_stage(self, stage: str) -> None:
        self.stages.append(StageRecord(stage=stage, start=utc_now()))
        await self.logger.info(LogComponent.ORCHESTRATOR, f"Stage started: {stage}")

    async def end_stage(
        self,
        status: str = "success",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Close the most recent stage as ``success``, ``degraded`` or ``failed``."""
        record = self.current
        if record is None:
            return
        record.close(utc_now(), status, data)
        await self.logger.info(
            LogComponent.ORCHESTRATOR,
            f"Stage completed: {record.stage} ({status})",
            data=data,
            duration_ms=record.duration_ms,
        )

    async def finish(self, status: str) -> Dict[str, Any]:
        """Log the run outcome, clear the logger context and return the summary."""
        end_time = utc_now()
        total_ms = int((end_time - self.start_time).total_seconds() * 1000)
        summary: Dict[str, Any] = {
            "run_id": self.run_id,
            "status": status,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "total_duration_ms": total_ms,
            "stage_counts": dict(Counter(record.status for record in self.stages)),
            "stages": [record.to_dict() for record in self.stages],
        }
        await self.logger.info(
            LogComponent.ORCHESTRATOR,
            f"Pipeline run finished: {status}",
            data=summary,
            duration_ms=total_ms,
        )
        self.logger.clear_context()
        return summary

    def get_summary_text(self) -> str:
        lines = [f"Pipeline run {self.run_id}"]
        for record in self.stages:
            marker = _STATUS_MARKERS.get(record.status, "[FAIL]")
            lines.append(f"  {marker} {record.stage}: {record.duration_ms or 0}ms")
        total = sum(record.duration_ms or 0 for record in self.stages)
        lines.append(f"  Total: {total}ms")
        return "\n".join(lines)
