"""Workflow engine running the position check pipeline."""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from rank_monitor.modules.rank_tracker.pipeline import (
    Failed,
    Stage,
    StageOutcome,
    WorkflowDefinitionError,
    apply_stage,
    outcome_of,
    stage_name,
)
from rank_monitor.modules.rank_tracker.state import MonitoringState
from rank_monitor.modules.rank_tracker.tracker import PositionTracker

logger = logging.getLogger(__name__)

MAX_TRACKED_RUNS = 100


class PositionCheckWorkflow:
    """Fold the position check stages over a monitoring state.

    The chain is strictly linear: search, analyze_position,
    generate_recommendations, persist_results. Every stage runs; once an
    error is recorded the remaining stages echo it, so a run always ends
    with a state and never with an exception.

    Usage::

        workflow = PositionCheckWorkflow(PositionTracker(search, llm, store))
        state = await workflow.run(keyword="kitchens", domain="example.com")
        if state.error:
            ...
    """

    pipeline = "position_check"

    def __init__(
        self,
        tracker: Optional[PositionTracker] = None,
        stages: Optional[Sequence[Stage]] = None,
    ) -> None:
        if stages is None:
            if tracker is None:
                raise WorkflowDefinitionError("Either a tracker or an explicit stage list is required")
            stages = tracker.stages()
        if not stages:
            raise WorkflowDefinitionError("Workflow has no stages")
        self._stages: list[Stage] = list(stages)
        self._pipeline_status: OrderedDict[str, dict[str, Any]] = OrderedDict()
        logger.info("PositionCheckWorkflow initialized: %s", " -> ".join(self.stage_names))

    @property
    def stage_names(self) -> list[str]:
        return [stage_name(stage) for stage in self._stages]

    # ------------------------------------------------------------------
    # Logging helper
    # ------------------------------------------------------------------

    def _log_step(
        self,
        run_id: str,
        keyword: Optional[str],
        step: int,
        total: int,
        description: str,
        status: str = "running",
    ) -> None:
        """Log and record a pipeline step transition."""
        msg = f"[{self.pipeline}:{run_id}] Step {step}/{total}: {description} [{status}]"
        if status == "error":
            logger.error(msg)
        elif status == "skipped":
            logger.debug(msg)
        else:
            logger.info(msg)
        self._pipeline_status[run_id] = {
            "keyword": keyword,
            "current_step": step,
            "total_steps": total,
            "description": description,
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self._pipeline_status.move_to_end(run_id)
        while len(self._pipeline_status) > MAX_TRACKED_RUNS:
            self._pipeline_status.popitem(last=False)

    def get_pipeline_status(self) -> dict[str, Any]:
        """Last recorded step of the most recent runs, keyed by run id.

        Only the last ``MAX_TRACKED_RUNS`` runs are kept, least recently
        updated first.
        """
        return dict(self._pipeline_status)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run(
        self,
        keyword: Optional[str] = None,
        domain: Optional[str] = None,
        region: Optional[str] = None,
    ) -> MonitoringState:
        """Run one position check and return the final state."""
        outcome = await self.run_state(MonitoringState.from_input(keyword, domain, region))
        return outcome.state

    async def run_state(self, initial: MonitoringState) -> StageOutcome:
        """Run every stage in order starting from ``initial``.

        Raises:
            WorkflowDefinitionError: only when a stage breaks the pipeline
                contract; a recorded ``error`` is a normal outcome.
        """
        run_id = uuid.uuid4().hex[:12]
        total = len(self._stages)
        started = time.time()
        logger.info(
            "Starting position check %s for %r on %r", run_id, initial.keyword, initial.domain
        )

        outcome = outcome_of(initial)
        for step, stage in enumerate(self._stages, 1):
            name = stage_name(stage)
            if isinstance(outcome, Failed):
                self._log_step(run_id, initial.keyword, step, total, name, "skipped")
                outcome = await apply_stage(outcome, stage)
                continue

            self._log_step(run_id, initial.keyword, step, total, name)
            outcome = await apply_stage(outcome, stage)
            status = "error" if isinstance(outcome, Failed) else "done"
            self._log_step(run_id, initial.keyword, step, total, name, status)

        elapsed = time.time() - started
        if isinstance(outcome, Failed):
            logger.warning(
                "Position check for %r failed in %.1fs: %s", initial.keyword, elapsed, outcome.error
            )
        else:
            logger.info(
                "Position check for %r completed in %.1fs: position=%s",
                initial.keyword, elapsed, outcome.state.our_position,
            )
        return outcome

    async def run_many(self, requests: Iterable[Mapping[str, Any]]) -> list[MonitoringState]:
        """Run independent checks concurrently, preserving input order.

        Each request is a mapping with ``keyword``, ``domain`` and optional
        ``region`` keys.
        """
        requests = list(requests)
        logger.info("Running %d position checks concurrently", len(requests))
        return list(
            await asyncio.gather(
                *(
                    self.run(
                        keyword=request.get("keyword"),
                        domain=request.get("domain"),
                        region=request.get("region"),
                    )
                    for request in requests
                )
            )
        )
