# src/state/run_state.py — v1
"""Run State Store: persisted record of each run and its stage outputs.

One ``runs`` document per run id; stage payloads live in ``stage_outputs``
under ``<run_id>__<stage>`` so the run document stays small. Every write
after initialization is a merge patch scoped to a single run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from stagegate.core.errors import STATE_NOT_FOUND, PipelineError
from stagegate.core.models import (
    ProviderInfo,
    QualityContext,
    RunState,
    RunStatus,
    StageErrorInfo,
    StageOutput,
    StageStatus,
)
from stagegate.state.base_document_store import BaseDocumentStore

logger = logging.getLogger(__name__)

RUNS = "runs"
STAGE_OUTPUTS = "stage_outputs"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def stage_output_key(run_id: str, stage: str) -> str:
    return f"{run_id}__{stage}"


class RunStateStore:
    """Persistence contract used by the executor."""

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store

    # --- Run lifecycle ---

    async def initialize_pipeline(self, run_id: str) -> RunState:
        """Create the run record, or restart an existing one in place.

        The restarted record is ``running`` with a fresh start time and no
        stage history, cost, error or quality evidence.
        """
        state = RunState(id=run_id, status=RunStatus.RUNNING)
        await self._store.set(RUNS, run_id, state.model_dump(mode="json"))
        logger.info("Initialized run %s", run_id)
        return state

    async def find_state(self, run_id: str) -> RunState | None:
        document = await self._store.get(RUNS, run_id)
        if document is None:
            return None
        return RunState.model_validate(document)

    async def get_state(self, run_id: str) -> RunState:
        """Load a run record.

        Raises:
            PipelineError: STATE_NOT_FOUND if the run does not exist.
        """
        state = await self.find_state(run_id)
        if state is None:
            raise PipelineError.critical(
                STATE_NOT_FOUND, f"No state found for run {run_id}", run_id=run_id
            )
        return state

    async def reopen_run(self, run_id: str) -> None:
        """Mark an existing run as running again, keeping its history."""
        await self._store.update(
            RUNS,
            run_id,
            {
                "status": RunStatus.RUNNING.value,
                "start_time": _now(),
                "end_time": None,
                "error": None,
            },
        )

    async def mark_complete(self, run_id: str) -> None:
        await self._store.update(
            RUNS,
            run_id,
            {"status": RunStatus.COMPLETED.value, "end_time": _now(), "current_stage": None},
        )
        logger.info("Run %s marked complete", run_id)

    async def mark_failed(self, run_id: str, error: StageErrorInfo) -> None:
        await self._store.update(
            RUNS,
            run_id,
            {
                "status": RunStatus.FAILED.value,
                "end_time": _now(),
                "error": error.model_dump(mode="json"),
            },
        )
        logger.info("Run %s marked failed: %s", run_id, error.code)

    # --- Stage records ---

    async def update_stage_status(
        self,
        run_id: str,
        stage: str,
        status: StageStatus,
        *,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        duration_ms: int | None = None,
        provider: ProviderInfo | None = None,
        cost: float | None = None,
        error: StageErrorInfo | None = None,
    ) -> None:
        """Merge the given fields into ``stages.<stage>``; None fields are left alone."""
        prefix = f"stages.{stage}"
        patch: dict[str, Any] = {
            f"{prefix}.status": status.value,
            "current_stage": stage,
        }
        if start_time is not None:
            patch[f"{prefix}.start_time"] = start_time.isoformat()
        if end_time is not None:
            patch[f"{prefix}.end_time"] = end_time.isoformat()
        if duration_ms is not None:
            patch[f"{prefix}.duration_ms"] = duration_ms
        if provider is not None:
            patch[f"{prefix}.provider"] = provider.model_dump(mode="json")
        if cost is not None:
            patch[f"{prefix}.cost"] = cost
        if error is not None:
            patch[f"{prefix}.error"] = error.model_dump(mode="json")

        await self._store.update(RUNS, run_id, patch)

    async def update_retry_attempts(self, run_id: str, stage: str, attempts: int) -> None:
        await self._store.update(RUNS, run_id, {f"stages.{stage}.retry_attempts": attempts})

    # --- Run-level aggregates ---

    async def update_quality_context(self, run_id: str, quality_context: QualityContext) -> None:
        await self._store.update(
            RUNS, run_id, {"quality_context": quality_context.model_dump(mode="json")}
        )

    async def update_total_cost(self, run_id: str, total_cost: float) -> None:
        await self._store.update(RUNS, run_id, {"total_cost": total_cost})

    # --- Stage outputs ---

    async def persist_stage_output(self, run_id: str, stage: str, output: StageOutput) -> None:
        await self._store.set(
            STAGE_OUTPUTS,
            stage_output_key(run_id, stage),
            {
                "run_id": run_id,
                "stage": stage,
                "saved_at": _now(),
                "output": output.model_dump(mode="json"),
            },
        )

    async def load_stage_output(self, run_id: str, stage: str) -> StageOutput | None:
        document = await self._store.get(STAGE_OUTPUTS, stage_output_key(run_id, stage))
        if document is None:
            return None
        return StageOutput.model_validate(document["output"])
