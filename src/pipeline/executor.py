# src/pipeline/executor.py — v1
"""Stage executor: run the fixed stage sequence for one run id.

Walks the static stage order, chaining each stage's output data into the
next, protecting every call with the retry wrapper and applying the
failure policy when retries are exhausted. The terminal notification
stage always runs once after the main loop, whether or not the run
aborted.

Persistence after the run record exists is best-effort: a failed write is
logged and never changes the run's outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from stagegate.config.settings import Settings
from stagegate.config.stages import (
    DEFAULT_STAGES,
    TERMINAL_STAGE,
    StageDefinition,
    StageName,
    stage_table,
)
from stagegate.core.errors import (
    ALREADY_RUNNING,
    INVALID_RUN_STATE,
    INVALID_STAGE,
    RUN_ALREADY_COMPLETED,
    STATE_INIT_FAILED,
    PipelineError,
    Severity,
)
from stagegate.core.models import (
    RunError,
    RunResult,
    RunState,
    RunStatus,
    StageConfig,
    StageErrorInfo,
    StageInput,
    StageOutput,
    StageStatus,
)
from stagegate.logging.context import set_run_context, set_stage_context
from stagegate.pipeline.accumulator import RunAccumulator
from stagegate.pipeline.persist import BestEffortWriter
from stagegate.pipeline.policy import FailureAction, decide, reported_severity
from stagegate.pipeline.registry import StageRegistry
from stagegate.resilience.retry import RetryResult, with_retry
from stagegate.state.run_state import RunStateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start_ns: int) -> int:
    return (time.monotonic_ns() - start_ns) // 1_000_000


@dataclass(frozen=True)
class PreparedRun:
    """A run that passed its lock and state checks and is ready to run."""

    run_id: str
    mode: str
    start_index: int
    accumulator: RunAccumulator
    start_ns: int


class StageExecutor:
    """Execute and resume runs.

    Args:
        registry: Stage bindings; must cover every StageName.
        state: Run State Store.
        settings: Application settings (run-control timings).
        stages: Static stage table, defaults to DEFAULT_STAGES.

    Raises:
        RegistryError: If any stage is unbound.
    """

    def __init__(
        self,
        registry: StageRegistry,
        state: RunStateStore,
        settings: Settings | None = None,
        stages: tuple[StageDefinition, ...] = DEFAULT_STAGES,
    ) -> None:
        registry.validate()
        self._registry = registry
        self._state = state
        self._writer = BestEffortWriter(state, "run state")
        self._settings = settings or Settings()

        self._definitions = stage_table(stages)
        ordered = sorted(stages, key=lambda d: d.order)
        self._order: list[StageDefinition] = [d for d in ordered if d.name is not TERMINAL_STAGE]
        self._terminal: StageDefinition = self._definitions[TERMINAL_STAGE]

    @property
    def stage_order(self) -> list[str]:
        """Main-loop stage names in execution order (terminal stage excluded)."""
        return [d.name.value for d in self._order]

    # --- Entry points ---

    async def execute(self, run_id: str) -> RunResult:
        """Run every stage from the start.

        Raises:
            PipelineError: ALREADY_RUNNING if a non-stale run holds the id,
                STATE_INIT_FAILED if the run record cannot be created.
        """
        return await self.run(await self.prepare_execute(run_id))

    async def resume(self, run_id: str, from_stage: str | None = None) -> RunResult:
        """Continue a previous run from *from_stage* or after its last completed stage.

        Raises:
            PipelineError: STATE_NOT_FOUND, ALREADY_RUNNING, RUN_ALREADY_COMPLETED,
                INVALID_RUN_STATE or INVALID_STAGE.
        """
        return await self.run(await self.prepare_resume(run_id, from_stage))

    async def prepare_execute(self, run_id: str) -> PreparedRun:
        """Check the run lock and create the run record, without running stages."""
        set_run_context(run_id, "execute")
        start_ns = time.monotonic_ns()

        await self._check_lock(run_id)
        await self._initialize(run_id)
        logger.info("Run %s started (%d stages)", run_id, len(self._order) + 1)
        return PreparedRun(run_id, "execute", 0, RunAccumulator(), start_ns)

    async def prepare_resume(self, run_id: str, from_stage: str | None = None) -> PreparedRun:
        """Validate a resume and reopen the run, without running stages."""
        set_run_context(run_id, "resume")
        start_ns = time.monotonic_ns()

        state = await self._state.get_state(run_id)
        if state.status is RunStatus.RUNNING and not state.is_stale(self._settings.max_run_age_s):
            raise PipelineError.critical(
                ALREADY_RUNNING, f"Run {run_id} is currently running", run_id=run_id
            )
        if state.status is RunStatus.COMPLETED:
            raise PipelineError.critical(
                RUN_ALREADY_COMPLETED, f"Run {run_id} has already completed", run_id=run_id
            )
        if state.status is RunStatus.PENDING:
            raise PipelineError.critical(
                INVALID_RUN_STATE, f"Run {run_id} has not started, nothing to resume", run_id=run_id
            )

        start_index = self._resume_index(state, from_stage)
        await self._writer.reopen_run(run_id)

        acc = await self._seed_from_state(run_id, state, start_index)
        logger.info(
            "Resuming run %s at %s (%d stages already completed)",
            run_id,
            self._order[start_index].name.value if start_index < len(self._order) else TERMINAL_STAGE.value,
            len(acc.completed),
        )
        return PreparedRun(run_id, "resume", start_index, acc, start_ns)

    async def run(self, prepared: PreparedRun) -> RunResult:
        """Run the stages of a prepared run, then the terminal stage."""
        set_run_context(prepared.run_id, prepared.mode)
        acc = await self._run_from(prepared.run_id, prepared.start_index, prepared.accumulator)
        return await self._finish(prepared.run_id, acc, prepared.start_ns)

    # --- Run setup ---

    async def _check_lock(self, run_id: str) -> None:
        try:
            existing = await self._state.find_state(run_id)
        except Exception as exc:
            logger.warning("Lock check for run %s failed, assuming unlocked: %s", run_id, exc)
            return

        if existing is None or existing.status is not RunStatus.RUNNING:
            return

        if existing.is_stale(self._settings.max_run_age_s):
            logger.warning("Found stale run %s, allowing override", run_id)
            return

        raise PipelineError.critical(
            ALREADY_RUNNING, f"Run {run_id} is already running", run_id=run_id
        )

    async def _initialize(self, run_id: str) -> None:
        max_attempts = self._settings.init_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                await self._state.initialize_pipeline(run_id)
                return
            except Exception as exc:
                logger.error(
                    "Failed to initialize run %s (attempt %d/%d): %s",
                    run_id, attempt, max_attempts, exc,
                )
                if attempt >= max_attempts:
                    raise PipelineError.critical(
                        STATE_INIT_FAILED,
                        f"Failed to initialize run state after {max_attempts} attempts",
                        run_id=run_id,
                    ) from exc
                await asyncio.sleep(self._settings.init_retry_delay_s * attempt)

    def _resume_index(self, state: RunState, from_stage: str | None) -> int:
        if from_stage is not None:
            name = StageName.parse(from_stage)
            if name is TERMINAL_STAGE:
                return len(self._order)
            for index, definition in enumerate(self._order):
                if definition.name is name:
                    return index
            raise PipelineError.critical(
                INVALID_STAGE, f"Invalid stage name: {from_stage}", stage=from_stage
            )

        for index in range(len(self._order) - 1, -1, -1):
            record = state.stages.get(self._order[index].name.value)
            if record is not None and record.status is StageStatus.COMPLETED:
                return index + 1
        return 0

    async def _seed_from_state(
        self, run_id: str, state: RunState, start_index: int
    ) -> RunAccumulator:
        completed: list[str] = []
        outputs: dict[str, StageOutput] = {}
        total_cost = 0.0
        for definition in self._order[:start_index]:
            name = definition.name.value
            record = state.stages.get(name)
            if record is None or record.status is not StageStatus.COMPLETED:
                continue
            completed.append(name)
            total_cost += record.cost or 0.0
            output = await self._writer.load_stage_output(run_id, name)
            if output is not None:
                outputs[name] = output

        previous_stage: str | None = None
        previous_data: Any = {}
        if start_index > 0:
            name = self._order[start_index - 1].name.value
            output = outputs.get(name) or await self._writer.load_stage_output(run_id, name)
            if output is None:
                logger.warning(
                    "No stored output for stage %s of run %s, chaining empty data", name, run_id
                )
            else:
                previous_stage = name
                previous_data = output.data

        rerun = frozenset(d.name.value for d in self._order[start_index:])
        return RunAccumulator(
            previous_stage=previous_stage,
            previous_data=previous_data,
            quality_context=state.quality_context.without_stages(rerun),
            completed=tuple(completed),
            stage_outputs=MappingProxyType(outputs),
            total_cost=total_cost,
        )

    # --- Stage loop ---

    async def _run_from(self, run_id: str, start_index: int, acc: RunAccumulator) -> RunAccumulator:
        for definition in self._order[start_index:]:
            if acc.aborted:
                break
            acc = await self._run_stage(run_id, definition, acc)
        return acc

    def _stage_config(self, definition: StageDefinition) -> StageConfig:
        return StageConfig(
            timeout_s=self._settings.stage_timeout_s,
            retries=definition.max_retries,
            base_delay_s=definition.base_delay_s,
        )

    async def _invoke(
        self, run_id: str, definition: StageDefinition, stage_input: StageInput
    ) -> RetryResult[StageOutput]:
        name = definition.name.value
        fn = self._registry.get_or_raise(definition.name)

        def on_retry(attempt: int, delay_s: float, error: PipelineError) -> None:
            logger.info(
                "Retrying stage %s of run %s after attempt %d (%s), next in %.1fs",
                name, run_id, attempt, error.code, delay_s,
            )

        return await with_retry(
            lambda: fn(stage_input),
            max_retries=definition.max_retries,
            base_delay_s=definition.base_delay_s,
            max_delay_s=self._settings.retry_max_delay_s,
            stage=name,
            on_retry=on_retry,
        )

    async def _run_stage(
        self, run_id: str, definition: StageDefinition, acc: RunAccumulator
    ) -> RunAccumulator:
        name = definition.name.value
        set_stage_context(name)
        stage_input = StageInput(
            run_id=run_id,
            previous_stage=acc.previous_stage,
            data=acc.previous_data,
            config=self._stage_config(definition),
            quality_context=acc.quality_context,
        )

        await self._writer.update_stage_status(
            run_id, name, StageStatus.RUNNING, start_time=_utcnow()
        )
        start_ns = time.monotonic_ns()
        logger.info("Stage %s started", name)

        try:
            outcome = await self._invoke(run_id, definition, stage_input)
        except PipelineError as error:
            return await self._on_failure(run_id, definition, acc, error, _elapsed_ms(start_ns))

        output: StageOutput = outcome.result
        acc = acc.record_success(name, output)

        await self._writer.update_stage_status(
            run_id,
            name,
            StageStatus.COMPLETED,
            end_time=_utcnow(),
            duration_ms=output.duration_ms or _elapsed_ms(start_ns),
            provider=output.provider,
            cost=output.cost,
        )
        await self._writer.update_retry_attempts(run_id, name, outcome.attempts - 1)
        await self._writer.persist_stage_output(run_id, name, output)
        await self._writer.update_quality_context(run_id, acc.quality_context)

        logger.info(
            "Stage %s completed via %s (%s) in %d attempt(s), cost=%.4f",
            name, output.provider.name, output.provider.tier, outcome.attempts, output.cost,
        )
        set_stage_context(None)
        return acc

    async def _on_failure(
        self,
        run_id: str,
        definition: StageDefinition,
        acc: RunAccumulator,
        error: PipelineError,
        duration_ms: int,
    ) -> RunAccumulator:
        name = definition.name.value
        action = decide(error, definition.criticality)
        severity = reported_severity(error, definition.criticality)

        await self._writer.update_stage_status(
            run_id,
            name,
            StageStatus.FAILED,
            end_time=_utcnow(),
            duration_ms=duration_ms,
            error=StageErrorInfo(code=error.code, message=error.message, severity=severity.value),
        )
        attempts = error.context.get("retry_attempts")
        if attempts is not None:
            await self._writer.update_retry_attempts(run_id, name, max(attempts - 1, 0))

        acc = acc.record_failure(name, action, error)

        if action is FailureAction.ABORT:
            logger.error(
                "Stage %s failed with %s (%s), aborting run %s",
                name, error.code, severity.value, run_id,
            )
        else:
            await self._writer.update_quality_context(run_id, acc.quality_context)
            level = logging.WARNING if action is FailureAction.DEGRADE else logging.INFO
            logger.log(
                level,
                "Stage %s failed with %s (%s), continuing (%s)",
                name, error.code, severity.value, action.value,
            )

        set_stage_context(None)
        return acc

    # --- Terminal stage and result ---

    async def _run_terminal(self, run_id: str, acc: RunAccumulator) -> RunAccumulator:
        definition = self._terminal
        name = definition.name.value
        set_stage_context(name)
        abort = acc.abort_error

        stage_input = StageInput(
            run_id=run_id,
            previous_stage=acc.completed[-1] if acc.completed else None,
            data={
                "run_aborted": acc.aborted,
                "abort_reason": abort.message if abort else None,
                "abort_stage": acc.abort_stage,
                "completed_stages": list(acc.completed),
                "skipped_stages": list(acc.skipped),
                "total_cost": acc.total_cost,
            },
            config=self._stage_config(definition),
            quality_context=acc.quality_context,
        )

        await self._writer.update_stage_status(
            run_id, name, StageStatus.RUNNING, start_time=_utcnow()
        )
        start_ns = time.monotonic_ns()
        logger.info("Terminal stage %s started (run aborted: %s)", name, acc.aborted)

        try:
            outcome = await self._invoke(run_id, definition, stage_input)
        except PipelineError as error:
            logger.error("Terminal stage %s failed (non-fatal): %s", name, error.message)
            await self._writer.update_stage_status(
                run_id,
                name,
                StageStatus.FAILED,
                end_time=_utcnow(),
                duration_ms=_elapsed_ms(start_ns),
                error=StageErrorInfo(
                    code=error.code,
                    message=error.message,
                    severity=reported_severity(error, definition.criticality).value,
                ),
            )
            set_stage_context(None)
            return acc

        output: StageOutput = outcome.result
        await self._writer.update_stage_status(
            run_id,
            name,
            StageStatus.COMPLETED,
            end_time=_utcnow(),
            duration_ms=output.duration_ms or _elapsed_ms(start_ns),
            provider=output.provider,
            cost=output.cost,
        )
        await self._writer.update_retry_attempts(run_id, name, outcome.attempts - 1)
        set_stage_context(None)
        return acc.record_terminal(name, output)

    async def _finish(self, run_id: str, acc: RunAccumulator, start_ns: int) -> RunResult:
        acc = await self._run_terminal(run_id, acc)
        await self._writer.update_total_cost(run_id, acc.total_cost)

        error: RunError | None = None
        if acc.aborted and acc.abort_error is not None:
            abort = acc.abort_error
            severity = self._abort_severity(acc.abort_stage, abort)
            error = RunError(
                code=abort.code,
                message=abort.message,
                stage=acc.abort_stage or "unknown",
                severity=severity.value,
            )
            await self._writer.mark_failed(
                run_id,
                StageErrorInfo(code=abort.code, message=abort.message, severity=severity.value),
            )
        else:
            await self._writer.mark_complete(run_id)

        result = RunResult(
            success=not acc.aborted,
            run_id=run_id,
            status=RunStatus.FAILED if acc.aborted else RunStatus.COMPLETED,
            completed_stages=list(acc.completed),
            skipped_stages=list(acc.skipped),
            quality_context=acc.quality_context,
            total_duration_ms=_elapsed_ms(start_ns),
            total_cost=acc.total_cost,
            error=error,
            stage_outputs=dict(acc.stage_outputs),
        )
        logger.log(
            logging.INFO if result.success else logging.ERROR,
            "Run %s %s: %d completed, %d skipped, cost=%.4f, %dms",
            run_id,
            result.status.value,
            len(result.completed_stages),
            len(result.skipped_stages),
            result.total_cost,
            result.total_duration_ms,
        )
        return result

    def _abort_severity(self, stage: str | None, error: PipelineError) -> Severity:
        name = StageName.parse(stage) if stage else None
        criticality = self._definitions[name].criticality if name else Severity.CRITICAL
        return reported_severity(error, criticality)
