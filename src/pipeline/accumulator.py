# src/pipeline/accumulator.py — v1
"""Immutable fold state of a run.

The executor threads one ``RunAccumulator`` through the stage loop; every
stage outcome produces a new accumulator via ``record_success`` or
``record_failure``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from stagegate.core.errors import PipelineError
from stagegate.core.models import QualityContext, StageOutput
from stagegate.pipeline.policy import FailureAction


@dataclass(frozen=True)
class RunAccumulator:
    previous_stage: str | None = None
    previous_data: Any = field(default_factory=dict)
    quality_context: QualityContext = field(default_factory=QualityContext)
    completed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    stage_outputs: Mapping[str, StageOutput] = field(
        default_factory=lambda: MappingProxyType({})
    )
    total_cost: float = 0.0
    aborted: bool = False
    abort_stage: str | None = None
    abort_error: PipelineError | None = None

    def record_success(self, stage: str, output: StageOutput) -> RunAccumulator:
        """Fold a successful stage: chain its data and merge its quality evidence."""
        quality = self.quality_context
        if output.provider.tier == "fallback":
            quality = quality.with_fallback(stage, output.provider.name)
        quality = quality.with_flags(output.warnings)

        return replace(
            self,
            previous_stage=stage,
            previous_data=output.data,
            quality_context=quality,
            completed=(*self.completed, stage),
            stage_outputs=MappingProxyType({**self.stage_outputs, stage: output}),
            total_cost=self.total_cost + output.cost,
        )

    def record_failure(
        self, stage: str, action: FailureAction, error: PipelineError
    ) -> RunAccumulator:
        """Fold a failed stage according to the chosen failure action.

        Chaining data is left untouched, so the next stage sees the output
        of the last stage that succeeded.
        """
        if action is FailureAction.ABORT:
            return replace(self, aborted=True, abort_stage=stage, abort_error=error)

        quality = self.quality_context
        if action is FailureAction.DEGRADE:
            quality = quality.with_degraded(stage)

        return replace(
            self,
            quality_context=quality,
            skipped=(*self.skipped, stage),
        )

    def record_terminal(self, stage: str, output: StageOutput) -> RunAccumulator:
        """Fold the always-run terminal stage.

        Its output is kept for reporting but neither chained nor costed; it
        counts as completed only when the run did not abort.
        """
        completed = self.completed if self.aborted else (*self.completed, stage)
        return replace(
            self,
            completed=completed,
            stage_outputs=MappingProxyType({**self.stage_outputs, stage: output}),
        )
