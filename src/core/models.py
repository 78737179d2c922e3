# src/core/models.py — v1
"""Pipeline domain models: run state, stage I/O and run results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ProviderTier = Literal["primary", "fallback"]


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# === QUALITY CONTEXT ===


class QualityContext(BaseModel):
    """Run-scoped quality evidence. Grows as stages run; a resume drops the
    entries of the stages it runs again.

    Instances are frozen; the ``with_*`` helpers return a new context.
    """

    model_config = ConfigDict(frozen=True)

    degraded_stages: tuple[str, ...] = ()
    fallbacks_used: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()

    def with_degraded(self, stage: str) -> QualityContext:
        if stage in self.degraded_stages:
            return self
        return self.model_copy(update={"degraded_stages": (*self.degraded_stages, stage)})

    def with_fallback(self, stage: str, provider: str) -> QualityContext:
        return self.model_copy(
            update={"fallbacks_used": (*self.fallbacks_used, f"{stage}:{provider}")}
        )

    def with_flags(self, flags: list[str] | tuple[str, ...]) -> QualityContext:
        new = tuple(f for f in dict.fromkeys(flags) if f not in self.flags)
        if not new:
            return self
        return self.model_copy(update={"flags": (*self.flags, *new)})

    def without_stages(self, stages: set[str] | frozenset[str]) -> QualityContext:
        """Drop degraded and fallback entries recorded by *stages*."""
        return self.model_copy(
            update={
                "degraded_stages": tuple(s for s in self.degraded_stages if s not in stages),
                "fallbacks_used": tuple(
                    f for f in self.fallbacks_used if f.split(":", 1)[0] not in stages
                ),
            }
        )

    @property
    def is_clean(self) -> bool:
        return not (self.degraded_stages or self.fallbacks_used or self.flags)


# === STAGE I/O ===


class ProviderInfo(BaseModel):
    """Which provider served a stage, and how many attempts it took."""

    name: str
    tier: ProviderTier = "primary"
    attempts: int = 1


class Artifact(BaseModel):
    """Reference to something a stage produced (video, image, text...)."""

    type: str
    url: str


class StageConfig(BaseModel):
    """Resolved per-stage configuration handed to the stage function."""

    timeout_s: float
    retries: int
    base_delay_s: float


class StageInput(BaseModel):
    """Input of a stage function: the previous stage's output, chained."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str
    previous_stage: str | None = None
    data: Any = None
    config: StageConfig
    quality_context: QualityContext = Field(default_factory=QualityContext)


class StageOutput(BaseModel):
    """Standard return type of every stage function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any = None
    provider: ProviderInfo
    cost: float = 0.0
    duration_ms: int = 0
    warnings: list[str] = Field(default_factory=list)
    # Stage-specific quality measurements (word count, fallback counts...).
    quality: dict[str, Any] = Field(default_factory=dict)
    artifacts: list[Artifact] = Field(default_factory=list)


# === PERSISTED RUN STATE ===


class StageErrorInfo(BaseModel):
    code: str
    message: str
    severity: str | None = None


class StageRecord(BaseModel):
    """Per-stage progress, written incrementally as the stage runs."""

    status: StageStatus = StageStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: int | None = None
    provider: ProviderInfo | None = None
    cost: float | None = None
    retry_attempts: int = 0
    error: StageErrorInfo | None = None


class RunState(BaseModel):
    """One persisted document per run id."""

    id: str
    status: RunStatus = RunStatus.PENDING
    current_stage: str | None = None
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    total_cost: float = 0.0
    quality_context: QualityContext = Field(default_factory=QualityContext)
    stages: dict[str, StageRecord] = Field(default_factory=dict)
    error: StageErrorInfo | None = None

    def is_stale(self, max_age_s: float, now: datetime | None = None) -> bool:
        """True if this run has been running longer than *max_age_s*."""
        now = now or datetime.now(timezone.utc)
        start = self.start_time
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return (now - start).total_seconds() >= max_age_s


# === RUN RESULT ===


class RunError(BaseModel):
    code: str
    message: str
    stage: str
    severity: str


class RunResult(BaseModel):
    """Outcome of ``execute`` / ``resume``, as reported to the trigger layer."""

    success: bool
    run_id: str
    status: RunStatus
    completed_stages: list[str] = Field(default_factory=list)
    skipped_stages: list[str] = Field(default_factory=list)
    quality_context: QualityContext = Field(default_factory=QualityContext)
    total_duration_ms: int = 0
    total_cost: float = 0.0
    error: RunError | None = None
    stage_outputs: dict[str, StageOutput] = Field(default_factory=dict)
