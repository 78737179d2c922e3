# src/quality/models.py — v1
"""Publish gate models: issues, decisions, metrics and review items."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from stagegate.core.models import ProviderTier, QualityContext, RunResult, StageOutput

IssueSeverity = Literal["major", "minor"]
StageVerdict = Literal["pass", "warn", "fail"]


class Decision(str, Enum):
    AUTO_PUBLISH = "AUTO_PUBLISH"
    AUTO_PUBLISH_WITH_WARNING = "AUTO_PUBLISH_WITH_WARNING"
    HUMAN_REVIEW = "HUMAN_REVIEW"


class IssueCode(str, Enum):
    # Major
    TTS_FALLBACK = "TTS_FALLBACK"
    HIGH_VISUAL_FALLBACK = "HIGH_VISUAL_FALLBACK"
    WORD_COUNT_OUT_OF_BOUNDS = "WORD_COUNT_OUT_OF_BOUNDS"
    PRONUNCIATION_UNRESOLVED = "PRONUNCIATION_UNRESOLVED"
    COMBINED_FALLBACK = "COMBINED_FALLBACK"
    # Minor
    TTS_RETRY_HIGH = "TTS_RETRY_HIGH"
    LOW_VISUAL_FALLBACK = "LOW_VISUAL_FALLBACK"
    WORD_COUNT_EDGE = "WORD_COUNT_EDGE"
    PRONUNCIATION_FEW = "PRONUNCIATION_FEW"
    THUMBNAIL_FALLBACK = "THUMBNAIL_FALLBACK"


class QualityIssue(BaseModel):
    code: IssueCode
    severity: IssueSeverity
    stage: str
    message: str


class QualityMetrics(BaseModel):
    """Aggregate measurements reported alongside a decision."""

    total_stages: int = 0
    degraded_stages: int = 0
    fallbacks_used: int = 0
    total_warnings: int = 0
    script_word_count: int = 0
    visual_fallback_percent: float = 0.0
    pronunciation_unknowns: int = 0
    tts_provider: str = "unknown"
    thumbnail_fallback: bool = False


class StageQuality(BaseModel):
    status: StageVerdict
    provider: str = "unknown"
    tier: ProviderTier = "primary"


class QualityDecision(BaseModel):
    """Outcome of one gate check. Persisted at most once per run."""

    decision: Decision
    issues: list[QualityIssue] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
    metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage_quality_summary: dict[str, StageQuality] = Field(default_factory=dict)

    @property
    def major_issues(self) -> list[QualityIssue]:
        return [i for i in self.issues if i.severity == "major"]

    @property
    def minor_issues(self) -> list[QualityIssue]:
        return [i for i in self.issues if i.severity == "minor"]


class GateInput(BaseModel):
    """What the gate looks at: stage outputs by name plus the quality context."""

    run_id: str
    stages: dict[str, StageOutput] = Field(default_factory=dict)
    quality_context: QualityContext = Field(default_factory=QualityContext)

    @classmethod
    def from_result(cls, result: RunResult) -> GateInput:
        return cls(
            run_id=result.run_id,
            stages=dict(result.stage_outputs),
            quality_context=result.quality_context,
        )


# === HUMAN REVIEW ===


class ReviewStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class PreviewReferences(BaseModel):
    video: str | None = None
    thumbnail: str | None = None
    script: str | None = None


class ReviewItem(BaseModel):
    """Operator work item opened for a HUMAN_REVIEW decision."""

    id: str = ""
    run_id: str
    item_type: str = "quality"
    stage: str = "pre-publish"
    status: ReviewStatus = ReviewStatus.PENDING
    major_issues: list[QualityIssue] = Field(default_factory=list)
    preview_references: PreviewReferences = Field(default_factory=PreviewReferences)
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: datetime | None = None
    resolution_note: str | None = None
    resolved_by: str | None = None


class RejectionResult(BaseModel):
    """Outcome of rejecting a review item."""

    success: bool
    artifact_id: str | None = None
    published_ref: str | None = None
    error: str | None = None
    # True when the item was resolved without a substitute being published
    critical: bool = False
