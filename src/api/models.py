# src/api/models.py — v1
"""API-level models returned by the trigger facade."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from stagegate.core.models import RunResult
from stagegate.quality.models import QualityDecision


class TriggerAck(BaseModel):
    """Returned at once when a run is scheduled in the background."""

    run_id: str
    action: Literal["start", "resume"]
    from_stage: str | None = None
    accepted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TriggerResponse(BaseModel):
    """Returned when the caller waited for the run to finish."""

    result: RunResult
    decision: QualityDecision | None = None
    review_item_id: str | None = None
