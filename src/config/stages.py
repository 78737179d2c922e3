# src/config/stages.py — v1
"""Static stage table: order, criticality tier and retry policy per stage.

The stage set is closed. Every ``StageName`` has exactly one
``StageDefinition`` in ``DEFAULT_STAGES``; the registry binds each one to a
stage function and refuses to build an executor while any stage is unbound.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from stagegate.core.errors import Severity


class StageName(str, Enum):
    """Identifiers of the pipeline stages, in execution order."""

    NEWS_SOURCING = "news-sourcing"
    RESEARCH = "research"
    SCRIPT_GEN = "script-gen"
    PRONUNCIATION = "pronunciation"
    TTS = "tts"
    VISUAL_GEN = "visual-gen"
    THUMBNAIL = "thumbnail"
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    NOTIFICATIONS = "notifications"

    @classmethod
    def parse(cls, value: str) -> StageName | None:
        """Return the member whose value is *value*, or None."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class StageDefinition:
    """Deployment-time policy for one stage."""

    name: StageName
    order: int
    criticality: Severity
    max_retries: int
    base_delay_s: float


def _define(order: int, name: StageName, criticality: Severity, retries: int, delay: float) -> StageDefinition:
    return StageDefinition(
        name=name,
        order=order,
        criticality=criticality,
        max_retries=retries,
        base_delay_s=delay,
    )


DEFAULT_STAGES: tuple[StageDefinition, ...] = (
    _define(0, StageName.NEWS_SOURCING, Severity.CRITICAL, 3, 2.0),
    _define(1, StageName.RESEARCH, Severity.CRITICAL, 3, 2.0),
    _define(2, StageName.SCRIPT_GEN, Severity.CRITICAL, 3, 2.0),
    _define(3, StageName.PRONUNCIATION, Severity.DEGRADED, 2, 1.0),
    _define(4, StageName.TTS, Severity.CRITICAL, 5, 3.0),
    _define(5, StageName.VISUAL_GEN, Severity.DEGRADED, 3, 2.0),
    _define(6, StageName.THUMBNAIL, Severity.DEGRADED, 3, 2.0),
    _define(7, StageName.YOUTUBE, Severity.CRITICAL, 5, 3.0),
    _define(8, StageName.TWITTER, Severity.RECOVERABLE, 2, 1.0),
    _define(9, StageName.NOTIFICATIONS, Severity.RECOVERABLE, 3, 1.0),
)

# Always invoked exactly once after the main loop, even when the run aborts.
TERMINAL_STAGE: StageName = StageName.NOTIFICATIONS


def stage_table(
    definitions: tuple[StageDefinition, ...] = DEFAULT_STAGES,
) -> dict[StageName, StageDefinition]:
    """Index definitions by stage name."""
    return {d.name: d for d in definitions}
