# src/pipeline/policy.py — v1
"""Failure policy: what the executor does with a stage that failed after retries.

Evaluated in order:
  1. effective severity CRITICAL, or unknown severity on a CRITICAL stage -> abort
  2. effective severity RECOVERABLE, or a RECOVERABLE stage -> skip
  3. effective severity DEGRADED, or a DEGRADED stage -> degrade

Effective severity is the pre-escalation severity recorded by the retry
wrapper when present, else the error's own. Unknown severity defers to the
stage's static criticality.
"""

from __future__ import annotations

from enum import Enum

from stagegate.core.errors import PipelineError, Severity


class FailureAction(str, Enum):
    ABORT = "abort"
    SKIP = "skip"
    DEGRADE = "degrade"


def classify_failure(
    severity: Severity | None, criticality: Severity
) -> FailureAction:
    """Decide the action for an effective *severity* on a stage of *criticality*."""
    if severity is Severity.CRITICAL:
        return FailureAction.ABORT
    if severity is None and criticality is Severity.CRITICAL:
        return FailureAction.ABORT
    if severity is Severity.RECOVERABLE or criticality is Severity.RECOVERABLE:
        return FailureAction.SKIP
    return FailureAction.DEGRADE


def decide(error: PipelineError, criticality: Severity) -> FailureAction:
    return classify_failure(error.effective_severity, criticality)


def reported_severity(error: PipelineError, criticality: Severity) -> Severity:
    """Severity surfaced in run results: effective, else the stage tier."""
    return error.effective_severity or criticality
