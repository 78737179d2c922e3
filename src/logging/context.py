# src/logging/context.py — v1
"""Contextual logging support: attach run_id and stage to log records.

Context variables are task-local, so concurrently scheduled runs keep
their own run and stage labels.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_mode: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mode", default=None
)


@dataclass
class LogContext:
    """Snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    mode: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    return LogContext(run_id=_run_id.get(), stage=_stage.get(), mode=_mode.get())


def set_run_context(run_id: str, mode: str | None = None) -> None:
    """Set run-level context (called once per execute/resume)."""
    _run_id.set(run_id)
    _mode.set(mode)
    _stage.set(None)


def set_stage_context(stage: str | None) -> None:
    """Set the stage currently executing; None between stages."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _mode.set(None)
