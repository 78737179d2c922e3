# src/core/errors.py — v1
"""Severity-based pipeline errors.

Severity drives failure handling, not the exception type:
  - CRITICAL: abort the run regardless of stage
  - DEGRADED: continue, flag the run's quality
  - RECOVERABLE: continue, skip the stage silently

A raw exception has no known severity. It is wrapped with
``PipelineError.from_exception`` and left with ``severity=None`` so the
executor can fall back to the stage's static criticality.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Error codes raised by the engine itself.
UNKNOWN_ERROR = "UNKNOWN_ERROR"
ALREADY_RUNNING = "ALREADY_RUNNING"
STATE_INIT_FAILED = "STATE_INIT_FAILED"
STATE_NOT_FOUND = "STATE_NOT_FOUND"
RUN_ALREADY_COMPLETED = "RUN_ALREADY_COMPLETED"
INVALID_STAGE = "INVALID_STAGE"
INVALID_RUN_STATE = "INVALID_RUN_STATE"
RETRY_INVALID_OPTIONS = "RETRY_INVALID_OPTIONS"
FALLBACK_NO_PROVIDERS = "FALLBACK_NO_PROVIDERS"


class Severity(str, Enum):
    """How a specific failure should be handled."""

    CRITICAL = "CRITICAL"
    DEGRADED = "DEGRADED"
    RECOVERABLE = "RECOVERABLE"


class PipelineError(Exception):
    """Error carrying a code, an optional severity and debugging context."""

    def __init__(
        self,
        code: str,
        message: str,
        severity: Severity | None = None,
        stage: str | None = None,
        context: dict[str, Any] | None = None,
        retryable: bool = True,
        timestamp: datetime | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.severity = severity
        self.stage = stage
        self.context = dict(context or {})
        self.retryable = retryable
        self.timestamp = timestamp or datetime.now(timezone.utc)
        super().__init__(message)

    def __repr__(self) -> str:
        severity = self.severity.value if self.severity else None
        return (
            f"PipelineError(code={self.code!r}, severity={severity!r}, "
            f"stage={self.stage!r}, message={self.message!r})"
        )

    # --- Factories ---

    @classmethod
    def critical(
        cls, code: str, message: str, stage: str | None = None, **context: Any
    ) -> PipelineError:
        return cls(code, message, Severity.CRITICAL, stage, context)

    @classmethod
    def degraded(
        cls, code: str, message: str, stage: str | None = None, **context: Any
    ) -> PipelineError:
        return cls(code, message, Severity.DEGRADED, stage, context)

    @classmethod
    def recoverable(
        cls, code: str, message: str, stage: str | None = None, **context: Any
    ) -> PipelineError:
        return cls(code, message, Severity.RECOVERABLE, stage, context)

    @classmethod
    def from_exception(cls, exc: BaseException, stage: str | None = None) -> PipelineError:
        """Wrap any exception, keeping an existing PipelineError as-is.

        A PipelineError without a stage gets ``stage`` filled in; its
        timestamp and context are preserved.
        """
        if isinstance(exc, PipelineError):
            if stage and not exc.stage:
                wrapped = cls(
                    exc.code,
                    exc.message,
                    exc.severity,
                    stage,
                    exc.context,
                    exc.retryable,
                    exc.timestamp,
                )
                wrapped.__cause__ = exc.__cause__
                return wrapped
            return exc

        return cls(
            UNKNOWN_ERROR,
            str(exc) or type(exc).__name__,
            None,
            stage,
            {"original_type": type(exc).__name__},
        )

    # --- Derived properties ---

    @property
    def original_severity(self) -> Severity | None:
        """Severity recorded before retry exhaustion escalated the error."""
        raw = self.context.get("original_severity")
        if raw is None:
            return None
        return Severity(raw)

    @property
    def effective_severity(self) -> Severity | None:
        """Original severity when escalated, otherwise the error's own."""
        return self.original_severity or self.severity

    def as_dict(self) -> dict[str, Any]:
        """Serialize for logging and persistence."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value if self.severity else None,
            "stage": self.stage,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }
