# src/resilience/retry.py — v1
"""Bounded retry with exponential backoff.

Delay before retry ``n`` (0-based) is ``min(base_delay_s * 2**n, max_delay_s)``.
Jitter is opt-in and scales the delay into 50-100% of that value.

On exhaustion the last error is re-raised as a PipelineError carrying the
attempt count. If its severity was known and below CRITICAL, the raised
error is escalated to CRITICAL and the pre-exhaustion severity is kept in
``context["original_severity"]`` so failure policy can still see it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from stagegate.core.errors import RETRY_INVALID_OPTIONS, PipelineError, Severity

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 30.0

OnRetry = Callable[[int, float, PipelineError], None]


@dataclass
class RetryResult(Generic[T]):
    """Successful outcome of ``with_retry``."""

    result: T
    attempts: int
    total_delay_s: float = 0.0


def compute_delay(
    attempt: int,
    base_delay_s: float,
    max_delay_s: float,
    jitter: bool = False,
) -> float:
    """Compute the delay before retry *attempt* (0-based)."""
    delay = min(base_delay_s * (2 ** attempt), max_delay_s)
    if jitter:
        delay *= 0.5 + random.random() * 0.5  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_s: float = DEFAULT_BASE_DELAY_S,
    max_delay_s: float = DEFAULT_MAX_DELAY_S,
    stage: str | None = None,
    on_retry: OnRetry | None = None,
    jitter: bool = False,
) -> RetryResult[T]:
    """Execute an async callable, retrying on failure.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt.
        max_retries: Retries after the first attempt (total calls = max_retries + 1).
        base_delay_s: Delay before the first retry.
        max_delay_s: Upper bound for any single delay.
        stage: Stage name attached to raised errors.
        on_retry: Called as ``on_retry(attempt_number, delay_s, error)``
            before each backoff sleep.
        jitter: Randomize delays into 50-100% of the computed value.

    Returns:
        RetryResult with the value and the number of attempts made.

    Raises:
        PipelineError: When retries are exhausted or the error is not retryable.
    """
    for name, value in (
        ("max_retries", max_retries),
        ("base_delay_s", base_delay_s),
        ("max_delay_s", max_delay_s),
    ):
        if value < 0:
            raise PipelineError.critical(
                RETRY_INVALID_OPTIONS, f"{name} must be >= 0, got {value}", stage
            )

    attempts = 0
    total_delay_s = 0.0
    history: list[dict[str, Any]] = []

    while True:
        try:
            result = await fn()
            return RetryResult(result=result, attempts=attempts + 1, total_delay_s=total_delay_s)
        except Exception as exc:
            error = PipelineError.from_exception(exc, stage)

            if not error.retryable or attempts >= max_retries:
                raise _exhausted(error, attempts + 1, history) from exc

            delay = compute_delay(attempts, base_delay_s, max_delay_s, jitter)
            total_delay_s += delay
            history.append({"attempt": attempts + 1, "error": error.code, "delay_s": delay})

            if on_retry is not None:
                on_retry(attempts + 1, delay, error)

            logger.warning(
                "Stage '%s': %s (attempt %d/%d), retrying in %.1fs",
                stage or "-", error.code, attempts + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
            attempts += 1


def _exhausted(
    error: PipelineError, attempts: int, history: list[dict[str, Any]]
) -> PipelineError:
    """Build the error raised once no attempts remain."""
    context = {
        **error.context,
        "retry_attempts": attempts,
        "exhausted_retries": error.retryable,
        "retry_history": list(history),
    }
    severity = error.severity
    if severity is not None and severity is not Severity.CRITICAL:
        context.setdefault("original_severity", severity.value)
        severity = Severity.CRITICAL

    return PipelineError(
        error.code,
        error.message,
        severity,
        error.stage,
        context,
        retryable=False,
        timestamp=error.timestamp,
    )
