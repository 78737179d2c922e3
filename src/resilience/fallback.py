# src/resilience/fallback.py — v1
"""Ordered provider fallback chain.

Providers are tried strictly in list order. The provider at index 0 is the
primary tier, every other one is a fallback. The first success wins; if all
providers fail, the last error propagates unchanged.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Protocol, Sequence, TypeVar

from stagegate.core.errors import FALLBACK_NO_PROVIDERS, PipelineError
from stagegate.core.models import ProviderTier

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P", bound="NamedProvider")


class NamedProvider(Protocol):
    name: str


@dataclass
class FallbackAttempt:
    provider: str
    success: bool
    duration_ms: int
    error: str | None = None


@dataclass
class FallbackResult(Generic[T]):
    """Value from the first provider that succeeded, with bookkeeping."""

    result: T
    provider: str
    tier: ProviderTier
    attempts: list[FallbackAttempt] = field(default_factory=list)


OnFallback = Callable[[str, str, Exception], None]


async def with_fallback(
    providers: Sequence[P],
    fn: Callable[[P], Awaitable[T]],
    *,
    stage: str | None = None,
    on_fallback: OnFallback | None = None,
) -> FallbackResult[T]:
    """Try *fn* against each provider in order until one succeeds.

    Args:
        providers: Ordered providers; each must expose ``name``.
        fn: Coroutine function invoked with a provider.
        stage: Stage name used in logs and raised errors.
        on_fallback: Called as ``on_fallback(from_name, to_name, error)``
            when a provider fails and a next one exists.

    Raises:
        PipelineError: FALLBACK_NO_PROVIDERS if *providers* is empty.
        Exception: The last provider's error when every provider fails.
    """
    if not providers:
        raise PipelineError.critical(
            FALLBACK_NO_PROVIDERS, "No providers configured", stage
        )

    attempts: list[FallbackAttempt] = []
    last_error: Exception | None = None

    for index, provider in enumerate(providers):
        start = time.monotonic_ns()
        try:
            result = await fn(provider)
        except Exception as exc:
            duration_ms = (time.monotonic_ns() - start) // 1_000_000
            attempts.append(
                FallbackAttempt(provider.name, False, duration_ms, str(exc) or type(exc).__name__)
            )
            last_error = exc

            if index + 1 < len(providers):
                next_name = providers[index + 1].name
                logger.warning(
                    "Stage '%s': provider %s failed (%s), falling back to %s",
                    stage or "-", provider.name, exc, next_name,
                )
                if on_fallback is not None:
                    on_fallback(provider.name, next_name, exc)
            continue

        duration_ms = (time.monotonic_ns() - start) // 1_000_000
        attempts.append(FallbackAttempt(provider.name, True, duration_ms))
        tier: ProviderTier = "primary" if index == 0 else "fallback"
        if tier == "fallback":
            logger.info(
                "Stage '%s': served by fallback provider %s", stage or "-", provider.name
            )
        return FallbackResult(
            result=result, provider=provider.name, tier=tier, attempts=attempts
        )

    logger.error(
        "Stage '%s': all %d providers failed", stage or "-", len(providers)
    )
    assert last_error is not None
    raise last_error
