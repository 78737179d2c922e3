# src/pipeline/registry.py — v1
"""Stage registry: binds every StageName to a stage function.

Stage functions are plain coroutines ``async (StageInput) -> StageOutput``.
A stage may instead be bound to an ordered provider list: the registry then
wraps the call in the fallback chain and fills ``StageOutput.provider`` from
whichever provider served it.

The executor refuses a registry that leaves any stage unbound.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Awaitable, Callable, Sequence

from stagegate.config.stages import StageName
from stagegate.core.models import ProviderInfo, StageInput, StageOutput
from stagegate.resilience.fallback import with_fallback

logger = logging.getLogger(__name__)

StageFn = Callable[[StageInput], Awaitable[StageOutput]]
ProviderOp = Callable[[Any, StageInput], Awaitable[StageOutput]]


class RegistryError(Exception):
    """Raised when stage binding or loading fails."""


class StageRegistry:
    """Registry of stage functions keyed by StageName."""

    def __init__(self) -> None:
        self._stages: dict[StageName, StageFn] = {}

    @property
    def stage_names(self) -> list[StageName]:
        """Registered stages in declaration order."""
        return [s for s in StageName if s in self._stages]

    def register(self, stage: StageName | str, fn: StageFn) -> None:
        """Bind a stage function to *stage*."""
        name = _coerce(stage)
        if name in self._stages:
            logger.warning("Overwriting existing stage binding: %s", name.value)
        self._stages[name] = fn

    def register_providers(
        self,
        stage: StageName | str,
        providers: Sequence[Any],
        op: ProviderOp,
    ) -> None:
        """Bind *stage* to a fallback chain over *providers*.

        Args:
            stage: Stage to bind.
            providers: Ordered providers, each exposing ``name``.
            op: Coroutine called as ``op(provider, stage_input)``.
        """
        name = _coerce(stage)
        chain = list(providers)

        async def run_chain(stage_input: StageInput) -> StageOutput:
            outcome = await with_fallback(
                chain,
                lambda provider: op(provider, stage_input),
                stage=name.value,
            )
            return outcome.result.model_copy(
                update={
                    "provider": ProviderInfo(
                        name=outcome.provider,
                        tier=outcome.tier,
                        attempts=len(outcome.attempts),
                    )
                }
            )

        self.register(name, run_chain)

    def get(self, stage: StageName | str) -> StageFn | None:
        """Get the stage function, or None if unbound."""
        name = StageName.parse(stage) if isinstance(stage, str) else stage
        if name is None:
            return None
        return self._stages.get(name)

    def get_or_raise(self, stage: StageName | str) -> StageFn:
        fn = self.get(stage)
        if fn is None:
            raise RegistryError(f"Stage '{_value(stage)}' is not registered")
        return fn

    def missing(self) -> list[StageName]:
        """Stages with no function bound."""
        return [s for s in StageName if s not in self._stages]

    def validate(self) -> None:
        """Check that every stage is bound.

        Raises:
            RegistryError: Listing the unbound stages.
        """
        missing = self.missing()
        if missing:
            raise RegistryError(
                "Unregistered stages: " + ", ".join(s.value for s in missing)
            )

    def load_module(self, module_path: str) -> None:
        """Import *module_path* and let it bind stages.

        The module must expose ``register_stages(registry)``.
        """
        try:
            module = importlib.import_module(module_path)
        except ImportError as exc:
            raise RegistryError(f"Cannot import module {module_path}: {exc}") from exc

        register_stages = getattr(module, "register_stages", None)
        if not callable(register_stages):
            raise RegistryError(f"{module_path} does not define register_stages(registry)")

        register_stages(self)
        logger.info(
            "Loaded %d stage bindings from %s", len(self._stages), module_path
        )


def _coerce(stage: StageName | str) -> StageName:
    if isinstance(stage, StageName):
        return stage
    name = StageName.parse(stage)
    if name is None:
        raise RegistryError(f"Unknown stage: {stage!r}")
    return name


def _value(stage: StageName | str) -> str:
    return stage.value if isinstance(stage, StageName) else stage
