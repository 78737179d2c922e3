# tests/conftest.py — v1
"""Shared test fixtures for all unit tests.

Provides an in-memory document store, a zero-delay stage table, a registry
of scripted stage functions and a wired executor. No external
dependencies: all I/O stays in process.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

import pytest

from stagegate.config.settings import Settings
from stagegate.config.stages import DEFAULT_STAGES, StageDefinition, StageName
from stagegate.core.models import (
    Artifact,
    ProviderInfo,
    QualityContext,
    StageInput,
    StageOutput,
)
from stagegate.pipeline.executor import StageExecutor
from stagegate.pipeline.registry import StageRegistry
from stagegate.quality.models import GateInput
from stagegate.state.memory_store import MemoryDocumentStore
from stagegate.state.run_state import RunStateStore

RUN_ID = "2026-01-19"


def make_output(
    data: Any = None,
    provider: str = "primary-provider",
    tier: str = "primary",
    attempts: int = 1,
    cost: float = 0.0,
    warnings: list[str] | None = None,
    quality: dict[str, Any] | None = None,
    artifacts: list[Artifact] | None = None,
) -> StageOutput:
    return StageOutput(
        data=data if data is not None else {},
        provider=ProviderInfo(name=provider, tier=tier, attempts=attempts),
        cost=cost,
        warnings=warnings or [],
        quality=quality or {},
        artifacts=artifacts or [],
    )


class ScriptedStages:
    """Stage functions that record their inputs and follow a per-stage script.

    ``behaviour[stage]`` is either a StageOutput to return, an exception to
    raise on every call, or a callable ``(StageInput) -> StageOutput``.
    Unscripted stages succeed with ``{"<stage>": True}`` chained onto the
    input data.
    """

    def __init__(self) -> None:
        self.behaviour: dict[str, Any] = {}
        self.calls: list[str] = []
        self.inputs: dict[str, StageInput] = {}

    def fn(self, stage: StageName) -> Callable:
        async def run(stage_input: StageInput) -> StageOutput:
            self.calls.append(stage.value)
            self.inputs[stage.value] = stage_input
            action = self.behaviour.get(stage.value)
            if isinstance(action, BaseException):
                raise action
            if isinstance(action, StageOutput):
                return action
            if callable(action):
                return action(stage_input)
            data = dict(stage_input.data) if isinstance(stage_input.data, dict) else {}
            data[stage.value] = True
            return make_output(data=data, cost=0.01)

        return run


# === FIXTURES: Stage table and settings ===


@pytest.fixture
def stage_output() -> Callable[..., StageOutput]:
    """Factory for StageOutput instances."""
    return make_output


@pytest.fixture
def fast_stages() -> tuple[StageDefinition, ...]:
    """Default stage table with zero backoff delays."""
    return tuple(replace(d, base_delay_s=0.0) for d in DEFAULT_STAGES)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        state_backend="memory",
        state_root=tmp_path / "state",
        init_retry_delay_s=0.0,
    )


# === FIXTURES: State ===


@pytest.fixture
def document_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def run_state(document_store: MemoryDocumentStore) -> RunStateStore:
    return RunStateStore(document_store)


# === FIXTURES: Executor ===


@pytest.fixture
def scripted() -> ScriptedStages:
    return ScriptedStages()


@pytest.fixture
def registry(scripted: ScriptedStages) -> StageRegistry:
    reg = StageRegistry()
    for stage in StageName:
        reg.register(stage, scripted.fn(stage))
    return reg


@pytest.fixture
def executor(
    registry: StageRegistry,
    run_state: RunStateStore,
    settings: Settings,
    fast_stages: tuple[StageDefinition, ...],
) -> StageExecutor:
    return StageExecutor(registry, run_state, settings, stages=fast_stages)


# === FIXTURES: Gate input ===


@pytest.fixture
def clean_gate_input() -> GateInput:
    """Stage outputs that pass every detector."""
    return GateInput(
        run_id=RUN_ID,
        stages={
            "script-gen": make_output(
                quality={"word_count": 1500},
                artifacts=[Artifact(type="text", url="gs://bucket/script.md")],
            ),
            "pronunciation": make_output(quality={"unknown_count": 0}),
            "tts": make_output(provider="tts-primary"),
            "visual-gen": make_output(
                quality={"total_scenes": 10, "fallback_count": 0},
                artifacts=[
                    Artifact(type="image", url="gs://bucket/scene-1.png"),
                    Artifact(type="video", url="gs://bucket/video.mp4"),
                ],
            ),
            "thumbnail": make_output(
                artifacts=[Artifact(type="image", url="gs://bucket/thumb-a.png")],
            ),
        },
        quality_context=QualityContext(),
    )
