# tests/unit/pipeline/test_dry_run.py — v1
"""Tests for pipeline/dry_run.py: passthrough stages end to end."""

from __future__ import annotations

import pytest

from stagegate.config.stages import StageName
from stagegate.core.models import StageConfig, StageInput
from stagegate.pipeline.dry_run import DRY_RUN_PROVIDER, make_passthrough, register_stages
from stagegate.pipeline.executor import StageExecutor
from stagegate.pipeline.registry import StageRegistry
from stagegate.quality.gate import PublishQualityGate
from stagegate.quality.models import Decision, GateInput
from stagegate.review.buffer_pool import DocumentBufferPool
from stagegate.review.queue import DocumentReviewQueue


class TestPassthrough:
    @pytest.mark.asyncio
    async def test_echoes_chained_data(self):
        fn = make_passthrough(StageName.RESEARCH)
        output = await fn(
            StageInput(
                run_id="r",
                previous_stage="news-sourcing",
                data={"news-sourcing": {"previous_stage": None}},
                config=StageConfig(timeout_s=1, retries=0, base_delay_s=0),
            )
        )
        assert output.data == {
            "news-sourcing": {"previous_stage": None},
            "research": {"previous_stage": "news-sourcing"},
        }
        assert output.provider.name == DRY_RUN_PROVIDER
        assert output.cost == 0.0

    def test_register_stages_binds_everything(self):
        reg = StageRegistry()
        register_stages(reg)
        reg.validate()
        assert reg.get(StageName.TTS).__name__ == "dry_run_tts"


class TestDryRunEndToEnd:
    @pytest.mark.asyncio
    async def test_run_passes_gate(self, run_state, settings, fast_stages, document_store):
        reg = StageRegistry()
        register_stages(reg)
        executor = StageExecutor(reg, run_state, settings, stages=fast_stages)

        result = await executor.execute("dry-2026-01-19")
        assert result.success
        assert result.total_cost == 0.0

        gate = PublishQualityGate(
            document_store,
            DocumentReviewQueue(document_store),
            DocumentBufferPool(document_store),
            settings,
        )
        decision = gate.check(GateInput.from_result(result))
        assert decision.decision is Decision.AUTO_PUBLISH
        assert decision.issues == []
