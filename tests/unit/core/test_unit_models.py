# tests/unit/core/test_unit_models.py — v1
"""Tests for core/models.py: quality context, run state and stage I/O."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from stagegate.core.models import (
    ProviderInfo,
    QualityContext,
    RunState,
    RunStatus,
    StageOutput,
    StageRecord,
    StageStatus,
)


class TestQualityContext:
    def test_empty_is_clean(self):
        assert QualityContext().is_clean

    def test_with_degraded_dedupes(self):
        ctx = QualityContext().with_degraded("thumbnail").with_degraded("thumbnail")
        assert ctx.degraded_stages == ("thumbnail",)

    def test_updates_are_supersets(self):
        base = QualityContext(flags=("a",))
        grown = base.with_fallback("tts", "backup").with_flags(["b"]).with_degraded("visual-gen")
        assert base.flags == ("a",)
        assert base.fallbacks_used == ()
        assert set(base.flags) <= set(grown.flags)
        assert grown.fallbacks_used == ("tts:backup",)
        assert grown.flags == ("a", "b")
        assert not grown.is_clean

    def test_with_no_flags_returns_same(self):
        ctx = QualityContext()
        assert ctx.with_flags([]) is ctx

    def test_with_flags_skips_known_flags(self):
        ctx = QualityContext(flags=("short_audio",))
        assert ctx.with_flags(["short_audio"]) is ctx
        assert ctx.with_flags(["short_audio", "low_res", "low_res"]).flags == (
            "short_audio",
            "low_res",
        )

    def test_without_stages(self):
        ctx = QualityContext(
            degraded_stages=("visual-gen", "thumbnail"),
            fallbacks_used=("tts:backup", "visual-gen:stock"),
            flags=("short_audio",),
        )
        trimmed = ctx.without_stages({"visual-gen"})
        assert trimmed.degraded_stages == ("thumbnail",)
        assert trimmed.fallbacks_used == ("tts:backup",)
        assert trimmed.flags == ("short_audio",)

    def test_frozen(self):
        with pytest.raises(ValidationError):
            QualityContext().flags = ("x",)  # type: ignore[misc]

    def test_roundtrip_from_json_lists(self):
        ctx = QualityContext.model_validate(
            {"degraded_stages": ["a"], "fallbacks_used": ["tts:b"], "flags": []}
        )
        assert ctx.degraded_stages == ("a",)


class TestStageOutput:
    def test_defaults(self):
        out = StageOutput(provider=ProviderInfo(name="p"))
        assert out.provider.tier == "primary"
        assert out.provider.attempts == 1
        assert out.cost == 0.0
        assert out.warnings == []
        assert out.quality == {}

    def test_invalid_tier(self):
        with pytest.raises(ValidationError):
            ProviderInfo(name="p", tier="secondary")


class TestRunState:
    def test_defaults(self):
        state = RunState(id="2026-01-19")
        assert state.status is RunStatus.PENDING
        assert state.stages == {}
        assert state.total_cost == 0.0

    def test_is_stale(self):
        now = datetime(2026, 1, 19, 12, 0, tzinfo=timezone.utc)
        fresh = RunState(id="r", start_time=now - timedelta(hours=1))
        old = RunState(id="r", start_time=now - timedelta(hours=5))
        assert not fresh.is_stale(4 * 3600, now=now)
        assert old.is_stale(4 * 3600, now=now)

    def test_naive_start_time_treated_as_utc(self):
        now = datetime(2026, 1, 19, 12, 0, tzinfo=timezone.utc)
        state = RunState(id="r", start_time=datetime(2026, 1, 19, 7, 0))
        assert state.is_stale(4 * 3600, now=now)

    def test_partial_stage_record_from_document(self):
        state = RunState.model_validate(
            {"id": "r", "stages": {"tts": {"status": "running"}}}
        )
        record = state.stages["tts"]
        assert isinstance(record, StageRecord)
        assert record.status is StageStatus.RUNNING
        assert record.retry_attempts == 0
