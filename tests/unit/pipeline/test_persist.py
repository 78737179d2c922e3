# tests/unit/pipeline/test_persist.py — v1
"""Tests for pipeline/persist.py: BestEffortWriter proxy."""

from __future__ import annotations

import pytest

from stagegate.pipeline.persist import BestEffortWriter


class FlakyTarget:
    label = "target"

    def __init__(self) -> None:
        self.writes: list[str] = []

    async def write(self, value: str) -> str:
        self.writes.append(value)
        return f"wrote {value}"

    async def explode(self) -> None:
        raise OSError("disk full")

    def sync_method(self) -> int:
        return 42


class TestBestEffortWriter:
    @pytest.mark.asyncio
    async def test_passes_through_success(self):
        target = FlakyTarget()
        writer = BestEffortWriter(target)
        assert await writer.write("a") == "wrote a"
        assert target.writes == ["a"]

    @pytest.mark.asyncio
    async def test_swallows_and_logs_failure(self, caplog):
        writer = BestEffortWriter(FlakyTarget(), label="run state")
        with caplog.at_level("WARNING", logger="stagegate.pipeline.persist"):
            assert await writer.explode() is None
        assert "run state.explode" in caplog.text
        assert "disk full" in caplog.text

    def test_non_coroutines_untouched(self):
        writer = BestEffortWriter(FlakyTarget())
        assert writer.sync_method() == 42
        assert writer.label == "target"

    def test_missing_attribute_raises(self):
        with pytest.raises(AttributeError):
            BestEffortWriter(FlakyTarget()).nope  # noqa: B018
