# tests/unit/state/test_document_stores.py — v1
"""Tests for the local document store backends (json, sqlite, memory).

Each backend runs the same behavioural checks through a parametrized fixture.
"""

from __future__ import annotations

import pytest

from stagegate.state.base_document_store import (
    DocumentNotFoundError,
    apply_patch,
)
from stagegate.state.json_store import JsonDocumentStore
from stagegate.state.memory_store import MemoryDocumentStore
from stagegate.state.sqlite_store import SqliteDocumentStore


@pytest.fixture(params=["json", "sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "json":
        s = JsonDocumentStore(root=tmp_path / "docs")
    elif request.param == "sqlite":
        s = SqliteDocumentStore(db_path=tmp_path / "docs.db")
    else:
        s = MemoryDocumentStore()
    yield s
    s.close()


class TestApplyPatch:
    def test_dotted_path(self):
        doc = {"stages": {"tts": {"status": "running"}}}
        merged = apply_patch(doc, {"stages.tts.status": "completed", "stages.tts.cost": 0.2})
        assert merged["stages"]["tts"] == {"status": "completed", "cost": 0.2}
        assert doc["stages"]["tts"] == {"status": "running"}

    def test_creates_intermediate_dicts(self):
        merged = apply_patch({}, {"stages.research.status": "running"})
        assert merged == {"stages": {"research": {"status": "running"}}}

    def test_top_level_replace(self):
        merged = apply_patch({"a": {"b": 1}}, {"a": {"c": 2}})
        assert merged == {"a": {"c": 2}}

    def test_value_copied(self):
        value = {"x": [1]}
        merged = apply_patch({}, {"v": value})
        value["x"].append(2)
        assert merged["v"] == {"x": [1]}


class TestDocumentStore:
    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("runs", "nope") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("runs", "2026-01-19", {"id": "2026-01-19", "status": "running"})
        assert await store.get("runs", "2026-01-19") == {"id": "2026-01-19", "status": "running"}

    @pytest.mark.asyncio
    async def test_set_replaces(self, store):
        await store.set("runs", "r", {"a": 1})
        await store.set("runs", "r", {"b": 2})
        assert await store.get("runs", "r") == {"b": 2}

    @pytest.mark.asyncio
    async def test_collections_isolated(self, store):
        await store.set("runs", "r", {"kind": "run"})
        await store.set("review_queue", "r", {"kind": "review"})
        assert (await store.get("runs", "r"))["kind"] == "run"
        assert (await store.get("review_queue", "r"))["kind"] == "review"

    @pytest.mark.asyncio
    async def test_update_merges(self, store):
        await store.set("runs", "r", {"status": "running", "stages": {}})
        merged = await store.update("runs", "r", {"stages.tts.status": "completed"})
        assert merged["stages"]["tts"]["status"] == "completed"
        assert (await store.get("runs", "r"))["status"] == "running"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.update("runs", "missing", {"status": "failed"})

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("runs", "r", {"a": 1})
        await store.delete("runs", "r")
        await store.delete("runs", "r")
        assert await store.get("runs", "r") is None

    @pytest.mark.asyncio
    async def test_list_sorted_by_key(self, store):
        await store.set("artifacts", "b", {"id": "b"})
        await store.set("artifacts", "a", {"id": "a"})
        assert [d["id"] for d in await store.list("artifacts")] == ["a", "b"]
        assert await store.list("empty") == []


class TestJsonDocumentStore:
    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path):
        store = JsonDocumentStore(root=tmp_path)
        await store.set("stage_outputs", "r__tts", {"ok": True})
        assert (tmp_path / "stage_outputs" / "r__tts.json").exists()
        assert not list(tmp_path.rglob("*.tmp"))

    @pytest.mark.asyncio
    async def test_key_cannot_escape_root(self, tmp_path):
        store = JsonDocumentStore(root=tmp_path / "root")
        await store.set("runs", "../evil", {"x": 1})
        assert not (tmp_path / "evil.json").exists()
        assert await store.get("runs", "../evil") == {"x": 1}

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_file(self, tmp_path):
        store = JsonDocumentStore(root=tmp_path)
        await store.set("runs", "good", {"id": "good"})
        (tmp_path / "runs" / "bad.json").write_text("{not json", encoding="utf-8")
        assert await store.list("runs") == [{"id": "good"}]


class TestSqliteDocumentStore:
    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        store = SqliteDocumentStore(":memory:")
        await store.set("runs", "r", {"a": 1})
        assert await store.get("runs", "r") == {"a": 1}
        store.close()

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state.db"
        first = SqliteDocumentStore(path)
        await first.set("runs", "r", {"status": "completed"})
        first.close()
        second = SqliteDocumentStore(path)
        assert await second.get("runs", "r") == {"status": "completed"}
        second.close()


class TestMemoryDocumentStore:
    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self):
        store = MemoryDocumentStore()
        await store.set("runs", "r", {"stages": {}})
        doc = await store.get("runs", "r")
        doc["stages"]["tts"] = {}
        assert await store.get("runs", "r") == {"stages": {}}
