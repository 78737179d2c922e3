# tests/unit/state/test_redis_store.py — v1
"""Tests for state/redis_store.py: mocked Redis client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from stagegate.state.redis_store import RedisDocumentStore


def _client():
    client = MagicMock()
    client.get.return_value = None
    client.smembers.return_value = set()
    return client


class TestRedisDocumentStore:
    def test_import_error_without_redis(self):
        """Clear ImportError when redis is not available."""
        with patch.dict("sys.modules", {"redis": None}):
            with pytest.raises(ImportError, match="redis"):
                RedisDocumentStore(redis_url="redis://localhost")

    def test_builds_client_from_url(self):
        fake_redis = MagicMock()
        with patch.dict("sys.modules", {"redis": fake_redis}):
            RedisDocumentStore(redis_url="redis://cache:6379/1")
        fake_redis.Redis.from_url.assert_called_once_with(
            "redis://cache:6379/1", decode_responses=True
        )

    @pytest.mark.asyncio
    async def test_get_missing(self):
        client = _client()
        store = RedisDocumentStore("redis://x", client=client)
        assert await store.get("runs", "r") is None
        client.get.assert_called_once_with("stagegate:runs:r")

    @pytest.mark.asyncio
    async def test_set_writes_document_and_index(self):
        client = _client()
        store = RedisDocumentStore("redis://x", client=client)
        await store.set("runs", "r", {"status": "running"})
        key, payload = client.set.call_args.args
        assert key == "stagegate:runs:r"
        assert json.loads(payload) == {"status": "running"}
        client.sadd.assert_called_once_with("stagegate:runs:__index__", "r")

    @pytest.mark.asyncio
    async def test_get_decodes(self):
        client = _client()
        client.get.return_value = json.dumps({"status": "completed"})
        store = RedisDocumentStore("redis://x", client=client)
        assert await store.get("runs", "r") == {"status": "completed"}

    @pytest.mark.asyncio
    async def test_update_uses_get_and_set(self):
        client = _client()
        client.get.return_value = json.dumps({"status": "running"})
        store = RedisDocumentStore("redis://x", client=client)
        merged = await store.update("runs", "r", {"stages.tts.status": "running"})
        assert merged == {"status": "running", "stages": {"tts": {"status": "running"}}}
        client.set.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete_removes_from_index(self):
        client = _client()
        store = RedisDocumentStore("redis://x", client=client)
        await store.delete("runs", "r")
        client.delete.assert_called_once_with("stagegate:runs:r")
        client.srem.assert_called_once_with("stagegate:runs:__index__", "r")

    @pytest.mark.asyncio
    async def test_list_skips_vanished_keys(self):
        client = _client()
        client.smembers.return_value = {"a", "b"}
        client.get.side_effect = lambda k: json.dumps({"id": "a"}) if k.endswith(":a") else None
        store = RedisDocumentStore("redis://x", client=client)
        assert await store.list("runs") == [{"id": "a"}]

    def test_close(self):
        client = _client()
        RedisDocumentStore("redis://x", client=client).close()
        client.close.assert_called_once()
