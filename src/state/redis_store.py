# src/state/redis_store.py — v1
"""Redis-based document store (STATE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable when several trigger hosts share run state.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from stagegate.state.base_document_store import BaseDocumentStore, Document

logger = logging.getLogger(__name__)

_KEY_PREFIX = "stagegate:"


class RedisDocumentStore(BaseDocumentStore):
    """Redis-backed document store for distributed deployments."""

    def __init__(self, redis_url: str, client: Any = None) -> None:
        if client is None:
            try:
                import redis
            except ImportError as e:
                raise ImportError(
                    "redis package required: pip install redis"
                ) from e
            client = redis.Redis.from_url(redis_url, decode_responses=True)

        self._client = client

    async def get(self, collection: str, key: str) -> Document | None:
        data = self._client.get(_doc_key(collection, key))
        if data is None:
            return None
        return json.loads(data)

    async def set(self, collection: str, key: str, document: Document) -> None:
        self._client.set(_doc_key(collection, key), json.dumps(document, default=str))
        # Per-collection index of keys for list()
        self._client.sadd(_index_key(collection), key)

    async def delete(self, collection: str, key: str) -> None:
        self._client.delete(_doc_key(collection, key))
        self._client.srem(_index_key(collection), key)

    async def list(self, collection: str) -> list[Document]:
        documents: list[Document] = []
        for key in sorted(self._client.smembers(_index_key(collection))):
            document = await self.get(collection, key)
            if document is not None:
                documents.append(document)
        return documents

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()


def _doc_key(collection: str, key: str) -> str:
    return f"{_KEY_PREFIX}{collection}:{key}"


def _index_key(collection: str) -> str:
    return f"{_KEY_PREFIX}{collection}:__index__"
