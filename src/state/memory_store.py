# src/state/memory_store.py — v1
"""In-process document store (STATE_BACKEND=memory). Used by tests and dry runs."""

from __future__ import annotations

import copy

from stagegate.state.base_document_store import BaseDocumentStore, Document


class MemoryDocumentStore(BaseDocumentStore):
    """Dict-backed store; documents are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Document]] = {}

    async def get(self, collection: str, key: str) -> Document | None:
        document = self._data.get(collection, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, collection: str, key: str, document: Document) -> None:
        self._data.setdefault(collection, {})[key] = copy.deepcopy(document)

    async def delete(self, collection: str, key: str) -> None:
        self._data.get(collection, {}).pop(key, None)

    async def list(self, collection: str) -> list[Document]:
        documents = self._data.get(collection, {})
        return [copy.deepcopy(documents[k]) for k in sorted(documents)]
