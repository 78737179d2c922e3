# src/state/base_document_store.py — v1
"""Abstract document store interface.

Documents are JSON-compatible dicts grouped in collections and keyed by id.
``update`` applies a merge patch whose keys may be dotted paths
(``"stages.tts.status"``) addressing nested fields.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any

Document = dict[str, Any]


class DocumentNotFoundError(KeyError):
    """Raised when patching a document that does not exist."""

    def __init__(self, collection: str, key: str) -> None:
        self.collection = collection
        self.key = key
        super().__init__(f"{collection}/{key}")


def apply_patch(document: Document, patch: dict[str, Any]) -> Document:
    """Return a copy of *document* with *patch* merged in.

    Dotted keys create intermediate dicts as needed. Non-dotted keys
    replace the top-level value.
    """
    merged = copy.deepcopy(document)
    for path, value in patch.items():
        parts = path.split(".")
        target = merged
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = copy.deepcopy(value)
    return merged


class BaseDocumentStore(ABC):
    """Unified interface for document storage backends."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Document | None:
        """Retrieve a document, or None if absent."""

    @abstractmethod
    async def set(self, collection: str, key: str, document: Document) -> None:
        """Create or fully replace a document."""

    async def update(self, collection: str, key: str, patch: dict[str, Any]) -> Document:
        """Merge-patch an existing document and return the new version.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        current = await self.get(collection, key)
        if current is None:
            raise DocumentNotFoundError(collection, key)
        merged = apply_patch(current, patch)
        await self.set(collection, key, merged)
        return merged

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None:
        """Remove a document; missing documents are ignored."""

    @abstractmethod
    async def list(self, collection: str) -> list[Document]:
        """List all documents in a collection."""

    def close(self) -> None:
        """Release backend resources."""
