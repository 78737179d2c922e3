# src/state/json_store.py — v1
"""JSON file-based document store (default STATE_BACKEND=json).

One file per document under ``STATE_ROOT/<collection>/<key>.json``.
Writes go through a temp file and an atomic rename.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from stagegate.state.base_document_store import BaseDocumentStore, Document

logger = logging.getLogger(__name__)


class JsonDocumentStore(BaseDocumentStore):
    """File-based document store using JSON files."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, collection: str, key: str) -> Document | None:
        path = self._doc_path(collection, key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    async def set(self, collection: str, key: str, document: Document) -> None:
        path = self._doc_path(collection, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
        os.replace(tmp, path)

    async def delete(self, collection: str, key: str) -> None:
        path = self._doc_path(collection, key)
        if path.exists():
            path.unlink()

    async def list(self, collection: str) -> list[Document]:
        directory = self._root / _safe(collection)
        documents: list[Document] = []
        if not directory.is_dir():
            return documents

        for path in sorted(directory.glob("*.json")):
            try:
                documents.append(json.loads(path.read_text(encoding="utf-8")))
            except json.JSONDecodeError as e:
                logger.warning("Skipping unreadable document %s: %s", path, e)
        return documents

    def _doc_path(self, collection: str, key: str) -> Path:
        return self._root / _safe(collection) / f"{_safe(key)}.json"


def _safe(name: str) -> str:
    return name.replace("/", "_").replace("\\", "_").replace("..", "_")
