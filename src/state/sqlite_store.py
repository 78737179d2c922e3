# src/state/sqlite_store.py — v1
"""SQLite-based document store (STATE_BACKEND=sqlite).

Uses stdlib sqlite3, one table keyed by (collection, key).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from stagegate.state.base_document_store import BaseDocumentStore, Document

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (collection, key)
);
"""


class SqliteDocumentStore(BaseDocumentStore):
    """SQLite-backed document store."""

    def __init__(self, db_path: Path | str) -> None:
        if str(db_path) == ":memory:":
            self._db_path = None
            self._conn = sqlite3.connect(":memory:")
        else:
            self._db_path = Path(db_path).expanduser()
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, collection: str, key: str) -> Document | None:
        cursor = self._conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND key = ?",
            (collection, key),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, collection: str, key: str, document: Document) -> None:
        self._conn.execute(
            """INSERT OR REPLACE INTO documents (collection, key, data, updated_at)
               VALUES (?, ?, ?, CURRENT_TIMESTAMP)""",
            (collection, key, json.dumps(document, default=str)),
        )
        self._conn.commit()

    async def delete(self, collection: str, key: str) -> None:
        self._conn.execute(
            "DELETE FROM documents WHERE collection = ? AND key = ?", (collection, key)
        )
        self._conn.commit()

    async def list(self, collection: str) -> list[Document]:
        cursor = self._conn.execute(
            "SELECT key, data FROM documents WHERE collection = ? ORDER BY key",
            (collection,),
        )
        documents: list[Document] = []
        for key, data in cursor.fetchall():
            try:
                documents.append(json.loads(data))
            except json.JSONDecodeError as e:
                logger.warning("Skipping unreadable document %s/%s: %s", collection, key, e)
        return documents

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
