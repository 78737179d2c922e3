# src/state/store_factory.py — v1
"""Factory for document store instantiation."""

from __future__ import annotations

from stagegate.config.settings import Settings
from stagegate.state.base_document_store import BaseDocumentStore


def create_document_store(settings: Settings | None = None) -> BaseDocumentStore:
    """Instantiate the configured state backend.

    Args:
        settings: Application settings. Defaults to JSON backend.

    Returns:
        Configured BaseDocumentStore implementation.
    """
    backend = "json" if settings is None else settings.state_backend
    root = "~/.stagegate/state" if settings is None else str(settings.state_root)

    if backend == "json":
        from stagegate.state.json_store import JsonDocumentStore
        return JsonDocumentStore(root=root)

    if backend == "sqlite":
        from stagegate.state.sqlite_store import SqliteDocumentStore
        return SqliteDocumentStore(db_path=f"{root}/stagegate.db")

    if backend == "redis":
        from stagegate.state.redis_store import RedisDocumentStore
        if settings is None or not settings.state_redis_url:
            raise ValueError(
                "STATE_REDIS_URL must be set when STATE_BACKEND=redis"
            )
        return RedisDocumentStore(redis_url=settings.state_redis_url)

    if backend == "memory":
        from stagegate.state.memory_store import MemoryDocumentStore
        return MemoryDocumentStore()

    raise ValueError(f"Unsupported state backend: {backend!r}")
