# src/review/buffer_pool.py — v1
"""Pool of pre-produced fallback artifacts.

When an operator rejects a run's output, the gate publishes one of these
instead. An artifact is available while it is ``active`` and has not been
deployed; deploying it is a one-way transition.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from stagegate.state.base_document_store import BaseDocumentStore

logger = logging.getLogger(__name__)

FALLBACK_ARTIFACTS = "fallback_artifacts"


class ArtifactStatus(str, Enum):
    ACTIVE = "active"
    DEPLOYED = "deployed"
    ARCHIVED = "archived"


class FallbackArtifact(BaseModel):
    id: str
    title: str = ""
    published_ref: str
    status: ArtifactStatus = ArtifactStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deployed_for: str | None = None
    deployed_at: datetime | None = None

    @property
    def is_available(self) -> bool:
        return self.status is ArtifactStatus.ACTIVE and self.deployed_for is None


class DeployResult(BaseModel):
    success: bool
    artifact_id: str | None = None
    published_ref: str | None = None
    error: str | None = None


class BaseBufferPool(ABC):
    """Fallback artifact pool interface."""

    @abstractmethod
    async def list_available_fallback_artifacts(self) -> list[FallbackArtifact]:
        """Available artifacts, oldest first."""

    @abstractmethod
    async def deploy_fallback_artifact(self, artifact_id: str, run_id: str) -> DeployResult:
        """Publish *artifact_id* in place of *run_id*'s output."""


class DocumentBufferPool(BaseBufferPool):
    """Buffer pool stored in a BaseDocumentStore collection."""

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store

    async def add_artifact(self, artifact: FallbackArtifact) -> None:
        await self._store.set(FALLBACK_ARTIFACTS, artifact.id, artifact.model_dump(mode="json"))

    async def get_artifact(self, artifact_id: str) -> FallbackArtifact | None:
        document = await self._store.get(FALLBACK_ARTIFACTS, artifact_id)
        if document is None:
            return None
        return FallbackArtifact.model_validate(document)

    async def list_available_fallback_artifacts(self) -> list[FallbackArtifact]:
        artifacts = [
            FallbackArtifact.model_validate(d)
            for d in await self._store.list(FALLBACK_ARTIFACTS)
        ]
        return sorted((a for a in artifacts if a.is_available), key=lambda a: a.created_at)

    async def deploy_fallback_artifact(self, artifact_id: str, run_id: str) -> DeployResult:
        artifact = await self.get_artifact(artifact_id)
        if artifact is None:
            return DeployResult(success=False, artifact_id=artifact_id, error="Artifact not found")

        if not artifact.is_available:
            return DeployResult(
                success=False,
                artifact_id=artifact_id,
                error=f"Artifact {artifact_id} is not available (status: {artifact.status.value})",
            )

        await self._store.update(
            FALLBACK_ARTIFACTS,
            artifact_id,
            {
                "status": ArtifactStatus.DEPLOYED.value,
                "deployed_for": run_id,
                "deployed_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("Fallback artifact %s deployed for run %s", artifact_id, run_id)
        return DeployResult(
            success=True, artifact_id=artifact_id, published_ref=artifact.published_ref
        )
