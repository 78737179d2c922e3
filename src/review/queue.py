# src/review/queue.py — v1
"""Human review queue collaborator.

``BaseReviewQueue`` is what the publish gate talks to. The default
implementation keeps review items as documents in the ``review_queue``
collection of the state store.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from stagegate.quality.models import ReviewItem, ReviewStatus
from stagegate.state.base_document_store import BaseDocumentStore

logger = logging.getLogger(__name__)

REVIEW_QUEUE = "review_queue"


class BaseReviewQueue(ABC):
    """Review queue interface."""

    @abstractmethod
    async def add_to_review_queue(self, item: ReviewItem) -> str:
        """Store *item* and return its id."""

    @abstractmethod
    async def get_review_item(self, item_id: str) -> ReviewItem | None:
        """Get an item by id, or None."""

    @abstractmethod
    async def resolve_review_item(self, item_id: str, note: str, resolved_by: str) -> None:
        """Mark an item resolved with an operator note."""

    @abstractmethod
    async def list_pending(self) -> list[ReviewItem]:
        """Pending items, oldest first."""


class DocumentReviewQueue(BaseReviewQueue):
    """Review queue stored in a BaseDocumentStore collection."""

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store

    async def add_to_review_queue(self, item: ReviewItem) -> str:
        item_id = item.id or uuid.uuid4().hex
        stored = item.model_copy(update={"id": item_id})
        await self._store.set(REVIEW_QUEUE, item_id, stored.model_dump(mode="json"))
        logger.info("Review item %s added for run %s", item_id, item.run_id)
        return item_id

    async def get_review_item(self, item_id: str) -> ReviewItem | None:
        document = await self._store.get(REVIEW_QUEUE, item_id)
        if document is None:
            return None
        return ReviewItem.model_validate(document)

    async def resolve_review_item(self, item_id: str, note: str, resolved_by: str) -> None:
        await self._store.update(
            REVIEW_QUEUE,
            item_id,
            {
                "status": ReviewStatus.RESOLVED.value,
                "resolution_note": note,
                "resolved_by": resolved_by,
                "resolved_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("Review item %s resolved by %s", item_id, resolved_by)

    async def list_pending(self) -> list[ReviewItem]:
        items = [ReviewItem.model_validate(d) for d in await self._store.list(REVIEW_QUEUE)]
        return sorted(
            (i for i in items if i.status is ReviewStatus.PENDING),
            key=lambda i: i.created_at,
        )
