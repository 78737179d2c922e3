# src/quality/gate.py — v1
"""Publish quality gate.

Decides, from a finished run's stage outputs and quality context, whether
its content may be published automatically:

  - any major issue                    -> HUMAN_REVIEW
  - more than ``max_minor_issues``     -> HUMAN_REVIEW
  - 1..max_minor_issues minor issues   -> AUTO_PUBLISH_WITH_WARNING
  - no issues                          -> AUTO_PUBLISH

The decision is a pure function of the input. Persistence, review item
creation and review resolution go through the document store, the review
queue and the buffer pool.
"""

from __future__ import annotations

import logging
from typing import Any

from stagegate.config.settings import Settings
from stagegate.config.stages import StageName
from stagegate.quality.detectors import Thresholds, calculate_metrics, detect_all
from stagegate.quality.models import (
    Decision,
    GateInput,
    PreviewReferences,
    QualityDecision,
    QualityIssue,
    RejectionResult,
    ReviewItem,
    ReviewStatus,
    StageQuality,
)
from stagegate.review.buffer_pool import BaseBufferPool, DeployResult
from stagegate.review.queue import BaseReviewQueue
from stagegate.state.base_document_store import BaseDocumentStore

logger = logging.getLogger(__name__)

QUALITY_DECISIONS = "quality_decisions"
DECISION_VERSION = 1


def _stage_verdict(stage: str, issues: list[QualityIssue]) -> str:
    stage_issues = [i for i in issues if i.stage == stage]
    if any(i.severity == "major" for i in stage_issues):
        return "fail"
    if stage_issues:
        return "warn"
    return "pass"


def decide(
    issues: list[QualityIssue], max_minor_issues: int = 2
) -> tuple[Decision, list[str]]:
    """Map detected issues to a decision and human-readable reasons."""
    major = [i for i in issues if i.severity == "major"]
    minor = [i for i in issues if i.severity == "minor"]

    if major:
        reasons = [f"{len(major)} major issue(s) detected requiring human review"]
        reasons += [f"[MAJOR] {i.stage}: {i.message}" for i in major]
        return Decision.HUMAN_REVIEW, reasons

    if len(minor) > max_minor_issues:
        reasons = [f"{len(minor)} minor issues exceed threshold (max: {max_minor_issues})"]
        reasons += [f"[MINOR] {i.stage}: {i.message}" for i in minor]
        return Decision.HUMAN_REVIEW, reasons

    if minor:
        reasons = [f"{len(minor)} minor issue(s) detected, publishing with warnings"]
        reasons += [f"[WARNING] {i.stage}: {i.message}" for i in minor]
        return Decision.AUTO_PUBLISH_WITH_WARNING, reasons

    return Decision.AUTO_PUBLISH, ["All quality checks passed, no issues detected"]


def extract_previews(run: GateInput) -> PreviewReferences:
    """Video from visual-gen, first thumbnail artifact, script text from script-gen."""
    visual = run.stages.get(StageName.VISUAL_GEN.value)
    thumbnail = run.stages.get(StageName.THUMBNAIL.value)
    script = run.stages.get(StageName.SCRIPT_GEN.value)

    def first(output, artifact_type: str | None) -> str | None:
        if output is None:
            return None
        for artifact in output.artifacts:
            if artifact_type is None or artifact.type == artifact_type:
                return artifact.url
        return None

    return PreviewReferences(
        video=first(visual, "video"),
        thumbnail=first(thumbnail, None),
        script=first(script, "text"),
    )


class PublishQualityGate:
    """Evaluate runs and manage the resulting review workflow.

    Args:
        store: Document store holding persisted decisions.
        review_queue: Queue receiving HUMAN_REVIEW items.
        buffer_pool: Pool of substitute artifacts used on rejection.
        settings: Source of gate thresholds.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        review_queue: BaseReviewQueue,
        buffer_pool: BaseBufferPool,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._queue = review_queue
        self._pool = buffer_pool
        self._limits = Thresholds.from_settings(settings) if settings else Thresholds()

    @property
    def thresholds(self) -> Thresholds:
        return self._limits

    # --- Decision ---

    def check(self, run: GateInput) -> QualityDecision:
        """Run the detector battery and decide."""
        issues = detect_all(run, self._limits)
        decision, reasons = decide(issues, self._limits.max_minor_issues)

        summary = {
            name: StageQuality(
                status=_stage_verdict(name, issues),
                provider=output.provider.name,
                tier=output.provider.tier,
            )
            for name, output in run.stages.items()
        }

        result = QualityDecision(
            decision=decision,
            issues=issues,
            reasons=reasons,
            metrics=calculate_metrics(run),
            stage_quality_summary=summary,
        )
        logger.info(
            "Quality gate for run %s: %s (%d major, %d minor)",
            run.run_id, decision.value, len(result.major_issues), len(result.minor_issues),
        )
        return result

    # --- Persistence ---

    async def persist_decision(self, run_id: str, decision: QualityDecision) -> bool:
        """Store the decision once. Failures are logged, never raised.

        Returns:
            True if the decision was written.
        """
        try:
            if await self._store.get(QUALITY_DECISIONS, run_id) is not None:
                logger.warning("Quality decision for run %s already exists, not overwriting", run_id)
                return False
            document = {**decision.model_dump(mode="json"), "version": DECISION_VERSION}
            await self._store.set(QUALITY_DECISIONS, run_id, document)
        except Exception as exc:
            logger.error("Failed to persist quality decision for run %s: %s", run_id, exc)
            return False

        logger.info("Quality decision for run %s persisted: %s", run_id, decision.decision.value)
        return True

    async def get_decision(self, run_id: str) -> QualityDecision | None:
        document = await self._store.get(QUALITY_DECISIONS, run_id)
        if document is None:
            return None
        document.pop("version", None)
        return QualityDecision.model_validate(document)

    # --- Human review ---

    async def create_review_item(
        self, run_id: str, decision: QualityDecision, run: GateInput
    ) -> str:
        """Open a review item carrying the major issues and preview references."""
        stage_quality: dict[str, Any] = {
            name: {
                "status": _stage_verdict(name, decision.issues),
                "metrics": dict(output.quality),
            }
            for name, output in run.stages.items()
        }
        item = ReviewItem(
            run_id=run_id,
            major_issues=decision.major_issues,
            preview_references=extract_previews(run),
            context={
                "quality_decision": decision.model_dump(mode="json"),
                "stage_quality": stage_quality,
            },
        )
        item_id = await self._queue.add_to_review_queue(item)
        logger.info(
            "Review item %s created for run %s (%d major issues)",
            item_id, run_id, len(item.major_issues),
        )
        return item_id

    async def list_pending_reviews(self) -> list[ReviewItem]:
        return await self._queue.list_pending()

    async def _pending_item(self, item_id: str) -> ReviewItem | None:
        item = await self._queue.get_review_item(item_id)
        if item is None:
            logger.warning("Review item %s not found", item_id)
            return None
        if item.status is not ReviewStatus.PENDING:
            logger.warning("Review item %s already %s", item_id, item.status.value)
            return None
        return item

    async def resolve_approve(self, item_id: str, resolved_by: str) -> bool:
        """Approve a pending item so the run's own output can be published."""
        try:
            item = await self._pending_item(item_id)
            if item is None:
                return False
            await self._queue.resolve_review_item(
                item_id, "Quality review approved, proceeding to publish", resolved_by
            )
        except Exception as exc:
            logger.error("Failed to approve review item %s: %s", item_id, exc)
            return False

        logger.info("Review item %s (run %s) approved by %s", item_id, item.run_id, resolved_by)
        return True

    async def resolve_reject(self, item_id: str, resolved_by: str) -> RejectionResult:
        """Reject a pending item and publish the first available fallback artifact.

        The item is resolved even when no substitute can be published; the
        note and ``critical=True`` flag that case for operators.
        """
        try:
            existing = await self._queue.get_review_item(item_id)
            if existing is None:
                logger.warning("Review item %s not found", item_id)
                return RejectionResult(success=False, error="Review item not found")
            if existing.status is not ReviewStatus.PENDING:
                logger.warning("Review item %s already %s", item_id, existing.status.value)
                return RejectionResult(success=False, error="Review item already resolved")

            available = await self._pool.list_available_fallback_artifacts()
            if not available:
                logger.error(
                    "No fallback artifacts available to replace run %s", existing.run_id
                )
                await self._queue.resolve_review_item(
                    item_id,
                    "Quality review rejected, NO FALLBACK ARTIFACT AVAILABLE (CRITICAL)",
                    resolved_by,
                )
                return RejectionResult(
                    success=False, error="No fallback artifacts available", critical=True
                )

            artifact = available[0]
            try:
                deployed = await self._pool.deploy_fallback_artifact(artifact.id, existing.run_id)
            except Exception as exc:
                deployed = DeployResult(success=False, artifact_id=artifact.id, error=str(exc))
            if not deployed.success:
                logger.error(
                    "Failed to deploy fallback artifact %s for run %s: %s",
                    artifact.id, existing.run_id, deployed.error,
                )
                await self._queue.resolve_review_item(
                    item_id,
                    f"Quality review rejected, fallback deployment failed (CRITICAL): {deployed.error}",
                    resolved_by,
                )
                return RejectionResult(
                    success=False,
                    artifact_id=artifact.id,
                    error=deployed.error,
                    critical=True,
                )

            await self._queue.resolve_review_item(
                item_id,
                f"Quality review rejected, deployed fallback artifact {artifact.id} "
                f"({deployed.published_ref})",
                resolved_by,
            )
        except Exception as exc:
            logger.error("Failed to reject review item %s: %s", item_id, exc)
            return RejectionResult(success=False, error=str(exc))

        logger.info(
            "Review item %s (run %s) rejected by %s, fallback %s deployed",
            item_id, existing.run_id, resolved_by, artifact.id,
        )
        return RejectionResult(
            success=True, artifact_id=artifact.id, published_ref=deployed.published_ref
        )
