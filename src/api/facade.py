# src/api/facade.py — v1
"""Public API facade: trigger entry points for runs.

Usage:
    from stagegate.api.facade import build_services, start_run
    services = build_services(registry)
    response = await start_run("2026-01-19", services)

A run that succeeds is handed to the publish gate: the decision is
persisted and a review item opened when it is HUMAN_REVIEW. With
``wait=False`` the run is checked and its record written first, then the
stages are scheduled as a background task and a TriggerAck is returned.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from stagegate.api.models import TriggerAck, TriggerResponse
from stagegate.config.settings import Settings
from stagegate.core.models import RunResult
from stagegate.pipeline.executor import PreparedRun, StageExecutor
from stagegate.pipeline.registry import StageRegistry
from stagegate.quality.gate import PublishQualityGate
from stagegate.quality.models import Decision, GateInput
from stagegate.review.buffer_pool import BaseBufferPool, DocumentBufferPool
from stagegate.review.queue import BaseReviewQueue, DocumentReviewQueue
from stagegate.state.base_document_store import BaseDocumentStore
from stagegate.state.run_state import RunStateStore
from stagegate.state.store_factory import create_document_store

logger = logging.getLogger(__name__)

# Strong references to background runs until they finish
_background_tasks: set[asyncio.Task] = set()


@dataclass
class Services:
    """Wired collaborators shared by the trigger entry points."""

    settings: Settings
    store: BaseDocumentStore
    state: RunStateStore
    executor: StageExecutor
    gate: PublishQualityGate
    review_queue: BaseReviewQueue
    buffer_pool: BaseBufferPool


def build_services(
    registry: StageRegistry,
    settings: Settings | None = None,
    store: BaseDocumentStore | None = None,
    review_queue: BaseReviewQueue | None = None,
    buffer_pool: BaseBufferPool | None = None,
) -> Services:
    """Wire the executor and gate over one document store.

    Args:
        registry: Stage bindings; validated by the executor.
        settings: Global settings. Loaded from .env if None.
        store: Document store. Built from settings if None.
        review_queue: Review queue. Document-backed if None.
        buffer_pool: Fallback artifact pool. Document-backed if None.
    """
    settings = settings or Settings()
    store = store or create_document_store(settings)
    state = RunStateStore(store)
    queue = review_queue or DocumentReviewQueue(store)
    pool = buffer_pool or DocumentBufferPool(store)
    return Services(
        settings=settings,
        store=store,
        state=state,
        executor=StageExecutor(registry, state, settings),
        gate=PublishQualityGate(store, queue, pool, settings),
        review_queue=queue,
        buffer_pool=pool,
    )


async def start_run(
    run_id: str, services: Services, wait: bool = True
) -> TriggerResponse | TriggerAck:
    """Start a run from the first stage.

    The lock check and run record creation happen before this returns, in
    both modes.

    Raises:
        PipelineError: ALREADY_RUNNING or STATE_INIT_FAILED.
    """
    prepared = await services.executor.prepare_execute(run_id)
    if not wait:
        _schedule(_run_and_gate(prepared, services), f"start:{run_id}")
        return TriggerAck(run_id=run_id, action="start")
    return await _run_and_gate(prepared, services)


async def resume_run(
    run_id: str,
    services: Services,
    from_stage: str | None = None,
    wait: bool = True,
) -> TriggerResponse | TriggerAck:
    """Resume a run after its last completed stage, or from *from_stage*.

    Raises:
        PipelineError: STATE_NOT_FOUND, ALREADY_RUNNING, RUN_ALREADY_COMPLETED,
            INVALID_RUN_STATE or INVALID_STAGE.
    """
    prepared = await services.executor.prepare_resume(run_id, from_stage)
    if not wait:
        _schedule(_run_and_gate(prepared, services), f"resume:{run_id}")
        return TriggerAck(run_id=run_id, action="resume", from_stage=from_stage)
    return await _run_and_gate(prepared, services)


async def _run_and_gate(prepared: PreparedRun, services: Services) -> TriggerResponse:
    result = await services.executor.run(prepared)
    return await _apply_gate(result, services)


async def _apply_gate(result: RunResult, services: Services) -> TriggerResponse:
    """Judge a successful run; failed runs are returned as-is."""
    if not result.success:
        return TriggerResponse(result=result)

    run = GateInput.from_result(result)
    decision = services.gate.check(run)
    await services.gate.persist_decision(result.run_id, decision)

    review_item_id: str | None = None
    if decision.decision is Decision.HUMAN_REVIEW:
        review_item_id = await services.gate.create_review_item(result.run_id, decision, run)

    return TriggerResponse(result=result, decision=decision, review_item_id=review_item_id)


def _schedule(coro: Coroutine[Any, Any, TriggerResponse], name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_background_done)
    logger.info("Scheduled background run %s", name)
    return task


def _on_background_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning("Background run %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background run %s failed: %s", task.get_name(), exc)
        return
    response: TriggerResponse = task.result()
    logger.info(
        "Background run %s finished: %s",
        task.get_name(), response.result.status.value,
    )
