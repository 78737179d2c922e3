# src/main.py — v1
"""CLI entry point: run, resume, status, decision and review commands.

Usage:
    stagegate [--dry-run] run <run_id>
    stagegate resume <run_id> [--from-stage STAGE]
    stagegate status <run_id>
    stagegate decision <run_id>
    stagegate review approve|reject <item_id> --by OPERATOR
    stagegate reviews

Stage functions come from the module named by STAGE_MODULE, which must
expose ``register_stages(registry)``. ``--dry-run`` binds passthrough
stages instead.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from stagegate.config.settings import ConfigurationError, Settings, load_settings
from stagegate.core.errors import PipelineError
from stagegate.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except (ConfigurationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except PipelineError as exc:
        logger.error("%s: %s", exc.code, exc.message, extra={"data": exc.as_dict()})
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stagegate",
        description=f"stagegate v{__version__}: staged content pipeline with a publish gate",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Bind passthrough stages instead of STAGE_MODULE",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Start a run from the first stage")
    p_run.add_argument("run_id", help="Run id (one per calendar date, e.g. 2026-01-19)")
    p_run.set_defaults(func=_cmd_run)

    # --- resume ---
    p_resume = subparsers.add_parser("resume", help="Resume a failed run")
    p_resume.add_argument("run_id", help="Run id to resume")
    p_resume.add_argument(
        "--from-stage", default=None,
        help="Stage to resume from (default: after the last completed stage)",
    )
    p_resume.set_defaults(func=_cmd_resume)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show the stored state of a run")
    p_status.add_argument("run_id")
    p_status.set_defaults(func=_cmd_status)

    # --- decision ---
    p_decision = subparsers.add_parser("decision", help="Show a run's quality decision")
    p_decision.add_argument("run_id")
    p_decision.set_defaults(func=_cmd_decision)

    # --- review ---
    p_review = subparsers.add_parser("review", help="Resolve a human review item")
    p_review.add_argument("action", choices=["approve", "reject"])
    p_review.add_argument("item_id", help="Review item id")
    p_review.add_argument("--by", required=True, dest="resolved_by", help="Operator identifier")
    p_review.set_defaults(func=_cmd_review)

    # --- reviews ---
    p_reviews = subparsers.add_parser("reviews", help="List pending review items")
    p_reviews.set_defaults(func=_cmd_reviews)

    return parser


def _build_registry(args: argparse.Namespace, settings: Settings):
    from stagegate.pipeline.registry import RegistryError, StageRegistry

    registry = StageRegistry()
    if args.dry_run:
        from stagegate.pipeline import dry_run

        dry_run.register_stages(registry)
    elif settings.stage_module:
        registry.load_module(settings.stage_module)
    else:
        raise RegistryError("No stages configured: set STAGE_MODULE or pass --dry-run")
    return registry


def _build_gate(settings: Settings):
    from stagegate.quality.gate import PublishQualityGate
    from stagegate.review.buffer_pool import DocumentBufferPool
    from stagegate.review.queue import DocumentReviewQueue
    from stagegate.state.store_factory import create_document_store

    store = create_document_store(settings)
    return PublishQualityGate(
        store, DocumentReviewQueue(store), DocumentBufferPool(store), settings
    )


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    from stagegate.api.facade import build_services, start_run

    services = build_services(_build_registry(args, settings), settings)
    response = await start_run(args.run_id, services)
    print(response.model_dump_json(indent=2, exclude={"result": {"stage_outputs"}}))
    return 0 if response.result.success else 1


async def _cmd_resume(args: argparse.Namespace, settings: Settings) -> int:
    from stagegate.api.facade import build_services, resume_run

    services = build_services(_build_registry(args, settings), settings)
    response = await resume_run(args.run_id, services, from_stage=args.from_stage)
    print(response.model_dump_json(indent=2, exclude={"result": {"stage_outputs"}}))
    return 0 if response.result.success else 1


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    from stagegate.state.run_state import RunStateStore
    from stagegate.state.store_factory import create_document_store

    state = await RunStateStore(create_document_store(settings)).get_state(args.run_id)
    print(state.model_dump_json(indent=2))
    return 0


async def _cmd_decision(args: argparse.Namespace, settings: Settings) -> int:
    decision = await _build_gate(settings).get_decision(args.run_id)
    if decision is None:
        logger.error("No quality decision stored for run %s", args.run_id)
        return 1
    print(decision.model_dump_json(indent=2))
    return 0


async def _cmd_review(args: argparse.Namespace, settings: Settings) -> int:
    gate = _build_gate(settings)
    if args.action == "approve":
        approved = await gate.resolve_approve(args.item_id, args.resolved_by)
        print(f"Review item {args.item_id}: {'approved' if approved else 'not approved'}")
        return 0 if approved else 1

    rejection = await gate.resolve_reject(args.item_id, args.resolved_by)
    print(rejection.model_dump_json(indent=2))
    return 0 if rejection.success else 1


async def _cmd_reviews(args: argparse.Namespace, settings: Settings) -> int:
    items = await _build_gate(settings).list_pending_reviews()
    print(json.dumps([item.model_dump(mode="json") for item in items], indent=2))
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from stagegate.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
