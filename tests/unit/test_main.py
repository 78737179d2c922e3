# tests/unit/test_main.py — v1
"""Tests for main.py: CLI entry point."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from stagegate.logging.logger import ROOT_LOGGER
from stagegate.main import _build_parser, main
from stagegate.quality.models import ReviewItem
from stagegate.review.queue import DocumentReviewQueue
from stagegate.state.json_store import JsonDocumentStore

RUN_ID = "2026-01-19"


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at a throwaway JSON state directory."""
    monkeypatch.setenv("STATE_BACKEND", "json")
    monkeypatch.setenv("STATE_ROOT", str(tmp_path / "state"))
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    monkeypatch.delenv("STAGE_MODULE", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------


class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_run_subcommand(self):
        args = _build_parser().parse_args(["--dry-run", "run", RUN_ID])
        assert args.command == "run"
        assert args.run_id == RUN_ID
        assert args.dry_run is True

    def test_resume_from_stage(self):
        args = _build_parser().parse_args(["resume", RUN_ID, "--from-stage", "tts"])
        assert args.from_stage == "tts"

    def test_review_requires_operator(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["review", "approve", "item-1"])

    def test_review_action_choices(self):
        args = _build_parser().parse_args(["review", "reject", "item-1", "--by", "ops"])
        assert args.action == "reject"
        assert args.resolved_by == "ops"
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["review", "defer", "item-1", "--by", "ops"])


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_configuration_error(self, monkeypatch, capsys):
        monkeypatch.setenv("STATE_BACKEND", "redis")
        assert main(["status", RUN_ID]) == 2
        assert "STATE_REDIS_URL" in capsys.readouterr().err

    def test_run_without_stages_fails(self):
        assert main(["run", RUN_ID]) == 1

    def test_dry_run_then_status_and_decision(self, capsys):
        assert main(["--dry-run", "run", RUN_ID]) == 0
        response = json.loads(capsys.readouterr().out)
        assert response["result"]["success"] is True
        assert response["decision"]["decision"] == "AUTO_PUBLISH"
        assert "stage_outputs" not in response["result"]

        assert main(["status", RUN_ID]) == 0
        state = json.loads(capsys.readouterr().out)
        assert state["status"] == "completed"
        assert state["stages"]["notifications"]["status"] == "completed"

        assert main(["decision", RUN_ID]) == 0
        decision = json.loads(capsys.readouterr().out)
        assert decision["decision"] == "AUTO_PUBLISH"

    def test_status_unknown_run(self):
        assert main(["status", "missing"]) == 1

    def test_decision_missing(self):
        assert main(["decision", "missing"]) == 1

    def test_resume_completed_run_fails(self, capsys):
        main(["--dry-run", "run", RUN_ID])
        capsys.readouterr()
        assert main(["--dry-run", "resume", RUN_ID]) == 1

    def test_review_unknown_item(self, capsys):
        assert main(["review", "approve", "missing", "--by", "ops"]) == 1
        assert "not approved" in capsys.readouterr().out

    def test_reviews_lists_pending_items(self, tmp_path, capsys):
        queue = DocumentReviewQueue(JsonDocumentStore(tmp_path / "state"))
        asyncio.run(queue.add_to_review_queue(ReviewItem(id="item-1", run_id=RUN_ID)))

        assert main(["reviews"]) == 0
        items = json.loads(capsys.readouterr().out)
        assert [i["id"] for i in items] == ["item-1"]

        assert main(["review", "approve", "item-1", "--by", "ops"]) == 0
        capsys.readouterr()
        assert main(["reviews"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_pipeline_error_logged_with_payload(self, capsys, caplog):
        main(["--dry-run", "run", RUN_ID])
        capsys.readouterr()
        assert main(["--dry-run", "resume", RUN_ID]) == 1
        payloads = [r.data for r in caplog.records if getattr(r, "data", None)]
        assert payloads[-1]["code"] == "RUN_ALREADY_COMPLETED"
        assert payloads[-1]["severity"] == "CRITICAL"
