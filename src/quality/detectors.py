# src/quality/detectors.py — v1
"""Issue detectors for the publish quality gate.

Each detector inspects a GateInput and returns at most one QualityIssue.
Measurements are read from ``StageOutput.quality``:

  script-gen     word_count (falls back to data["word_count"])
  visual-gen     fallback_count, total_scenes
  pronunciation  unknown_count, unresolved_count (defaults to unknown_count)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from stagegate.config.settings import Settings
from stagegate.config.stages import StageName
from stagegate.core.models import StageOutput
from stagegate.quality.models import GateInput, IssueCode, QualityIssue, QualityMetrics

logger = logging.getLogger(__name__)

TTS = StageName.TTS.value
VISUAL = StageName.VISUAL_GEN.value
SCRIPT = StageName.SCRIPT_GEN.value
PRONUNCIATION = StageName.PRONUNCIATION.value
THUMBNAIL = StageName.THUMBNAIL.value


@dataclass(frozen=True)
class Thresholds:
    min_words: int = 1200
    max_words: int = 1800
    word_edge_ratio: float = 0.05
    visual_fallback_ratio: float = 0.30
    pronunciation_max_unknowns: int = 3
    tts_retry_threshold: int = 2
    max_minor_issues: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> Thresholds:
        return cls(
            min_words=settings.gate_min_words,
            max_words=settings.gate_max_words,
            word_edge_ratio=settings.gate_word_edge_ratio,
            visual_fallback_ratio=settings.gate_visual_fallback_ratio,
            pronunciation_max_unknowns=settings.gate_pronunciation_max_unknowns,
            tts_retry_threshold=settings.gate_tts_retry_threshold,
            max_minor_issues=settings.gate_max_minor_issues,
        )


Detector = Callable[[GateInput, Thresholds], "QualityIssue | None"]


# --- Measurement helpers ---


def _measure(output: StageOutput | None, key: str) -> Any:
    if output is None:
        return None
    return output.quality.get(key)


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _fallback_used(run: GateInput, stage: str) -> str | None:
    """Provider name recorded in the quality context for *stage*, if any."""
    prefix = f"{stage}:"
    for entry in run.quality_context.fallbacks_used:
        if entry.startswith(prefix):
            return entry[len(prefix):] or "unknown"
    return None


def word_count(run: GateInput) -> int:
    output = run.stages.get(SCRIPT)
    count = _int(_measure(output, "word_count"))
    if not count and output is not None and isinstance(output.data, dict):
        count = _int(output.data.get("word_count"))
    return count


def visual_fallback(run: GateInput) -> tuple[int, int]:
    """(fallback_count, total_scenes); total is at least 1."""
    output = run.stages.get(VISUAL)
    fallback_count = _int(_measure(output, "fallback_count"))
    total = _int(_measure(output, "total_scenes")) or 1
    return fallback_count, total


def pronunciation_counts(run: GateInput) -> tuple[int, int]:
    """(unknown_count, unresolved_count)."""
    output = run.stages.get(PRONUNCIATION)
    unknown = _int(_measure(output, "unknown_count"))
    unresolved = _int(_measure(output, "unresolved_count")) or unknown
    return unknown, unresolved


def thumbnail_fallback(run: GateInput) -> str | None:
    output = run.stages.get(THUMBNAIL)
    if output is not None and output.provider.tier == "fallback":
        return output.provider.name
    return _fallback_used(run, THUMBNAIL)


# --- Detectors ---


def detect_tts_fallback(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    output = run.stages.get(TTS)
    provider: str | None = None
    if output is not None and output.provider.tier == "fallback":
        provider = output.provider.name
    else:
        provider = _fallback_used(run, TTS)

    if provider is None:
        return None
    return QualityIssue(
        code=IssueCode.TTS_FALLBACK,
        severity="major",
        stage=TTS,
        message=f"TTS fallback provider used: {provider} (primary TTS unavailable)",
    )


def detect_tts_retries(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    output = run.stages.get(TTS)
    if output is None or output.provider.tier != "primary":
        return None
    attempts = output.provider.attempts
    if attempts <= limits.tts_retry_threshold:
        return None
    return QualityIssue(
        code=IssueCode.TTS_RETRY_HIGH,
        severity="minor",
        stage=TTS,
        message=f"TTS required {attempts} attempts before succeeding",
    )


def detect_visual_fallback_ratio(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    if VISUAL not in run.stages:
        return None
    fallback_count, total = visual_fallback(run)
    ratio = fallback_count / total
    detail = f"{ratio * 100:.1f}% ({fallback_count}/{total} scenes)"

    if ratio > limits.visual_fallback_ratio:
        return QualityIssue(
            code=IssueCode.HIGH_VISUAL_FALLBACK,
            severity="major",
            stage=VISUAL,
            message=(
                f"Visual fallback rate {detail} exceeds "
                f"{limits.visual_fallback_ratio * 100:.0f}% threshold"
            ),
        )
    if ratio > 0:
        return QualityIssue(
            code=IssueCode.LOW_VISUAL_FALLBACK,
            severity="minor",
            stage=VISUAL,
            message=f"Visual fallback rate {detail}",
        )
    return None


def detect_word_count(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    if SCRIPT not in run.stages:
        return None
    count = word_count(run)
    if count == 0:
        logger.debug("No word count available for run %s", run.run_id)
        return None

    if count < limits.min_words or count > limits.max_words:
        return QualityIssue(
            code=IssueCode.WORD_COUNT_OUT_OF_BOUNDS,
            severity="major",
            stage=SCRIPT,
            message=(
                f"Word count {count} is outside acceptable range "
                f"[{limits.min_words}, {limits.max_words}]"
            ),
        )

    lower_edge = limits.min_words * (1 + limits.word_edge_ratio)
    upper_edge = limits.max_words * (1 - limits.word_edge_ratio)
    if count < lower_edge or count > upper_edge:
        boundary = "minimum" if count < lower_edge else "maximum"
        return QualityIssue(
            code=IssueCode.WORD_COUNT_EDGE,
            severity="minor",
            stage=SCRIPT,
            message=f"Word count {count} is near the {boundary} boundary",
        )
    return None


def detect_pronunciation(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    if PRONUNCIATION not in run.stages:
        return None
    unknown, unresolved = pronunciation_counts(run)
    max_unknowns = limits.pronunciation_max_unknowns

    if unresolved > max_unknowns:
        return QualityIssue(
            code=IssueCode.PRONUNCIATION_UNRESOLVED,
            severity="major",
            stage=PRONUNCIATION,
            message=(
                f"{unresolved} pronunciation unknowns remain unresolved "
                f"(threshold: {max_unknowns})"
            ),
        )
    if 0 < unknown <= max_unknowns:
        return QualityIssue(
            code=IssueCode.PRONUNCIATION_FEW,
            severity="minor",
            stage=PRONUNCIATION,
            message=f"{unknown} unknown term(s) flagged for pronunciation review",
        )
    return None


def detect_thumbnail_fallback(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    provider = thumbnail_fallback(run)
    if provider is None:
        return None
    return QualityIssue(
        code=IssueCode.THUMBNAIL_FALLBACK,
        severity="minor",
        stage=THUMBNAIL,
        message=f"Thumbnail using fallback: {provider}",
    )


def detect_combined_fallback(run: GateInput, limits: Thresholds) -> QualityIssue | None:
    fallback_count, _ = visual_fallback(run)
    if thumbnail_fallback(run) is None or fallback_count == 0:
        return None
    return QualityIssue(
        code=IssueCode.COMBINED_FALLBACK,
        severity="major",
        stage="combined",
        message="Both thumbnail and visual generation used fallbacks",
    )


DETECTORS: tuple[Detector, ...] = (
    detect_tts_fallback,
    detect_tts_retries,
    detect_visual_fallback_ratio,
    detect_word_count,
    detect_pronunciation,
    detect_thumbnail_fallback,
    detect_combined_fallback,
)


def detect_all(
    run: GateInput,
    limits: Thresholds,
    detectors: tuple[Detector, ...] = DETECTORS,
) -> list[QualityIssue]:
    """Run every detector, dropping duplicate codes and failed detectors."""
    issues: list[QualityIssue] = []
    for detector in detectors:
        try:
            issue = detector(run, limits)
        except Exception as exc:
            logger.warning(
                "Issue detector %s failed for run %s: %s",
                getattr(detector, "__name__", repr(detector)), run.run_id, exc,
            )
            continue
        if issue is not None and all(i.code != issue.code for i in issues):
            issues.append(issue)
    return issues


def calculate_metrics(run: GateInput) -> QualityMetrics:
    fallback_count, total = visual_fallback(run)
    unknown, unresolved = pronunciation_counts(run)
    tts = run.stages.get(TTS)
    return QualityMetrics(
        total_stages=len(run.stages),
        degraded_stages=len(run.quality_context.degraded_stages),
        fallbacks_used=len(run.quality_context.fallbacks_used),
        total_warnings=sum(len(o.warnings) for o in run.stages.values()),
        script_word_count=word_count(run),
        visual_fallback_percent=round(fallback_count / total * 100, 1),
        pronunciation_unknowns=unresolved or unknown,
        tts_provider=tts.provider.name if tts is not None else "unknown",
        thumbnail_fallback=thumbnail_fallback(run) is not None,
    )
