# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: state backend,
run-control timings, publish gate thresholds and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === State store ===
    state_backend: Literal["json", "sqlite", "redis", "memory"] = "json"
    state_root: Path = Path("~/.stagegate/state")
    state_redis_url: str = ""

    # === Run control ===
    max_run_duration_hours: float = 4.0
    init_max_attempts: int = 3
    init_retry_delay_s: float = 1.0
    retry_max_delay_s: float = 30.0
    stage_timeout_s: float = 300.0
    # Dotted module path exposing register_stages(registry)
    stage_module: str = ""

    # === Publish gate ===
    gate_min_words: int = 1200
    gate_max_words: int = 1800
    gate_word_edge_ratio: float = 0.05
    gate_visual_fallback_ratio: float = 0.30
    gate_pronunciation_max_unknowns: int = 3
    gate_tts_retry_threshold: int = 2
    gate_max_minor_issues: int = 2

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "max_run_duration_hours",
        "init_retry_delay_s",
        "retry_max_delay_s",
        "stage_timeout_s",
    )
    @classmethod
    def validate_non_negative(cls, v: float, info) -> float:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @field_validator("init_max_attempts")
    @classmethod
    def validate_init_attempts(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("init_max_attempts must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.state_backend == "redis" and not self.state_redis_url:
            errors.append("STATE_BACKEND=redis requires STATE_REDIS_URL")

        if self.gate_min_words >= self.gate_max_words:
            errors.append("GATE_MIN_WORDS must be < GATE_MAX_WORDS")

        if not 0.0 <= self.gate_visual_fallback_ratio <= 1.0:
            errors.append("GATE_VISUAL_FALLBACK_RATIO must be within [0, 1]")

        if not 0.0 <= self.gate_word_edge_ratio < 0.5:
            errors.append("GATE_WORD_EDGE_RATIO must be within [0, 0.5)")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def max_run_age_s(self) -> float:
        """Age after which a running run is considered stale."""
        return self.max_run_duration_hours * 3600.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
