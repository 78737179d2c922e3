# tests/unit/config/test_settings.py — v1
"""Tests for config/settings.py: defaults and validation rules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stagegate.config.settings import ConfigurationError, Settings, load_settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestDefaults:
    def test_run_control(self):
        s = _settings()
        assert s.state_backend == "json"
        assert s.max_run_duration_hours == 4.0
        assert s.max_run_age_s == 4 * 3600
        assert s.init_max_attempts == 3
        assert s.init_retry_delay_s == 1.0
        assert s.retry_max_delay_s == 30.0

    def test_gate_thresholds(self):
        s = _settings()
        assert (s.gate_min_words, s.gate_max_words) == (1200, 1800)
        assert s.gate_word_edge_ratio == 0.05
        assert s.gate_visual_fallback_ratio == 0.30
        assert s.gate_pronunciation_max_unknowns == 3
        assert s.gate_tts_retry_threshold == 2
        assert s.gate_max_minor_issues == 2

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("GATE_MIN_WORDS", "1000")
        monkeypatch.setenv("STATE_BACKEND", "sqlite")
        s = _settings()
        assert s.gate_min_words == 1000
        assert s.state_backend == "sqlite"


class TestValidation:
    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError, match="STATE_REDIS_URL"):
            _settings(state_backend="redis")

    def test_redis_with_url(self):
        s = _settings(state_backend="redis", state_redis_url="redis://localhost:6379/0")
        assert s.state_redis_url.startswith("redis://")

    def test_word_bounds_ordered(self):
        with pytest.raises(ConfigurationError, match="GATE_MIN_WORDS"):
            _settings(gate_min_words=2000, gate_max_words=1800)

    def test_visual_ratio_range(self):
        with pytest.raises(ConfigurationError, match="VISUAL_FALLBACK_RATIO"):
            _settings(gate_visual_fallback_ratio=1.5)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            _settings(init_retry_delay_s=-1)

    def test_init_attempts_at_least_one(self):
        with pytest.raises(ValidationError):
            _settings(init_max_attempts=0)

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            _settings(state_backend="firestore")


class TestLoadSettings:
    def test_overrides(self):
        s = load_settings(_env_file=None, stage_timeout_s=60)
        assert s.stage_timeout_s == 60
