# /// script
# requires-python = ">=3.12"
# dependencies = ["pytest>=7.0", "anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Tests for pipeline configuration: defaults, environment overrides and
the deterministic switch."""

import sys
from pathlib import Path
from unittest.mock import patch

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from pydantic import ValidationError

from config import (
    ANTHROPIC_KEY_ENV,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECONDS,
    PipelineConfig,
    get_api_key,
    require_api_key,
)
from models import CanonMode, RecommendationMode, SegmentationMode


class TestDefaults:
    def test_defaults(self):
        cfg = PipelineConfig()
        assert cfg.model == DEFAULT_MODEL
        assert cfg.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert cfg.segmentation_mode is SegmentationMode.HYBRID
        assert cfg.canon_mode is CanonMode.MODEL
        assert cfg.recommendation_mode is RecommendationMode.MODEL
        assert cfg.strict_aliases is True
        assert cfg.needs_model

    def test_rejects_bad_values(self):
        with pytest.raises(ValidationError):
            PipelineConfig(timeout_seconds=0)
        with pytest.raises(ValidationError):
            PipelineConfig(canon_concurrency=0)


class TestFromEnv:
    def test_reads_overrides(self, monkeypatch):
        monkeypatch.setenv("PBP_MODEL", "claude-other")
        monkeypatch.setenv("PBP_TIMEOUT_SECONDS", "10")
        monkeypatch.setenv("PBP_CANON_CONCURRENCY", "5")
        monkeypatch.setenv("PBP_CANON_CACHE_MAX", "50")
        monkeypatch.setenv("PBP_ALIASES", '{"Miller": "John Miller"}')
        cfg = PipelineConfig.from_env()
        assert cfg.model == "claude-other"
        assert cfg.timeout_seconds == 10.0
        assert cfg.canon_concurrency == 5
        assert cfg.cache_capacity == 50
        assert cfg.aliases == {"Miller": "John Miller"}

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_deterministic_flag(self, monkeypatch, value):
        monkeypatch.setenv("PBP_DETERMINISTIC", value)
        assert PipelineConfig.from_env().deterministic is True

    def test_bad_aliases_ignored(self, monkeypatch):
        monkeypatch.setenv("PBP_ALIASES", "{not json")
        assert PipelineConfig.from_env().aliases == {}

    def test_keyword_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PBP_MODEL", "claude-other")
        assert PipelineConfig.from_env(model="claude-explicit").model == "claude-explicit"


class TestEffective:
    def test_non_deterministic_unchanged(self):
        cfg = PipelineConfig(canon_concurrency=5)
        assert cfg.effective() is cfg

    def test_deterministic_forces_rule_modes(self):
        cfg = PipelineConfig(deterministic=True, canon_concurrency=5, canon_retries=3).effective()
        assert cfg.segmentation_mode is SegmentationMode.DETERMINISTIC
        assert cfg.canon_mode is CanonMode.DETERMINISTIC
        assert cfg.recommendation_mode is RecommendationMode.DETERMINISTIC
        assert cfg.canon_concurrency == 1
        assert cfg.canon_retries == 1
        assert not cfg.needs_model

    def test_all_rule_modes_need_no_model(self):
        cfg = PipelineConfig(
            segmentation_mode=SegmentationMode.DETERMINISTIC,
            canon_mode=CanonMode.DETERMINISTIC,
            recommendation_mode=RecommendationMode.DETERMINISTIC,
        )
        assert not cfg.needs_model


class TestApiKey:
    def test_get_api_key(self):
        with patch.dict("os.environ", {ANTHROPIC_KEY_ENV: "sk-test"}):
            assert get_api_key() == "sk-test"
            assert require_api_key() == "sk-test"

    def test_require_api_key_exits_when_missing(self, monkeypatch):
        monkeypatch.delenv(ANTHROPIC_KEY_ENV, raising=False)
        with pytest.raises(SystemExit):
            require_api_key()
