# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Centralized configuration for environment variables and pipeline tunables."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from anthropic import Anthropic
from pydantic import BaseModel, Field

from models import CanonMode, RecommendationMode, SegmentationMode

logger = logging.getLogger(__name__)

ANTHROPIC_KEY_ENV = "ANTHROPIC_KEY"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_TIMEOUT_SECONDS = 45.0

# Environment overrides read by PipelineConfig.from_env()
ENV_MODEL = "PBP_MODEL"
ENV_TIMEOUT = "PBP_TIMEOUT_SECONDS"
ENV_CANON_CONCURRENCY = "PBP_CANON_CONCURRENCY"
ENV_SEG_CONCURRENCY = "PBP_SEG_CONCURRENCY"
ENV_CARDS_CONCURRENCY = "PBP_CARDS_CONCURRENCY"
ENV_CACHE_MAX = "PBP_CANON_CACHE_MAX"
ENV_ALIASES = "PBP_ALIASES"
ENV_DETERMINISTIC = "PBP_DETERMINISTIC"

_TRUTHY = {"1", "true", "yes", "on"}


def get_api_key() -> str:
    """Return the Anthropic API key, or empty string if not set."""
    return os.environ.get(ANTHROPIC_KEY_ENV, "")


def require_api_key(message: str = "") -> str:
    """Return the API key or exit with an error."""
    key = get_api_key()
    if not key:
        import sys

        msg = message or f"{ANTHROPIC_KEY_ENV} environment variable not set."
        print(f"Error: {msg}", file=sys.stderr)
        sys.exit(1)
    return key


def create_anthropic_client() -> Anthropic:
    """Create an Anthropic client using the configured API key."""
    return Anthropic(api_key=require_api_key())


class PipelineConfig(BaseModel):
    """Tunables for segmentation, canonicalization and hitter cards."""
    model: str = DEFAULT_MODEL
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    segmentation_mode: SegmentationMode = SegmentationMode.HYBRID
    canon_mode: CanonMode = CanonMode.MODEL
    recommendation_mode: RecommendationMode = RecommendationMode.MODEL

    segmentation_retries: int = Field(default=2, ge=1)
    canon_retries: int = Field(default=3, ge=1, description="Model attempts per segment before self-check")
    cards_retries: int = Field(default=2, ge=1)
    self_check: bool = True

    segmentation_concurrency: int = Field(default=2, ge=1)
    canon_concurrency: int = Field(default=3, ge=1)
    cards_concurrency: int = Field(default=4, ge=1)

    cache_capacity: int = Field(default=200, ge=1)

    aliases: dict[str, str] = Field(default_factory=dict)
    strict_aliases: bool = True

    deterministic: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> PipelineConfig:
        """Build a config from ``PBP_*`` environment variables.

        Explicit keyword overrides take precedence over the environment.
        """
        values: dict[str, Any] = {}
        if os.environ.get(ENV_MODEL):
            values["model"] = os.environ[ENV_MODEL]
        if os.environ.get(ENV_TIMEOUT):
            values["timeout_seconds"] = float(os.environ[ENV_TIMEOUT])
        for env, field in (
            (ENV_CANON_CONCURRENCY, "canon_concurrency"),
            (ENV_SEG_CONCURRENCY, "segmentation_concurrency"),
            (ENV_CARDS_CONCURRENCY, "cards_concurrency"),
            (ENV_CACHE_MAX, "cache_capacity"),
        ):
            raw = os.environ.get(env)
            if raw:
                values[field] = int(raw)
        raw_aliases = os.environ.get(ENV_ALIASES)
        if raw_aliases:
            try:
                values["aliases"] = json.loads(raw_aliases)
            except json.JSONDecodeError:
                logger.warning("Ignoring %s: not valid JSON", ENV_ALIASES)
        if os.environ.get(ENV_DETERMINISTIC, "").strip().lower() in _TRUTHY:
            values["deterministic"] = True
        values.update(overrides)
        return cls(**values)

    def effective(self) -> PipelineConfig:
        """Return the config actually used for a run.

        Deterministic runs never call the model: every stage switches to its
        rule-based mode and retries/concurrency collapse to 1.
        """
        if not self.deterministic:
            return self
        return self.model_copy(update={
            "segmentation_mode": SegmentationMode.DETERMINISTIC,
            "canon_mode": CanonMode.DETERMINISTIC,
            "recommendation_mode": RecommendationMode.DETERMINISTIC,
            "segmentation_retries": 1,
            "canon_retries": 1,
            "cards_retries": 1,
            "segmentation_concurrency": 1,
            "canon_concurrency": 1,
            "cards_concurrency": 1,
        })

    @property
    def needs_model(self) -> bool:
        cfg = self.effective()
        return (
            cfg.segmentation_mode is not SegmentationMode.DETERMINISTIC
            or cfg.canon_mode is CanonMode.MODEL
            or cfg.recommendation_mode is RecommendationMode.MODEL
        )
