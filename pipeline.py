# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "jsonschema>=4.0", "pydantic>=2.0"]
# ///
"""End-to-end game report: play-by-play text -> canonical records -> hitter cards.

Usage::

    from config import PipelineConfig
    from pipeline import dump_report, run_game_report

    report = run_game_report(text, config=PipelineConfig(deterministic=True))
    print(dump_report(report))

In deterministic mode no model is called and ``meta.generated_at`` is a hash
of the input text, so the serialized report is byte-identical across runs.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any

from cards.builder import build_hitter_cards
from config import PipelineConfig
from data.cache import ResultCache
from extraction.pipeline import canonicalize_game_text
from extraction.validator import SCHEMA_VERSION
from llm import AnthropicLanguageModel, LanguageModel
from models import GameContext

logger = logging.getLogger(__name__)


def generated_at_marker(text: str, deterministic: bool) -> str:
    if deterministic:
        return "deterministic:" + hashlib.sha256(text.encode("utf-8")).hexdigest()
    return datetime.now(timezone.utc).isoformat()


def run_game_report(
    text: str,
    context: GameContext | None = None,
    config: PipelineConfig | None = None,
    model: LanguageModel | None = None,
    cache: ResultCache | None = None,
    cancel: threading.Event | None = None,
    input_name: str | None = None,
) -> dict[str, Any]:
    """Extract a game and build its hitter cards.

    A Claude-backed model is created from the configured API key when a
    model-backed mode is configured and no *model* is given.

    Returns:
        ``{"ok", "meta", "hitters"}``, JSON-ready.
    """
    requested = config or PipelineConfig()
    cfg = requested.effective()
    if model is None and cfg.needs_model:
        model = AnthropicLanguageModel(model_id=cfg.model)

    extraction = canonicalize_game_text(text, context, cfg, model, cache, cancel)
    if extraction.data:
        cards = build_hitter_cards(extraction.data, cfg, model, cancel)
    else:
        cards = None

    meta: dict[str, Any] = {
        "input": input_name,
        "generated_at": generated_at_marker(text or "", cfg.deterministic),
        "model": cfg.model,
        "schema_version": SCHEMA_VERSION,
        "segmentation_mode": cfg.segmentation_mode.value,
        "canon_mode": cfg.canon_mode.value,
        "recommendation_mode": cfg.recommendation_mode.value,
        "timeout_seconds": cfg.timeout_seconds,
        "canon": {
            "ok": extraction.ok,
            "total_pas": len(extraction.data),
            "errors": extraction.errors,
        },
        "cards": {
            "ok": cards.ok if cards is not None else False,
            "errors": cards.errors if cards is not None else ["No plate appearances extracted"],
        },
        "deterministic": cfg.deterministic,
    }
    ok = extraction.ok and cards is not None and cards.ok
    logger.info("Game report: %d plate appearances, %d hitters, ok=%s",
                len(extraction.data), len(cards.cards) if cards is not None else 0, ok)
    return {
        "ok": ok,
        "meta": meta,
        "hitters": [c.model_dump(mode="json") for c in cards.cards] if cards is not None else [],
    }


def dump_report(report: dict[str, Any]) -> str:
    """Serialize a report with a stable layout."""
    return json.dumps(report, indent=2, ensure_ascii=False)
