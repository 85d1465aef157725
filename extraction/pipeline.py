# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "jsonschema>=4.0", "pydantic>=2.0"]
# ///
"""Game text -> ordered, validated plate appearance records.

Segmentation, per-segment canonicalization (concurrent, cached), name
backfill.  A segment whose canonicalization fails is dropped together with
its record, so ``segments[i]`` always produced ``data[i]``; the failure is
listed in ``errors`` and the rest of the game is still returned.
"""

from __future__ import annotations

import logging
import threading

from config import PipelineConfig
from data.cache import ResultCache
from extraction.canonicalizer import Canonicalizer, CanonicalizeResult
from extraction.names import backfill_names
from extraction.refiner import segment_game_text
from extraction.workers import run_indexed
from llm import LanguageModel
from models import CanonMode, ExtractionResult, GameContext, SegmentationMode

logger = logging.getLogger(__name__)


def canonicalize_game_text(
    text: str,
    context: GameContext | None = None,
    config: PipelineConfig | None = None,
    model: LanguageModel | None = None,
    cache: ResultCache | None = None,
    cancel: threading.Event | None = None,
) -> ExtractionResult:
    """Extract every plate appearance from a game log.

    Args:
        text: Raw play-by-play narrative.
        context: Game situation passed to every canonicalization.
        config: Pipeline tunables; defaults to ``PipelineConfig()``.
        model: Language model for the model-backed modes.
        cache: Shared result cache.  A private one is created when omitted.
        cancel: Optional event that stops the run between units.

    Returns:
        ``ExtractionResult`` with aligned ``data``/``segments`` and the error
        list.  Empty text, or a model-backed mode without a model, fails
        before any model call.
    """
    cfg = (config or PipelineConfig()).effective()
    context = context or GameContext()

    if not text or not text.strip():
        return ExtractionResult(ok=False, errors=["Missing game text"])
    needs_model = (cfg.segmentation_mode is not SegmentationMode.DETERMINISTIC
                   or cfg.canon_mode is CanonMode.MODEL)
    if needs_model and model is None:
        return ExtractionResult(ok=False, errors=["A language model is required for model-backed modes"])

    seg = segment_game_text(
        text,
        cfg.segmentation_mode,
        model,
        max_attempts=cfg.segmentation_retries,
        concurrency=cfg.segmentation_concurrency,
        timeout=cfg.timeout_seconds,
        cancel=cancel,
    )
    segments = seg.segments
    errors = list(seg.errors)
    logger.info("Segmented game text into %d plate appearances (%s)",
                len(segments), cfg.segmentation_mode.value)

    canonicalizer = Canonicalizer(
        model if cfg.canon_mode is CanonMode.MODEL else None,
        mode=cfg.canon_mode,
        max_attempts=cfg.canon_retries,
        self_check=cfg.self_check,
        timeout=cfg.timeout_seconds,
        cache=cache if cache is not None else ResultCache(cfg.cache_capacity),
    )

    def handle(i: int, segment: str) -> CanonicalizeResult:
        return canonicalizer.canonicalize(segment, context)

    outcomes = run_indexed(
        segments, handle, concurrency=cfg.canon_concurrency, cancel=cancel, label="segment",
    )

    records = []
    for i, outcome in enumerate(outcomes):
        if outcome is None:
            records.append(None)
            errors.append(f"Segment {i}: cancelled")
        elif outcome.ok:
            records.append(outcome.data)
        else:
            records.append(None)
            errors.append(f"Segment {i}: {'; '.join(outcome.errors)}")

    backfill_names(records, segments)

    pairs = [(seg_text, pa) for seg_text, pa in zip(segments, records) if pa is not None]
    cached = sum(1 for o in outcomes if o is not None and o.cached)
    logger.info("Canonicalized %d/%d segments (%d from cache, %d error(s))",
                len(pairs), len(segments), cached, len(errors))

    return ExtractionResult(
        ok=not errors,
        data=[pa for _, pa in pairs],
        segments=[s for s, _ in pairs],
        errors=errors,
    )
