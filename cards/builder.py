# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Canonical records -> hitter cards with recommendations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from cards.aggregate import aggregate_hitter_cards
from cards.aliases import AliasResolutionError, resolve_batters
from cards.recommendations import ModelRecommender, apply_deterministic
from config import PipelineConfig
from extraction.workers import run_indexed
from llm import LanguageModel, LLMError
from models import CardsResult, HitterCard, PlateAppearanceCanonical, RecommendationMode

logger = logging.getLogger(__name__)


def build_hitter_cards(
    records: Sequence[PlateAppearanceCanonical],
    config: PipelineConfig | None = None,
    model: LanguageModel | None = None,
    cancel: threading.Event | None = None,
) -> CardsResult:
    """Resolve batter aliases, aggregate per batter and attach recommendations.

    In strict alias mode a missing batter, an ambiguous name or an unresolved
    name fails the whole batch before any model call.  A card whose model
    recommendations fail gets the deterministic ones instead and the failure
    is listed in ``errors``; the batch itself still succeeds.  In non-strict
    mode alias problems lead ``errors`` and the batch still succeeds.
    """
    cfg = (config or PipelineConfig()).effective()

    try:
        resolved, resolution = resolve_batters(records, cfg.aliases, strict=cfg.strict_aliases)
    except AliasResolutionError as exc:
        logger.warning("Hitter cards aborted: %s", exc)
        return CardsResult(ok=False, errors=exc.errors)

    # Non-strict: alias problems are reported alongside the cards.
    notes = list(resolution.problems)
    cards = aggregate_hitter_cards(resolved)
    logger.info("Aggregated %d records into %d hitter cards", len(resolved), len(cards))

    if cfg.recommendation_mode is RecommendationMode.DETERMINISTIC:
        for card in cards:
            apply_deterministic(card)
        return CardsResult(ok=True, cards=cards, errors=notes)

    if model is None:
        return CardsResult(ok=False, errors=["A language model is required for model recommendations"])

    recommender = ModelRecommender(model, max_attempts=cfg.cards_retries, timeout=cfg.timeout_seconds)
    errors: list[str] = []
    lock = threading.Lock()

    def handle(i: int, card: HitterCard) -> HitterCard:
        try:
            return recommender.recommend(card)
        except LLMError as exc:
            with lock:
                errors.append(f"{card.hitter}: {exc}")
            return apply_deterministic(card)

    done = run_indexed(cards, handle, concurrency=cfg.cards_concurrency, cancel=cancel, label="card")
    for card, filled in zip(cards, done):
        if filled is None:
            errors.append(f"{card.hitter}: cancelled")
            apply_deterministic(card)

    # Sort for a stable listing regardless of worker completion order.
    return CardsResult(ok=True, cards=cards, errors=notes + sorted(errors))
