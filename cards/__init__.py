# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Hitter cards -- alias resolution, per-batter aggregation, recommendations and game plans."""

from cards.aggregate import aggregate_hitter_cards
from cards.aliases import AliasResolution, AliasResolutionError, apply_alias_map, build_alias_map, parse_name
from cards.builder import build_hitter_cards
from cards.plan import GamePlanner, build_game_plan, derive_plan_metrics, plan_for_hitter
from cards.recommendations import ModelRecommender, apply_deterministic, confidence_ceiling

__all__ = [
    "aggregate_hitter_cards",
    "AliasResolution",
    "AliasResolutionError",
    "apply_alias_map",
    "build_alias_map",
    "parse_name",
    "build_hitter_cards",
    "GamePlanner",
    "build_game_plan",
    "derive_plan_metrics",
    "plan_for_hitter",
    "ModelRecommender",
    "apply_deterministic",
    "confidence_ceiling",
]
