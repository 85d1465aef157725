# /// script
# requires-python = ">=3.12"
# dependencies = ["pytest>=7.0", "anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Tests for hitter card aggregation and recommendations.

Covers:
  1. Per-batter aggregation (rates, counts, ordering, Unknown bucket)
  2. Deterministic recommendation rules and sample-size confidence
  3. Model recommendations: new and legacy shapes, hygiene, fallback
  4. build_hitter_cards: strict alias fail-fast and per-card fallback
"""

import json
import sys
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from cards.aggregate import MAX_SAMPLE_NOTES, aggregate_hitter_cards, build_card
from cards.builder import build_hitter_cards
from cards.recommendations import (
    DEVELOPMENT_FALLBACK,
    MAX_ITEMS,
    MIN_ITEMS,
    ModelRecommender,
    apply_deterministic,
    apply_sample_aware_confidence,
    cap_fill_unique,
    confidence_ceiling,
    deterministic_development,
    deterministic_exploit,
    filter_uncontrollable,
)
from config import PipelineConfig
from llm import LLMResponseError, LLMTransportError
from models import PaResult, PitchEvent, PlateAppearanceCanonical, RecommendationMode


def _pa(batter, result, outs=0, pitches=(), fielder=None, notes=None):
    return PlateAppearanceCanonical(
        pa_result=result,
        pitches=list(pitches),
        batter=batter,
        fielder_num=fielder,
        outs_added=outs,
        notes=notes or [],
        confidence=0.8,
    )


STRIKEOUT = dict(result=PaResult.STRIKEOUT, outs=1,
                 pitches=[PitchEvent.CALLED_STRIKE, PitchEvent.SWINGING_STRIKE, PitchEvent.SWINGING_STRIKE])
WALK = dict(result=PaResult.WALK, pitches=[PitchEvent.BALL] * 4)
GROUND_OUT = dict(result=PaResult.GB, outs=1, pitches=[PitchEvent.IN_PLAY], fielder=6)


class CannedModel:
    model_id = "canned-model"

    def __init__(self, answer):
        self.answer = answer
        self.calls = 0

    def complete(self, prompt, *, system=None, schema_hint=None, temperature=0.0, timeout=None):
        self.calls += 1
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer if isinstance(self.answer, str) else json.dumps(self.answer)


@pytest.fixture
def strikeout_card():
    return build_card("L D", [_pa("L D", **STRIKEOUT)])


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class TestAggregation:
    def test_rates_and_counts(self):
        card = build_card("G B", [
            _pa("G B", **STRIKEOUT),
            _pa("G B", **WALK),
            _pa("G B", **GROUND_OUT),
            _pa("G B", result=PaResult.DOUBLE, pitches=[PitchEvent.BALL, PitchEvent.IN_PLAY], fielder=7),
        ])
        assert card.totals.pas == 4
        assert card.totals.pitches_seen == 10
        assert card.totals.strikeout_rate == 0.25
        assert card.totals.walk_rate == 0.25
        assert card.totals.contact_rate == 0.5
        assert card.totals.hbp_rate == 0.0
        assert card.breakdown.batted_ball.gb == 1
        assert card.breakdown.power.double == 1
        assert card.breakdown.power.extra_base_hits == 1
        assert card.breakdown.fielder_map == {"6": 1, "7": 1}
        assert card.breakdown.pitch_mix["ball"] == 5
        assert card.breakdown.results == {"strikeout": 1, "walk": 1, "gb": 1, "double": 1}

    def test_cards_sorted_by_pas_then_name(self):
        records = [
            _pa("B B", **WALK),
            _pa("A A", **WALK),
            _pa("C C", **WALK),
            _pa("C C", **STRIKEOUT),
        ]
        assert [c.hitter for c in aggregate_hitter_cards(records)] == ["C C", "A A", "B B"]

    def test_missing_batter_grouped_as_unknown(self):
        cards = aggregate_hitter_cards([_pa(None, **WALK), _pa("  ", **WALK)])
        assert [c.hitter for c in cards] == ["Unknown"]
        assert cards[0].totals.pas == 2

    def test_sample_notes_capped(self):
        records = [_pa("L D", notes=[f"note {i}"], **WALK) for i in range(10)]
        card = aggregate_hitter_cards(records)[0]
        assert card.sample_notes == [f"note {i}" for i in range(MAX_SAMPLE_NOTES)]

    def test_no_recommendations_yet(self, strikeout_card):
        assert strikeout_card.recommendations == []
        assert strikeout_card.recommendations_confidence is None


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

class TestConfidence:
    def test_ceiling_grows_with_sample(self):
        assert confidence_ceiling(0) == 0.45
        assert confidence_ceiling(16) == 0.85
        assert confidence_ceiling(100) == 0.85
        assert confidence_ceiling(1) < confidence_ceiling(8) < confidence_ceiling(16)

    def test_single_pa_stays_low_whatever_the_claim(self):
        conf = apply_sample_aware_confidence(0.99, 1)
        assert conf is not None
        assert conf <= 0.55

    def test_large_sample_keeps_modest_claim(self):
        assert apply_sample_aware_confidence(0.6, 20) == 0.6

    @pytest.mark.parametrize("value", [None, "high", True, float("nan")])
    def test_non_numbers(self, value):
        assert apply_sample_aware_confidence(value, 10) is None


# ---------------------------------------------------------------------------
# List hygiene
# ---------------------------------------------------------------------------

class TestListHygiene:
    def test_banned_phrases_removed(self):
        items = ["Get more at-bats", "Needs more data", "Shorten stride", "Play more games to improve"]
        assert filter_uncontrollable(items) == ["Shorten stride"]

    def test_dedupe_and_cap(self):
        items = [f"item {i}" for i in range(10)] + ["item 0"]
        out = cap_fill_unique(items)
        assert out == [f"item {i}" for i in range(MAX_ITEMS)]

    def test_fill_from_fallback(self):
        out = cap_fill_unique(["Shorten stride"], fallback=["Shorten stride", "Load earlier", "Track to glove"])
        assert out == ["Shorten stride", "Load earlier", "Track to glove"]
        assert len(out) == MIN_ITEMS


# ---------------------------------------------------------------------------
# Deterministic track
# ---------------------------------------------------------------------------

class TestDeterministic:
    def test_high_strikeout_hitter(self, strikeout_card):
        dev, dev_conf = deterministic_development(strikeout_card)
        exp, exp_conf = deterministic_exploit(strikeout_card)
        assert MIN_ITEMS <= len(dev) <= 5
        assert MIN_ITEMS <= len(exp) <= 5
        assert any("two-strike" in r for r in dev)
        assert any("two strikes" in r for r in exp)
        assert dev_conf == exp_conf == confidence_ceiling(1)

    def test_no_rule_fires_uses_fallback(self):
        card = build_card("J K", [_pa("J K", result=PaResult.HR, pitches=[PitchEvent.IN_PLAY])])
        dev, _ = deterministic_development(card)
        assert dev == [DEVELOPMENT_FALLBACK] * MIN_ITEMS

    def test_baserunning_note(self):
        card = build_card("G B", [_pa("G B", notes=["G B caught stealing second"], **WALK)])
        dev, _ = deterministic_development(card)
        assert any("baserunning" in r for r in dev)

    def test_apply_fills_both_tracks(self, strikeout_card):
        apply_deterministic(strikeout_card)
        assert strikeout_card.recommendations
        assert strikeout_card.exploit_recommendations
        assert strikeout_card.recommendations_confidence <= 0.55

    def test_stable(self, strikeout_card):
        assert deterministic_development(strikeout_card) == deterministic_development(strikeout_card)


# ---------------------------------------------------------------------------
# Model track
# ---------------------------------------------------------------------------

class TestModelRecommender:
    def test_new_shape(self, strikeout_card):
        model = CannedModel({
            "development": {
                "recommendations": ["Shorten stride", "Choke up", "Needs more data", "Load earlier"],
                "confidence": 0.95,
            },
            "exploit": {"recommendations": ["Elevate", "Expand away", "Pound edges"], "confidence": 0.9},
        })
        card = ModelRecommender(model).recommend(strikeout_card)
        assert card.recommendations == ["Shorten stride", "Choke up", "Load earlier"]
        assert card.exploit_recommendations == ["Elevate", "Expand away", "Pound edges"]
        assert card.recommendations_confidence <= 0.55
        assert card.exploit_recommendations_confidence <= 0.55

    def test_legacy_shape_uses_rules_for_exploit(self, strikeout_card):
        model = CannedModel({"recommendations": ["Shorten stride", "Choke up", "Load earlier"], "confidence": 0.4})
        card = ModelRecommender(model).recommend(strikeout_card)
        exp, exp_conf = deterministic_exploit(strikeout_card)
        assert card.recommendations == ["Shorten stride", "Choke up", "Load earlier"]
        assert card.exploit_recommendations == exp
        assert card.exploit_recommendations_confidence == exp_conf

    def test_missing_confidence_falls_back(self, strikeout_card):
        model = CannedModel({"development": {"recommendations": ["A", "B", "C"]}})
        card = ModelRecommender(model).recommend(strikeout_card)
        assert card.recommendations_confidence == confidence_ceiling(1)
        assert card.exploit_recommendations == deterministic_exploit(strikeout_card)[0]

    def test_short_list_topped_up(self, strikeout_card):
        model = CannedModel({"development": {"recommendations": ["Shorten stride"], "confidence": 0.3}})
        card = ModelRecommender(model).recommend(strikeout_card)
        assert card.recommendations[0] == "Shorten stride"
        assert len(card.recommendations) == MIN_ITEMS

    def test_empty_answer_raises_after_retries(self, strikeout_card):
        model = CannedModel({"development": {"recommendations": []}, "exploit": {"recommendations": []}})
        with pytest.raises(LLMResponseError):
            ModelRecommender(model, max_attempts=2).recommend(strikeout_card)
        assert model.calls == 2


# ---------------------------------------------------------------------------
# build_hitter_cards
# ---------------------------------------------------------------------------

class TestBuildHitterCards:
    def test_deterministic(self):
        records = [_pa("John Miller", **STRIKEOUT), _pa("J Miller", **WALK), _pa("L D", **GROUND_OUT)]
        result = build_hitter_cards(records, PipelineConfig(deterministic=True))
        assert result.ok
        assert [c.hitter for c in result.cards] == ["John Miller", "L D"]
        assert all(c.recommendations and c.exploit_recommendations for c in result.cards)

    def test_strict_ambiguity_fails_before_model(self):
        records = [_pa("John Miller", **WALK), _pa("Jane Miller", **WALK), _pa("Miller", **WALK)]
        model = CannedModel(LLMTransportError("unused"))
        result = build_hitter_cards(records, PipelineConfig(), model)
        assert not result.ok
        assert result.cards == []
        assert model.calls == 0
        assert any("Ambiguous last name 'Miller'" in e for e in result.errors)

    def test_non_strict_keeps_going(self):
        records = [_pa("John Miller", **WALK), _pa("Jane Miller", **WALK), _pa("Miller", **WALK)]
        result = build_hitter_cards(records, PipelineConfig(deterministic=True, strict_aliases=False))
        assert result.ok
        assert {c.hitter for c in result.cards} == {"John Miller", "Jane Miller", "Miller"}
        assert result.errors == ["[alias] Ambiguous last name 'Miller': Jane Miller, John Miller"]

    def test_non_strict_lists_alias_problems_before_card_errors(self):
        records = [_pa("John Miller", **WALK), _pa("Jane Miller", **WALK), _pa("Miller", **WALK)]
        model = CannedModel(LLMTransportError("model request timed out after 1.0s"))
        cfg = PipelineConfig(strict_aliases=False, cards_retries=1, cards_concurrency=1)
        result = build_hitter_cards(records, cfg, model)
        assert result.ok
        assert result.errors[0] == "[alias] Ambiguous last name 'Miller': Jane Miller, John Miller"
        assert result.errors[1:] == sorted(result.errors[1:])
        assert len(result.errors) == 4

    def test_model_failure_falls_back_per_card(self):
        records = [_pa("L D", **STRIKEOUT), _pa("G B", **WALK)]
        model = CannedModel(LLMTransportError("model request timed out after 1.0s"))
        cfg = PipelineConfig(cards_retries=1, cards_concurrency=1)
        result = build_hitter_cards(records, cfg, model)

        assert result.ok
        assert result.errors == [
            "G B: model request timed out after 1.0s",
            "L D: model request timed out after 1.0s",
        ]
        for card in result.cards:
            assert card.recommendations == deterministic_development(card)[0]

    def test_model_mode_without_model(self):
        cfg = PipelineConfig(recommendation_mode=RecommendationMode.MODEL)
        result = build_hitter_cards([_pa("L D", **WALK)], cfg, None)
        assert not result.ok
