# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Coaching recommendations for hitter cards.

Two tracks, each producing a development list (what the hitter should work
on) and an exploit list (how an opponent should pitch and defend him):

* Deterministic rules over the card's rates and counts.  Always available.
* Model-enriched.  The response is filtered for uncontrollable advice,
  de-duplicated, capped, backfilled from the deterministic rules and its
  confidence is scaled by sample size.

Confidence never exceeds what the sample supports::

    ceiling(pas) = 0.45 + min(0.4, 0.2 * pas / 8)

so a one-PA card stays below 0.5 whatever the model claims.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from config import DEFAULT_TIMEOUT_SECONDS
from llm import LanguageModel, LLMError, LLMResponseError, extract_json
from models import HitterCard

logger = logging.getLogger(__name__)

MIN_ITEMS = 3
MAX_ITEMS = 6
MAX_DETERMINISTIC_ITEMS = 5

CONFIDENCE_FLOOR = 0.45
CONFIDENCE_SPAN = 0.4

DEVELOPMENT_FALLBACK = "Reinforce timing: load earlier; be on time for fastball, adjust to off-speed."
EXPLOIT_FALLBACK = "Standard plan: get ahead, change eye level, finish off the plate."

BANNED_PATTERNS: tuple[re.Pattern[str], ...] = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"increase\s+plate\s+appearances",
    r"more\s+plate\s+appearances",
    r"needs?\s+more\s+data",
    r"larger\s+sample",
    r"increase\s+pitches",
    r"see\s+more\s+pitches",
    r"get\s+more\s+at-?bats",
    r"play\s+more\s+games",
    r"collect\s+more\s+data",
))

_BASERUNNING_NOTE_RE = re.compile(r"out at|picked off|caught stealing", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

def confidence_ceiling(pas: int) -> float:
    """Sample-size confidence: 0.45 at zero PAs, rising to 0.85 at 16+."""
    n = max(0, pas)
    return round(CONFIDENCE_FLOOR + min(CONFIDENCE_SPAN, 0.2 * n / 8), 2)


def sample_size_scale(pas: int) -> float:
    """Multiplier for model confidence: 0.5 at zero PAs, 1.0 from six on."""
    n = max(0, pas)
    return min(1.0, 0.5 + 0.5 * min(1.0, n / 6))


def apply_sample_aware_confidence(confidence: Any, pas: int) -> Optional[float]:
    """Scale a model-claimed confidence by sample size, capped at the ceiling.

    Returns ``None`` when *confidence* is not a number.
    """
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None
    if math.isnan(confidence):
        return None
    c = max(0.0, min(1.0, float(confidence)))
    return round(min(c * sample_size_scale(pas), confidence_ceiling(pas)), 2)


# ---------------------------------------------------------------------------
# List hygiene
# ---------------------------------------------------------------------------

def filter_uncontrollable(items: list[str]) -> list[str]:
    """Drop items that recommend things a player cannot control."""
    return [s for s in items if s and not any(p.search(s) for p in BANNED_PATTERNS)]


def cap_fill_unique(
    items: list[str],
    min_items: int = MIN_ITEMS,
    max_items: int = MAX_ITEMS,
    fallback: list[str] | None = None,
) -> list[str]:
    """Filter, de-duplicate and cap *items*; top up from *fallback* below *min_items*."""
    seen: set[str] = set()
    out: list[str] = []
    for s in filter_uncontrollable(items):
        t = s.strip()
        if t and t not in seen:
            out.append(t)
            seen.add(t)
        if len(out) >= max_items:
            break
    if len(out) < min_items:
        for s in filter_uncontrollable(fallback or []):
            t = s.strip()
            if t and t not in seen:
                out.append(t)
                seen.add(t)
            if len(out) >= min_items:
                break
    return out[:max_items]


def _finish(recs: list[str], fallback: str) -> list[str]:
    unique = list(dict.fromkeys(recs))[:MAX_DETERMINISTIC_ITEMS]
    while len(unique) < MIN_ITEMS:
        unique.append(fallback)
    return unique


# ---------------------------------------------------------------------------
# Deterministic rules
# ---------------------------------------------------------------------------

def deterministic_development(card: HitterCard) -> tuple[list[str], float]:
    """Rule-based development recommendations and their confidence."""
    t = card.totals
    bb = card.breakdown.batted_ball
    power = card.breakdown.power
    mix = card.breakdown.pitch_mix
    recs: list[str] = []

    if t.strikeout_rate >= 0.35 or t.contact_rate <= 0.45:
        recs.append("Simplify two-strike approach: shorten stride, choke up, prioritize contact to middle/oppo.")
        recs.append("Start load earlier to avoid being late; focus on on-time heel plant before swing.")
    if t.walk_rate <= 0.05 and mix.get("ball", 0) < mix.get("called_strike", 0):
        recs.append("Tighten swing decisions: hunt one zone early; take borderline pitches until two strikes.")
        recs.append("Improve takes: track pitches to the glove; call ball/strike aloud in the on-deck circle.")
    if bb.gb >= max(bb.fb, bb.ld) + 2:
        recs.append("Reduce rollovers: keep hands above the ball; feel slight uphill through contact, not down to.")
    if bb.fb >= bb.gb + 2 and power.hr + power.double <= 1:
        recs.append("Add intent: drive through center; finish high with full rotation instead of slicing under.")
    if power.extra_base_hits == 0 and t.pas >= 6:
        recs.append("Add rotational speed: med-ball scoop toss and step-behind throws 2x/week.")
    if any(_BASERUNNING_NOTE_RE.search(n) for n in card.sample_notes):
        recs.append("Sharpen baserunning reads: freeze on line drives; bigger secondary with eyes on the pitcher.")

    return _finish(recs, DEVELOPMENT_FALLBACK), confidence_ceiling(t.pas)


def deterministic_exploit(card: HitterCard) -> tuple[list[str], float]:
    """Rule-based recommendations for an opponent facing this hitter."""
    t = card.totals
    bb = card.breakdown.batted_ball
    power = card.breakdown.power
    mix = card.breakdown.pitch_mix
    recs: list[str] = []

    if t.strikeout_rate >= 0.35:
        recs.append("Attack up and out of the zone with two strikes; expand late with breakers off the plate.")
        recs.append("Get ahead early; elevate fastball above the belt then finish with slider away.")
    if t.contact_rate <= 0.45:
        recs.append("Pound edge zones; avoid middle. Force chase by tunneling off-speed after first-pitch strike.")
    if t.walk_rate <= 0.05:
        recs.append("Avoid free passes: expand early. He will chase; do not give middle-middle strikes.")
    elif t.walk_rate >= 0.15:
        recs.append("Challenge in-zone early; limit waste pitches. Make him earn swings in the zone.")
    if bb.gb >= max(bb.fb, bb.ld) + 2 and power.extra_base_hits == 0:
        recs.append("Live down in the zone; induce rollovers to SS/2B. Infield plays a step in for the double play.")
    if bb.fb >= bb.gb + 2 and power.hr + power.double <= 1:
        recs.append("Climb the ladder: ride fastballs at the letters; outfield shades shallow corners for weak flies.")
    if mix.get("ball", 0) > mix.get("called_strike", 0) * 1.5 and t.walk_rate >= 0.12:
        recs.append("Fill the zone early; avoid nibbling. First-pitch strike is key.")

    return _finish(recs, EXPLOIT_FALLBACK), confidence_ceiling(t.pas)


def apply_deterministic(card: HitterCard) -> HitterCard:
    """Fill both recommendation tracks from the rules, in place."""
    card.recommendations, card.recommendations_confidence = deterministic_development(card)
    card.exploit_recommendations, card.exploit_recommendations_confidence = deterministic_exploit(card)
    return card


# ---------------------------------------------------------------------------
# Model-enriched track
# ---------------------------------------------------------------------------

class RecommendationSet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recommendations: list[Any] = []
    confidence: Optional[float] = None


class RecommendationResponse(BaseModel):
    """Model answer; ``recommendations``/``confidence`` are the older single-list shape."""
    model_config = ConfigDict(extra="ignore")

    development: Optional[RecommendationSet] = None
    exploit: Optional[RecommendationSet] = None
    recommendations: Optional[list[Any]] = None
    confidence: Optional[float] = None


def build_recommendation_prompt(card: HitterCard) -> str:
    summary = {
        "hitter": card.hitter,
        "totals": card.totals.model_dump(),
        "breakdown": card.breakdown.model_dump(),
        "sample_notes": card.sample_notes,
    }
    return f"""You are a youth baseball coach and opposing scout. Based ONLY on the provided summary, return TWO recommendation sets:

Strictly follow:
- Be specific and concise (bulleted items, 3-5 each).
- Base every item ONLY on the provided stats/notes; do not guess beyond them.
- Never recommend uncontrollable/meta actions (e.g., "increase plate appearances", "get more data", "see more pitches", "play more games").
- Do not mention sample size or data limitations. If sample is small, reflect uncertainty ONLY via lower confidence.
- Output JSON ONLY with this shape:
  {{
    "development": {{ "recommendations": string[], "confidence": number }},
    "exploit": {{ "recommendations": string[], "confidence": number }}
  }}

Meaning:
- development: what THIS hitter should work on to improve.
- exploit: how an opponent should pitch/defend to exploit CURRENT weaknesses.

Summary:
{json.dumps(summary, sort_keys=True)}"""


def _as_strings(items: list[Any] | None) -> list[str]:
    return [str(s) for s in (items or [])][:MAX_ITEMS]


class ModelRecommender:
    """Fill a card's recommendations from a language model.

    Args:
        model: Language model.
        max_attempts: Attempts per card before giving up.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        model: LanguageModel,
        *,
        max_attempts: int = 2,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout

    def _ask(self, card: HitterCard) -> RecommendationResponse:
        raw = self.model.complete(
            build_recommendation_prompt(card),
            system="Output only JSON. No prose.",
            schema_hint='{"development": {...}, "exploit": {...}}',
            temperature=0.0,
            timeout=self.timeout,
        )
        try:
            return RecommendationResponse.model_validate(extract_json(raw, expect=dict))
        except ValidationError as exc:
            raise LLMResponseError(f"unexpected recommendation shape: {exc.error_count()} error(s)") from exc

    def _apply(self, card: HitterCard, response: RecommendationResponse) -> None:
        pas = card.totals.pas
        det_dev, det_dev_conf = deterministic_development(card)
        det_exp, det_exp_conf = deterministic_exploit(card)

        if response.recommendations is not None:
            dev_raw = _as_strings(response.recommendations)
            dev = cap_fill_unique(dev_raw, fallback=det_dev)
            if not dev:
                raise LLMResponseError("no recommendations returned")
            conf = apply_sample_aware_confidence(response.confidence, pas)
            card.recommendations = dev
            card.recommendations_confidence = det_dev_conf if conf is None else conf
            card.exploit_recommendations = det_exp
            card.exploit_recommendations_confidence = det_exp_conf
            return

        dev_set = response.development or RecommendationSet()
        exp_set = response.exploit or RecommendationSet()
        dev_raw = _as_strings(dev_set.recommendations)
        exp_raw = _as_strings(exp_set.recommendations)
        if not dev_raw and not exp_raw:
            raise LLMResponseError("no recommendations returned")

        if dev_raw:
            conf = apply_sample_aware_confidence(dev_set.confidence, pas)
            card.recommendations = cap_fill_unique(dev_raw, fallback=det_dev)
            card.recommendations_confidence = det_dev_conf if conf is None else conf
        else:
            card.recommendations, card.recommendations_confidence = det_dev, det_dev_conf
        if exp_raw:
            conf = apply_sample_aware_confidence(exp_set.confidence, pas)
            card.exploit_recommendations = cap_fill_unique(exp_raw, fallback=det_exp)
            card.exploit_recommendations_confidence = det_exp_conf if conf is None else conf
        else:
            card.exploit_recommendations, card.exploit_recommendations_confidence = det_exp, det_exp_conf

    def recommend(self, card: HitterCard) -> HitterCard:
        """Fill *card* in place.

        Raises:
            LLMError: The last error once every attempt has failed.
        """
        last_error: LLMError | None = None
        for attempt in range(self.max_attempts):
            try:
                self._apply(card, self._ask(card))
                return card
            except LLMError as exc:
                last_error = exc
                logger.warning("Recommendations for %s, attempt %d/%d failed: %s",
                               card.hitter, attempt + 1, self.max_attempts, exc)
        assert last_error is not None
        raise last_error
