# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "pydantic>=2.0"]
# ///
"""Per-batter game plan.

Pitch-level metrics are derived from one batter's canonical plate
appearances: swing and miss rates, first-pitch tendencies, two-strike
behaviour (from the ball/strike count before each pitch) and an approximate
batting line.  A plan is a pair of short lists:

* teaching_patterns -- drills and cues for the hitter's own coaches
* exploitable_patterns -- in-game tactics for the opposing side

Each item carries the evidence it rests on.  Plans come either from fixed
rules over the metrics or from a language model given the metrics and the
batter's literal segments; model text is compacted to one terse line.

Usage::

    from cards.plan import build_game_plan

    result = build_game_plan("L D", records, segments, config, model)
    for item in result.plan.teaching_patterns:
        print(item.instruction, "|", item.evidence)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from config import DEFAULT_TIMEOUT_SECONDS, PipelineConfig
from llm import LanguageModel, LLMError, LLMResponseError, extract_json
from models import (
    BattedBallCounts,
    BattingLine,
    ExtractionResult,
    GamePlan,
    PaResult,
    PitchEvent,
    PlanApproach,
    PlanItem,
    PlanMetrics,
    PlanRates,
    PlanResult,
    PlanSample,
    PlateAppearanceCanonical,
    PowerCounts,
    RecommendationMode,
)

logger = logging.getLogger(__name__)

MAX_PLAN_ITEMS = 10
MAX_LINE_CHARS = 160
MAX_PROMPT_SEGMENTS = 20

CONTACT_RESULTS = frozenset({
    PaResult.GB,
    PaResult.FB,
    PaResult.LD,
    PaResult.DOUBLE,
    PaResult.TRIPLE,
    PaResult.HR,
    PaResult.REACHED_ON_ERROR,
    PaResult.FIELDER_CHOICE,
})
SWING_EVENTS = frozenset({PitchEvent.SWINGING_STRIKE, PitchEvent.FOUL, PitchEvent.IN_PLAY})
TAKE_EVENTS = frozenset({PitchEvent.BALL, PitchEvent.CALLED_STRIKE})


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def count_states(pitches: Sequence[PitchEvent]) -> list[tuple[int, int, PitchEvent]]:
    """``(balls, strikes, pitch)`` with the count as it stood before each pitch.

    Balls stop at 3 and strikes at 2; a foul adds a strike below two.
    """
    balls = strikes = 0
    states = []
    for pitch in pitches:
        states.append((balls, strikes, pitch))
        if pitch is PitchEvent.BALL:
            balls = min(3, balls + 1)
        elif pitch in (PitchEvent.CALLED_STRIKE, PitchEvent.SWINGING_STRIKE, PitchEvent.FOUL):
            strikes = min(2, strikes + 1)
    return states


def _rate(count: int, total: int) -> float:
    return count / total if total else 0.0


def derive_plan_metrics(pas: Sequence[PlateAppearanceCanonical]) -> PlanMetrics:
    n = len(pas)
    results = [pa.pa_result for pa in pas]

    def cnt(result: PaResult) -> int:
        return results.count(result)

    contact = sum(1 for r in results if r in CONTACT_RESULTS)
    walks, hbp = cnt(PaResult.WALK), cnt(PaResult.HBP)
    power = PowerCounts(
        double=cnt(PaResult.DOUBLE),
        triple=cnt(PaResult.TRIPLE),
        hr=cnt(PaResult.HR),
    )
    # Singles are not a canonical result, so hits are the extra-base hits.
    hits = power.extra_base_hits
    ab = max(0, n - walks - hbp)
    obp_den = ab + walks + hbp

    pitch_mix = {event.value: 0 for event in PitchEvent}
    swings = misses = 0
    first_ball = first_swing = first_take = 0
    two_strike_swings = k_looking = k_swinging = 0
    pitches_seen = 0
    for pa in pas:
        seq = pa.pitches
        pitches_seen += len(seq)
        if seq:
            first_ball += seq[0] is PitchEvent.BALL
            first_take += seq[0] in TAKE_EVENTS
            first_swing += seq[0] in SWING_EVENTS
        for _, strikes, pitch in count_states(seq):
            pitch_mix[pitch.value] += 1
            if pitch in SWING_EVENTS:
                swings += 1
                if strikes == 2:
                    two_strike_swings += 1
            if pitch is PitchEvent.SWINGING_STRIKE:
                misses += 1
        if pa.pa_result is PaResult.STRIKEOUT and seq:
            k_looking += seq[-1] is PitchEvent.CALLED_STRIKE
            k_swinging += seq[-1] is PitchEvent.SWINGING_STRIKE

    return PlanMetrics(
        sample=PlanSample(pas=n, pitches_seen=pitches_seen, bip=contact),
        rates=PlanRates(
            contact_rate=_rate(contact, n),
            strikeout_rate=_rate(cnt(PaResult.STRIKEOUT), n),
            walk_rate=_rate(walks, n),
            hbp_rate=_rate(hbp, n),
            swings_per_pa=_rate(swings, n),
            miss_rate_on_swings=_rate(misses, swings),
        ),
        approach=PlanApproach(
            first_pitch_ball_rate=_rate(first_ball, n),
            first_pitch_swing_rate=_rate(first_swing, n),
            first_pitch_take_rate=_rate(first_take, n),
            two_strike_swing_events=two_strike_swings,
            two_strike_k_looking=k_looking,
            two_strike_k_swinging=k_swinging,
        ),
        batted_ball=BattedBallCounts(gb=cnt(PaResult.GB), fb=cnt(PaResult.FB), ld=cnt(PaResult.LD)),
        power=power,
        batting=BattingLine(
            hits=hits,
            ab=ab,
            avg=_rate(hits, ab),
            obp=_rate(hits + walks + hbp, obp_den),
            xbh=power.extra_base_hits,
        ),
        pitch_mix=pitch_mix,
    )


# ---------------------------------------------------------------------------
# Line style
# ---------------------------------------------------------------------------

# Applied in order; "plate appearance" must become "PA" before the per-PA rule.
ABBREVIATIONS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(p, re.IGNORECASE), repl) for p, repl in (
        (r"\s*percent", "%"),
        (r"\bplate appearances?\b", "PA"),
        (r"\bpitches per (?:plate appearance|pa)\b", "pitches/PA"),
        (r"\bfirst pitch\b", "first-pitch"),
        (r"\btwo strike\b", "two-strike"),
        (r"\bdouble play\b", "double-play"),
        (r"\boutfield\b", "OF"),
        (r"\binfield\b", "IF"),
        (r"\bstrikeout\b", "K"),
        (r"\bwalks?\b", "BB"),
        (r"\bhome runs?\b", "HR"),
        (r"\bline drives?\b", "LD"),
        (r"\bground[ -]balls?\b", "GB"),
        (r"\bfly[ -]balls?\b", "FB"),
    )
)


def sanitize_line(value: Any) -> str:
    """One terse line: whitespace collapsed, scouting shorthand, length clamped."""
    out = re.sub(r"\s+", " ", "" if value is None else str(value)).strip()
    if not out:
        return ""
    for pattern, repl in ABBREVIATIONS:
        out = pattern.sub(repl, out)
    if len(out) > MAX_LINE_CHARS:
        out = out[:MAX_LINE_CHARS - 1] + "…"
    return out


def _clean_items(items: Sequence[Any]) -> list[PlanItem]:
    cleaned = []
    for item in items:
        if isinstance(item, dict):
            instruction = sanitize_line(item.get("instruction"))
            evidence = sanitize_line(item.get("evidence"))
        else:
            instruction, evidence = sanitize_line(item), ""
        if instruction:
            cleaned.append(PlanItem(instruction=instruction, evidence=evidence))
    return cleaned[:MAX_PLAN_ITEMS]


# ---------------------------------------------------------------------------
# Rule-based plan
# ---------------------------------------------------------------------------

def _pct(rate: float) -> str:
    return f"{round(rate * 100)}%"


def deterministic_plan(metrics: PlanMetrics) -> GamePlan:
    """Plan from fixed thresholds; lists stay empty where the evidence is thin."""
    r = metrics.rates
    a = metrics.approach
    bb = metrics.batted_ball
    teaching: list[PlanItem] = []
    exploit: list[PlanItem] = []

    if r.swings_per_pa and r.miss_rate_on_swings >= 0.4:
        evidence = f"{_pct(r.miss_rate_on_swings)} misses on swings"
        teaching.append(PlanItem(
            instruction="Two-strike battle: choke up, shorten stride; goal 2 fouls before ball in play.",
            evidence=evidence,
        ))
        exploit.append(PlanItem(
            instruction="Finish with the swing-and-miss pitch just off the plate once ahead.",
            evidence=evidence,
        ))
    if metrics.sample.pas and a.first_pitch_take_rate >= 0.6:
        evidence = f"{_pct(a.first_pitch_take_rate)} first-pitch takes"
        teaching.append(PlanItem(
            instruction="Hunt the first-pitch strike: be on time at heel plant for the first fastball in the zone.",
            evidence=evidence,
        ))
        exploit.append(PlanItem(
            instruction="0-0 strike in the zone; get ahead before expanding.",
            evidence=evidence,
        ))
    if a.two_strike_k_looking:
        teaching.append(PlanItem(
            instruction="Protect the edges with two strikes: widen the zone, foul off borderline pitches.",
            evidence=f"{a.two_strike_k_looking} K looking",
        ))
    if bb.gb >= max(bb.fb, bb.ld) + 2:
        evidence = f"{bb.gb} GB vs {bb.fb} FB, {bb.ld} LD"
        teaching.append(PlanItem(
            instruction="Stay through the ball: tee middle-away, finish high; 3x10.",
            evidence=evidence,
        ))
        exploit.append(PlanItem(
            instruction="Keep the ball down; IF at double-play depth.",
            evidence=evidence,
        ))
    if metrics.sample.pas and r.walk_rate <= 0.05 and r.swings_per_pa >= 2:
        exploit.append(PlanItem(
            instruction="Expand early; make him chase off the plate.",
            evidence=f"{r.swings_per_pa:.1f} swings/PA, {_pct(r.walk_rate)} BB",
        ))

    return GamePlan(
        teaching_patterns=teaching[:MAX_PLAN_ITEMS],
        exploitable_patterns=exploit[:MAX_PLAN_ITEMS],
    )


# ---------------------------------------------------------------------------
# Model-backed plan
# ---------------------------------------------------------------------------

PLAN_SYSTEM = " ".join((
    "You are a baseball game-planning assistant.",
    "Outputs must be operational, terse and testable. No fluff or hedging.",
    "Return STRICT JSON only with keys teaching_patterns and exploitable_patterns.",
    "Each item is a single-line instruction with an 'evidence' string; omit items with weak or inconsistent evidence.",
    "Use only the provided Metrics and literal Segments. Do not invent data.",
    "Forbidden phrases: speed bands, eye level, mix speeds, tunneling, recognition work, maintain approach,"
    " 'consider', 'maybe', 'could'.",
))


class PlanResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teaching_patterns: list[Any] = []
    exploitable_patterns: list[Any] = []


def build_plan_prompt(batter: str, metrics: PlanMetrics, segments: Sequence[str]) -> str:
    shape = {
        "teaching_patterns": [{"instruction": "string", "evidence": "string"}],
        "exploitable_patterns": [{"instruction": "string", "evidence": "string"}],
    }
    return "\n\n".join((
        f"Batter: {batter}",
        f"Metrics: {json.dumps(metrics.model_dump(), sort_keys=True)}",
        f"Segments (last up to {MAX_PROMPT_SEGMENTS}): {json.dumps(list(segments)[-MAX_PROMPT_SEGMENTS:])}",
        "Produce a plan with this exact JSON schema:",
        json.dumps(shape),
        "Constraints (hard):",
        "- Use only the provided Metrics and literal Segments. Do NOT invent directions or stats.\n"
        "- Arrays can be empty if evidence is weak.\n"
        "- teaching_patterns: each item is a single-line drill or coaching cue with how-to (imperative).\n"
        "- exploitable_patterns: each item is a single-line in-game tactic (count and location and/or positioning).\n"
        "- Each item must cite its evidence concisely (e.g. '80% first-pitch takes; 3 K swinging').",
        "Style exemplars (format only; do not copy numbers):",
        "Teaching: 'Two-strike battle: choke up 1/2 in, widen stance; goal 2 fouls before ball in play.'"
        " Evidence: 'high two-strike K%'.\n"
        "Exploit: '0-0 outer third for strike; then below-zone off-speed; IF double-play depth.'"
        " Evidence: '80% first-pitch takes; weak GB'.",
    ))


class GamePlanner:
    """Write a batter's game plan with a language model.

    Args:
        model: Language model.
        max_attempts: Attempts per batter before giving up.
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

    def _ask(self, batter: str, metrics: PlanMetrics, segments: Sequence[str]) -> PlanResponse:
        raw = self.model.complete(
            build_plan_prompt(batter, metrics, segments),
            system=PLAN_SYSTEM,
            schema_hint='{"teaching_patterns": [...], "exploitable_patterns": [...]}',
            temperature=0.0,
            timeout=self.timeout,
        )
        try:
            return PlanResponse.model_validate(extract_json(raw, expect=dict))
        except ValidationError as exc:
            raise LLMResponseError(f"unexpected plan shape: {exc.error_count()} error(s)") from exc

    def plan(self, batter: str, metrics: PlanMetrics, segments: Sequence[str] = ()) -> GamePlan:
        """Plan for *batter*, cleaned to one terse line per item.

        Raises:
            LLMError: The last error once every attempt has failed.
        """
        last_error: LLMError | None = None
        for attempt in range(self.max_attempts):
            try:
                response = self._ask(batter, metrics, segments)
                return GamePlan(
                    teaching_patterns=_clean_items(response.teaching_patterns),
                    exploitable_patterns=_clean_items(response.exploitable_patterns),
                )
            except LLMError as exc:
                last_error = exc
                logger.warning("Game plan for %s, attempt %d/%d failed: %s",
                               batter, attempt + 1, self.max_attempts, exc)
        assert last_error is not None
        raise last_error


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def build_game_plan(
    batter: str,
    pas: Sequence[PlateAppearanceCanonical],
    segments: Sequence[str] = (),
    config: PipelineConfig | None = None,
    model: LanguageModel | None = None,
) -> PlanResult:
    """Metrics and plan for one batter.

    Fails fast without a batter or plate appearances.  When the model fails
    every attempt the rule-based plan is returned and the failure listed in
    ``errors``; the result is still ``ok``.
    """
    name = (batter or "").strip()
    if not name or not pas:
        return PlanResult(ok=False, batter=name, errors=["Missing batter or plate appearances"])

    cfg = (config or PipelineConfig()).effective()
    metrics = derive_plan_metrics(pas)

    if cfg.recommendation_mode is RecommendationMode.DETERMINISTIC:
        return PlanResult(ok=True, batter=name, metrics=metrics, plan=deterministic_plan(metrics))
    if model is None:
        return PlanResult(ok=False, batter=name, metrics=metrics,
                          errors=["A language model is required for model plans"])

    planner = GamePlanner(model, max_attempts=cfg.cards_retries, timeout=cfg.timeout_seconds)
    try:
        plan = planner.plan(name, metrics, segments)
    except LLMError as exc:
        return PlanResult(ok=True, batter=name, metrics=metrics,
                          plan=deterministic_plan(metrics), errors=[f"{name}: {exc}"])
    logger.info("Game plan for %s: %d teaching, %d exploitable",
                name, len(plan.teaching_patterns), len(plan.exploitable_patterns))
    return PlanResult(ok=True, batter=name, metrics=metrics, plan=plan)


def plan_for_hitter(
    extraction: ExtractionResult,
    batter: str,
    config: PipelineConfig | None = None,
    model: LanguageModel | None = None,
) -> PlanResult:
    """Plan for *batter* from a whole-game extraction.

    Records are matched on the batter name as extracted; ``segments[i]``
    travels with ``data[i]``.
    """
    picked = [
        (pa, seg) for pa, seg in zip(extraction.data, extraction.segments)
        if (pa.batter or "").strip() == batter.strip()
    ]
    return build_game_plan(
        batter,
        [pa for pa, _ in picked],
        [seg for _, seg in picked],
        config,
        model,
    )
