# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Data models for play-by-play extraction and hitter cards."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PaResult(str, Enum):
    STRIKEOUT = "strikeout"
    WALK = "walk"
    GB = "gb"
    FB = "fb"
    LD = "ld"
    DOUBLE = "double"
    TRIPLE = "triple"
    HR = "hr"
    HBP = "hbp"
    REACHED_ON_ERROR = "reached_on_error"
    FIELDER_CHOICE = "fielder_choice"


class PitchEvent(str, Enum):
    BALL = "ball"
    CALLED_STRIKE = "called_strike"
    SWINGING_STRIKE = "swinging_strike"
    FOUL = "foul"
    IN_PLAY = "in_play"


class RunnerActionKind(str, Enum):
    STEAL = "steal"
    STEAL_HOME = "steal_home"
    ADVANCE = "advance"
    SCORE = "score"


class Half(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class SegmentationMode(str, Enum):
    DETERMINISTIC = "deterministic"
    MODEL = "model"
    HYBRID = "hybrid"


class CanonMode(str, Enum):
    MODEL = "model"
    DETERMINISTIC = "deterministic"


class RecommendationMode(str, Enum):
    MODEL = "model"
    DETERMINISTIC = "deterministic"


# Results that can never record an out, and the one that always records one.
NO_OUT_RESULTS = frozenset({
    PaResult.WALK, PaResult.HBP, PaResult.HR, PaResult.DOUBLE, PaResult.TRIPLE,
})
ONE_OUT_RESULTS = frozenset({PaResult.STRIKEOUT})


# ---------------------------------------------------------------------------
# Game context
# ---------------------------------------------------------------------------

class Score(BaseModel):
    model_config = ConfigDict(frozen=True)

    home: int = 0
    away: int = 0


class GameContext(BaseModel):
    """Situational state at the start of a plate appearance.

    Supplied by the caller for every extraction and never mutated here.
    """
    model_config = ConfigDict(frozen=True)

    inning: int = Field(default=1, ge=1)
    half: Half = Half.TOP
    outs: int = Field(default=0, ge=0, le=2)
    bases: dict[int, str] = Field(default_factory=dict, description="Base number (1-3) -> occupant id")
    score: Score = Field(default_factory=Score)
    pitcher: Optional[str] = None
    roster_aliases: dict[str, str] = Field(default_factory=dict)
    position_map: dict[int, str] = Field(default_factory=dict, description="Fielder number (1-9) -> player")

    @field_validator("bases")
    @classmethod
    def validate_bases(cls, v: dict[int, str]) -> dict[int, str]:
        for base in v:
            if base not in (1, 2, 3):
                raise ValueError(f"base must be 1, 2 or 3, got {base}")
        return v

    @field_validator("position_map")
    @classmethod
    def validate_positions(cls, v: dict[int, str]) -> dict[int, str]:
        for pos in v:
            if not 1 <= pos <= 9:
                raise ValueError(f"fielder number must be 1-9, got {pos}")
        return v

    def as_prompt_dict(self) -> dict[str, Any]:
        """JSON-ready dict with stable key order, used in prompts and cache keys."""
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Plate appearance records
# ---------------------------------------------------------------------------

class RunnerAction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    runner: str = ""
    action: RunnerActionKind
    to: int = Field(ge=1, le=4)


class PlateAppearanceCanonical(BaseModel):
    """One plate appearance in structured form.

    Created by the canonicalizer from a single segment. Only the identity
    fields (``batter``, ``pitcher``) are rewritten afterwards, first by the
    name backfill and then by alias resolution.
    """
    model_config = ConfigDict(extra="forbid")

    pa_result: PaResult
    pitches: list[PitchEvent] = Field(default_factory=list)
    batter: Optional[str] = None
    pitcher: Optional[str] = None
    fielder_num: Optional[int] = Field(default=None, ge=1, le=9)
    outs_added: int = Field(ge=0, le=3)
    explicit_runner_actions: list[RunnerAction] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class PlateAppearancePartial(BaseModel):
    """A partially extracted record; every field may be missing."""
    model_config = ConfigDict(extra="forbid")

    pa_result: Optional[PaResult] = None
    pitches: Optional[list[PitchEvent]] = None
    batter: Optional[str] = None
    pitcher: Optional[str] = None
    fielder_num: Optional[int] = Field(default=None, ge=1, le=9)
    outs_added: Optional[int] = Field(default=None, ge=0, le=3)
    explicit_runner_actions: Optional[list[RunnerAction]] = None
    notes: Optional[list[str]] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def present_fields(self) -> dict[str, Any]:
        """Fields that were actually extracted, JSON-ready."""
        return self.model_dump(mode="json", exclude_none=True)

    def fold(self, overlay: dict[str, Any]) -> dict[str, Any]:
        """Merge *overlay* on top of this partial, field by field.

        A field from *overlay* wins whenever it is present and not null;
        otherwise the extracted value is kept. Keys unknown to the record
        are carried through so that validation can reject them.
        """
        merged = self.present_fields()
        for key, value in overlay.items():
            if value is not None:
                merged[key] = value
        return merged


# ---------------------------------------------------------------------------
# Hitter cards
# ---------------------------------------------------------------------------

class HitterCardTotals(BaseModel):
    pas: int = 0
    pitches_seen: int = 0
    contact_rate: float = 0.0
    strikeout_rate: float = 0.0
    walk_rate: float = 0.0
    hbp_rate: float = 0.0


class BattedBallCounts(BaseModel):
    gb: int = 0
    fb: int = 0
    ld: int = 0


class PowerCounts(BaseModel):
    double: int = 0
    triple: int = 0
    hr: int = 0

    @property
    def extra_base_hits(self) -> int:
        return self.double + self.triple + self.hr


class HitterCardBreakdown(BaseModel):
    results: dict[str, int] = Field(default_factory=dict)
    batted_ball: BattedBallCounts = Field(default_factory=BattedBallCounts)
    power: PowerCounts = Field(default_factory=PowerCounts)
    fielder_map: dict[str, int] = Field(default_factory=dict)
    pitch_mix: dict[str, int] = Field(default_factory=dict)


class HitterCard(BaseModel):
    """Aggregated statistics and recommendations for one resolved batter."""
    hitter: str
    totals: HitterCardTotals
    breakdown: HitterCardBreakdown
    sample_notes: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    recommendations_confidence: Optional[float] = None
    exploit_recommendations: list[str] = Field(default_factory=list)
    exploit_recommendations_confidence: Optional[float] = None


# ---------------------------------------------------------------------------
# Game plans
# ---------------------------------------------------------------------------

class PlanSample(BaseModel):
    pas: int = 0
    pitches_seen: int = 0
    bip: int = 0


class PlanRates(BaseModel):
    contact_rate: float = 0.0
    strikeout_rate: float = 0.0
    walk_rate: float = 0.0
    hbp_rate: float = 0.0
    swings_per_pa: float = 0.0
    miss_rate_on_swings: float = 0.0


class PlanApproach(BaseModel):
    first_pitch_ball_rate: float = 0.0
    first_pitch_swing_rate: float = 0.0
    first_pitch_take_rate: float = 0.0
    two_strike_swing_events: int = 0
    two_strike_k_looking: int = 0
    two_strike_k_swinging: int = 0


class BattingLine(BaseModel):
    """Approximate line; sacrifices are not tracked, so AB is PA - BB - HBP."""
    hits: int = 0
    ab: int = 0
    avg: float = 0.0
    obp: float = 0.0
    xbh: int = 0


class PlanMetrics(BaseModel):
    sample: PlanSample = Field(default_factory=PlanSample)
    rates: PlanRates = Field(default_factory=PlanRates)
    approach: PlanApproach = Field(default_factory=PlanApproach)
    batted_ball: BattedBallCounts = Field(default_factory=BattedBallCounts)
    power: PowerCounts = Field(default_factory=PowerCounts)
    batting: BattingLine = Field(default_factory=BattingLine)
    pitch_mix: dict[str, int] = Field(default_factory=dict)


class PlanItem(BaseModel):
    instruction: str
    evidence: str = ""


class GamePlan(BaseModel):
    teaching_patterns: list[PlanItem] = Field(default_factory=list)
    exploitable_patterns: list[PlanItem] = Field(default_factory=list)


class PlanResult(BaseModel):
    ok: bool
    batter: str = ""
    metrics: Optional[PlanMetrics] = None
    plan: Optional[GamePlan] = None
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Pipeline envelopes
# ---------------------------------------------------------------------------

class ExtractionResult(BaseModel):
    """Output of the extraction pipeline.

    ``segments[i]`` is the text that produced ``data[i]``.
    """
    ok: bool
    data: list[PlateAppearanceCanonical] = Field(default_factory=list)
    segments: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CardsResult(BaseModel):
    ok: bool
    cards: list[HitterCard] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
