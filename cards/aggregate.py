# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Per-batter aggregation of canonical plate appearances into hitter cards."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from models import (
    BattedBallCounts,
    HitterCard,
    HitterCardBreakdown,
    HitterCardTotals,
    PaResult,
    PitchEvent,
    PlateAppearanceCanonical,
    PowerCounts,
)

UNKNOWN_HITTER = "Unknown"
MAX_SAMPLE_NOTES = 6


def _rate(count: int, total: int) -> float:
    return count / total if total else 0.0


def build_card(hitter: str, pas: Sequence[PlateAppearanceCanonical]) -> HitterCard:
    """Aggregate one batter's plate appearances (recommendations left empty)."""
    results: Counter[str] = Counter()
    fielders: Counter[str] = Counter()
    pitch_mix: Counter[str] = Counter()
    pitches_seen = 0
    in_play_pas = 0
    notes: list[str] = []

    for pa in pas:
        results[pa.pa_result.value] += 1
        if pa.fielder_num is not None:
            fielders[str(pa.fielder_num)] += 1
        for pitch in pa.pitches:
            pitch_mix[pitch.value] += 1
        pitches_seen += len(pa.pitches)
        if PitchEvent.IN_PLAY in pa.pitches:
            in_play_pas += 1
        if pa.notes:
            notes.append(pa.notes[0])

    n = len(pas)
    totals = HitterCardTotals(
        pas=n,
        pitches_seen=pitches_seen,
        contact_rate=_rate(in_play_pas, n),
        strikeout_rate=_rate(results[PaResult.STRIKEOUT.value], n),
        walk_rate=_rate(results[PaResult.WALK.value], n),
        hbp_rate=_rate(results[PaResult.HBP.value], n),
    )
    breakdown = HitterCardBreakdown(
        results=dict(results),
        batted_ball=BattedBallCounts(
            gb=results[PaResult.GB.value],
            fb=results[PaResult.FB.value],
            ld=results[PaResult.LD.value],
        ),
        power=PowerCounts(
            double=results[PaResult.DOUBLE.value],
            triple=results[PaResult.TRIPLE.value],
            hr=results[PaResult.HR.value],
        ),
        fielder_map=dict(fielders),
        pitch_mix=dict(pitch_mix),
    )
    return HitterCard(
        hitter=hitter,
        totals=totals,
        breakdown=breakdown,
        sample_notes=notes[:MAX_SAMPLE_NOTES],
    )


def aggregate_hitter_cards(records: Sequence[PlateAppearanceCanonical]) -> list[HitterCard]:
    """Group records by batter and build one card per batter.

    Cards are ordered by plate appearances (most first), then by name.
    Records without a batter are grouped under ``"Unknown"``.
    """
    groups: dict[str, list[PlateAppearanceCanonical]] = {}
    for pa in records:
        name = (pa.batter or "").strip() or UNKNOWN_HITTER
        groups.setdefault(name, []).append(pa)
    cards = [build_card(hitter, pas) for hitter, pas in groups.items()]
    cards.sort(key=lambda c: (-c.totals.pas, c.hitter))
    return cards
