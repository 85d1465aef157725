# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Batter/pitcher identity extraction, backfill and short-form normalization.

Identities are only ever read from text that explicitly names them:

* "<name> <outcome verb>"   -> batter (source ``verb``)
* "<name> <batting cue>" or "Now batting: <name>" -> batter (source ``cue``)
* "<name> pitching"          -> pitcher

A record that still lacks an identity after reading its own segment may take
one from the segment right after or right before it, but only when that
neighbour narrates this record's result (batter) or says "pitching"
(pitcher).  As a last resort, a preceding cue segment ("Now batting ...")
names the batter.  Resolved names are then reduced to a short form.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Optional

from extraction.segmenter import BATTING_CUES, OUTCOME_VERBS
from models import PaResult, PlateAppearanceCanonical

logger = logging.getLogger(__name__)

NameSource = Literal["verb", "cue"]

# Result -> verb a narrative line uses for it.
RESULT_VERBS: dict[PaResult, str] = {
    PaResult.STRIKEOUT: "strikes out",
    PaResult.WALK: "walks",
    PaResult.HBP: "is hit by pitch",
    PaResult.DOUBLE: "doubles",
    PaResult.TRIPLE: "triples",
    PaResult.HR: "homers",
    PaResult.GB: "grounds out",
    PaResult.FB: "flies out",
    PaResult.LD: "lines out",
    PaResult.REACHED_ON_ERROR: "reaches on error",
}


def _alternation(phrases: Sequence[str]) -> str:
    ordered = sorted(phrases, key=len, reverse=True)
    return "|".join(re.escape(p).replace(r"\ ", r"\s+") for p in ordered)


_VERBS = _alternation(OUTCOME_VERBS)
_CUES = _alternation(BATTING_CUES)

# Result and summary words that can sit right before a name once a summary
# line is merged with its narrative ("Strikeout Miller strikes out").
_NOT_A_NAME = (
    r"(?!(?i:strikeout|fly|ground|line|out|walk|hit|by|pitch|single|double|triple"
    r"|home|run|reach|reaches|on|error|in|play)\b)"
)

_SPACED = r"([A-Z]{1,2})\s+([A-Z]{1,2})"
_COMPACT = r"([A-Z])([A-Z])"
_FULL = rf"{_NOT_A_NAME}([A-Z][A-Za-z'.-]+)\s+{_NOT_A_NAME}([A-Z][A-Za-z'.-]+)"
_LAST = rf"{_NOT_A_NAME}([A-Z][a-z][A-Za-z'.-]*)"

# Batter patterns in priority order.
_BATTER_PATTERNS: tuple[tuple[re.Pattern[str], NameSource], ...] = (
    (re.compile(rf"\b{_FULL}\s+(?i:{_VERBS})\b"), "verb"),
    (re.compile(rf"\b{_FULL}\s+(?i:{_CUES})\b"), "cue"),
    (re.compile(rf"\b{_SPACED}\b\s+(?i:{_VERBS})\b"), "verb"),
    (re.compile(rf"\b{_COMPACT}\b\s+(?i:{_VERBS})\b"), "verb"),
    (re.compile(rf"\b{_LAST}\s+(?i:{_VERBS})\b"), "verb"),
    (re.compile(rf"\b{_SPACED}\b\s+(?i:{_CUES})\b"), "cue"),
    (re.compile(rf"\b{_COMPACT}\b\s+(?i:{_CUES})\b"), "cue"),
    (re.compile(rf"(?i:now batting|batting):?-?\s+{_FULL}\b"), "cue"),
    (re.compile(rf"(?i:now batting|batting):?-?\s+{_SPACED}\b"), "cue"),
)

_PITCHER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"\b{_FULL}\s+(?i:pitching)\b"),
    re.compile(rf"\b{_SPACED}\b\s+(?i:pitching)\b"),
    re.compile(rf"\b{_COMPACT}\b\s+(?i:pitching)\b"),
    re.compile(rf"\b{_LAST}\s+(?i:pitching)\b"),
)

_PITCHING_WORD_RE = re.compile(r"\bpitching\b", re.IGNORECASE)
_SPACED_INITIALS_RE = re.compile(r"^[A-Za-z]\s[A-Za-z]$")
_COMPACT_INITIALS_RE = re.compile(r"^[A-Za-z]{2}$")


@dataclass(frozen=True)
class NameMatch:
    batter: Optional[str] = None
    pitcher: Optional[str] = None
    batter_source: Optional[NameSource] = None


def _initials(first: str, last: str) -> str:
    return f"{first[0].upper()} {last[0].upper()}"


def _identity(m: re.Match[str]) -> str:
    if m.lastindex == 1:
        return m.group(1)
    return _initials(m.group(1), m.group(2))


def extract_names(text: str) -> NameMatch:
    """Read batter and pitcher identities from one segment's text."""
    t = re.sub(r"\s+", " ", text).strip()
    batter = None
    source: Optional[NameSource] = None
    for pattern, kind in _BATTER_PATTERNS:
        m = pattern.search(t)
        if m:
            batter = _identity(m)
            source = kind
            break
    pitcher = None
    for pattern in _PITCHER_PATTERNS:
        m = pattern.search(t)
        if m:
            pitcher = _identity(m)
            break
    return NameMatch(batter=batter, pitcher=pitcher, batter_source=source)


def event_verb_for(result: PaResult | None) -> str | None:
    """Narrative verb expected for *result*, or ``None`` when there is none."""
    if result is None:
        return None
    return RESULT_VERBS.get(result)


def mentions_verb(text: str, verb: str) -> bool:
    pattern = r"\b" + re.escape(verb).replace(r"\ ", r"\s+") + r"\b"
    return re.search(pattern, text, re.IGNORECASE) is not None


def mentions_pitching(text: str) -> bool:
    return _PITCHING_WORD_RE.search(text) is not None


def normalize_short_name(name: str) -> str:
    """Reduce a name to its canonical short form.

    Spaced ("L D") and compact ("LD") initials are kept as written
    (uppercased); full names become "FirstInitial LastInitial".
    """
    t = re.sub(r"\s+", " ", name or "").strip()
    if not t:
        return t
    if _SPACED_INITIALS_RE.match(t) or _COMPACT_INITIALS_RE.match(t):
        return t.upper()
    tokens = [re.sub(r"[^A-Za-z]", "", w) for w in t.split(" ")]
    tokens = [w for w in tokens if w]
    if len(tokens) >= 2:
        return _initials(tokens[0], tokens[-1])
    return t


def _neighbor(segments: Sequence[str], i: int) -> str:
    return segments[i] if 0 <= i < len(segments) else ""


def _backfill_batter(pa: PlateAppearanceCanonical, segments: Sequence[str], i: int) -> str | None:
    verb = event_verb_for(pa.pa_result)
    if verb:
        for j in (i + 1, i - 1):
            text = _neighbor(segments, j)
            found = extract_names(text).batter
            if found and mentions_verb(text, verb):
                return found
    prev = extract_names(_neighbor(segments, i - 1))
    if prev.batter and prev.batter_source == "cue":
        return prev.batter
    return None


def _backfill_pitcher(segments: Sequence[str], i: int) -> str | None:
    for j in (i + 1, i - 1):
        text = _neighbor(segments, j)
        found = extract_names(text).pitcher
        if found and mentions_pitching(text):
            return found
    return None


def backfill_names(
    records: Sequence[PlateAppearanceCanonical | None],
    segments: Sequence[str],
) -> None:
    """Fill missing identities in place and normalize every name.

    ``records[i]`` must come from ``segments[i]``; ``None`` slots (failed
    segments) are skipped but their text still counts as a neighbour.
    """
    filled = 0
    for i, pa in enumerate(records):
        if pa is None:
            continue
        own = extract_names(_neighbor(segments, i))
        before = (pa.batter, pa.pitcher)
        if not pa.batter and own.batter:
            pa.batter = own.batter
        if not pa.pitcher and own.pitcher:
            pa.pitcher = own.pitcher
        if not pa.batter:
            pa.batter = _backfill_batter(pa, segments, i)
        if not pa.pitcher:
            pa.pitcher = _backfill_pitcher(segments, i)
        if pa.batter:
            pa.batter = normalize_short_name(pa.batter)
        if pa.pitcher:
            pa.pitcher = normalize_short_name(pa.pitcher)
        if before != (pa.batter, pa.pitcher):
            filled += 1
    logger.debug("Name backfill touched %d of %d records", filled, len(records))
