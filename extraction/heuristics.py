# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Rule-based extraction from a single plate appearance segment.

Two levels:

* :func:`micro_heuristic` -- a handful of literal, high-confidence patterns
  that are merged underneath model output ("flies out to center fielder",
  "scores on steal of home", explicit identities).
* :func:`minimal_canonical_from_text` -- a complete record built without any
  model call, used by the deterministic canonicalization mode.
"""

from __future__ import annotations

import re

from extraction.names import extract_names
from models import (
    PaResult,
    PitchEvent,
    PlateAppearanceCanonical,
    PlateAppearancePartial,
    RunnerAction,
    RunnerActionKind,
)

DETERMINISTIC_CONFIDENCE = 0.3
NOTE_MAX_CHARS = 200

# Position phrase -> fielder number.  Longer phrases first.
FIELDER_NUMBERS: tuple[tuple[str, int], ...] = (
    ("center fielder", 8),
    ("left fielder", 7),
    ("right fielder", 9),
    ("second baseman", 4),
    ("third baseman", 5),
    ("first baseman", 3),
    ("shortstop", 6),
    ("pitcher", 1),
    ("catcher", 2),
)

_OUT_TYPES: dict[str, PaResult] = {
    "flies": PaResult.FB,
    "fly": PaResult.FB,
    "pops": PaResult.FB,
    "pop": PaResult.FB,
    "lines": PaResult.LD,
    "line": PaResult.LD,
    "grounds": PaResult.GB,
    "ground": PaResult.GB,
}

_POSITIONS = "|".join(re.escape(p).replace(r"\ ", r"\s+") for p, _ in FIELDER_NUMBERS)

_OUT_TO_FIELDER_RE = re.compile(
    rf"\b(flies|fly|pops|pop|lines|line|grounds|ground)\s+out\s+to\s+(?:the\s+)?({_POSITIONS})\b",
    re.IGNORECASE,
)
_TO_FIELDER_RE = re.compile(rf"\bto\s+(?:the\s+)?({_POSITIONS})\b", re.IGNORECASE)
_STEAL_OF_HOME_RE = re.compile(r"\bscores?\s+on\s+(?:a\s+)?steal\s+of\s+home\b", re.IGNORECASE)

_RUNNER = r"(?:(?P<runner>[A-Z]\s?[A-Z]|[A-Z][A-Za-z'.-]+\s+[A-Z][A-Za-z'.-]+)\s+)?"
_ADVANCE_RE = re.compile(_RUNNER + r"(?i:advances?\s+to)\s+(?P<base>(?i:first|second|third|home))\b")
_STEAL_RE = re.compile(_RUNNER + r"(?i:steals?)\s+(?P<base>(?i:second|third|home))\b")
_SCORE_RE = re.compile(_RUNNER + r"(?i:scores)\b(?P<home_steal>\s+(?i:on\s+(?:a\s+)?steal\s+of\s+home))?")

_BASES = {"first": 1, "second": 2, "third": 3, "home": 4}

# Pitch vocabulary, scanned left to right so the sequence keeps its order.
_PITCH_RE = re.compile(
    r"\b(?:"
    r"(?P<called>strike\s+\d\s+looking|called\s+strike)"
    r"|(?P<swinging>strike\s+\d\s+swinging|swinging\s+strike)"
    r"|(?P<foul>foul(?:\s+tip)?)"
    r"|(?P<in_play>in\s+play)"
    r"|(?<!ground )(?<!fly )(?<!pop )(?<!line )(?P<ball>ball(?:\s+\d)?)"
    r")\b",
    re.IGNORECASE,
)

_DOUBLE_PLAY_RE = re.compile(r"\bdouble\s+play\b", re.IGNORECASE)
_TRIPLE_PLAY_RE = re.compile(r"\btriple\s+play\b", re.IGNORECASE)

# (pattern, result, outs) checked in order; the first match decides.
_RESULT_RULES: tuple[tuple[re.Pattern[str], PaResult, int], ...] = (
    (re.compile(r"\bhome\s*run\b|\bhomers?\b|\bhr\b", re.I), PaResult.HR, 0),
    (re.compile(r"\btriples?\b(?!\s+play)", re.I), PaResult.TRIPLE, 0),
    (re.compile(r"\bdoubles?\b(?!\s+play)", re.I), PaResult.DOUBLE, 0),
    (re.compile(r"\bwalks?\b|\bbases?\s+on\s+balls\b", re.I), PaResult.WALK, 0),
    (re.compile(r"\bhit\s+by\s+pitch\b|\bhbp\b", re.I), PaResult.HBP, 0),
    (re.compile(r"\breach(?:es|ed)?\s+on\s+(?:an?\s+)?(?:\w+\s+)?error\b", re.I), PaResult.REACHED_ON_ERROR, 0),
    (re.compile(r"\bfielder'?s?\s+choice\b", re.I), PaResult.FIELDER_CHOICE, 0),
    (re.compile(r"\bstrikes?\s*out\b|\bstrikeout\b|\bstruck\s+out\b", re.I), PaResult.STRIKEOUT, 1),
    (re.compile(r"\bfl(?:y|ies)\s+out\b|\bpops?\s+out\b", re.I), PaResult.FB, 1),
    (re.compile(r"\blines?\s+out\b", re.I), PaResult.LD, 1),
    (re.compile(r"\bgrounds?\s+out\b|\bgrounds?\s+into\b", re.I), PaResult.GB, 1),
)

# Batted-ball phrase used to classify singles, which have no result of their own.
_SINGLE_RE = re.compile(r"\bsingles?\b", re.IGNORECASE)
_BATTED_BALL_RULES: tuple[tuple[re.Pattern[str], PaResult], ...] = (
    (re.compile(r"\bline\s+drive\b", re.I), PaResult.LD),
    (re.compile(r"\b(?:fly|pop)\s+(?:ball|fly)\b|\bpop\s+up\b", re.I), PaResult.FB),
    (re.compile(r"\bground\s+ball\b|\bgrounder\b|\bbunt\b", re.I), PaResult.GB),
)


# ---------------------------------------------------------------------------
# Named extractors
# ---------------------------------------------------------------------------

def _fielder_number(phrase: str) -> int | None:
    key = re.sub(r"\s+", " ", phrase.lower())
    for name, number in FIELDER_NUMBERS:
        if name == key:
            return number
    return None


def batted_out_to_fielder(text: str) -> tuple[PaResult, int] | None:
    """("flies out to center fielder") -> (fb, 8)."""
    m = _OUT_TO_FIELDER_RE.search(text)
    if not m:
        return None
    number = _fielder_number(m.group(2))
    if number is None:
        return None
    return _OUT_TYPES[m.group(1).lower()], number


def fielder_from_text(text: str) -> int | None:
    """Fielder number of the first "to <position>" phrase."""
    m = _TO_FIELDER_RE.search(text)
    return _fielder_number(m.group(1)) if m else None


def scores_on_steal_of_home(text: str) -> bool:
    return _STEAL_OF_HOME_RE.search(text) is not None


def pitches_from_text(text: str) -> list[PitchEvent]:
    """Pitch events in the order they are narrated."""
    events: list[PitchEvent] = []
    for m in _PITCH_RE.finditer(text):
        if m.group("called"):
            events.append(PitchEvent.CALLED_STRIKE)
        elif m.group("swinging"):
            events.append(PitchEvent.SWINGING_STRIKE)
        elif m.group("foul"):
            events.append(PitchEvent.FOUL)
        elif m.group("in_play"):
            events.append(PitchEvent.IN_PLAY)
        elif m.group("ball"):
            events.append(PitchEvent.BALL)
    return events


def runner_actions_from_text(text: str) -> list[RunnerAction]:
    """Explicitly narrated steals, advances and runs, in text order.

    Nothing is inferred: forced advances that the text does not state are
    left out.
    """
    found: list[tuple[int, RunnerAction]] = []
    for m in _ADVANCE_RE.finditer(text):
        to = _BASES[m.group("base").lower()]
        kind = RunnerActionKind.SCORE if to == 4 else RunnerActionKind.ADVANCE
        found.append((m.start(), RunnerAction(runner=m.group("runner") or "", action=kind, to=to)))
    for m in _STEAL_RE.finditer(text):
        to = _BASES[m.group("base").lower()]
        kind = RunnerActionKind.STEAL_HOME if to == 4 else RunnerActionKind.STEAL
        found.append((m.start(), RunnerAction(runner=m.group("runner") or "", action=kind, to=to)))
    for m in _SCORE_RE.finditer(text):
        kind = RunnerActionKind.STEAL_HOME if m.group("home_steal") else RunnerActionKind.SCORE
        found.append((m.start(), RunnerAction(runner=m.group("runner") or "", action=kind, to=4)))
    found.sort(key=lambda item: item[0])

    actions: list[RunnerAction] = []
    for _, action in found:
        # "steals home" and "scores" narrate the same run.
        if action.to == 4 and any(a.to == 4 and a.runner == action.runner for a in actions):
            continue
        actions.append(action)
    return actions


def result_from_text(text: str) -> tuple[PaResult, int]:
    """Best-guess result and outs for a segment; defaults to a ground ball."""
    for pattern, result, outs in _RESULT_RULES:
        if pattern.search(text):
            if result is PaResult.GB and _TRIPLE_PLAY_RE.search(text):
                return result, 3
            if result is PaResult.GB and _DOUBLE_PLAY_RE.search(text):
                return result, 2
            if result is PaResult.FIELDER_CHOICE and re.search(r"\bout\s+at\b", text, re.I):
                return result, 1
            return result, outs
    if _SINGLE_RE.search(text):
        for pattern, result in _BATTED_BALL_RULES:
            if pattern.search(text):
                return result, 0
        return PaResult.GB, 0
    if _DOUBLE_PLAY_RE.search(text):
        return PaResult.GB, 2
    return PaResult.GB, 0


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def micro_heuristic(text: str) -> PlateAppearancePartial:
    """High-confidence literal extraction, merged underneath model output."""
    partial = PlateAppearancePartial()
    out = batted_out_to_fielder(text)
    if out is not None:
        partial.pa_result, partial.fielder_num = out
        partial.outs_added = 1
    if scores_on_steal_of_home(text):
        partial.explicit_runner_actions = [
            RunnerAction(runner="", action=RunnerActionKind.STEAL_HOME, to=4),
        ]
    names = extract_names(text)
    partial.batter = names.batter
    partial.pitcher = names.pitcher
    return partial


def minimal_canonical_from_text(text: str) -> PlateAppearanceCanonical:
    """Build a full record from the segment text alone."""
    result, outs = result_from_text(text)
    names = extract_names(text)
    return PlateAppearanceCanonical(
        pa_result=result,
        pitches=pitches_from_text(text),
        batter=names.batter,
        pitcher=names.pitcher,
        fielder_num=fielder_from_text(text),
        outs_added=outs,
        explicit_runner_actions=runner_actions_from_text(text),
        notes=[text[:NOTE_MAX_CHARS]],
        confidence=DETERMINISTIC_CONFIDENCE,
    )
