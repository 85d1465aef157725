# /// script
# requires-python = ">=3.12"
# dependencies = []
# ///
"""Deterministic segmentation of play-by-play text into plate appearances.

The raw narrative is normalized (line breaks, scoreboard and inning-header
noise, ``|`` separators), split into sentence/line tokens, and each token is
classified:

* type-led   -- starts with a result keyword ("Strikeout", "Fly Out", ...)
* name-led   -- starts with a player identity followed by an outcome verb or
  a batting cue ("L D strikes out", "J M now batting")
* cue-led    -- starts with a batting cue ("Now batting: J M")
* continuation -- anything else (pitches, runner movement, ...)

A new segment opens on a type-led or name-led token, or on an "In play"
token when nothing is open.  A cue-led token never opens one; it only
continues an open segment.  A name-led token right after a type-led segment
is folded into it when it narrates the same result (the summary line and
the narrative line of one play).  Pitching substitutions are held back and
prefixed to the next segment.  Segments without any outcome keyword are
dropped.
"""

from __future__ import annotations

import re
from enum import Enum

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

OUTCOME_VERBS: tuple[str, ...] = (
    "strikes out",
    "walks",
    "is hit by pitch",
    "singles",
    "doubles",
    "triples",
    "homers",
    "reaches on error",
    "grounds out",
    "flies out",
    "lines out",
)

BATTING_CUES: tuple[str, ...] = (
    "batting",
    "at bat",
    "at the plate",
    "to bat",
    "steps in",
    "leading off",
    "leads off",
    "now batting",
    "to the plate",
)

# Summary keyword (lowercased) -> verb the narrative line uses for that result.
SUMMARY_VERBS: dict[str, str] = {
    "strikeout": "strikes out",
    "fly out": "flies out",
    "ground out": "grounds out",
    "line out": "lines out",
    "walk": "walks",
    "hit by pitch": "is hit by pitch",
    "single": "singles",
    "double": "doubles",
    "triple": "triples",
    "home run": "homers",
    "reach on error": "reaches on error",
    "reaches on error": "reaches on error",
}

# Initials ("L D", "LD") or a capitalized full name ("John Miller").
IDENTITY_PATTERN = (
    r"(?:[A-Z]{1,2}\s+[A-Z]{1,2}"
    r"|[A-Z]{2}"
    r"|[A-Z][a-z][A-Za-z'.-]*(?:\s+[A-Z][A-Za-z'.-]+){1,2})"
)


def _alternation(phrases: tuple[str, ...]) -> str:
    # Longest first so "now batting" wins over "batting".
    ordered = sorted(phrases, key=len, reverse=True)
    return "|".join(re.escape(p).replace(r"\ ", r"\s+") for p in ordered)


_VERBS = _alternation(OUTCOME_VERBS)
_CUES = _alternation(BATTING_CUES)

_TYPE_LED_RE = re.compile(
    r"^\s*(Strikeout|Fly Out|Ground Out|Line Out|Walk|Hit By Pitch|Single|Double|Triple"
    r"|Home Run|Reach(?:es)? on Error)\b",
    re.IGNORECASE,
)
_NAME_LED_RE = re.compile(rf"^\s*{IDENTITY_PATTERN}\s+(?i:{_VERBS}|{_CUES})\b")
_CUE_LED_RE = re.compile(r"^\s*(?:now batting|batting)\b", re.IGNORECASE)
_IN_PLAY_RE = re.compile(r"^\s*in play\b", re.IGNORECASE)
_PITCHING_CHANGE_RE = re.compile(r"Lineup changed:\s*.*?in at pitcher[^.]*\.?", re.IGNORECASE)

_INNING_HEADER_RE = re.compile(
    r"\b(?:Top|Bottom)\s+\d+(?:st|nd|rd|th)?\b(?:\s*-\s*[^\n.]+)?",
    re.IGNORECASE,
)
_SCOREBOARD_RE = re.compile(r"[A-Z]{2,}\s*\d+\s*-\s*[A-Z]{2,}\s*\d+")

_OUTCOME_KEYWORD_RE = re.compile(
    r"\b(?:strike|strikes|strikeout|struck out|walk|walks|walked"
    r"|ground|grounds|grounded|fly|flies|flied|line|lines|lined"
    r"|single|singles|double|doubles|triple|triples|homers?|home run"
    r"|hit by pitch|in play|reach(?:es|ed)? on (?:an )?error)\b",
    re.IGNORECASE,
)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_TOKEN_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_WORD_RE = re.compile(r"\w")


class TokenKind(str, Enum):
    TYPE_LED = "type_led"
    NAME_LED = "name_led"
    CUE_LED = "cue_led"
    CONTINUATION = "continuation"


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_type_led(token: str) -> bool:
    return _TYPE_LED_RE.match(token) is not None


def is_name_led(token: str) -> bool:
    return _NAME_LED_RE.match(token) is not None


def is_cue_led(token: str) -> bool:
    return _CUE_LED_RE.match(token) is not None


def is_in_play(token: str) -> bool:
    return _IN_PLAY_RE.match(token) is not None


def has_outcome_keyword(segment: str) -> bool:
    return _OUTCOME_KEYWORD_RE.search(segment) is not None


def find_pitching_change(token: str) -> re.Match[str] | None:
    return _PITCHING_CHANGE_RE.search(token)


def without_pitching_change(segment: str) -> str:
    """*segment* minus a leading pitching substitution note."""
    m = _PITCHING_CHANGE_RE.match(segment)
    return segment[m.end():].lstrip() if m else segment


def classify_token(token: str) -> TokenKind:
    if is_type_led(token):
        return TokenKind.TYPE_LED
    if is_name_led(token):
        return TokenKind.NAME_LED
    if is_cue_led(token):
        return TokenKind.CUE_LED
    return TokenKind.CONTINUATION


def expected_verb_for_summary(summary: str) -> str | None:
    """Verb a narrative line uses for the result a summary token opens with."""
    m = _TYPE_LED_RE.match(summary)
    if not m:
        return None
    keyword = re.sub(r"\s+", " ", m.group(1).lower())
    return SUMMARY_VERBS.get(keyword)


def describes_same_play(summary: str, narrative: str) -> bool:
    """True when *narrative* is a name-led retelling of *summary*'s result.

    The expected verb must appear literally; synonyms do not count.
    """
    verb = expected_verb_for_summary(summary)
    if not verb or not is_name_led(narrative):
        return False
    pattern = r"\b" + re.escape(verb).replace(r"\ ", r"\s+") + r"\b"
    return re.search(pattern, narrative, re.IGNORECASE) is not None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def strip_noise(text: str) -> str:
    """Remove inning headers ("Top 5th - Team") and scoreboards ("BRDG 8 - FRNT 2")."""
    text = _INNING_HEADER_RE.sub("", text)
    text = _SCOREBOARD_RE.sub("", text)
    return text.strip()


def normalize_text(raw: str) -> str:
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    # Separators first, so an inning header cannot run across them.
    text = re.sub(r"(?<=[.!?])[ \t]*\|[ \t]*", " ", text)
    text = re.sub(r"[ \t]*\|[ \t]*", ". ", text)
    text = _INNING_HEADER_RE.sub("", text)
    text = _SCOREBOARD_RE.sub("", text)
    text = re.sub(r"(?<=[^.!?\s])[ \t]+(Lineup changed:)", r". \1", text)
    lines = (re.sub(r"\s+", " ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def tokenize(text: str) -> list[str]:
    """Split normalized text on sentence ends and line breaks."""
    return [t for t in _TOKEN_SPLIT_RE.split(text) if t and t.strip()]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

class _SegmentBuilder:
    """Accumulates tokens into segments; holds pitching changes as a prefix."""

    def __init__(self) -> None:
        self.segments: list[str] = []
        self.current = ""
        # Token that opened the current segment, without any held prefix.
        self.lead = ""
        self.pending_prefix = ""
        # A summary segment absorbs at most one narrative line.
        self.narrated = False

    def hold(self, note: str) -> None:
        if not note.endswith("."):
            note += "."
        self.pending_prefix = f"{self.pending_prefix} {note}".strip()

    def _take_prefix(self, token: str) -> str:
        if not self.pending_prefix:
            return token
        text = f"{self.pending_prefix} {token}"
        self.pending_prefix = ""
        return text

    def flush(self) -> None:
        if self.current:
            self.segments.append(self.current.strip())
        self.current = ""
        self.lead = ""
        self.narrated = False

    def feed(self, token: str) -> None:
        kind = classify_token(token)
        opens = kind in (TokenKind.TYPE_LED, TokenKind.NAME_LED) or (not self.current and is_in_play(token))
        if not opens:
            if self.current:
                self.current = f"{self.current} {token}"
            # Stray text before the first plate appearance is dropped.
            return
        if (self.current and not self.narrated and kind is TokenKind.NAME_LED
                and describes_same_play(self.lead, token)):
            self.current = f"{self.current} {self._take_prefix(token)}"
            self.narrated = True
            return
        self.flush()
        self.lead = token
        self.current = self._take_prefix(token)


def deterministic_segment(raw: str) -> list[str]:
    """Split raw play-by-play text into ordered plate appearance segments.

    Pure function of its input: the same text always yields the same list.
    """
    builder = _SegmentBuilder()
    for tok in tokenize(normalize_text(raw)):
        token = strip_noise(tok)
        if not _WORD_RE.search(token):
            continue
        change = find_pitching_change(token)
        if change:
            for piece in split_sentences(token[:change.start()]):
                builder.feed(piece)
            builder.hold(change.group(0).strip())
            token = token[change.end():].strip()
            if not token:
                continue
        builder.feed(token)
    builder.flush()
    return [s for s in builder.segments if has_outcome_keyword(s)]


def merge_summary_pairs(segments: list[str]) -> list[str]:
    """Re-join adjacent (summary-led, name-led) segments narrating one play."""
    merged: list[str] = []
    i = 0
    while i < len(segments):
        cur = segments[i].strip()
        nxt = segments[i + 1].strip() if i + 1 < len(segments) else ""
        if not cur:
            i += 1
            continue
        lead = without_pitching_change(cur)
        if nxt and is_type_led(lead) and describes_same_play(lead, nxt):
            merged.append(f"{cur} {nxt}")
            i += 2
            continue
        merged.append(cur)
        i += 1
    return merged
