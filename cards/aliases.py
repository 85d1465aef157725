# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""Resolve every spelling of a batter's name to one canonical identity.

Resolution runs once over all raw batter names of a corpus.  Full names
("John Miller") are canonical by themselves and feed three indices: by last
name, by initials pair and by (first initial, last name).  Every other
spelling is looked up in the matching index:

* one candidate   -> adopt it
* no candidate    -> a deterministic short form ("J M", "Miller", "J Miller")
* two or more     -> reported as ambiguous, never guessed

Caller-supplied aliases are applied before any inference.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from models import PlateAppearanceCanonical

logger = logging.getLogger(__name__)

_VALID_TARGET_RE = re.compile(r"^\w+[\s'-]+\w+$")


class AliasResolutionError(Exception):
    """Strict resolution failed; ``errors`` lists every problem found."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NameKind(str, Enum):
    FULL = "full"
    INITIALS = "initials"
    LAST_ONLY = "last_only"
    INITIAL_LAST = "initial_last"
    EMPTY = "empty"


@dataclass(frozen=True)
class NameParts:
    raw: str
    kind: NameKind
    first: Optional[str] = None
    last: Optional[str] = None
    first_initial: Optional[str] = None
    last_initial: Optional[str] = None


@dataclass
class AliasResolution:
    alias_map: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    ambiguous: dict[str, list[str]] = field(default_factory=dict)

    @property
    def problems(self) -> list[str]:
        """Errors and unresolved names, formatted for a result envelope."""
        out = [f"[alias] {e}" for e in self.errors]
        if self.unresolved:
            out.append(f"[alias] Unresolved names: {', '.join(self.unresolved)}")
        return out


# ---------------------------------------------------------------------------
# Name parsing
# ---------------------------------------------------------------------------

def _title_word(word: str) -> str:
    # Short all-caps tokens are initials ("LD", "J").
    if len(word) <= 2 and word.isupper():
        return word
    pieces = re.split(r"([-'])", word)
    return "".join(p if i % 2 else p[:1].upper() + p[1:].lower() for i, p in enumerate(pieces))


def normalize_name(raw: str) -> str:
    """Whitespace-collapsed, title-cased spelling used as the alias map key."""
    return " ".join(_title_word(w) for w in raw.split())


def _letters(word: str) -> str:
    return re.sub(r"[^A-Za-z]", "", word)


def parse_name(raw: str) -> NameParts:
    """Classify a raw name spelling.

    >>> parse_name("John Miller").kind
    <NameKind.FULL: 'full'>
    >>> parse_name("J Miller").kind
    <NameKind.INITIAL_LAST: 'initial_last'>
    """
    parts = [p for p in raw.replace(".", " ").split() if _letters(p)]
    if not parts:
        return NameParts(raw=raw, kind=NameKind.EMPTY)

    if len(parts) == 1:
        p = _letters(parts[0])
        if len(p) == 2:
            return NameParts(raw=raw, kind=NameKind.INITIALS,
                             first_initial=p[0].upper(), last_initial=p[1].upper())
        if len(p) == 1:
            return NameParts(raw=raw, kind=NameKind.INITIALS, first_initial=p.upper())
        return NameParts(raw=raw, kind=NameKind.LAST_ONLY, last=parts[0], last_initial=p[0].upper())

    first, last = parts[0], parts[-1]
    fl, ll = _letters(first), _letters(last)
    if len(parts) == 2 and len(fl) == 1 and len(ll) == 1:
        kind = NameKind.INITIALS
    elif len(fl) == 1 and len(ll) > 1:
        kind = NameKind.INITIAL_LAST
    else:
        kind = NameKind.FULL
    return NameParts(raw=raw, kind=kind, first=first, last=last,
                     first_initial=fl[0].upper(), last_initial=ll[0].upper())


# ---------------------------------------------------------------------------
# Alias map
# ---------------------------------------------------------------------------

def _canonical_full(p: NameParts) -> str:
    return normalize_name(f"{p.first} {p.last}")


def _pick(
    key: str,
    cands: set[str],
    label: str,
    shown: str,
    result: AliasResolution,
    fallback: str | None,
) -> None:
    ordered = sorted(cands)
    if len(ordered) == 1:
        result.alias_map[key] = ordered[0]
    elif len(ordered) > 1:
        result.ambiguous[key] = ordered
        result.errors.append(f"Ambiguous {label} '{shown}': {', '.join(ordered)}")
    elif fallback is not None:
        result.alias_map[key] = fallback


def build_alias_map(
    names: Iterable[str],
    explicit: dict[str, str] | None = None,
) -> AliasResolution:
    """Map every raw spelling in *names* to one canonical identity."""
    unique = sorted({n.strip() for n in names if n and n.strip()}, key=normalize_name)
    parsed = [parse_name(normalize_name(n)) for n in unique]
    result = AliasResolution()

    full = [p for p in parsed if p.kind is NameKind.FULL]
    canonical = {_canonical_full(p) for p in full}
    by_last: dict[str, set[str]] = {}
    by_initials: dict[str, set[str]] = {}
    by_first_last: dict[str, set[str]] = {}
    for p in full:
        canon = _canonical_full(p)
        last_upper = _letters(p.last).upper()
        by_last.setdefault(last_upper, set()).add(canon)
        by_initials.setdefault(f"{p.first_initial}{p.last_initial}", set()).add(canon)
        by_first_last.setdefault(f"{p.first_initial}|{last_upper}", set()).add(canon)

    for src, dst in (explicit or {}).items():
        key, target = normalize_name(src), normalize_name(dst)
        if target not in canonical and not _VALID_TARGET_RE.match(target):
            result.errors.append(f"Alias target not a known full name: {src} -> {dst}")
        result.alias_map[key] = target

    for p in parsed:
        key = p.raw
        if key in result.alias_map:
            continue
        if p.kind is NameKind.FULL:
            result.alias_map[key] = _canonical_full(p)
        elif p.kind is NameKind.LAST_ONLY:
            last_upper = _letters(p.last).upper()
            _pick(key, by_last.get(last_upper, set()), "last name", p.last, result,
                  fallback=_title_word(p.last))
        elif p.kind is NameKind.INITIALS and p.last_initial:
            pair = f"{p.first_initial}{p.last_initial}"
            _pick(key, by_initials.get(pair, set()), "initials", key, result,
                  fallback=f"{p.first_initial} {p.last_initial}")
        elif p.kind is NameKind.INITIAL_LAST:
            last_upper = _letters(p.last).upper()
            _pick(key, by_first_last.get(f"{p.first_initial}|{last_upper}", set()), "name", key,
                  result, fallback=f"{p.first_initial} {_title_word(p.last)}")

    result.unresolved = [
        p.raw for p in parsed
        if p.raw not in result.alias_map and p.raw not in result.ambiguous
    ]
    logger.debug("Alias map: %d names, %d mapped, %d ambiguous, %d unresolved",
                 len(parsed), len(result.alias_map), len(result.ambiguous), len(result.unresolved))
    return result


def apply_alias_map(
    records: Sequence[PlateAppearanceCanonical],
    alias_map: dict[str, str],
) -> list[PlateAppearanceCanonical]:
    """Copies of *records* with each batter rewritten to its canonical form.

    Names without an entry are left untouched.
    """
    out: list[PlateAppearanceCanonical] = []
    for pa in records:
        batter = (pa.batter or "").strip()
        target = alias_map.get(normalize_name(batter)) if batter else None
        if target and target != pa.batter:
            out.append(pa.model_copy(update={"batter": target}))
        else:
            out.append(pa)
    return out


def resolve_batters(
    records: Sequence[PlateAppearanceCanonical],
    explicit: dict[str, str] | None = None,
    strict: bool = True,
) -> tuple[list[PlateAppearanceCanonical], AliasResolution]:
    """Resolve batter names across *records*.

    Raises:
        AliasResolutionError: In strict mode, when a record has no batter or
            any name is ambiguous or unresolved.
    """
    missing = [i for i, pa in enumerate(records) if not (pa.batter or "").strip()]
    if strict and missing:
        preview = ", ".join(f"#{i}" for i in missing[:10])
        more = ", ..." if len(missing) > 10 else ""
        raise AliasResolutionError([
            f"[strict] Missing batter on {len(missing)} plate appearances (first: {preview}{more})",
        ])

    resolution = build_alias_map((pa.batter or "" for pa in records), explicit)
    if strict and resolution.problems:
        raise AliasResolutionError(resolution.problems)
    if resolution.problems:
        logger.warning("Alias resolution problems (non-strict): %s", "; ".join(resolution.problems))
    return apply_alias_map(records, resolution.alias_map), resolution
