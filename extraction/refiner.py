# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0"]
# ///
"""Model-assisted segmentation on top of the deterministic baseline.

Modes:

* ``deterministic`` -- the baseline from :func:`deterministic_segment`.
* ``model``         -- the baseline is chunked and every chunk is re-split by
  the model; a chunk the model cannot split keeps its baseline segments.
* ``hybrid``        -- as ``model``, but the model's answer is only used when
  it has at least as many segments as the baseline.

Chunks are bounded by a character budget and a PA count and are refined
concurrently; results are reassembled in chunk order.  Every mode finishes
with :func:`merge_summary_pairs`.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field

from config import DEFAULT_TIMEOUT_SECONDS
from extraction.segmenter import deterministic_segment, merge_summary_pairs, split_sentences
from extraction.workers import run_indexed
from llm import LanguageModel, LLMError, LLMResponseError, extract_json
from models import SegmentationMode

logger = logging.getLogger(__name__)

MAX_GROUP_CHARS = 2000
MAX_GROUP_PAS = 10
# Baselines this small are re-chunked from the raw text when the text is long.
RAW_FALLBACK_MAX_SEGMENTS = 5

SEGMENTATION_SYSTEM_PROMPT = "You are a strict JSON array emitter. Output only valid JSON."


@dataclass
class SegmentationResult:
    segments: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

def chunk_segments(
    segments: list[str],
    max_chars: int = MAX_GROUP_CHARS,
    max_pas: int = MAX_GROUP_PAS,
) -> list[list[str]]:
    """Group consecutive segments under both a character and a PA budget."""
    groups: list[list[str]] = []
    cur: list[str] = []
    cur_len = 0
    for seg in segments:
        add_len = len(seg) + 2
        if cur and (len(cur) >= max_pas or cur_len + add_len > max_chars):
            groups.append(cur)
            cur, cur_len = [], 0
        cur.append(seg)
        cur_len += add_len
    if cur:
        groups.append(cur)
    return groups


def chunk_raw_text(text: str, max_chars: int = MAX_GROUP_CHARS) -> list[str]:
    """Split raw text on sentence boundaries into chunks of at most *max_chars*.

    A single sentence longer than the budget becomes its own chunk.
    """
    flat = re.sub(r"\s+", " ", text.replace("|", ". ")).strip()
    chunks: list[str] = []
    buf = ""
    for sentence in split_sentences(flat):
        if buf and len(buf) + 1 + len(sentence) > max_chars:
            chunks.append(buf)
            buf = sentence
        else:
            buf = f"{buf} {sentence}" if buf else sentence
    if buf:
        chunks.append(buf)
    return chunks


def build_segmentation_prompt(text: str) -> str:
    return f"""Task: Split the following youth baseball game log text into individual plate appearances (PAs).
Rules:
- Output a JSON array of strings ONLY. No prose. Each string is exactly one PA's raw text.
- Join 'In play.' with the immediately following descriptive sentence(s) that describe the ball-in-play result.
- Exclude scoreboard lines, inning headers, and team scores (e.g., 'Top 5th - ...', 'BRDG 8 - FRNT 2').
- Include pitcher/batter identification when attached to the PA (e.g., 'J M strikes out swinging, H W pitching.').
- Exclude substitutions unless they affect the next PA's pitcher (keep 'X in at pitcher' attached to the FIRST subsequent PA).
- Preserve pitch sequences and explicit base runner actions in the same PA chunk.
- Do not summarize or normalize; just split.

Text to split:

{text}"""


# ---------------------------------------------------------------------------
# Refiner
# ---------------------------------------------------------------------------

class SegmentRefiner:
    """Re-split baseline chunks with a language model.

    Args:
        model: Language model used for every chunk.
        max_attempts: Model attempts per chunk.
        concurrency: Chunks refined at the same time.
        timeout: Per-request timeout in seconds.
        cancel: Optional event; once set, no further chunks are sent.
    """

    def __init__(
        self,
        model: LanguageModel,
        *,
        max_attempts: int = 2,
        concurrency: int = 2,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cancel: threading.Event | None = None,
    ) -> None:
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.concurrency = max(1, concurrency)
        self.timeout = timeout
        self.cancel = cancel

    def split_chunk(self, chunk_text: str, baseline_count: int = 0) -> list[str]:
        """Ask the model to split one chunk.

        Raises:
            LLMError: When every attempt failed; carries the last error.
        """
        base = build_segmentation_prompt(chunk_text)
        if baseline_count > 0:
            base += (
                f"\n\nThe deterministic baseline for this CHUNK produced {baseline_count} segments. "
                "Improve upon it if needed. Only return segments from THIS chunk; "
                "do not include anything outside it."
            )
        else:
            base += "\n\nOnly return segments from THIS chunk; do not include anything outside it."

        last_error: LLMError | None = None
        for attempt in range(self.max_attempts):
            prompt = base if attempt == 0 else f"{base}\n\nLast error: {last_error}. Return JSON array only."
            try:
                raw = self.model.complete(
                    prompt,
                    system=SEGMENTATION_SYSTEM_PROMPT,
                    schema_hint="a JSON array of strings",
                    temperature=0.0,
                    timeout=self.timeout,
                )
                items = extract_json(raw, expect=list)
                segments = [str(s).strip() for s in items if str(s).strip()]
                if not segments:
                    raise LLMResponseError("No segments returned")
                return segments
            except LLMError as exc:
                last_error = exc
                logger.warning("Segmentation attempt %d/%d failed: %s",
                               attempt + 1, self.max_attempts, exc)
        assert last_error is not None
        raise last_error

    def _refine_units(
        self,
        units: list[tuple[str, list[str]]],
        errors: list[str],
        label: str,
    ) -> list[str]:
        """Refine ``(chunk_text, baseline)`` units; failures keep the baseline."""
        lock = threading.Lock()

        def handle(i: int, unit: tuple[str, list[str]]) -> list[str]:
            text, baseline = unit
            try:
                return self.split_chunk(text, len(baseline) if label == "chunk" else 0)
            except LLMError as exc:
                with lock:
                    errors.append(f"Segmentation {label} {i}: {exc}")
                return baseline

        results = run_indexed(units, handle, concurrency=self.concurrency, cancel=self.cancel, label=label)
        merged: list[str] = []
        for (_, baseline), segs in zip(units, results):
            merged.extend(segs if segs else baseline)
        return merged

    def refine(self, text: str, baseline: list[str]) -> SegmentationResult:
        """Refine *baseline* (the deterministic segmentation of *text*)."""
        errors: list[str] = []
        groups = chunk_segments(baseline)

        if len(groups) <= 1:
            if len(baseline) <= RAW_FALLBACK_MAX_SEGMENTS and len(text) > MAX_GROUP_CHARS:
                raw_chunks = chunk_raw_text(text)
                if len(raw_chunks) > 1:
                    logger.info("Small baseline (%d) for long text; refining %d raw chunks",
                                len(baseline), len(raw_chunks))
                    units = [(c, deterministic_segment(c)) for c in raw_chunks]
                    return SegmentationResult(self._refine_units(units, errors, "raw chunk"), errors)
            units = [(text, baseline)]
        else:
            units = [("\n".join(g), g) for g in groups]

        logger.info("Refining %d segments in %d chunk(s)", len(baseline), len(units))
        return SegmentationResult(self._refine_units(units, errors, "chunk"), errors)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def segment_game_text(
    text: str,
    mode: SegmentationMode = SegmentationMode.HYBRID,
    model: LanguageModel | None = None,
    *,
    max_attempts: int = 2,
    concurrency: int = 2,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    cancel: threading.Event | None = None,
) -> SegmentationResult:
    """Segment a game log into ordered plate appearance texts."""
    baseline = deterministic_segment(text)
    segments = baseline
    errors: list[str] = []

    if mode is not SegmentationMode.DETERMINISTIC:
        if model is None:
            raise ValueError(f"{mode.value} segmentation needs a language model")
        refiner = SegmentRefiner(
            model,
            max_attempts=max_attempts,
            concurrency=concurrency,
            timeout=timeout,
            cancel=cancel,
        )
        refined = refiner.refine(text, baseline)
        errors.extend(refined.errors)
        if mode is SegmentationMode.MODEL:
            segments = refined.segments
        elif len(refined.segments) >= len(baseline):
            segments = refined.segments
        else:
            logger.info("Model produced %d segments, fewer than baseline %d; keeping baseline",
                        len(refined.segments), len(baseline))

    return SegmentationResult(segments=merge_summary_pairs(segments), errors=errors)
