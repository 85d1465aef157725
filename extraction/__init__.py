# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "jsonschema>=4.0", "pydantic>=2.0"]
# ///
"""Play-by-play extraction -- segmentation, canonicalization, validation and name backfill."""

from extraction.canonicalizer import Canonicalizer, CanonicalizeResult, CanonState
from extraction.pipeline import canonicalize_game_text
from extraction.refiner import SegmentRefiner, SegmentationResult, segment_game_text
from extraction.segmenter import deterministic_segment, merge_summary_pairs
from extraction.validator import RecordValidationError, SCHEMA_VERSION, parse_record, validate_record

__all__ = [
    "Canonicalizer",
    "CanonicalizeResult",
    "CanonState",
    "canonicalize_game_text",
    "SegmentRefiner",
    "SegmentationResult",
    "segment_game_text",
    "deterministic_segment",
    "merge_summary_pairs",
    "RecordValidationError",
    "SCHEMA_VERSION",
    "parse_record",
    "validate_record",
]
