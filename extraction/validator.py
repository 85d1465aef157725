# /// script
# requires-python = ">=3.12"
# dependencies = ["jsonschema>=4.0", "pydantic>=2.0"]
# ///
"""Validation of plate appearance records.

A record is accepted only when both layers pass:

1. Structural: the Draft-07 JSON Schema shipped in ``schema/`` (types,
   enums, required fields, no unknown fields).
2. Domain: ``outs_added`` must agree with ``pa_result`` -- zero for walks,
   hit-by-pitch and extra-base hits, exactly one for strikeouts.

Errors are reported as a list of strings qualified by the JSON pointer of
the offending field, e.g. ``/outs_added must be 1 for strikeout``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator
from pydantic import ValidationError

from models import NO_OUT_RESULTS, ONE_OUT_RESULTS, PaResult, PlateAppearanceCanonical

SCHEMA_VERSION = "1"
SCHEMA_PATH = Path(__file__).resolve().parent / "schema" / "plate_appearance_canonical.schema.json"


class RecordValidationError(ValueError):
    """Raised by :func:`parse_record` when a record fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid record")


@dataclass
class ValidationResult:
    ok: bool
    errors: list[str] = field(default_factory=list)


@lru_cache(maxsize=1)
def load_schema() -> dict[str, Any]:
    """Return the PlateAppearanceCanonical JSON Schema (parsed once)."""
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        return json.load(f)


def schema_text() -> str:
    """Compact, stable serialization of the schema for prompts."""
    return json.dumps(load_schema(), sort_keys=True, separators=(",", ":"))


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    schema = load_schema()
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


def _pointer(path) -> str:
    return "/" + "/".join(str(p) for p in path)


def structural_errors(obj: Any) -> list[str]:
    """All JSON Schema violations in *obj*, path-qualified and sorted."""
    errors = [
        f"{_pointer(err.absolute_path)} {err.message}"
        for err in _validator().iter_errors(obj)
    ]
    return sorted(errors)


def check_domain_invariants(obj: dict[str, Any]) -> list[str]:
    """Outs invariant for a structurally valid record."""
    errs: list[str] = []
    result = PaResult(obj["pa_result"])
    outs = obj["outs_added"]
    if result in NO_OUT_RESULTS and outs != 0:
        errs.append(f"/outs_added must be 0 for {result.value}")
    if result in ONE_OUT_RESULTS and outs != 1:
        errs.append(f"/outs_added must be 1 for {result.value}")
    return errs


def validate_record(obj: Any) -> ValidationResult:
    """Validate an untrusted record (typically parsed model output).

    Domain invariants are checked only once the shape is right; a record with
    structural errors reports those alone.
    """
    if isinstance(obj, PlateAppearanceCanonical):
        obj = obj.to_json_dict()
    errors = structural_errors(obj)
    if not errors:
        errors.extend(check_domain_invariants(obj))
    return ValidationResult(ok=not errors, errors=errors)


def parse_record(obj: Any) -> PlateAppearanceCanonical:
    """Validate *obj* and return it as a typed record.

    Raises:
        RecordValidationError: With every error found.
    """
    result = validate_record(obj)
    if not result.ok:
        raise RecordValidationError(result.errors)
    try:
        return PlateAppearanceCanonical.model_validate(obj)
    except ValidationError as exc:
        raise RecordValidationError([
            f"{_pointer(e['loc'])} {e['msg']}" for e in exc.errors()
        ]) from exc
