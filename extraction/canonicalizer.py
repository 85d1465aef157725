# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0", "jsonschema>=4.0", "pydantic>=2.0"]
# ///
"""Turn one plate appearance segment into a validated canonical record.

Each segment runs through a small state machine::

    PENDING -> VALIDATING -> SUCCEEDED
                   |
                   v
               RETRYING(n) -> VALIDATING -> ...
                   |
                   v  (attempts exhausted)
             SELF_CHECKING -> VALIDATING -> SUCCEEDED | FAILED

A model attempt that fails at the transport level, returns something that
is not JSON, or returns JSON that fails validation all count against the
same attempt budget.  Retry prompts quote the previous errors so the model
can correct itself; the self-check pass sees the last invalid JSON.

Model output is folded over the micro-heuristic extraction: any field the
model supplies (non-null) wins, the heuristic fills the gaps.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from config import DEFAULT_TIMEOUT_SECONDS
from data.cache import ResultCache, make_key
from extraction.heuristics import micro_heuristic, minimal_canonical_from_text
from extraction.validator import RecordValidationError, parse_record, schema_text, validate_record
from llm import LanguageModel, LLMError, extract_json
from models import CanonMode, GameContext, PlateAppearanceCanonical, PlateAppearancePartial

logger = logging.getLogger(__name__)

JSON_SYSTEM_PROMPT = (
    "You are a strict JSON emitter. Output ONLY a JSON object matching the "
    "provided schema. No prose."
)
SELF_CHECK_SYSTEM_PROMPT = "You are a strict JSON emitter. Output only JSON matching the schema."


class CanonState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SELF_CHECKING = "self_checking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CanonicalizeResult:
    """Outcome of canonicalizing one segment.

    ``history`` lists the states visited, with the attempt number appended
    to each retry (``"retrying(2)"``).
    """
    ok: bool
    data: Optional[PlateAppearanceCanonical] = None
    errors: list[str] = field(default_factory=list)
    raw: Any = None
    cached: bool = False
    history: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def _context_json(context: GameContext) -> str:
    return json.dumps(context.as_prompt_dict(), indent=2, sort_keys=True)


def build_prompt(segment: str, context: GameContext) -> str:
    return f"""You will canonicalize a youth baseball plate appearance into a strict JSON record.

Rules:
- Output JSON ONLY, no prose, matching the provided JSON Schema exactly.
- Do not infer base advances except explicit phrases (steal/advance/score). Forced advances are handled elsewhere.
- If uncertain, set confidence conservatively and leave optional fields null/omitted.
- Use short initials for names if present in the text.

JSON Schema (DRAFT-07):
{schema_text()}

Context:
{_context_json(context)}

Raw Plate Appearance Text:
{segment}
"""


def build_retry_prompt(base_prompt: str, errors: list[str]) -> str:
    return f"{base_prompt}\n\nErrors last attempt: {json.dumps(errors)}\nRe-emit JSON only."


def build_self_check_prompt(segment: str, context: GameContext, last_json: Any) -> str:
    existing = json.dumps(last_json, sort_keys=True) if last_json is not None else "null"
    return (
        "You will correct a JSON record to align with the raw plate appearance text "
        "and the schema. Output JSON ONLY.\n\n"
        f"Schema:\n{schema_text()}\n\n"
        f"Context:\n{_context_json(context)}\n\n"
        f"Raw Text:\n{segment}\n\n"
        f"Existing JSON (may contain errors):\n{existing}"
    )


# ---------------------------------------------------------------------------
# Canonicalizer
# ---------------------------------------------------------------------------

class Canonicalizer:
    """Canonicalize segments with a language model or with rules alone.

    Args:
        model: Language model; required in ``CanonMode.MODEL``.
        mode: ``model`` (model + heuristics) or ``deterministic`` (rules only).
        max_attempts: Model attempts before the self-check pass.
        self_check: Whether to run the self-check pass after the attempts.
        timeout: Per-request timeout in seconds.
        cache: Shared result cache; ``None`` disables caching.
    """

    def __init__(
        self,
        model: LanguageModel | None = None,
        *,
        mode: CanonMode = CanonMode.MODEL,
        max_attempts: int = 3,
        self_check: bool = True,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache: ResultCache | None = None,
    ) -> None:
        if mode is CanonMode.MODEL and model is None:
            raise ValueError("model canonicalization needs a language model")
        self.model = model
        self.mode = mode
        self.max_attempts = max(1, max_attempts)
        self.self_check = self_check
        self.timeout = timeout
        self.cache = cache

    @property
    def model_id(self) -> str:
        return self.model.model_id if self.model is not None else ""

    def cache_key(self, segment: str, context: GameContext) -> str:
        return make_key(segment, context.as_prompt_dict(), self.model_id, self.mode.value)

    def canonicalize(self, segment: str, context: GameContext) -> CanonicalizeResult:
        key = self.cache_key(segment, context)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                logger.debug("Cache hit for segment %s", key[:12])
                return CanonicalizeResult(
                    ok=True, data=hit, cached=True, history=[CanonState.SUCCEEDED.value],
                )

        if self.mode is CanonMode.DETERMINISTIC:
            result = self._run_deterministic(segment)
        else:
            result = self._run_model(segment, context)

        if result.ok and result.data is not None and self.cache is not None:
            self.cache.set(key, result.data)
        return result

    # -- deterministic -----------------------------------------------------

    def _run_deterministic(self, segment: str) -> CanonicalizeResult:
        history = [CanonState.PENDING.value, CanonState.VALIDATING.value]
        base = PlateAppearancePartial.model_validate(minimal_canonical_from_text(segment).to_json_dict())
        candidate = base.fold(micro_heuristic(segment).present_fields())
        try:
            record = parse_record(candidate)
        except RecordValidationError as exc:
            history.append(CanonState.FAILED.value)
            return CanonicalizeResult(ok=False, errors=exc.errors, raw=candidate, history=history)
        history.append(CanonState.SUCCEEDED.value)
        return CanonicalizeResult(ok=True, data=record, raw=candidate, history=history)

    # -- model ---------------------------------------------------------------

    def _next_after_failure(self, attempt: int, checked: bool) -> CanonState:
        if checked:
            return CanonState.FAILED
        if attempt < self.max_attempts:
            return CanonState.RETRYING
        if self.self_check:
            return CanonState.SELF_CHECKING
        return CanonState.FAILED

    def _ask(self, prompt: str, system: str) -> Any:
        text = self.model.complete(
            prompt,
            system=system,
            schema_hint="a single JSON object",
            temperature=0.0,
            timeout=self.timeout,
        )
        return extract_json(text, expect=dict)

    def _run_model(self, segment: str, context: GameContext) -> CanonicalizeResult:
        heuristic = micro_heuristic(segment)
        base_prompt = build_prompt(segment, context)

        state = CanonState.PENDING
        history: list[str] = []
        errors: list[str] = []
        last_errors: list[str] = []
        last_json: Any = None
        candidate: Any = None
        attempt = 0
        checked = False

        while True:
            history.append(f"{state.value}({attempt + 1})" if state is CanonState.RETRYING else state.value)

            if state in (CanonState.PENDING, CanonState.RETRYING):
                attempt += 1
                prompt = base_prompt if attempt == 1 else build_retry_prompt(base_prompt, last_errors)
                logger.debug("Canonicalize attempt %d/%d using %s", attempt, self.max_attempts, self.model_id)
                try:
                    parsed = self._ask(prompt, JSON_SYSTEM_PROMPT)
                except LLMError as exc:
                    last_errors = [str(exc)]
                    errors.append(f"attempt {attempt}: {exc}")
                    logger.warning("Canonicalize attempt %d failed: %s", attempt, exc)
                    state = self._next_after_failure(attempt, checked)
                    continue
                candidate = heuristic.fold(parsed)
                state = CanonState.VALIDATING

            elif state is CanonState.SELF_CHECKING:
                checked = True
                prompt = build_self_check_prompt(segment, context, last_json)
                try:
                    candidate = self._ask(prompt, SELF_CHECK_SYSTEM_PROMPT)
                except LLMError as exc:
                    errors.append(f"self-check: {exc}")
                    logger.warning("Self-check failed: %s", exc)
                    state = CanonState.FAILED
                    continue
                state = CanonState.VALIDATING

            elif state is CanonState.VALIDATING:
                check = validate_record(candidate)
                if check.ok:
                    try:
                        record = parse_record(candidate)
                    except RecordValidationError as exc:
                        check.errors = exc.errors
                    else:
                        history.append(CanonState.SUCCEEDED.value)
                        return CanonicalizeResult(ok=True, data=record, raw=candidate, history=history)
                last_errors = check.errors
                last_json = candidate
                label = "self-check" if checked else f"attempt {attempt}"
                errors.extend(f"{label}: {e}" for e in check.errors)
                state = self._next_after_failure(attempt, checked)

            elif state is CanonState.FAILED:
                logger.warning("Canonicalization failed after %d attempt(s)%s",
                               attempt, " and self-check" if checked else "")
                return CanonicalizeResult(ok=False, errors=errors, raw=last_json, history=history)
