# /// script
# requires-python = ">=3.12"
# dependencies = ["anthropic>=0.78.0"]
# ///
"""Hosted language-model access.

The extraction and recommendation stages depend on a single capability::

    complete(prompt, schema_hint, temperature, timeout) -> text

:class:`LanguageModel` describes it; :class:`AnthropicLanguageModel` backs it
with the Claude Messages API.  Everything the service returns is untrusted:
callers parse it with :func:`extract_json` and validate the result.

Transport problems (timeouts, connection failures, HTTP errors) surface as
:class:`LLMTransportError`; unparseable payloads as :class:`LLMResponseError`.
Rate limits (429) are retried here with exponential backoff and jitter,
honouring ``Retry-After`` when the service sends one.
"""

from __future__ import annotations

import json
import logging
import random
import re
import time
from typing import Any, Protocol

import anthropic
from anthropic import Anthropic

from config import DEFAULT_MODEL

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Claude API rate limit constants
# ---------------------------------------------------------------------------

CLAUDE_MAX_RETRIES = 5
CLAUDE_BACKOFF_BASE = 2.0  # seconds; actual delay = base * 2^attempt + jitter
DEFAULT_MAX_TOKENS = 4096


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class LLMError(Exception):
    """Base exception for language-model failures."""


class LLMTransportError(LLMError):
    """Timeout, network failure or HTTP error talking to the model service."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LLMResponseError(LLMError):
    """The service answered, but not with the payload that was asked for."""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class LanguageModel(Protocol):
    """The one external capability the pipeline depends on."""

    model_id: str

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        schema_hint: str | None = None,
        temperature: float = 0.0,
        timeout: float | None = None,
    ) -> str:
        ...


# ---------------------------------------------------------------------------
# Rate limit helpers
# ---------------------------------------------------------------------------

def _claude_backoff_sleep(attempt: int, retry_after: float | None = None) -> None:
    """Sleep with exponential backoff and jitter for Claude API retries.

    Args:
        attempt: Zero-based retry attempt number.
        retry_after: Optional server-requested delay (from Retry-After
            or ``x-retry-after`` headers).
    """
    base_delay = CLAUDE_BACKOFF_BASE * (2 ** attempt)
    jitter = random.random() * base_delay
    delay = base_delay + jitter
    if retry_after is not None and retry_after > delay:
        delay = retry_after
    time.sleep(delay)


def _extract_retry_after(exc: Exception) -> float | None:
    """Try to extract a Retry-After value from an Anthropic API error."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    for key in ("retry-after", "x-retry-after"):
        val = headers.get(key)
        if val is not None:
            try:
                return max(0.0, float(val))
            except (TypeError, ValueError):
                pass
    return None


def _status_of(exc: Exception) -> int | None:
    for attr in ("status_code", "status"):
        status = getattr(exc, attr, None)
        if isinstance(status, int):
            return status
    response = getattr(exc, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def _is_rate_limit_error(exc: Exception) -> bool:
    """Check whether an Anthropic exception is a 429 rate limit error."""
    return _status_of(exc) == 429


# ---------------------------------------------------------------------------
# Anthropic-backed model
# ---------------------------------------------------------------------------

class AnthropicLanguageModel:
    """:class:`LanguageModel` backed by the Claude Messages API.

    Args:
        client: Anthropic client.  Created from the configured API key when
            omitted.
        model_id: Claude model name.
        max_tokens: Response token cap per request.
        max_rate_limit_retries: Attempts allowed while the service keeps
            answering 429.
    """

    def __init__(
        self,
        client: Anthropic | None = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        max_rate_limit_retries: int = CLAUDE_MAX_RETRIES,
    ) -> None:
        if client is None:
            from config import create_anthropic_client

            client = create_anthropic_client()
        self._client = client
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.max_rate_limit_retries = max(1, max_rate_limit_retries)
        self.rate_limit_retries = 0

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        schema_hint: str | None = None,
        temperature: float = 0.0,
        timeout: float | None = None,
    ) -> str:
        system_text = system or ""
        if schema_hint:
            system_text = f"{system_text}\n\nOutput format: {schema_hint}".strip()

        kwargs: dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_text:
            kwargs["system"] = system_text
        if timeout is not None:
            kwargs["timeout"] = timeout

        for rl_attempt in range(self.max_rate_limit_retries):
            try:
                message = self._client.messages.create(**kwargs)
                break
            except anthropic.APITimeoutError as exc:
                raise LLMTransportError(f"model request timed out after {timeout}s") from exc
            except anthropic.APIConnectionError as exc:
                raise LLMTransportError(f"model connection failed: {exc}") from exc
            except anthropic.APIStatusError as exc:
                if not _is_rate_limit_error(exc):
                    raise LLMTransportError(
                        f"model service returned HTTP {_status_of(exc)}",
                        status_code=_status_of(exc),
                    ) from exc
                self.rate_limit_retries += 1
                retry_after = _extract_retry_after(exc)
                logger.warning(
                    "Claude API rate limit (429) on attempt %d/%d "
                    "(Retry-After: %s)",
                    rl_attempt + 1, self.max_rate_limit_retries,
                    retry_after if retry_after is not None else "not set",
                )
                if rl_attempt < self.max_rate_limit_retries - 1:
                    _claude_backoff_sleep(rl_attempt, retry_after=retry_after)
                    continue
                raise LLMTransportError(
                    "model service rate limit persisted after retries",
                    status_code=429,
                ) from exc

        parts = [
            block.text for block in message.content
            if getattr(block, "type", None) == "text"
        ]
        return "".join(parts)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.IGNORECASE | re.DOTALL)


def extract_json(text: str, expect: type = dict) -> Any:
    """Pull a JSON value of type *expect* (``dict`` or ``list``) out of *text*.

    Tries the whole text, then a fenced code block, then the outermost
    bracketed slice.

    Raises:
        LLMResponseError: If no JSON value of the expected type is found.
    """
    candidates = [text]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1))
    open_ch, close_ch = ("[", "]") if expect is list else ("{", "}")
    start = text.find(open_ch)
    end = text.rfind(close_ch)
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(value, expect):
            return value
    kind = "array" if expect is list else "object"
    raise LLMResponseError(f"model did not return a valid JSON {kind}")
