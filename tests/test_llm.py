# /// script
# requires-python = ">=3.12"
# dependencies = ["pytest>=7.0", "anthropic>=0.78.0", "httpx"]
# ///
"""Tests for the Claude-backed language model and JSON extraction.

The Anthropic client is replaced with a MagicMock; no network access.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import anthropic
import httpx
import pytest

from llm import (
    AnthropicLanguageModel,
    LLMResponseError,
    LLMTransportError,
    extract_json,
)

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _message(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def _status_error(cls, status, headers=None):
    response = httpx.Response(status, request=_REQUEST, headers=headers or {})
    return cls("error", response=response, body=None)


def _model(side_effect, **kwargs):
    client = MagicMock()
    client.messages.create.side_effect = side_effect
    return AnthropicLanguageModel(client=client, model_id="claude-test", **kwargs), client


# ---------------------------------------------------------------------------
# AnthropicLanguageModel
# ---------------------------------------------------------------------------

class TestAnthropicLanguageModel:
    def test_returns_text_and_passes_options(self):
        model, client = _model([_message('{"ok": true}')])
        out = model.complete("prompt", system="Be strict.", schema_hint="a JSON object", timeout=12.0)

        assert out == '{"ok": true}'
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["temperature"] == 0.0
        assert kwargs["timeout"] == 12.0
        assert kwargs["system"].startswith("Be strict.")
        assert "a JSON object" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_non_text_blocks_ignored(self):
        msg = SimpleNamespace(content=[
            SimpleNamespace(type="thinking", text="hmm"),
            SimpleNamespace(type="text", text="[1]"),
        ])
        model, _ = _model([msg])
        assert model.complete("p") == "[1]"

    @patch("llm.time.sleep")
    def test_rate_limit_is_retried(self, mock_sleep):
        err = _status_error(anthropic.RateLimitError, 429)
        model, client = _model([err, _message("done")])
        assert model.complete("p") == "done"
        assert client.messages.create.call_count == 2
        assert model.rate_limit_retries == 1
        mock_sleep.assert_called_once()

    @patch("llm.time.sleep")
    def test_retry_after_header_honoured(self, mock_sleep):
        err = _status_error(anthropic.RateLimitError, 429, headers={"retry-after": "120"})
        model, _ = _model([err, _message("done")])
        model.complete("p")
        assert mock_sleep.call_args.args[0] == 120.0

    @patch("llm.time.sleep")
    def test_rate_limit_gives_up(self, mock_sleep):
        err = _status_error(anthropic.RateLimitError, 429)
        model, client = _model([err, err, err], max_rate_limit_retries=3)
        with pytest.raises(LLMTransportError) as exc_info:
            model.complete("p")
        assert exc_info.value.status_code == 429
        assert client.messages.create.call_count == 3
        assert mock_sleep.call_count == 2

    def test_server_error_is_transport_error(self):
        err = _status_error(anthropic.InternalServerError, 500)
        model, client = _model([err])
        with pytest.raises(LLMTransportError) as exc_info:
            model.complete("p")
        assert exc_info.value.status_code == 500
        assert client.messages.create.call_count == 1

    def test_timeout_is_transport_error(self):
        model, _ = _model([anthropic.APITimeoutError(request=_REQUEST)])
        with pytest.raises(LLMTransportError, match="timed out"):
            model.complete("p", timeout=3.0)

    def test_connection_error_is_transport_error(self):
        model, _ = _model([anthropic.APIConnectionError(request=_REQUEST)])
        with pytest.raises(LLMTransportError, match="connection failed"):
            model.complete("p")


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------

class TestExtractJson:
    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"a": [1, 2]}\n```\nThanks'
        assert extract_json(text) == {"a": [1, 2]}

    def test_embedded_array(self):
        assert extract_json('Segments: ["one", "two"] done', expect=list) == ["one", "two"]

    def test_wrong_type_rejected(self):
        with pytest.raises(LLMResponseError, match="JSON object"):
            extract_json('["not", "an", "object"]', expect=dict)

    def test_garbage(self):
        with pytest.raises(LLMResponseError, match="JSON array"):
            extract_json("no json at all", expect=list)
