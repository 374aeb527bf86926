"""Tests for the Claude client: transport, errors, fence stripping, JSON parsing."""

from unittest.mock import patch

import pytest
import requests

from conftest import claude_response, make_response
from alloy.core import llm
from alloy.core.errors import ConfigError, LLMError, ResponseParseError, PARSE_MESSAGE


class TestStripCodeFences:
    def test_plain_text_untouched(self):
        assert llm.strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_json_fence(self):
        assert llm.strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert llm.strip_code_fences('```\n[1, 2]\n```') == "[1, 2]"

    def test_surrounding_whitespace(self):
        assert llm.strip_code_fences('  \n```json\n{"a": 1}\n```  \n') == '{"a": 1}'

    def test_missing_closing_fence(self):
        assert llm.strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'

    def test_none(self):
        assert llm.strip_code_fences(None) == ""


class TestParseJsonResponse:
    def test_fenced_object(self):
        assert llm.parse_json_response('```json\n{"name": "x"}\n```') == {"name": "x"}

    def test_invalid_raises_with_raw(self):
        with pytest.raises(ResponseParseError) as exc:
            llm.parse_json_response("Sure! Here is the data")
        assert exc.value.raw == "Sure! Here is the data"

    def test_friendly_message_when_enhanced(self, monkeypatch):
        monkeypatch.setenv("USE_ENHANCED_ERROR_HANDLING", "true")
        with pytest.raises(ResponseParseError) as exc:
            llm.parse_json_response("nope")
        assert str(exc.value) == PARSE_MESSAGE


class TestPostMessages:
    def test_headers_and_model(self, anthropic_key):
        with patch("alloy.core.llm.requests.post",
                   return_value=claude_response({"ok": True})) as post:
            llm.post_messages({"max_tokens": 10, "messages": []}, beta="mcp-client-2025-04-04")
        _, kwargs = post.call_args
        assert kwargs["headers"]["x-api-key"] == anthropic_key
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert kwargs["headers"]["anthropic-beta"] == "mcp-client-2025-04-04"
        assert kwargs["json"]["model"] == llm.DEFAULT_MODEL

    def test_model_override(self, anthropic_key, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_MODEL", "claude-test")
        with patch("alloy.core.llm.requests.post",
                   return_value=claude_response({})) as post:
            llm.post_messages({"messages": []})
        assert post.call_args[1]["json"]["model"] == "claude-test"

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="not set"):
            llm.post_messages({"messages": []})

    def test_malformed_key(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "abc123")
        with pytest.raises(ConfigError, match="should start with sk-"):
            llm.post_messages({"messages": []})

    def test_error_status(self, anthropic_key):
        resp = make_response(429, {"error": {"message": "slow down"}})
        with patch("alloy.core.llm.requests.post", return_value=resp):
            with pytest.raises(LLMError) as exc:
                llm.post_messages({"messages": []})
        assert exc.value.status == 429
        assert "slow down" in str(exc.value)

    def test_connection_error(self, anthropic_key):
        with patch("alloy.core.llm.requests.post",
                   side_effect=requests.ConnectionError("refused")):
            with pytest.raises(LLMError) as exc:
                llm.post_messages({"messages": []})
        assert exc.value.status is None


class TestCallClaude:
    def test_returns_first_text(self, anthropic_key):
        with patch("alloy.core.llm.requests.post",
                   return_value=claude_response("hello")) as post:
            assert llm.call_claude("hi", system="be brief", max_tokens=100) == "hello"
        body = post.call_args[1]["json"]
        assert body["system"] == "be brief"
        assert body["max_tokens"] == 100
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    def test_non_text_block(self, anthropic_key):
        resp = make_response(200, {"content": [{"type": "tool_use"}]})
        with patch("alloy.core.llm.requests.post", return_value=resp):
            with pytest.raises(LLMError, match="Unexpected response type"):
                llm.call_claude("hi")

    def test_enhanced_message_for_401(self, anthropic_key, monkeypatch):
        monkeypatch.setenv("USE_ENHANCED_ERROR_HANDLING", "true")
        with patch("alloy.core.llm.requests.post", return_value=make_response(401, {})):
            with pytest.raises(LLMError) as exc:
                llm.call_claude("hi")
        assert "Invalid Anthropic API key" in str(exc.value)
        assert exc.value.status == 401

    def test_retry_recovers_from_overload(self, anthropic_key, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "true")
        responses = [make_response(529, {}), claude_response("done")]
        with patch("alloy.core.llm.requests.post", side_effect=responses), \
                patch("alloy.core.retry.time.sleep") as sleep:
            assert llm.call_claude("hi", retry=True) == "done"
        sleep.assert_called_once_with(1.0)

    def test_no_retry_unless_asked(self, anthropic_key, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "true")
        with patch("alloy.core.llm.requests.post",
                   return_value=make_response(503, {})) as post:
            with pytest.raises(LLMError):
                llm.call_claude("hi")
        assert post.call_count == 1


class TestSchemaInstruction:
    def test_contains_schema(self):
        text = llm.schema_instruction({"type": "object"})
        assert text.startswith("\n\nIMPORTANT: Return ONLY valid JSON")
        assert '"type": "object"' in text
