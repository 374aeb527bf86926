"""Tests for flags, secrets, error mapping, retry and path helpers."""

import json
from unittest.mock import patch

import pytest
import requests

from alloy.core import flags, paths, secrets
from alloy.core.errors import (
    ConfigError, LLMError, NETWORK_MESSAGE, PARSE_MESSAGE, ProcurementError,
    ResponseParseError, VendorSearchError, friendly_error, friendly_message,
)
from alloy.core.retry import is_retryable, with_retry


class TestFlags:
    def test_default_off(self):
        assert flags.snapshot() == {name: False for name in flags.FLAGS}

    def test_only_literal_true(self, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "TRUE")
        monkeypatch.setenv("USE_FIRECRAWL", "1")
        assert flags.enabled("USE_RETRY_LOGIC")
        assert not flags.enabled("USE_FIRECRAWL")

    def test_read_at_call_time(self, monkeypatch):
        assert not flags.enabled("LOCUS_SIMULATE")
        monkeypatch.setenv("LOCUS_SIMULATE", "true")
        assert flags.enabled("LOCUS_SIMULATE")


class TestSecrets:
    def test_get_key_strips(self, monkeypatch):
        monkeypatch.setenv("LOCUS_API_KEY", "  locus-key  ")
        assert secrets.get_key("locus") == "locus-key"

    def test_unknown_key(self):
        assert secrets.get_key("nope") == ""

    def test_require_anthropic_missing(self):
        with pytest.raises(ConfigError, match="not set"):
            secrets.require_anthropic_key()

    def test_require_anthropic_valid(self, anthropic_key):
        assert secrets.require_anthropic_key() == anthropic_key

    def test_mask(self):
        assert secrets.mask("") == "(not set)"
        assert secrets.mask("short") == "shor****"
        assert secrets.mask("sk-ant-0123456789").startswith("sk-ant-0****")

    def test_validate_all_never_shows_sensitive_values(self, anthropic_key):
        report = secrets.validate_all()
        assert report["secrets"]["anthropic"]["masked"] == "set"
        assert anthropic_key not in json.dumps(report)
        assert report["warnings"] == []

    def test_missing_required_warns(self):
        report = secrets.validate_all()
        assert any("ANTHROPIC_API_KEY" in w for w in report["warnings"])


class TestFriendlyMessages:
    @pytest.mark.parametrize("status,fragment", [
        (401, "Invalid Anthropic API key"),
        (429, "Rate limit exceeded"),
        (500, "server error"),
        (502, "gateway error"),
        (503, "temporarily unavailable"),
    ])
    def test_status_messages(self, status, fragment):
        assert fragment in friendly_message(LLMError("x", status=status))

    def test_bad_request(self):
        msg = friendly_message(LLMError("max_tokens too large", status=400))
        assert msg == "Invalid request: max_tokens too large. Please check your input parameters."

    def test_other_status(self):
        assert friendly_message(LLMError("teapot", status=418)) == \
            "Anthropic API error (418): teapot"

    def test_network(self):
        assert friendly_message(requests.ConnectionError()) == NETWORK_MESSAGE
        assert friendly_message(LLMError("refused")) == NETWORK_MESSAGE

    def test_parse(self):
        assert friendly_message(ResponseParseError("bad")) == PARSE_MESSAGE
        err = json.JSONDecodeError("Expecting value", "x", 0)
        assert friendly_message(err) == PARSE_MESSAGE


class TestFriendlyError:
    def test_passthrough_when_off(self):
        exc = LLMError("raw", status=500)
        assert friendly_error(exc) is exc

    def test_rewrites_when_on(self, monkeypatch):
        monkeypatch.setenv("USE_ENHANCED_ERROR_HANDLING", "true")
        out = friendly_error(LLMError("raw", status=429))
        assert isinstance(out, LLMError)
        assert out.status == 429
        assert "Rate limit exceeded" in str(out)

    def test_keeps_class(self, monkeypatch):
        monkeypatch.setenv("USE_ENHANCED_ERROR_HANDLING", "true")
        out = friendly_error(VendorSearchError("no vendors"))
        assert type(out) is VendorSearchError
        assert str(out) == "no vendors"

    def test_foreign_exception_wrapped(self, monkeypatch):
        monkeypatch.setenv("USE_ENHANCED_ERROR_HANDLING", "true")
        out = friendly_error(requests.Timeout())
        assert isinstance(out, ProcurementError)
        assert str(out) == NETWORK_MESSAGE


class TestRetry:
    def test_retryable_statuses(self):
        assert is_retryable(LLMError("x", status=429))
        assert is_retryable(LLMError("x", status=500))
        assert is_retryable(LLMError("x", status=529))
        assert not is_retryable(LLMError("x", status=400))
        assert not is_retryable(LLMError("x"))
        assert not is_retryable(ValueError("x"))

    def test_disabled_calls_once(self):
        calls = []

        def fn():
            calls.append(1)
            raise LLMError("busy", status=503)

        with pytest.raises(LLMError):
            with_retry(fn)
        assert len(calls) == 1

    def test_backoff_doubles(self, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "true")
        calls = []

        def fn():
            calls.append(1)
            raise LLMError("busy", status=503)

        with patch("alloy.core.retry.time.sleep") as sleep:
            with pytest.raises(LLMError):
                with_retry(fn, max_retries=3, initial_delay=1.0)
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_non_retryable_raised_immediately(self, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "true")
        calls = []

        def fn():
            calls.append(1)
            raise LLMError("bad", status=400)

        with patch("alloy.core.retry.time.sleep") as sleep:
            with pytest.raises(LLMError):
                with_retry(fn)
        assert len(calls) == 1
        sleep.assert_not_called()

    def test_success_after_failure(self, monkeypatch):
        monkeypatch.setenv("USE_RETRY_LOGIC", "true")
        results = iter([LLMError("busy", status=429), "ok"])

        def fn():
            r = next(results)
            if isinstance(r, Exception):
                raise r
            return r

        with patch("alloy.core.retry.time.sleep"):
            assert with_retry(fn) == "ok"


class TestPaths:
    def test_context_missing(self):
        assert paths.load_context() == ""

    def test_context_from_cwd(self, tmp_path):
        (tmp_path / "work" / "CONTEXT.md").write_text("Robot arm, 24V system")
        assert paths.load_context() == "Robot arm, 24V system"

    def test_ensure_dirs(self, temp_data_dir):
        import os
        paths.ensure_dirs()
        assert os.path.isdir(paths.OUTPUT_DIR)


class TestProcfile:
    def test_single_worker_process(self):
        import os
        with open(os.path.join(paths.PROJECT_ROOT, "Procfile")) as f:
            web = f.read()
        # traces, order lock and RFQ counter lock live in process memory
        assert "--workers 1" in web
        assert "--threads" in web
