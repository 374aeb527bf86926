"""Tests for log formatting, key redaction and handler setup."""

import json
import logging
import os

import pytest

from alloy.core import paths
from logging_config import HumanFormatter, JSONFormatter, RedactKeysFilter, setup_logging


def _record(msg, *args, **extra):
    record = logging.LogRecord("alloy.test", logging.INFO, __file__, 10, msg, args, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in root.handlers:
        h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestRedaction:
    def test_masks_anthropic_key(self):
        record = _record("Using key %s", "sk-ant-REDACTED")
        RedactKeysFilter().filter(record)
        assert record.getMessage() == "Using key sk-ant-test****"

    def test_leaves_plain_messages(self):
        record = _record("Order %s logged", "ORD-004")
        RedactKeysFilter().filter(record)
        assert record.args == ("ORD-004",)
        assert record.getMessage() == "Order ORD-004 logged"


class TestFormatters:
    def test_json_extra_fields(self):
        out = json.loads(JSONFormatter().format(
            _record("paid", order_id="ORD-004", trace_id="tr_1234abcd")))
        assert out["msg"] == "paid"
        assert out["order_id"] == "ORD-004"
        assert out["trace_id"] == "tr_1234abcd"
        assert out["level"] == "INFO"

    def test_human_shows_trace(self):
        line = HumanFormatter().format(_record("paid", trace_id="tr_1234abcd"))
        assert "alloy.test: paid" in line
        assert "(tr_1234abcd)" in line


class TestSetupLogging:
    def test_writes_json_file(self, restore_root):
        setup_logging(level="debug", json_logs=True)
        logging.getLogger("alloy.test").info("Using key sk-ant-REDACTED")
        for h in restore_root.handlers:
            h.flush()
        with open(os.path.join(paths.LOG_DIR, "alloy.log")) as f:
            lines = [json.loads(line) for line in f if line.strip()]
        assert restore_root.level == logging.DEBUG
        assert any(l["msg"] == "Using key sk-ant-test****" for l in lines)
        assert not any("0123456789abcdef" in l["msg"] for l in lines)
