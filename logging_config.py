"""
Logging setup for Alloy.

Call setup_logging() once at startup (app.create_app does). Console output is
colourised text by default, JSON lines when ALLOY_JSON_LOGS is set; a rotating
JSON log is always written under DATA_DIR/logs.

Anything that looks like an Anthropic, Locus, Mailjet or Firecrawl key is
masked before a record reaches any handler.
"""
import logging
import logging.handlers
import os
import re
import json
from datetime import datetime, timezone

from alloy.core import paths

# Extra attributes routes and agents attach via extra={...}
EXTRA_FIELDS = ("route", "method", "status", "duration_ms", "component",
                "vendor", "order_id", "trace_id")

NOISY_LOGGERS = ("urllib3", "werkzeug", "reportlab", "pypdf")

_KEY_RE = re.compile(r"\b(sk-ant-[A-Za-z0-9_-]{4}|locus_[A-Za-z0-9]{4}|fc-[A-Za-z0-9]{4})"
                     r"[A-Za-z0-9_-]+")


class RedactKeysFilter(logging.Filter):
    """Mask API keys in the rendered message, keeping a short prefix."""

    def filter(self, record):
        msg = record.getMessage()
        redacted = _KEY_RE.sub(lambda m: m.group(1) + "****", msg)
        if redacted != msg:
            record.msg, record.args = redacted, None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({k: getattr(record, k) for k in EXTRA_FIELDS if hasattr(record, k)})
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """HH:MM:SS [L] logger: message, coloured by level."""
    COLORS = {"DEBUG": "\033[36m", "INFO": "\033[32m", "WARNING": "\033[33m",
              "ERROR": "\033[31m", "CRITICAL": "\033[35m"}
    RESET = "\033[0m"

    def format(self, record):
        line = (f"{self.COLORS.get(record.levelname, '')}"
                f"{datetime.now():%H:%M:%S} [{record.levelname[0]}] {record.name}: "
                f"{record.getMessage()}{self.RESET}")
        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            line += f" ({trace_id})"
        if record.exc_info and record.exc_info[0]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _file_handler():
    os.makedirs(paths.LOG_DIR, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(paths.LOG_DIR, "alloy.log"), maxBytes=5_000_000, backupCount=5)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(level=None, json_logs=None):
    """
    Configure the root logger.

    Args:
        level: log level name (default: LOG_LEVEL env, else INFO)
        json_logs: JSON console output (default: ALLOY_JSON_LOGS env)
    """
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = _env_flag("ALLOY_JSON_LOGS")

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter())
    handlers = [console]
    try:
        handlers.append(_file_handler())
    except OSError as e:
        root.warning("File logging disabled: %s", e)

    redact = RedactKeysFilter()
    for h in handlers:
        h.addFilter(redact)
        root.addHandler(h)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("alloy").info("Logging initialized (%s, %s)", level,
                                    "json" if json_logs else "text")
