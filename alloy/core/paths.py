"""
alloy/core/paths.py — Centralized Path Configuration

Single source of truth for directory paths. Every module imports from here
instead of computing its own DATA_DIR.

Priority for DATA_DIR: ALLOY_DATA_DIR env → <project>/data
"""

import os
import logging

log = logging.getLogger("alloy.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))


def _resolve_data_dir() -> str:
    env_dir = os.environ.get("ALLOY_DATA_DIR", "")
    if env_dir:
        return env_dir
    return os.path.join(PROJECT_ROOT, "data")


DATA_DIR = _resolve_data_dir()

# ── Core Directories ─────────────────────────────────────────────────────────
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
LOG_DIR = os.path.join(DATA_DIR, "logs")

# Project context handed to the extraction prompts; lives in the working dir
CONTEXT_FILENAME = "CONTEXT.md"


def ensure_dirs():
    """Create the data and output directories. Called once at app startup."""
    for d in (DATA_DIR, OUTPUT_DIR):
        os.makedirs(d, exist_ok=True)


def load_context(path: str = None) -> str:
    """Return the contents of CONTEXT.md, or "" when there is none."""
    path = path or os.path.join(os.getcwd(), CONTEXT_FILENAME)
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
        log.info("Loaded project context from %s (%d chars)", path, len(content))
        return content
    except FileNotFoundError:
        return ""
    except OSError as e:
        log.warning("Could not read %s: %s", path, e)
        return ""
