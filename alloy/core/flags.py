"""
flags.py — Feature flags read from the environment.

Flags are evaluated at call time, not import time, so a running process
picks up changes and tests can flip them with monkeypatch.

  ENHANCED_FILE_PROCESSING     richer per-component extraction from design files
  USE_STRUCTURED_OUTPUTS       schema-constrained prompts for estimates and sourcing
  USE_RETRY_LOGIC              exponential backoff on 429 / 5xx model errors
  USE_ENHANCED_ERROR_HANDLING  map API failures to user-facing messages
  USE_FIRECRAWL                research vendor websites before sourcing
  LOCUS_SIMULATE               skip the payment rail and return a simulated hash
"""

import os

FLAGS = (
    "ENHANCED_FILE_PROCESSING",
    "USE_STRUCTURED_OUTPUTS",
    "USE_RETRY_LOGIC",
    "USE_ENHANCED_ERROR_HANDLING",
    "USE_FIRECRAWL",
    "LOCUS_SIMULATE",
)


def enabled(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() == "true"


def snapshot() -> dict:
    """Current value of every flag, for the admin/status endpoints."""
    return {name: enabled(name) for name in FLAGS}
