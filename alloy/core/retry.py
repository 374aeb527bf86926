"""
retry.py — Bounded exponential backoff around a single outbound call.

Only active when USE_RETRY_LOGIC=true. Retries model errors with status 429
or >= 500; everything else is raised on the first failure. Delay doubles each
attempt (1s, 2s, 4s by default), no jitter.
"""

import time
import logging

from alloy.core import flags
from alloy.core.errors import LLMError

log = logging.getLogger("alloy.retry")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0


def is_retryable(exc: Exception) -> bool:
    if not isinstance(exc, LLMError) or exc.status is None:
        return False
    return exc.status == 429 or exc.status >= 500


def with_retry(fn, max_retries: int = DEFAULT_MAX_RETRIES,
               initial_delay: float = DEFAULT_INITIAL_DELAY):
    """Call fn() and return its result, retrying transient model errors."""
    if not flags.enabled("USE_RETRY_LOGIC"):
        return fn()

    for attempt in range(max_retries):
        try:
            return fn()
        except Exception as e:
            if not is_retryable(e) or attempt == max_retries - 1:
                raise
            delay = initial_delay * (2 ** attempt)
            log.warning("Retry attempt %d/%d after %.1fs (status %s)",
                        attempt + 1, max_retries, delay, e.status)
            time.sleep(delay)
    raise RuntimeError("max_retries must be at least 1")
