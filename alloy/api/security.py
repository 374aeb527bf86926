"""
security.py — Request throttling and response headers

Every model-backed or payment route is wrapped in @rate_limit(tier). Buckets
are keyed by client IP and tier and refill continuously; an empty bucket
gets a 429 with a Retry-After hint. DISABLE_RATE_LIMIT=true turns the check
off (the test suite sets it).

The browser UI is served from its own dev server, so every response carries
permissive CORS headers.
"""

import functools
import logging
import math
import os
import threading
import time

from flask import jsonify, request

log = logging.getLogger("alloy.security")

# tier → bucket size and tokens regained per second
RATE_LIMITS = {
    "default": {"max_tokens": 60, "refill_rate": 2.0},
    "llm":     {"max_tokens": 10, "refill_rate": 0.2},   # extraction, estimates, sourcing
    "payment": {"max_tokens": 3,  "refill_rate": 0.05},  # approve-and-execute
}


class RateLimiter:
    """Token buckets held in memory, one per key."""

    def __init__(self):
        self._buckets = {}  # key → [tokens, last_seen]
        self._lock = threading.Lock()

    def check(self, key: str, max_tokens: int = 60, refill_rate: float = 1.0) -> bool:
        """Take one token from the bucket for `key`; False when it is empty."""
        now = time.monotonic()
        with self._lock:
            tokens, last = self._buckets.get(key, (max_tokens, now))
            tokens = min(max_tokens, tokens + (now - last) * refill_rate)
            allowed = tokens >= 1
            self._buckets[key] = [tokens - 1 if allowed else tokens, now]
        return allowed

    def reset(self):
        with self._lock:
            self._buckets.clear()


_limiter = RateLimiter()


def _disabled() -> bool:
    return os.environ.get("DISABLE_RATE_LIMIT", "").strip().lower() == "true"


def rate_limit(tier: str = "default"):
    limits = tier if tier in RATE_LIMITS else "default"

    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            if _disabled():
                return view(*args, **kwargs)
            conf = RATE_LIMITS[limits]
            client = request.remote_addr or "unknown"
            if _limiter.check(f"{client}:{limits}", **conf):
                return view(*args, **kwargs)
            log.warning("Throttled %s on %s (tier %s)", client, request.path, limits,
                        extra={"route": request.path})
            resp = jsonify({"error": "Rate limit exceeded. Please try again shortly."})
            resp.status_code = 429
            if conf["refill_rate"] > 0:
                resp.headers["Retry-After"] = str(math.ceil(1 / conf["refill_rate"]))
            return resp
        return wrapper
    return decorator


# ─── Response headers ────────────────────────────────────────────────────────

def add_cors_headers(response):
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def init_security(app):
    app.after_request(add_cors_headers)
    log.info("Rate limiting %s, CORS open", "disabled" if _disabled() else "enabled")
