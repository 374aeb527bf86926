"""API: Flask blueprint, request tracing and rate limiting."""
