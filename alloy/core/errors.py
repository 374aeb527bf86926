"""
errors.py — Exception taxonomy and user-facing error messages.

Every external call boundary (Claude, Locus, Mailjet, Firecrawl) raises one of
these. The HTTP layer turns ValidationError into a 400 and anything else into
a 500 with the exception text as the message.
"""

import json
import logging

import requests

from alloy.core import flags

log = logging.getLogger("alloy.errors")


class ProcurementError(Exception):
    """Base class for all Alloy failures."""


class ConfigError(ProcurementError):
    """A required key or setting is missing or malformed."""


class ValidationError(ProcurementError):
    """Bad request input."""


class LLMError(ProcurementError):
    """The model API returned an error status or could not be reached."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class ResponseParseError(ProcurementError):
    """Model output was not the JSON we asked for."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class VendorSearchError(ProcurementError):
    pass


class PaymentError(ProcurementError):
    pass


class EmailDeliveryError(ProcurementError):
    pass


# ─── User-facing messages ───────────────────────────────────────────────────

_STATUS_MESSAGES = {
    401: "Invalid Anthropic API key. Please check your .env file and ensure "
         "ANTHROPIC_API_KEY is set correctly.",
    429: "Rate limit exceeded. The API is being called too frequently. "
         "Please wait a moment and try again.",
    500: "Anthropic API server error. The service is temporarily unavailable. "
         "Please try again in a few moments.",
    502: "Anthropic API gateway error. The service is experiencing issues. "
         "Please try again later.",
    503: "Anthropic API is temporarily unavailable. The service is overloaded "
         "or under maintenance. Please try again later.",
}

NETWORK_MESSAGE = ("Network error: Unable to connect to Anthropic API. "
                   "Please check your internet connection.")
PARSE_MESSAGE = ("Failed to parse API response. The response was not valid JSON. "
                 "This may indicate an API issue.")


def friendly_message(exc: Exception) -> str:
    """Map a failure to the message shown to the user."""
    if isinstance(exc, LLMError) and exc.status is not None:
        if exc.status in _STATUS_MESSAGES:
            return _STATUS_MESSAGES[exc.status]
        if exc.status == 400:
            return f"Invalid request: {exc}. Please check your input parameters."
        return f"Anthropic API error ({exc.status}): {exc}"
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return NETWORK_MESSAGE
    if isinstance(exc, LLMError) and exc.status is None:
        return NETWORK_MESSAGE
    if isinstance(exc, (json.JSONDecodeError, ResponseParseError)):
        return PARSE_MESSAGE
    return str(exc) or exc.__class__.__name__


def friendly_error(exc: Exception) -> Exception:
    """Return the exception to raise at an API boundary.

    With USE_ENHANCED_ERROR_HANDLING off the original exception comes back
    unchanged. With it on, the message is rewritten but the class (and the
    HTTP status on LLMError) is preserved.
    """
    if not flags.enabled("USE_ENHANCED_ERROR_HANDLING"):
        return exc
    msg = friendly_message(exc)
    log.error("API error: %s -> %s", exc, msg)
    if isinstance(exc, LLMError):
        return LLMError(msg, status=exc.status)
    if isinstance(exc, ResponseParseError):
        return ResponseParseError(msg, raw=exc.raw)
    if isinstance(exc, ProcurementError):
        return exc.__class__(msg)
    return ProcurementError(msg)
