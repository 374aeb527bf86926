"""
llm.py — Claude Messages API client shared by every agent.

All model traffic goes through post_messages(): a plain requests POST to the
Messages API. Agents build a prompt, call call_claude(), then hand the text to
parse_json_response() which strips markdown fences before json.loads.

Failures surface as LLMError (with the HTTP status when there is one) or
ResponseParseError, passed through friendly_error() so the flag-controlled
user-facing messages apply at this boundary.
"""

import json
import os
import logging

import requests

from alloy.core.errors import LLMError, ResponseParseError, friendly_error
from alloy.core.retry import with_retry
from alloy.core.secrets import require_anthropic_key

log = logging.getLogger("alloy.llm")

# ─── Configuration ───────────────────────────────────────────────────────────

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-5"
REQUEST_TIMEOUT = 120


def model_name() -> str:
    return os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL)


# ─── Transport ───────────────────────────────────────────────────────────────

def post_messages(payload: dict, beta: str = None, timeout: int = REQUEST_TIMEOUT) -> dict:
    """POST a Messages API request and return the decoded JSON body."""
    key = require_anthropic_key()
    headers = {
        "x-api-key": key,
        "anthropic-version": API_VERSION,
        "content-type": "application/json",
    }
    if beta:
        headers["anthropic-beta"] = beta
    payload = dict(payload)
    payload.setdefault("model", model_name())

    try:
        resp = requests.post(API_URL, headers=headers, json=payload, timeout=timeout)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise LLMError(f"Connection to Anthropic API failed: {e}") from e

    if resp.status_code >= 400:
        try:
            detail = resp.json().get("error", {}).get("message", resp.text)
        except ValueError:
            detail = resp.text
        raise LLMError(detail or f"HTTP {resp.status_code}", status=resp.status_code)

    try:
        return resp.json()
    except ValueError as e:
        raise ResponseParseError("Anthropic API returned a non-JSON body", raw=resp.text) from e


def first_text(data: dict) -> str:
    """Text of the first content block. Raises LLMError for any other block type."""
    content = data.get("content") or []
    if not content or content[0].get("type") != "text":
        kind = content[0].get("type") if content else "empty"
        raise LLMError(f"Unexpected response type from Claude API: {kind}")
    return content[0].get("text", "")


def call_claude(user: str, system: str = None, max_tokens: int = 4096,
                retry: bool = False) -> str:
    """One-shot prompt → response text."""
    payload = {
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": user}],
    }
    if system:
        payload["system"] = system

    def _call():
        return first_text(post_messages(payload))

    try:
        text = with_retry(_call) if retry else _call()
    except Exception as e:
        raise friendly_error(e) from e
    log.debug("Claude response: %d chars", len(text))
    return text


# ─── Response parsing ────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = (text or "").strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    for i in range(1, len(lines)):
        if lines[i].strip().startswith("```"):
            return "\n".join(lines[1:i]).strip()
    # No closing fence: drop the opening line only
    return "\n".join(lines[1:]).strip()


def parse_json_response(text: str):
    """Strip fences and decode. Raises ResponseParseError with the raw text."""
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.warning("Model returned non-JSON: %s", e)
        err = ResponseParseError(f"Failed to parse JSON response: {e}", raw=text)
        raise friendly_error(err) from e


def schema_instruction(schema: dict) -> str:
    """Suffix appended to structured-output prompts."""
    return ("\n\nIMPORTANT: Return ONLY valid JSON matching this exact schema, "
            "with no markdown and no commentary:\n" + json.dumps(schema, indent=2))
