"""
secrets.py — API keys and credentials

Every third-party credential Alloy reads is declared once in _REGISTRY and
fetched through get_key(). Values come from the environment on each call,
so tests and long-running workers pick up changes without a restart.

  anthropic       ANTHROPIC_API_KEY     extraction, estimates, sourcing, Locus tool calls
  locus           LOCUS_API_KEY         bearer token for the Locus MCP server
  mailjet_key     MAILJET_API_KEY       Mailjet public key
  mailjet_secret  MAILJET_SECRET_KEY    Mailjet private key
  mailjet_sender  MAILJET_SENDER_EMAIL  verified sender for RFQ email
  firecrawl       FIRECRAWL_API_KEY     vendor website scraping (optional)

Sensitive values never leave this module unmasked: the admin status report
only says whether they are set.
"""

import logging
import os
from collections import namedtuple

from alloy.core.errors import ConfigError

log = logging.getLogger("alloy.secrets")

Secret = namedtuple("Secret", "env desc used_by required sensitive")

_REGISTRY = {
    "anthropic": Secret("ANTHROPIC_API_KEY", "Claude API key",
                        ("file_processor", "bom_estimator", "vendor_sourcing", "payment"),
                        True, True),
    "locus": Secret("LOCUS_API_KEY", "Locus MCP bearer token", ("payment",), False, True),
    "mailjet_key": Secret("MAILJET_API_KEY", "Mailjet API key", ("email",), False, False),
    "mailjet_secret": Secret("MAILJET_SECRET_KEY", "Mailjet secret key", ("email",), False, True),
    "mailjet_sender": Secret("MAILJET_SENDER_EMAIL", "Verified sender mailbox", ("email",),
                             False, False),
    "firecrawl": Secret("FIRECRAWL_API_KEY", "Firecrawl scrape API", ("vendor_research",),
                        False, True),
}


def get_key(name: str) -> str:
    """Value of a registered secret, or "" when unset or unknown."""
    secret = _REGISTRY.get(name)
    if secret is None:
        log.warning("Unknown secret requested: %s", name)
        return ""
    return os.environ.get(secret.env, "").strip()


def require_anthropic_key() -> str:
    key = get_key("anthropic")
    if not key:
        raise ConfigError("ANTHROPIC_API_KEY environment variable is not set")
    if not key.startswith("sk-"):
        raise ConfigError("ANTHROPIC_API_KEY appears to be invalid (should start with sk-)")
    return key


def mask(value: str) -> str:
    """First few characters only, for log lines."""
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return f"{value[:4]}****"
    return f"{value[:8]}****({len(value)} chars)"


def _describe(name: str, secret: Secret) -> dict:
    value = get_key(name)
    if secret.sensitive:
        shown = "set" if value else "not set"
    else:
        shown = mask(value)
    return {
        "set": bool(value),
        "env": secret.env,
        "desc": secret.desc,
        "masked": shown,
        "required": secret.required,
        "agents": list(secret.used_by),
    }


def validate_all() -> dict:
    """Presence report for every registered secret, with warnings for missing required ones."""
    described = {name: _describe(name, s) for name, s in _REGISTRY.items()}
    configured = sum(1 for d in described.values() if d["set"])
    return {
        "secrets": described,
        "total": len(described),
        "set": configured,
        "missing": len(described) - configured,
        "warnings": [f"REQUIRED secret missing: {d['env']} ({d['desc']})"
                     for d in described.values() if d["required"] and not d["set"]],
    }


def startup_check() -> dict:
    report = validate_all()
    log.info("Secrets: %d/%d configured", report["set"], report["total"])
    for warning in report["warnings"]:
        log.warning(warning)
    usable = sorted({agent for d in report["secrets"].values() if d["set"]
                     for agent in d["agents"]})
    if usable:
        log.info("Credentials available for: %s", ", ".join(usable))
    return report
