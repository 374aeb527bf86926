"""
payment_executor.py — USDC Payment Execution via Locus

Pays for an approved procurement plan through the Locus MCP server. Claude
drives the Locus tools through the Messages API MCP connector, one tool per
request:

  1. get_payment_context  — budget status, balance, whitelisted contacts
  2. send_to_address      — USDC transfer, returns a transaction hash

Test mode: every run sends TEST_AMOUNT_PER_VENDOR per unique vendor to the
test wallet instead of paying the vendors themselves.

LOCUS_SIMULATE=true skips the network entirely and returns a deterministic
simulated hash (simulated: true) so the rest of the pipeline can be demoed
without a Locus account.

Payments are never retried: a timeout after the transfer was submitted could
otherwise pay twice.
"""

import hashlib
import json
import re
import logging

from alloy.core import flags
from alloy.core.errors import ConfigError, PaymentError, ProcurementError
from alloy.core.llm import post_messages
from alloy.core.procurement import unique_vendors
from alloy.core.secrets import get_key, mask

log = logging.getLogger("alloy.payment")

LOCUS_MCP_URL = "https://mcp.paywithlocus.com/mcp"
MCP_BETA = "mcp-client-2025-04-04"
TEST_WALLET_ADDRESS = "0x8527a8f999edac78f3bd40f706a1554a0e602858"
TEST_AMOUNT_PER_VENDOR = 0.01
PAYMENT_TIMEOUT = 180

TX_HASH_RE = re.compile(r"0x[a-fA-F0-9]{64}")
_HASH_KEYS = ("transactionHash", "txHash", "transaction_id")


# ─── MCP plumbing ────────────────────────────────────────────────────────────

def _call_locus_tool(tool: str, prompt: str) -> tuple:
    """Ask Claude to call exactly one Locus tool.

    Returns (final_text, tool_result). tool_result is the decoded JSON of the
    tool output when it is JSON, else its text, else None.
    """
    payload = {
        "max_tokens": 2048,
        "messages": [{"role": "user", "content": prompt}],
        "mcp_servers": [{
            "type": "url",
            "url": LOCUS_MCP_URL,
            "name": "locus",
            "authorization_token": get_key("locus"),
            "tool_configuration": {"enabled": True, "allowed_tools": [tool]},
        }],
    }
    data = post_messages(payload, beta=MCP_BETA, timeout=PAYMENT_TIMEOUT)

    texts = []
    tool_result = None
    for block in data.get("content") or []:
        kind = block.get("type")
        if kind == "text":
            texts.append(block.get("text", ""))
        elif kind == "mcp_tool_result":
            parts = block.get("content") or []
            raw = "".join(p.get("text", "") for p in parts if isinstance(p, dict)) \
                if isinstance(parts, list) else str(parts)
            if block.get("is_error"):
                raise PaymentError(f"Locus {tool} failed: {raw}")
            try:
                tool_result = json.loads(raw)
            except ValueError:
                tool_result = raw
            log.info("Locus %s tool result: %s", tool, raw[:500])
    return "\n".join(texts).strip(), tool_result


def _hash_from(value):
    if isinstance(value, str):
        m = TX_HASH_RE.search(value)
        return m.group(0) if m else None
    if isinstance(value, dict):
        for key in _HASH_KEYS:
            if value.get(key):
                return str(value[key])
        for nested in value.values():
            if isinstance(nested, dict):
                found = _hash_from(nested)
                if found:
                    return found
    return None


def extract_transaction_hash(result, tool_result=None):
    """Best transaction id we can find, or None.

    Order: a 0x-prefixed 64-hex hash or known key in the final result, then in
    the tool result, then the raw result text itself.
    """
    found = _hash_from(result) or _hash_from(tool_result)
    if found:
        return found
    if isinstance(tool_result, str) and tool_result.strip():
        return tool_result.strip()
    if isinstance(result, str) and result.strip():
        return result.strip()
    if result:
        return str(result)
    return None


# ─── Locus operations ────────────────────────────────────────────────────────

def get_payment_context():
    text, tool_result = _call_locus_tool(
        "get_payment_context",
        "Use the get_payment_context tool to get the current payment context including "
        "budget status, available balance, and whitelisted contacts. Return the full response.",
    )
    return tool_result if tool_result is not None else text


def send_payment_to_address(address: str, amount: float, memo: str) -> str:
    text, tool_result = _call_locus_tool(
        "send_to_address",
        f'Use the send_to_address tool to send {amount:.2f} USDC to address {address} '
        f'with memo "{memo}". Return the transaction hash from the response.',
    )
    tx_hash = extract_transaction_hash(text, tool_result)
    if not tx_hash:
        raise PaymentError("No transaction hash returned from payment")
    return tx_hash


def simulated_hash(plan: list) -> str:
    digest = hashlib.sha256(json.dumps(plan, sort_keys=True, default=str).encode()).hexdigest()
    return "0x" + digest


def payment_memo(vendor_count: int) -> str:
    return f"Test payment for {vendor_count} vendor(s) from procurement order"


def execute_payments(plan: list) -> dict:
    """Pay for an approved plan. Returns {success, transactionHashes, ...}.

    Missing keys raise ConfigError before anything is sent. Failures after
    that point come back as success: False with the message in errors.
    """
    vendors = unique_vendors(plan)
    amount = round(len(vendors) * TEST_AMOUNT_PER_VENDOR, 2)

    if flags.enabled("LOCUS_SIMULATE"):
        tx = simulated_hash(plan)
        log.info("Simulated payment of $%.2f for %d vendors: %s", amount, len(vendors), tx)
        return {"success": True, "transactionHashes": [tx], "simulated": True,
                "paymentContext": None}

    if not get_key("locus"):
        raise ConfigError("LOCUS_API_KEY environment variable is not set")
    if not get_key("anthropic"):
        raise ConfigError("ANTHROPIC_API_KEY environment variable is not set")

    log.info("Starting Locus payment: %d items, %d vendors (key %s)",
             len(plan), len(vendors), mask(get_key("locus")))
    try:
        context = get_payment_context()
        log.info("Sending $%.2f (%d vendors x $%.2f) to %s",
                 amount, len(vendors), TEST_AMOUNT_PER_VENDOR, TEST_WALLET_ADDRESS)
        tx = send_payment_to_address(TEST_WALLET_ADDRESS, amount, payment_memo(len(vendors)))
    except ProcurementError as e:
        log.error("Locus payment execution failed: %s", e)
        return {"success": False, "transactionHashes": [], "errors": [str(e)],
                "simulated": False}

    log.info("Payment successful: %s", tx)
    return {"success": True, "transactionHashes": [tx], "simulated": False,
            "paymentContext": context}
