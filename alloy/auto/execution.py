"""
execution.py — Approval & Payment Execution Pipeline

Runs after the user has reviewed the procurement plan and ticked all three
approval confirmations. Linear, no branching; a failure at any step stops
the run and nothing is written to the order log.

Steps:
  1. Fetch Policy Group                   spend total vs. policy limit
  2. Validate Vendors Against Whitelist   Locus whitelist flags from sourcing
  3. Generate Session Key                 one-time key scoping this run
  4. Execute USDC Transfers               payment_executor.execute_payments
  5. Receive Transaction Hash
  6. Log to CRM                           orders.create_order

Every step goes to a Trace (visible at /api/admin/traces) and to the audit
trail stored on the resulting order.
"""

import secrets
import logging
from datetime import datetime

from alloy.agents.payment_executor import TEST_AMOUNT_PER_VENDOR, execute_payments
from alloy.api.trace import Trace
from alloy.core import orders
from alloy.core.errors import ConfigError, ValidationError
from alloy.core.procurement import POLICY_LIMIT, approval_total, unique_vendors
from alloy.forms.purchase_order import build_purchase_order

log = logging.getLogger("alloy.execution")

APPROVAL_CONFIRMATIONS = ("poReviewed", "authorizePayment", "vendorsVerified")

EXECUTION_STEPS = (
    "Fetch Policy Group",
    "Validate Vendors Against Whitelist",
    "Generate Session Key",
    "Execute USDC Transfers",
    "Receive Transaction Hash",
    "Log to CRM",
)


def check_confirmations(confirmations: dict):
    missing = [k for k in APPROVAL_CONFIRMATIONS if not (confirmations or {}).get(k)]
    if missing:
        raise ValidationError("All approval confirmations are required: " + ", ".join(missing))


def _whitelist_status(plan: list, sourcing: dict) -> dict:
    """vendor name → locusWhitelist flag, for vendors the sourcing data knows."""
    flags_by_vendor = {}
    for search in (sourcing or {}).get("componentSearches") or []:
        for v in search.get("vendors") or []:
            flags_by_vendor[v.get("name")] = bool(v.get("locusWhitelist"))
    return {name: flags_by_vendor.get(name) for name in unique_vendors(plan)}


def approve_and_execute(plan: list, confirmations: dict, sourcing: dict = None) -> dict:
    """Run the six execution steps for an approved plan.

    Returns {success, steps, traceId, ...}. On success also the new order
    and transaction hash; on failure the error and the index of the failed step.
    """
    if not plan:
        raise ValidationError("Procurement plan is empty")
    check_confirmations(confirmations)

    vendors = unique_vendors(plan)
    total = approval_total(plan)
    test_amount = round(len(vendors) * TEST_AMOUNT_PER_VENDOR, 2)
    trace = Trace("payment_execution", items=len(plan), vendors=len(vendors), total=total)
    audit = []
    steps = []

    def record(index, details, status="ok"):
        now = datetime.now().isoformat(timespec="seconds")
        steps.append({"step": EXECUTION_STEPS[index], "status": status,
                      "details": details, "timestamp": now})
        if status == "ok":
            trace.step(EXECUTION_STEPS[index], details=details)
            audit.append({"timestamp": now, "event": EXECUTION_STEPS[index], "details": details})

    def failed(index, message):
        record(index, message, status="failed")
        trace.fail(f"{EXECUTION_STEPS[index]}: {message}")
        return {"success": False, "error": message, "failedStep": index,
                "steps": steps, "traceId": trace.id, "testPaymentAmount": test_amount}

    audit.append({"timestamp": datetime.now().isoformat(timespec="seconds"),
                  "event": "PO Approved",
                  "details": f"{len(plan)} items from {len(vendors)} vendors, total ${total:,.2f}"})

    # 1. Policy group
    policy = f"Policy limit ${POLICY_LIMIT:,}; order total ${total:,.2f}"
    if total > POLICY_LIMIT:
        policy += " (exceeds limit, additional approval recorded)"
        trace.warn("Order exceeds policy limit", total=total)
    record(0, policy)

    # 2. Whitelist
    status = _whitelist_status(plan, sourcing)
    unlisted = [name for name, ok in status.items() if ok is False]
    unknown = [name for name, ok in status.items() if ok is None]
    details = f"{len(vendors)} vendors validated"
    if unknown:
        details += f" ({len(unknown)} without sourcing data)"
    if unlisted:
        details += f"; not on Locus whitelist: {', '.join(unlisted)}"
        trace.warn("Vendors not on Locus whitelist", vendors=unlisted)
        audit.append({"timestamp": datetime.now().isoformat(timespec="seconds"),
                      "event": "Whitelist Warning",
                      "details": "Not on Locus whitelist: " + ", ".join(unlisted)})
    record(1, details)

    # 3. Session key
    session_key = "sk_sess_" + secrets.token_hex(8)
    record(2, f"Session key {session_key[:12]}… issued for ${test_amount:.2f}")

    # 4. Transfers
    try:
        result = execute_payments(plan)
    except ConfigError as e:
        return failed(3, str(e))
    if not result.get("success"):
        return failed(3, ", ".join(result.get("errors") or []) or "Payment execution failed")
    mode = "simulated" if result.get("simulated") else "on-chain"
    record(3, f"${test_amount:.2f} USDC sent ({mode})")

    # 5. Hash
    hashes = result.get("transactionHashes") or []
    if not hashes:
        return failed(4, "No transaction hashes returned")
    tx_hash = hashes[0]
    record(4, tx_hash)

    # 6. CRM
    po = build_purchase_order(plan)
    order = orders.create_order(plan, tx_hash, audit_trail=audit,
                                documents={"po": f"{po['poNumber']}.pdf", "invoice": None,
                                           "specs": None, "chatTranscript": None})
    record(5, f"Order {order['id']} logged")
    trace.ok("Execution complete", order_id=order["id"], tx=tx_hash)
    log.info("Execution complete: order %s, tx %s", order["id"], tx_hash,
             extra={"order_id": order["id"], "trace_id": trace.id})

    return {
        "success": True,
        "order": order,
        "transactionHash": tx_hash,
        "simulated": bool(result.get("simulated")),
        "poNumber": po["poNumber"],
        "steps": steps,
        "traceId": trace.id,
        "testPaymentAmount": test_amount,
        "totalAmount": total,
    }
