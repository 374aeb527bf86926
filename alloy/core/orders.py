"""
orders.py — CRM order log

Every completed payment run becomes an Order. Orders live in a JSON file in
DATA_DIR, newest first, seeded with three demo orders the first time the log
is read.

Lifecycle (forward only):
  draft → pending-approval → payment-executed → vendor-confirmed
        → in-transit → delivered → closed

Each transition is appended to statusHistory and to the auditTrail the CRM
screen renders.
"""

import json
import os
import threading
import logging
from datetime import datetime, date

from alloy.core.errors import ValidationError
from alloy.core.paths import DATA_DIR
from alloy.core.procurement import unique_vendors

log = logging.getLogger("alloy.orders")

ORDERS_FILE = os.path.join(DATA_DIR, "orders.json")

LIFECYCLE = (
    "draft",
    "pending-approval",
    "payment-executed",
    "vendor-confirmed",
    "in-transit",
    "delivered",
    "closed",
)
STATUSES = ("completed", "pending", "failed")

_lock = threading.Lock()


# ─── Seed data ───────────────────────────────────────────────────────────────

def _seed_orders() -> list:
    return [
        {
            "id": "ORD-003",
            "date": "2025-10-22",
            "vendor": "Global Components",
            "amount": 3420.50,
            "status": "completed",
            "lifecycleState": "in-transit",
            "transactionHash": "0x7b2e9d4f1a3c5e8b6d0f2a4c6e8b0d2f4a6c8e0b2d4f6a8c0e2b4d6f8a0c2e4b",
            "items": ["Stepper Motor NEMA 17", "Motor Driver Board"],
            "documents": {"po": "PO-29847561.pdf", "invoice": "INV-GC-1092.pdf",
                          "specs": "specs-ORD-003.pdf", "chatTranscript": None},
            "auditTrail": [
                {"timestamp": "2025-10-22T09:12:00", "event": "PO Created",
                 "details": "Purchase order generated from procurement plan"},
                {"timestamp": "2025-10-22T09:40:00", "event": "Payment Executed",
                 "details": "USDC transfer confirmed on-chain"},
                {"timestamp": "2025-10-23T14:05:00", "event": "Vendor Confirmed",
                 "details": "Global Components acknowledged order"},
                {"timestamp": "2025-10-25T08:30:00", "event": "Shipped",
                 "details": "Tracking number issued"},
            ],
            "statusHistory": [],
        },
        {
            "id": "ORD-002",
            "date": "2025-10-15",
            "vendor": "TechParts Supply",
            "amount": 1250.00,
            "status": "completed",
            "lifecycleState": "delivered",
            "transactionHash": "0x3f8a1c6e9b2d5f0a7c4e1b8d3f6a9c2e5b0d7f4a1c8e3b6d9f2a5c0e7b4d1f8a",
            "items": ["Aluminum Extrusion 2020"],
            "documents": {"po": "PO-28310452.pdf", "invoice": "INV-TP-0871.pdf",
                          "specs": None, "chatTranscript": None},
            "auditTrail": [
                {"timestamp": "2025-10-15T11:00:00", "event": "PO Created",
                 "details": "Purchase order generated from procurement plan"},
                {"timestamp": "2025-10-15T11:20:00", "event": "Payment Executed",
                 "details": "USDC transfer confirmed on-chain"},
                {"timestamp": "2025-10-20T16:45:00", "event": "Delivered",
                 "details": "Received at loading dock"},
            ],
            "statusHistory": [],
        },
        {
            "id": "ORD-001",
            "date": "2025-10-08",
            "vendor": "Acme Motors Inc.",
            "amount": 2850.00,
            "status": "completed",
            "lifecycleState": "closed",
            "transactionHash": "0x9c4e7a2f5b8d1e4a7c0f3b6e9d2a5c8f1b4e7d0a3c6f9b2e5d8a1c4f7b0e3d6a",
            "items": ["BLDC Motor 24V", "Motor Mount Bracket"],
            "documents": {"po": "PO-27598213.pdf", "invoice": "INV-AM-5531.pdf",
                          "specs": "specs-ORD-001.pdf", "chatTranscript": "chat-ORD-001.txt"},
            "auditTrail": [
                {"timestamp": "2025-10-08T10:00:00", "event": "PO Created",
                 "details": "Purchase order generated from procurement plan"},
                {"timestamp": "2025-10-08T10:15:00", "event": "Payment Executed",
                 "details": "USDC transfer confirmed on-chain"},
                {"timestamp": "2025-10-14T09:00:00", "event": "Delivered",
                 "details": "All items received and inspected"},
                {"timestamp": "2025-10-16T17:30:00", "event": "Closed",
                 "details": "Invoice reconciled"},
            ],
            "statusHistory": [],
        },
    ]


# ─── Storage ─────────────────────────────────────────────────────────────────

def _load() -> list:
    try:
        with open(ORDERS_FILE) as f:
            return json.load(f)
    except FileNotFoundError:
        orders = _seed_orders()
        _save(orders)
        log.info("Seeded order log with %d demo orders", len(orders))
        return orders
    except json.JSONDecodeError as e:
        log.error("Order log %s is corrupt: %s", ORDERS_FILE, e)
        raise


def _save(orders: list):
    os.makedirs(os.path.dirname(ORDERS_FILE), exist_ok=True)
    tmp = ORDERS_FILE + ".tmp"
    with open(tmp, "w") as f:
        json.dump(orders, f, indent=2, default=str)
    os.replace(tmp, ORDERS_FILE)


# ─── Public API ──────────────────────────────────────────────────────────────

def list_orders() -> list:
    with _lock:
        return _load()


def get_order(order_id: str):
    for o in list_orders():
        if o["id"] == order_id:
            return o
    return None


def search_orders(query: str = "") -> list:
    """Case-insensitive match on order id or vendor name."""
    orders = list_orders()
    q = (query or "").strip().lower()
    if not q:
        return orders
    return [o for o in orders if q in o["id"].lower() or q in o["vendor"].lower()]


def next_order_id(orders: list) -> str:
    return f"ORD-{len(orders) + 1:03d}"


def create_order(plan: list, transaction_hash: str, audit_trail: list = None,
                 status: str = "completed", documents: dict = None) -> dict:
    """Record a completed payment run and return the new order."""
    if status not in STATUSES:
        raise ValidationError(f"Unknown order status: {status}")
    vendors = unique_vendors(plan)
    with _lock:
        orders = _load()
        order = {
            "id": next_order_id(orders),
            "date": date.today().isoformat(),
            "vendor": vendors[0] if len(vendors) == 1 else "Multiple Vendors",
            "amount": round(sum(i.get("totalCost", 0) for i in plan), 2),
            "status": status,
            "lifecycleState": "payment-executed",
            "transactionHash": transaction_hash,
            "items": [i.get("partName") for i in plan],
            "documents": documents or {"po": None, "invoice": None,
                                       "specs": None, "chatTranscript": None},
            "auditTrail": list(audit_trail or []),
            "statusHistory": [],
        }
        orders.insert(0, order)
        _save(orders)
    log.info("Order %s logged: %s $%.2f", order["id"], order["vendor"], order["amount"],
             extra={"order_id": order["id"], "vendor": order["vendor"]})
    return order


def _transition(order: dict, new_state: str, actor: str = "system", notes: str = ""):
    """Move an order forward in its lifecycle. Mutates and returns the order."""
    if new_state not in LIFECYCLE:
        raise ValidationError(f"Unknown lifecycle state: {new_state}")
    old_state = order.get("lifecycleState", "draft")
    if LIFECYCLE.index(new_state) <= LIFECYCLE.index(old_state):
        raise ValidationError(f"Cannot move order {order['id']} from {old_state} to {new_state}")

    now = datetime.now().isoformat(timespec="seconds")
    order["lifecycleState"] = new_state
    entry = {"from": old_state, "to": new_state, "timestamp": now, "actor": actor}
    if notes:
        entry["notes"] = notes
    order.setdefault("statusHistory", []).append(entry)
    order.setdefault("auditTrail", []).append({
        "timestamp": now,
        "event": new_state.replace("-", " ").title(),
        "details": notes or f"Status changed by {actor}",
    })
    return order


def update_lifecycle(order_id: str, new_state: str, actor: str = "system",
                     notes: str = "") -> dict:
    with _lock:
        orders = _load()
        for order in orders:
            if order["id"] == order_id:
                _transition(order, new_state, actor, notes)
                _save(orders)
                log.info("Order %s → %s", order_id, new_state, extra={"order_id": order_id})
                return order
    raise ValidationError(f"Order not found: {order_id}")


def crm_metrics(orders: list = None) -> dict:
    if orders is None:
        orders = list_orders()
    total = sum(o.get("amount", 0) for o in orders)
    completed = sum(1 for o in orders if o.get("status") == "completed")
    by_vendor = {}
    for o in orders:
        v = by_vendor.setdefault(o["vendor"], {"orders": 0, "spend": 0.0})
        v["orders"] += 1
        v["spend"] = round(v["spend"] + o.get("amount", 0), 2)
    return {
        "orderCount": len(orders),
        "totalSpend": round(total, 2),
        "avgOrderSize": round(total / len(orders), 2) if orders else 0,
        "successRate": round(completed / len(orders) * 100) if orders else 0,
        "vendors": by_vendor,
    }
