"""
procurement.py — Plan arithmetic for the Priorities, Sourcing, Plan and
Approval steps.

Pure functions over plain dicts. No I/O, no model calls.

Pipeline position:
  Upload → PRIORITIES (spending range) → Sourcing (vendor pick)
         → PLAN (items, edits, summary) → APPROVAL (totals) → Payment
"""

import re
import logging

log = logging.getLogger("alloy.procurement")

# ─── Constants ───────────────────────────────────────────────────────────────

PRIORITY_MULTIPLIERS = {
    "quality": 1.25,
    "speed": 1.15,
    "cost": 0.80,
}
DEFAULT_SPENDING_LIMIT = 2000
POLICY_LIMIT = 5000
PO_SHIPPING = 45.0


def _round(x: float) -> int:
    # Half-up like Math.round, not banker's rounding
    return int(x + 0.5) if x >= 0 else -int(-x + 0.5)


def parse_int(value, default: int = 1) -> int:
    """Leading integer of a value ("12 pcs" → 12). Falls back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    m = re.match(r"\s*([+-]?\d+)", str(value or ""))
    return int(m.group(1)) if m else default


def extract_quantity(text) -> int:
    """First run of digits anywhere in the string, else 1. Never below 1."""
    m = re.search(r"\d+", str(text or ""))
    return max(1, int(m.group(0))) if m else 1


# ─── Priorities & spending range ─────────────────────────────────────────────

def cost_multiplier(priorities: dict) -> float:
    mult = 1.0
    for name, factor in PRIORITY_MULTIPLIERS.items():
        if (priorities or {}).get(name):
            mult *= factor
    return mult


def adjusted_ranges(bom_estimate: dict, components: list, priorities: dict) -> dict:
    """Scale the BOM estimate by priority multiplier and edited quantities.

    Returns {"items": [{componentName, quantity, min, max}], "totalMin", "totalMax"}.
    Components with no BOM line are left out of the totals.
    """
    if not bom_estimate:
        return {"items": [], "totalMin": 0, "totalMax": 0}

    mult = cost_multiplier(priorities)
    breakdown = {b.get("componentName"): b for b in bom_estimate.get("itemBreakdown") or []}
    items = []
    for comp in components or []:
        base = breakdown.get(comp.get("name"))
        if not base:
            continue
        base_qty = parse_int(base.get("quantity"), 1) or 1
        qty = extract_quantity(comp.get("quantity"))
        scale = mult * (qty / base_qty)
        rng = base.get("estimatedCostRange") or {}
        items.append({
            "componentName": comp.get("name"),
            "quantity": qty,
            "min": _round(float(rng.get("min", 0)) * scale),
            "max": _round(float(rng.get("max", 0)) * scale),
        })
    return {
        "items": items,
        "totalMin": sum(i["min"] for i in items),
        "totalMax": sum(i["max"] for i in items),
    }


def recommended_spending_limit(ranges: dict) -> int:
    if not ranges or not ranges.get("items"):
        return DEFAULT_SPENDING_LIMIT
    return _round((ranges["totalMin"] + ranges["totalMax"]) / 2)


def resolve_spending_limit(entered, ranges: dict) -> float:
    """The limit the user typed, or the estimated minimum if they left it blank."""
    try:
        value = float(entered)
        if value > 0:
            return value
    except (TypeError, ValueError):
        pass
    return float((ranges or {}).get("totalMin") or 0)


def spending_limit_warnings(limit: float, ranges: dict) -> list:
    warnings = []
    if limit > POLICY_LIMIT:
        warnings.append("Exceeds policy limit - requires additional approval")
    total_min = (ranges or {}).get("totalMin") or 0
    if total_min and limit < total_min:
        warnings.append(
            f"Below estimated minimum (${total_min:,}) - may limit sourcing options")
    return warnings


# ─── Component quantity edits ────────────────────────────────────────────────

def adjust_quantity(components: list, component_id, delta: int) -> list:
    out = []
    for c in components:
        if c.get("id") == component_id:
            c = dict(c, quantity=str(max(1, extract_quantity(c.get("quantity")) + delta)))
        out.append(c)
    return out


def set_quantity(components: list, component_id, value) -> list:
    """Set a quantity outright. Values below 1 are ignored."""
    try:
        qty = int(value)
    except (TypeError, ValueError):
        return components
    if qty < 1:
        return components
    return [dict(c, quantity=str(qty)) if c.get("id") == component_id else c
            for c in components]


# ─── Vendor selection ────────────────────────────────────────────────────────

def line_cost(vendor: dict, quantity) -> float:
    qty = max(1, parse_int(quantity, 1))
    return float(vendor.get("pricePerUnit", 0)) * qty + float(vendor.get("shipping", 0))


def auto_select_vendors(sourcing: dict) -> dict:
    """Pick the first (best-ranked) vendor for every component."""
    selected = {}
    for search in (sourcing or {}).get("componentSearches") or []:
        if search.get("vendors"):
            selected[search["componentName"]] = search["vendors"][0]["name"]
    return selected


def _find_vendor(search: dict, vendor_name: str):
    for v in search.get("vendors") or []:
        if v.get("name") == vendor_name:
            return v
    return None


def selected_total_cost(sourcing: dict, selected: dict) -> float:
    total = 0.0
    for search in (sourcing or {}).get("componentSearches") or []:
        vendor = _find_vendor(search, (selected or {}).get(search.get("componentName")))
        if vendor:
            total += line_cost(vendor, search.get("quantity"))
    return total


# ─── Procurement plan ────────────────────────────────────────────────────────

def build_procurement_plan(sourcing: dict, selected: dict, components: list = None) -> list:
    """One plan item per component that has a chosen vendor."""
    searches = {s.get("componentName"): s
                for s in (sourcing or {}).get("componentSearches") or []}
    if components is None:
        components = [{"name": name} for name in searches]

    plan = []
    for comp in components:
        name = comp.get("name")
        search = searches.get(name)
        if not search:
            continue
        vendor = _find_vendor(search, (selected or {}).get(name))
        if not vendor:
            continue
        qty = max(1, parse_int(search.get("quantity"), 1))
        plan.append({
            "id": f"item-{len(plan) + 1}",
            "partName": name,
            "quantity": qty,
            "specifications": comp.get("specifications") or search.get("specifications", ""),
            "vendor": vendor["name"],
            "alternativeVendors": [v["name"] for v in search["vendors"]
                                   if v.get("name") != vendor["name"]],
            "pricePerUnit": float(vendor.get("pricePerUnit", 0)),
            "leadTime": vendor.get("leadTime", 0),
            "shipping": float(vendor.get("shipping", 0)),
            "totalCost": line_cost(vendor, qty),
        })
    log.info("Procurement plan built: %d items", len(plan))
    return plan


def update_item_quantity(plan: list, item_id: str, quantity) -> list:
    """Change one item's quantity; clamps to 1 and keeps shipping in the total."""
    qty = max(1, parse_int(quantity, 1))
    out = []
    for item in plan:
        if item.get("id") == item_id:
            item = dict(item, quantity=qty,
                        totalCost=item["pricePerUnit"] * qty + item.get("shipping", 0))
        out.append(item)
    return out


def update_item_vendor(plan: list, item_id: str, vendor_name: str, sourcing: dict = None) -> list:
    """Swap an item to one of its alternative vendors.

    Price, lead time and shipping come from the sourcing data when the vendor
    is found there; otherwise only the name changes.
    """
    searches = {s.get("componentName"): s
                for s in (sourcing or {}).get("componentSearches") or []}
    out = []
    for item in plan:
        if item.get("id") == item_id:
            vendor = _find_vendor(searches.get(item["partName"], {}), vendor_name)
            names = [item["vendor"]] + list(item.get("alternativeVendors") or [])
            item = dict(item, vendor=vendor_name,
                        alternativeVendors=[n for n in names if n != vendor_name])
            if vendor:
                item["pricePerUnit"] = float(vendor.get("pricePerUnit", 0))
                item["leadTime"] = vendor.get("leadTime", 0)
                item["shipping"] = float(vendor.get("shipping", 0))
                item["totalCost"] = line_cost(vendor, item["quantity"])
        out.append(item)
    return out


def plan_summary(plan: list, sourcing: dict = None) -> dict:
    if not plan:
        return {"totalCost": 0, "totalItems": 0, "lineItems": 0, "avgLeadTime": 0,
                "uniqueVendors": 0, "bestPrice": None, "fastest": None, "lowestRisk": None}

    reliability = {}
    for search in (sourcing or {}).get("componentSearches") or []:
        for v in search.get("vendors") or []:
            reliability[v.get("name")] = v.get("reliability", 0)

    best = min(plan, key=lambda i: i["pricePerUnit"])
    fastest = min(plan, key=lambda i: i.get("leadTime") or 0)
    safest = max(plan, key=lambda i: reliability.get(i["vendor"], 0))
    return {
        "totalCost": sum(i["totalCost"] for i in plan),
        "totalItems": sum(i["quantity"] for i in plan),
        "lineItems": len(plan),
        "avgLeadTime": _round(sum(i.get("leadTime") or 0 for i in plan) / len(plan)),
        "uniqueVendors": len(unique_vendors(plan)),
        "bestPrice": {"partName": best["partName"], "vendor": best["vendor"],
                      "pricePerUnit": best["pricePerUnit"]},
        "fastest": {"partName": fastest["partName"], "vendor": fastest["vendor"],
                    "leadTime": fastest.get("leadTime")},
        "lowestRisk": {"vendor": safest["vendor"],
                       "reliability": reliability.get(safest["vendor"])},
    }


def unique_vendors(plan: list) -> list:
    """Vendor names in first-seen order."""
    seen = []
    for item in plan or []:
        if item.get("vendor") and item["vendor"] not in seen:
            seen.append(item["vendor"])
    return seen


def approval_total(plan: list) -> float:
    return sum(i.get("totalCost", 0) for i in plan or []) + PO_SHIPPING
