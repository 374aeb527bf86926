"""
vendor_sourcing.py — Vendor Sourcing Agent

For each component in the request, asks Claude for 3-5 candidate vendors with
unit price, MOQ, lead time, shipping, reliability and quality scores, Locus
whitelist status, datasheet attributes, risks, wallet address and contact
email. Components are searched one at a time, in order; the first failure
aborts the run.

Variants (by flag):
  basic        one prompt per component, example JSON inline
  structured   USE_STRUCTURED_OUTPUTS=true — schema suffix, JSON-only, retried
  research     USE_FIRECRAWL=true — real vendor websites scraped first and fed
               into the prompt (see vendor_research.py); falls back to the
               structured prompt with no context if research finds nothing

Pipeline position:
  Upload → Priorities → SOURCING → RFQ → Plan → Approval
"""

import logging

from alloy.core import flags
from alloy.core.errors import ProcurementError, ValidationError, VendorSearchError
from alloy.core.llm import call_claude, parse_json_response, schema_instruction
from alloy.core.paths import load_context
from alloy.core.procurement import parse_int
from alloy.agents import vendor_research

log = logging.getLogger("alloy.sourcing")

MAX_TOKENS = 8192
LEAD_TIME_TARGET_DAYS = 7

PRIORITY_LABELS = (
    ("quality", "High Quality & Reliability"),
    ("speed", "Fast Delivery"),
    ("cost", "Cost Optimization"),
)

VENDOR_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "pricePerUnit": {"type": "number"},
        "moq": {"type": "number"},
        "leadTime": {"type": "number", "description": "Days"},
        "shipping": {"type": "number"},
        "reliability": {"type": "number", "description": "Percent, 80-99"},
        "qualityScore": {"type": "number", "description": "Percent, 85-98"},
        "locusWhitelist": {"type": "boolean"},
        "datasheetAttrs": {"type": "array", "items": {"type": "string"}},
        "risks": {"type": "string"},
        "walletAddress": {"type": "string", "description": "0x... Base Sepolia address"},
        "email": {"type": "string"},
        "websiteUrl": {"type": "string"},
        "emailExtracted": {"type": "boolean"},
    },
    "required": ["name", "pricePerUnit", "moq", "leadTime", "shipping", "reliability",
                 "qualityScore", "locusWhitelist", "datasheetAttrs", "risks"],
}

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "componentName": {"type": "string"},
        "quantity": {"type": "number"},
        "specifications": {"type": "string"},
        "vendors": {"type": "array", "items": VENDOR_SCHEMA},
        "totalCostRange": {
            "type": "object",
            "properties": {"min": {"type": "number"}, "max": {"type": "number"}},
            "required": ["min", "max"],
        },
        "reasoning": {"type": "string"},
    },
    "required": ["componentName", "quantity", "specifications", "vendors",
                 "totalCostRange", "reasoning"],
}

_SYSTEM = """You are a vendor sourcing agent for an autonomous procurement system.
{context}
Find 3-5 real vendors for a specific engineering component, with realistic
pricing, lead times and vendor information.{scraped}
Respond with valid JSON matching the schema provided."""

_REQUIREMENTS = """REQUIREMENTS:
1. Find 3-5 realistic vendors that could supply this component.
2. For each vendor give: company name, price per unit (USD), minimum order
   quantity, lead time in days, shipping cost (USD), reliability (80-99%),
   quality score (85-98%), Locus whitelist status (true for established
   vendors), 3-5 key datasheet attributes, risk notes, a Base Sepolia wallet
   address (0x...) and a business email address.
3. Weigh the priorities: quality favours higher quality and reliability,
   fast delivery favours shorter lead times, cost optimization favours lower
   prices. List the best vendor for these priorities first.
4. Keep total cost (price x quantity + shipping) within the spending limit
   when possible.
5. Explain in "reasoning" how the vendors were chosen and the trade-offs."""

_EXAMPLE = """Return JSON with this structure:
{{
  "componentName": "{name}",
  "quantity": {quantity},
  "specifications": "...",
  "vendors": [
    {{"name": "Vendor Name", "pricePerUnit": 14.50, "moq": 25, "leadTime": 7,
      "shipping": 35, "reliability": 98, "qualityScore": 95, "locusWhitelist": true,
      "datasheetAttrs": ["Spec 1", "Spec 2", "Spec 3"], "risks": "None identified",
      "walletAddress": "0x...", "email": "sales@vendorname.com"}}
  ],
  "totalCostRange": {{"min": 1200, "max": 1800}},
  "reasoning": "..."
}}"""

_RESEARCH_RULES = """When real vendor data is given above: use those vendor names and
website URLs, use the extracted emails and set emailExtracted true for them,
and say in the reasoning that scraped data was used. Otherwise set
emailExtracted false."""


# ─── Request handling ────────────────────────────────────────────────────────

def priority_text(priorities: dict) -> str:
    labels = [label for key, label in PRIORITY_LABELS if (priorities or {}).get(key)]
    return ", ".join(labels) or "None specified"


def validate_sourcing_request(data: dict) -> dict:
    """Normalize the request body. Raises ValidationError for unusable input."""
    data = data or {}
    components = data.get("components") or []
    if not isinstance(components, list) or not components:
        raise ValidationError("No components provided")
    try:
        limit = float(data.get("spendingLimit") or 0)
    except (TypeError, ValueError):
        limit = 0
    if limit <= 0:
        raise ValidationError("Invalid spending limit")

    normalized = []
    for c in components:
        if not isinstance(c, dict) or not c.get("name"):
            raise ValidationError("Each component needs a name")
        normalized.append({
            "name": c["name"],
            "quantity": max(1, parse_int(c.get("quantity"), 1)),
            "specifications": c.get("specifications") or "",
        })
    priorities = data.get("priorities") or {}
    return {
        "components": normalized,
        "spendingLimit": limit,
        "priorities": {k: bool(priorities.get(k)) for k in ("quality", "speed", "cost")},
    }


def _user_prompt(component: dict, spending_limit: float, priorities: dict,
                 scraped_context: str = "") -> str:
    parts = [
        "Find vendors for the following component:\n",
        f"Component: {component['name']}",
        f"Quantity: {component['quantity']}",
        f"Specifications: {component['specifications']}",
        f"Spending Limit: ${spending_limit:g}",
        f"Priorities: {priority_text(priorities)}\n",
    ]
    if scraped_context:
        parts.append(f"REAL VENDOR DATA (use this when available):\n{scraped_context}\n")
    parts.append(_REQUIREMENTS)
    return "\n".join(parts)


def _check_result(result, component: dict) -> dict:
    if not isinstance(result, dict) or not result.get("componentName") \
            or not isinstance(result.get("vendors"), list):
        raise VendorSearchError("Invalid response structure from vendor search")
    cost_range = result.get("totalCostRange")
    if not isinstance(cost_range, dict):
        cost_range = {}
    if not ("min" in cost_range and "max" in cost_range):
        costs = [float(v.get("pricePerUnit", 0)) * component["quantity"] + float(v.get("shipping", 0))
                 for v in result["vendors"] if isinstance(v, dict)]
        cost_range.setdefault("min", min(costs) if costs else 0)
        cost_range.setdefault("max", max(costs) if costs else 0)
    result["totalCostRange"] = cost_range
    result.setdefault("quantity", component["quantity"])
    result.setdefault("specifications", component["specifications"])
    result.setdefault("reasoning", "")
    return result


def search_vendors_for_component(component: dict, spending_limit: float,
                                 priorities: dict, context: str = "") -> dict:
    """One model call → one component's vendor comparison."""
    structured = flags.enabled("USE_STRUCTURED_OUTPUTS")
    research = flags.enabled("USE_FIRECRAWL")

    scraped = []
    scraped_context = ""
    if research:
        scraped = vendor_research.research_vendors(component)
        scraped_context = vendor_research.build_scraped_context(scraped)

    system = _SYSTEM.format(
        context=f"\nContext:\n{context}\n" if context else "",
        scraped=(f"\n\nREAL VENDOR DATA FROM WEBSITES:\n{scraped_context}\n"
                 "Use this real data when available." if scraped_context else ""),
    )
    prompt = _user_prompt(component, spending_limit, priorities, scraped_context)
    if research:
        prompt += "\n\n" + _RESEARCH_RULES
    if structured or research:
        prompt += schema_instruction(SEARCH_SCHEMA)
    else:
        prompt += "\n\n" + _EXAMPLE.format(name=component["name"], quantity=component["quantity"])

    text = call_claude(prompt, system=system, max_tokens=MAX_TOKENS,
                       retry=structured or research)
    try:
        result = _check_result(parse_json_response(text), component)
    except ProcurementError as e:
        log.error("Vendor search response for %s: %s", component["name"], text[:500])
        raise VendorSearchError(f"Failed to parse vendor search response: {e}") from e

    if research:
        vendor_research.annotate_vendors(result["vendors"], scraped)
    return result


# ─── Insights ────────────────────────────────────────────────────────────────

def calculate_insights(searches: list) -> dict:
    """Headline numbers for the sourcing screen."""
    insights = {}
    with_vendors = [s for s in searches if s.get("vendors")]

    maxes = [float(s["totalCostRange"].get("max", 0)) for s in searches if s.get("totalCostRange")]
    if maxes:
        savings = round(max(maxes) - min(maxes))
        if savings > 0:
            insights["costSavings"] = savings

    if with_vendors:
        avg_lead = sum(
            sum(float(v.get("leadTime", 0)) for v in s["vendors"]) / len(s["vendors"])
            for s in with_vendors
        ) / len(with_vendors)
        if avg_lead > LEAD_TIME_TARGET_DAYS:
            insights["leadTimeOptimization"] = round(avg_lead - LEAD_TIME_TARGET_DAYS)

    conflicts = sum(1 for s in searches
                    if any(float(v.get("moq", 0)) > float(s.get("quantity", 0))
                           for v in s.get("vendors") or []))
    if conflicts:
        insights["moqConflicts"] = conflicts

    all_vendors = [v for s in searches for v in s.get("vendors") or []]
    risk = "Low"
    if all_vendors:
        avg_rel = sum(float(v.get("reliability", 0)) for v in all_vendors) / len(all_vendors)
        avg_q = sum(float(v.get("qualityScore", 0)) for v in all_vendors) / len(all_vendors)
        if avg_rel < 85 or avg_q < 85:
            risk = "High"
        elif avg_rel < 90 or avg_q < 90:
            risk = "Medium"
    insights["vendorRisks"] = risk
    return insights


# ─── Entry point ─────────────────────────────────────────────────────────────

def source_vendors(request: dict) -> dict:
    """Run vendor search for every component, sequentially."""
    req = validate_sourcing_request(request)
    context = load_context()
    components = req["components"]
    n = len(components)

    searches = []
    for i, component in enumerate(components, 1):
        log.info("[%d/%d] Searching vendors for: %s", i, n, component["name"],
                 extra={"component": component["name"]})
        try:
            result = search_vendors_for_component(
                component, req["spendingLimit"], req["priorities"], context)
        except ProcurementError:
            log.error("[%d/%d] Vendor search failed for %s", i, n, component["name"])
            raise
        log.info("[%d/%d] Found %d vendors for %s", i, n, len(result["vendors"]), component["name"])
        searches.append(result)

    return {
        "componentSearches": searches,
        "totalEstimatedCost": {
            "min": sum(float(s["totalCostRange"]["min"]) for s in searches),
            "max": sum(float(s["totalCostRange"]["max"]) for s in searches),
        },
        "insights": calculate_insights(searches),
    }
