"""
bom_estimator.py — BOM Cost & Lead-Time Estimator

Second step. Takes the extracted components/materials and asks Claude for a
procurement cost range, lead-time range and a per-component breakdown based
on typical market pricing.

The Priorities step scales this estimate (see core/procurement.py) to
suggest a spending limit.

Structured mode (USE_STRUCTURED_OUTPUTS=true) uses a stricter JSON-only
instruction and wraps the call in retry.
"""

import logging

from alloy.core import flags
from alloy.core.llm import call_claude, parse_json_response, schema_instruction
from alloy.core.paths import load_context

log = logging.getLogger("alloy.bom")

MAX_TOKENS = 4096

# Used when the model leaves out the per-item breakdown
DEFAULT_ITEM_COST = {"min": 50, "max": 200}
DEFAULT_ITEM_LEAD_DAYS = {"min": 5, "max": 14}
DEFAULT_REASONING = "Estimate based on typical market pricing and availability"
DEFAULT_CONFIDENCE = 75

_RANGE = {
    "type": "object",
    "properties": {"min": {"type": "number"}, "max": {"type": "number"}},
    "required": ["min", "max"],
}

SCHEMA = {
    "type": "object",
    "properties": {
        "totalLineItems": {"type": "number"},
        "estimatedCostRange": dict(_RANGE, description="Total cost range in USD"),
        "leadTimeRange": dict(_RANGE, description="Lead time range in days"),
        "confidence": {"type": "number", "minimum": 0, "maximum": 100},
        "confidenceLabel": {"type": "string", "enum": ["High", "Medium", "Low"]},
        "itemBreakdown": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "componentName": {"type": "string"},
                    "quantity": {"type": "string"},
                    "estimatedCostRange": _RANGE,
                    "estimatedLeadTimeDays": _RANGE,
                    "reasoning": {"type": "string"},
                },
                "required": ["componentName", "quantity", "estimatedCostRange",
                             "estimatedLeadTimeDays", "reasoning"],
            },
        },
    },
    "required": ["totalLineItems", "estimatedCostRange", "leadTimeRange",
                 "confidence", "confidenceLabel", "itemBreakdown"],
}

_SYSTEM = """You are a BOM (Bill of Materials) estimation expert for an autonomous procurement system.
{context}
Estimate procurement costs and lead times for engineering components and
materials from industry knowledge and typical market prices. Costs are in USD
for the full quantity of each line. Respond with valid JSON matching the schema provided."""


def components_text(components: list) -> str:
    if not components:
        return "None specified"
    return "\n".join(f"{i}. {c.get('name', '')} - {c.get('quantity', '')} - "
                     f"{c.get('specifications', '')}"
                     for i, c in enumerate(components, 1))


def materials_text(materials: list) -> str:
    if not materials:
        return "None specified"
    return "\n".join(f"{i}. {m.get('name', '')} - {m.get('qty', '')}"
                     for i, m in enumerate(materials, 1))


def _prompt(file_info: dict) -> str:
    return (
        "Estimate the procurement cost and lead time for this bill of materials.\n\n"
        f"Components:\n{components_text(file_info.get('components'))}\n\n"
        f"Materials:\n{materials_text(file_info.get('materials'))}\n\n"
        "Give a total cost range, a lead time range in days, a confidence "
        "percentage with label (High, Medium or Low), and one breakdown entry per component."
    )


def fill_defaults(estimate: dict, file_info: dict) -> dict:
    """Fill anything the model left out so the UI always has every field."""
    if not isinstance(estimate, dict):
        estimate = {}
    components = file_info.get("components") or []
    breakdown = estimate.get("itemBreakdown")
    if not breakdown:
        breakdown = [{
            "componentName": c.get("name", ""),
            "quantity": c.get("quantity", ""),
            "estimatedCostRange": dict(DEFAULT_ITEM_COST),
            "estimatedLeadTimeDays": dict(DEFAULT_ITEM_LEAD_DAYS),
            "reasoning": DEFAULT_REASONING,
        } for c in components]
    return {
        "totalLineItems": estimate.get("totalLineItems") or len(components),
        "estimatedCostRange": estimate.get("estimatedCostRange") or {"min": 0, "max": 0},
        "leadTimeRange": estimate.get("leadTimeRange") or {"min": 0, "max": 0},
        "confidence": estimate.get("confidence") if estimate.get("confidence") is not None
                      else DEFAULT_CONFIDENCE,
        "confidenceLabel": estimate.get("confidenceLabel") or "Medium",
        "itemBreakdown": breakdown,
    }


def generate_bom_estimate(file_info: dict) -> dict:
    context = load_context()
    system = _SYSTEM.format(context=f"\nContext:\n{context}\n" if context else "")
    structured = flags.enabled("USE_STRUCTURED_OUTPUTS")
    prompt = _prompt(file_info) + schema_instruction(SCHEMA)

    text = call_claude(prompt, system=system, max_tokens=MAX_TOKENS, retry=structured)
    estimate = fill_defaults(parse_json_response(text), file_info)
    log.info("BOM estimate: %d lines, $%s-$%s, %s-%s days, confidence %s%%",
             estimate["totalLineItems"],
             estimate["estimatedCostRange"].get("min"), estimate["estimatedCostRange"].get("max"),
             estimate["leadTimeRange"].get("min"), estimate["leadTimeRange"].get("max"),
             estimate["confidence"])
    return estimate
