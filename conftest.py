"""
Shared pytest fixtures for the Alloy test suite.

Every test runs against an isolated tmp data directory, with feature flags
and API keys cleared, and from a tmp working directory so a developer's
CONTEXT.md never leaks into prompts.
"""
import json
import os
import sys
from unittest.mock import MagicMock

import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from alloy.core.flags import FLAGS

_ENV_KEYS = ("ANTHROPIC_API_KEY", "LOCUS_API_KEY", "MAILJET_API_KEY", "MAILJET_SECRET_KEY",
             "MAILJET_SENDER_EMAIL", "FIRECRAWL_API_KEY", "ANTHROPIC_MODEL")

TEST_KEY = "sk-ant-REDACTED"


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect ALL module data/output paths to an isolated tmp directory."""
    data = str(tmp_path / "data")
    os.makedirs(data, exist_ok=True)

    from alloy.core import paths, orders
    from alloy.forms import rfq_generator
    monkeypatch.setattr(paths, "DATA_DIR", data)
    monkeypatch.setattr(paths, "OUTPUT_DIR", os.path.join(data, "output"))
    monkeypatch.setattr(paths, "LOG_DIR", os.path.join(data, "logs"))
    monkeypatch.setattr(orders, "ORDERS_FILE", os.path.join(data, "orders.json"))
    monkeypatch.setattr(rfq_generator, "COUNTER_FILE", os.path.join(data, "rfq_counter.json"))

    for name in FLAGS + _ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISABLE_RATE_LIMIT", "true")

    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return data


@pytest.fixture
def anthropic_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", TEST_KEY)
    return TEST_KEY


# ── Fake HTTP responses ───────────────────────────────────────────────────────

def make_response(status=200, payload=None, text=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.json.return_value = payload if payload is not None else {}
    resp.text = text if text is not None else json.dumps(payload or {})
    return resp


def claude_response(body, status=200):
    """Messages API response whose first text block is body (dict → JSON)."""
    text = body if isinstance(body, str) else json.dumps(body)
    return make_response(status, {"content": [{"type": "text", "text": text}]})


# ── Sample pipeline data ──────────────────────────────────────────────────────

@pytest.fixture
def sample_components():
    return [
        {"id": 1, "name": "NEMA17 Stepper Motor", "quantity": "4 units",
         "specifications": "1.8° step angle, 12-24V DC, ≥45 N·cm holding torque"},
        {"id": 2, "name": "6061-T6 Aluminum Plate", "quantity": "2 sheets",
         "specifications": "300x300x6mm, -10°C to +50°C"},
    ]


@pytest.fixture
def sample_bom():
    return {
        "totalLineItems": 2,
        "estimatedCostRange": {"min": 300, "max": 500},
        "leadTimeRange": {"min": 5, "max": 14},
        "confidence": 80,
        "confidenceLabel": "High",
        "itemBreakdown": [
            {"componentName": "NEMA17 Stepper Motor", "quantity": "4 units",
             "estimatedCostRange": {"min": 100, "max": 200},
             "estimatedLeadTimeDays": {"min": 5, "max": 10}, "reasoning": "Catalog part"},
            {"componentName": "6061-T6 Aluminum Plate", "quantity": "2 sheets",
             "estimatedCostRange": {"min": 200, "max": 300},
             "estimatedLeadTimeDays": {"min": 7, "max": 14}, "reasoning": "Stock material"},
        ],
    }


def _vendor(name, price, lead, shipping, reliability=95, quality=94, moq=1,
            whitelist=True, email=None):
    return {
        "name": name, "pricePerUnit": price, "moq": moq, "leadTime": lead,
        "shipping": shipping, "reliability": reliability, "qualityScore": quality,
        "locusWhitelist": whitelist, "datasheetAttrs": ["Spec A", "Spec B"],
        "risks": "None identified",
        "email": email or f"sales@{name.split()[0].lower()}.com",
    }


@pytest.fixture
def sample_sourcing():
    return {
        "componentSearches": [
            {
                "componentName": "NEMA17 Stepper Motor",
                "quantity": 4,
                "specifications": "1.8° step angle",
                "vendors": [
                    _vendor("Acme Motors Inc.", 14.50, 7, 35, reliability=98),
                    _vendor("TechParts Supply", 12.00, 12, 20, reliability=91, moq=10),
                ],
                "totalCostRange": {"min": 68.0, "max": 93.0},
                "reasoning": "Established stepper suppliers",
            },
            {
                "componentName": "6061-T6 Aluminum Plate",
                "quantity": 2,
                "specifications": "300x300x6mm",
                "vendors": [
                    _vendor("Global Components", 40.00, 5, 15, reliability=93),
                    _vendor("Metal Depot", 35.00, 9, 25, reliability=88),
                ],
                "totalCostRange": {"min": 95.0, "max": 95.0},
                "reasoning": "Stock plate",
            },
        ],
        "totalEstimatedCost": {"min": 163.0, "max": 188.0},
        "insights": {"vendorRisks": "Low"},
    }


@pytest.fixture
def sample_plan(sample_sourcing):
    from alloy.core.procurement import auto_select_vendors, build_procurement_plan
    return build_procurement_plan(sample_sourcing, auto_select_vendors(sample_sourcing))


# ── Flask test client ─────────────────────────────────────────────────────────

@pytest.fixture
def client():
    from app import create_app
    app = create_app({"TESTING": True})
    return app.test_client()
