"""Tests for the CRM order log: seeding, search, create, lifecycle, metrics."""

import json
import os

import pytest

from alloy.core import orders
from alloy.core.errors import ValidationError


class TestSeedAndList:
    def test_seeded_on_first_read(self):
        assert not os.path.exists(orders.ORDERS_FILE)
        result = orders.list_orders()
        assert [o["id"] for o in result] == ["ORD-003", "ORD-002", "ORD-001"]
        assert os.path.exists(orders.ORDERS_FILE)

    def test_get_order(self):
        assert orders.get_order("ORD-002")["vendor"] == "TechParts Supply"
        assert orders.get_order("ORD-999") is None

    def test_corrupt_file_raises(self):
        with open(orders.ORDERS_FILE, "w") as f:
            f.write("{not json")
        with pytest.raises(json.JSONDecodeError):
            orders.list_orders()


class TestSearch:
    def test_empty_query_returns_all(self):
        assert len(orders.search_orders("")) == 3
        assert len(orders.search_orders("   ")) == 3

    def test_vendor_match_case_insensitive(self):
        result = orders.search_orders("acme")
        assert [o["id"] for o in result] == ["ORD-001"]

    def test_id_match(self):
        result = orders.search_orders("ord-00")
        assert len(result) == 3
        assert orders.search_orders("ORD-002")[0]["vendor"] == "TechParts Supply"

    def test_no_match(self):
        assert orders.search_orders("nonexistent") == []


class TestCreateOrder:
    def test_new_order_prepended(self, sample_plan):
        order = orders.create_order(sample_plan, "0xabc")
        assert order["id"] == "ORD-004"
        assert order["vendor"] == "Multiple Vendors"
        assert order["amount"] == pytest.approx(188.0)
        assert order["status"] == "completed"
        assert order["lifecycleState"] == "payment-executed"
        assert order["items"] == ["NEMA17 Stepper Motor", "6061-T6 Aluminum Plate"]
        assert orders.list_orders()[0]["id"] == "ORD-004"

    def test_single_vendor_named(self, sample_plan):
        order = orders.create_order(sample_plan[:1], "0xabc")
        assert order["vendor"] == "Acme Motors Inc."

    def test_audit_trail_and_documents_kept(self, sample_plan):
        trail = [{"timestamp": "t", "event": "PO Created", "details": "d"}]
        order = orders.create_order(sample_plan, "0xabc", audit_trail=trail,
                                    documents={"po": "PO-1.pdf"})
        assert order["auditTrail"] == trail
        assert order["documents"] == {"po": "PO-1.pdf"}

    def test_unknown_status_rejected(self, sample_plan):
        with pytest.raises(ValidationError):
            orders.create_order(sample_plan, "0xabc", status="bogus")

    def test_sequential_ids(self, sample_plan):
        orders.create_order(sample_plan, "0x1")
        second = orders.create_order(sample_plan, "0x2")
        assert second["id"] == "ORD-005"


class TestLifecycle:
    def test_forward_transition(self):
        order = orders.update_lifecycle("ORD-003", "delivered", actor="ops", notes="Signed for")
        assert order["lifecycleState"] == "delivered"
        assert order["statusHistory"][-1]["from"] == "in-transit"
        assert order["statusHistory"][-1]["notes"] == "Signed for"
        assert order["auditTrail"][-1]["event"] == "Delivered"
        assert orders.get_order("ORD-003")["lifecycleState"] == "delivered"

    def test_backward_rejected(self):
        with pytest.raises(ValidationError, match="Cannot move"):
            orders.update_lifecycle("ORD-001", "in-transit")

    def test_same_state_rejected(self):
        with pytest.raises(ValidationError):
            orders.update_lifecycle("ORD-003", "in-transit")

    def test_unknown_state(self):
        with pytest.raises(ValidationError, match="Unknown lifecycle"):
            orders.update_lifecycle("ORD-003", "lost-at-sea")

    def test_unknown_order(self):
        with pytest.raises(ValidationError, match="Order not found"):
            orders.update_lifecycle("ORD-999", "closed")


class TestMetrics:
    def test_seed_metrics(self):
        m = orders.crm_metrics()
        assert m["orderCount"] == 3
        assert m["totalSpend"] == pytest.approx(7520.50)
        assert m["avgOrderSize"] == pytest.approx(2506.83)
        assert m["successRate"] == 100
        assert m["vendors"]["Acme Motors Inc."] == {"orders": 1, "spend": 2850.0}

    def test_failed_orders_lower_success_rate(self):
        sample = [{"vendor": "A", "amount": 10, "status": "completed"},
                  {"vendor": "A", "amount": 10, "status": "failed"}]
        m = orders.crm_metrics(sample)
        assert m["successRate"] == 50
        assert m["vendors"]["A"]["orders"] == 2

    def test_empty(self):
        m = orders.crm_metrics([])
        assert m["orderCount"] == 0
        assert m["avgOrderSize"] == 0
        assert m["successRate"] == 0
