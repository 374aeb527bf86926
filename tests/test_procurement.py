"""Tests for plan arithmetic: priorities, spending range, plan build/edit, summaries."""

import pytest

from alloy.core.procurement import (
    PO_SHIPPING, adjust_quantity, adjusted_ranges, approval_total, auto_select_vendors,
    build_procurement_plan, cost_multiplier, extract_quantity, parse_int, plan_summary,
    recommended_spending_limit, resolve_spending_limit, selected_total_cost, set_quantity,
    spending_limit_warnings, unique_vendors, update_item_quantity, update_item_vendor,
)


class TestQuantityParsing:
    def test_first_number_wins(self):
        assert extract_quantity("4 units") == 4
        assert extract_quantity("Qty: 12 pcs, 3 spare") == 12

    def test_no_digits_defaults_to_one(self):
        assert extract_quantity("a few") == 1
        assert extract_quantity("") == 1
        assert extract_quantity(None) == 1

    def test_zero_clamped(self):
        assert extract_quantity("0 units") == 1

    def test_parse_int_leading_only(self):
        assert parse_int("12 pcs") == 12
        assert parse_int("pcs 12", default=1) == 1
        assert parse_int(7) == 7
        assert parse_int(3.9) == 3
        assert parse_int(None, default=5) == 5


class TestCostMultiplier:
    def test_none_selected(self):
        assert cost_multiplier({}) == 1.0
        assert cost_multiplier(None) == 1.0

    def test_single(self):
        assert cost_multiplier({"quality": True}) == pytest.approx(1.25)
        assert cost_multiplier({"speed": True}) == pytest.approx(1.15)
        assert cost_multiplier({"cost": True}) == pytest.approx(0.80)

    def test_compose_multiplicatively(self):
        assert cost_multiplier({"quality": True, "speed": True}) == pytest.approx(1.25 * 1.15)
        assert cost_multiplier({"quality": True, "speed": True, "cost": True}) == \
            pytest.approx(1.25 * 1.15 * 0.80)

    def test_false_values_ignored(self):
        assert cost_multiplier({"quality": False, "cost": True}) == pytest.approx(0.80)


class TestAdjustedRanges:
    def test_unchanged_quantities(self, sample_bom, sample_components):
        r = adjusted_ranges(sample_bom, sample_components, {})
        assert r["totalMin"] == 300
        assert r["totalMax"] == 500

    def test_quality_priority_scales(self, sample_bom, sample_components):
        r = adjusted_ranges(sample_bom, sample_components, {"quality": True})
        assert r["items"][0]["min"] == 125
        assert r["items"][0]["max"] == 250
        assert r["totalMin"] == 125 + 250
        assert r["totalMax"] == 250 + 375

    def test_quantity_edit_scales_linearly(self, sample_bom, sample_components):
        comps = set_quantity(sample_components, 1, 8)
        r = adjusted_ranges(sample_bom, comps, {})
        assert r["items"][0]["quantity"] == 8
        assert r["items"][0]["min"] == 200
        assert r["items"][0]["max"] == 400

    def test_rounds_half_up(self):
        bom = {"itemBreakdown": [{"componentName": "X", "quantity": "2",
                                  "estimatedCostRange": {"min": 1, "max": 5}}]}
        r = adjusted_ranges(bom, [{"name": "X", "quantity": "1"}], {})
        assert r["items"][0]["min"] == 1   # 0.5 → 1
        assert r["items"][0]["max"] == 3   # 2.5 → 3

    def test_unmatched_component_skipped(self, sample_bom):
        r = adjusted_ranges(sample_bom, [{"name": "Unknown", "quantity": "1"}], {})
        assert r["items"] == []
        assert r["totalMin"] == 0

    def test_no_estimate(self, sample_components):
        r = adjusted_ranges(None, sample_components, {"quality": True})
        assert r == {"items": [], "totalMin": 0, "totalMax": 0}


class TestSpendingLimit:
    def test_recommended_is_midpoint(self, sample_bom, sample_components):
        r = adjusted_ranges(sample_bom, sample_components, {})
        assert recommended_spending_limit(r) == 400

    def test_recommended_default_without_estimate(self):
        assert recommended_spending_limit(adjusted_ranges(None, [], {})) == 2000

    def test_resolve_uses_entered_value(self):
        assert resolve_spending_limit("750", {"totalMin": 300}) == 750.0

    def test_resolve_falls_back_to_minimum(self):
        assert resolve_spending_limit("", {"totalMin": 300}) == 300.0
        assert resolve_spending_limit(None, {"totalMin": 300}) == 300.0

    def test_policy_warning(self):
        w = spending_limit_warnings(6000, {"totalMin": 300})
        assert any("policy limit" in x for x in w)

    def test_below_minimum_warning(self):
        w = spending_limit_warnings(100, {"totalMin": 300})
        assert any("may limit sourcing options" in x for x in w)

    def test_no_warnings_in_range(self):
        assert spending_limit_warnings(400, {"totalMin": 300}) == []


class TestComponentQuantityEdits:
    def test_adjust_never_below_one(self, sample_components):
        comps = adjust_quantity(sample_components, 1, -10)
        assert comps[0]["quantity"] == "1"

    def test_adjust_up(self, sample_components):
        comps = adjust_quantity(sample_components, 2, 3)
        assert comps[1]["quantity"] == "5"

    def test_set_ignores_below_one(self, sample_components):
        assert set_quantity(sample_components, 1, 0) == sample_components
        assert set_quantity(sample_components, 1, -3) == sample_components

    def test_set_ignores_garbage(self, sample_components):
        assert set_quantity(sample_components, 1, "abc") == sample_components

    def test_original_list_untouched(self, sample_components):
        adjust_quantity(sample_components, 1, 5)
        assert sample_components[0]["quantity"] == "4 units"


class TestVendorSelection:
    def test_auto_select_first(self, sample_sourcing):
        sel = auto_select_vendors(sample_sourcing)
        assert sel == {"NEMA17 Stepper Motor": "Acme Motors Inc.",
                       "6061-T6 Aluminum Plate": "Global Components"}

    def test_selected_total(self, sample_sourcing):
        sel = auto_select_vendors(sample_sourcing)
        # 14.5*4 + 35 + 40*2 + 15
        assert selected_total_cost(sample_sourcing, sel) == pytest.approx(188.0)


class TestProcurementPlan:
    def test_build(self, sample_plan):
        assert [i["id"] for i in sample_plan] == ["item-1", "item-2"]
        first = sample_plan[0]
        assert first["vendor"] == "Acme Motors Inc."
        assert first["alternativeVendors"] == ["TechParts Supply"]
        assert first["quantity"] == 4
        assert first["totalCost"] == pytest.approx(14.5 * 4 + 35)

    def test_total_is_price_times_qty_plus_shipping(self, sample_plan):
        for item in sample_plan:
            assert item["totalCost"] == pytest.approx(
                item["pricePerUnit"] * item["quantity"] + item["shipping"])

    def test_components_without_selection_skipped(self, sample_sourcing):
        plan = build_procurement_plan(sample_sourcing, {"NEMA17 Stepper Motor": "Acme Motors Inc."})
        assert len(plan) == 1
        assert plan[0]["id"] == "item-1"

    def test_quantity_edit_keeps_shipping(self, sample_plan):
        plan = update_item_quantity(sample_plan, "item-1", 10)
        assert plan[0]["quantity"] == 10
        assert plan[0]["totalCost"] == pytest.approx(14.5 * 10 + 35)

    def test_quantity_edit_clamped(self, sample_plan):
        plan = update_item_quantity(sample_plan, "item-1", 0)
        assert plan[0]["quantity"] == 1
        plan = update_item_quantity(sample_plan, "item-1", -5)
        assert plan[0]["quantity"] == 1

    def test_vendor_swap_takes_sourcing_prices(self, sample_plan, sample_sourcing):
        plan = update_item_vendor(sample_plan, "item-1", "TechParts Supply", sample_sourcing)
        item = plan[0]
        assert item["vendor"] == "TechParts Supply"
        assert item["pricePerUnit"] == 12.00
        assert item["shipping"] == 20
        assert item["leadTime"] == 12
        assert item["totalCost"] == pytest.approx(12.0 * 4 + 20)
        assert item["alternativeVendors"] == ["Acme Motors Inc."]

    def test_vendor_swap_without_sourcing_only_renames(self, sample_plan):
        plan = update_item_vendor(sample_plan, "item-1", "TechParts Supply")
        assert plan[0]["vendor"] == "TechParts Supply"
        assert plan[0]["pricePerUnit"] == 14.50


class TestSummaries:
    def test_plan_summary(self, sample_plan, sample_sourcing):
        s = plan_summary(sample_plan, sample_sourcing)
        assert s["totalCost"] == pytest.approx(188.0)
        assert s["totalItems"] == 6
        assert s["lineItems"] == 2
        assert s["avgLeadTime"] == 6
        assert s["uniqueVendors"] == 2
        assert s["bestPrice"]["vendor"] == "Acme Motors Inc."
        assert s["fastest"]["vendor"] == "Global Components"
        assert s["lowestRisk"]["vendor"] == "Acme Motors Inc."

    def test_empty_plan_summary(self):
        s = plan_summary([])
        assert s["totalCost"] == 0
        assert s["bestPrice"] is None

    def test_approval_total_adds_po_shipping(self, sample_plan):
        assert approval_total(sample_plan) == pytest.approx(188.0 + PO_SHIPPING)

    def test_unique_vendors_ordered(self):
        plan = [{"vendor": "B"}, {"vendor": "A"}, {"vendor": "B"}]
        assert unique_vendors(plan) == ["B", "A"]
