"""Unit tests for price & quantity enrichment.

Tests the price fallback ladder, package resolution, manual-edit immunity,
citation assignment and idempotence.
"""

from __future__ import annotations

from decimal import Decimal

from budgetcalc.enrichment.engine import (
    diff_enrichment,
    enrich_line_items,
    existing_price,
    infer_base_area,
)
from budgetcalc.models import CitationSource, LineItem, ProvenanceField, utcnow
from budgetcalc.pricing.templates import get_template


class TestUnpricedItems:
    """Unpriced items are resolved to packages and priced."""

    def test_laminate_resolves_to_boxes(self, laminate_item):
        [item] = enrich_line_items([laminate_item])

        assert item.quantity == Decimal("8")
        assert item.unit == "box"
        assert item.unit_price == Decimal("64.99")
        assert item.total_price == Decimal("519.92")
        assert item.citation_id == "[TMPL-001]"
        assert item.citation_source == CitationSource.TEMPLATE_PRESET
        assert item.resolution_trace.endswith("round up = 8 boxes")

    def test_template_price_converted_to_package(self, laminate_item):
        [item] = enrich_line_items([laminate_item], template="flooring")

        # template lists laminate at 2.85/sq ft, 35 sq ft per box
        assert item.unit_price == Decimal("99.75")
        assert item.total_price == Decimal("798.00")

    def test_template_price_same_unit(self):
        strips = LineItem(name="Transition strips", quantity=Decimal("4"), unit="pcs")

        [item] = enrich_line_items([strips], template=get_template("flooring"))

        assert item.unit_price == Decimal("12.00")
        assert item.total_price == Decimal("48.00")

    def test_default_table_price(self):
        paint = LineItem(name="Interior paint", quantity=Decimal("2"), unit="gal")
        [item] = enrich_line_items([paint])
        assert item.unit_price == Decimal("55.00")
        assert item.total_price == Decimal("110.00")

    def test_unit_heuristic_price(self):
        widgets = LineItem(name="Widget", quantity=Decimal("2"), unit="boxes")
        [item] = enrich_line_items([widgets])
        assert item.unit_price == Decimal("45.00")
        assert item.total_price == Decimal("90.00")

    def test_zero_quantity_uses_confirmed_area(self):
        underlayment = LineItem(name="Underlayment", quantity=Decimal("0"), unit="sq ft")

        [item] = enrich_line_items([underlayment], confirmed_area=Decimal("500"))

        assert (item.quantity, item.unit) == (Decimal("6"), "roll")
        assert item.unit_price == Decimal("34.99")
        assert item.total_price == Decimal("209.94")

    def test_zero_quantity_without_area_is_left_unresolved(self):
        laminate = LineItem(name="Laminate flooring", quantity=Decimal("0"), unit="sq ft")

        [item] = enrich_line_items([laminate])

        assert item.unit == "sq ft"
        assert item.quantity == Decimal("0")
        assert item.total_price == Decimal("0.00")

    def test_non_essential_items_are_not_resolved(self):
        laminate = LineItem(
            name="Laminate flooring",
            quantity=Decimal("250"),
            unit="sq ft",
            is_essential=False,
        )

        [item] = enrich_line_items([laminate])

        assert item.unit == "sq ft"
        assert item.unit_price == Decimal("2.85")
        assert item.total_price == Decimal("712.50")

    def test_area_price_follows_quantity_into_packages(self):
        laminate = LineItem(
            name="Laminate flooring",
            quantity=Decimal("250"),
            unit="sq ft",
            unit_price=Decimal("2.85"),
        )

        [item] = enrich_line_items([laminate])

        assert item.unit == "box"
        assert item.unit_price == Decimal("99.75")
        assert item.total_price == Decimal("798.00")

    def test_custom_strategy_ladder(self):
        widgets = LineItem(name="Widget", quantity=Decimal("2"), unit="boxes")
        [item] = enrich_line_items([widgets], strategies=(existing_price,))
        assert item.unit_price == Decimal("0")
        assert item.total_price == Decimal("0.00")


class TestProtectedItems:
    """Priced and manually edited items keep their values."""

    def test_priced_item_is_untouched(self, drywall_item):
        assert enrich_line_items([drywall_item]) == [drywall_item]

    def test_manual_edit_is_never_overwritten(self):
        edited = LineItem(
            name="Laminate flooring",
            quantity=Decimal("250"),
            unit="sq ft",
            edited_at=utcnow(),
            citation_id="[MO-001]",
            citation_source=CitationSource.MANUAL_OVERRIDE,
        )

        [item] = enrich_line_items([edited], template="flooring", confirmed_area=Decimal("300"))

        assert item.quantity == Decimal("250")
        assert item.unit == "sq ft"
        assert item.unit_price == Decimal("0")
        assert item.total_price == Decimal("0.00")
        assert item.citation_id == "[MO-001]"

    def test_manual_edit_total_is_recomputed(self):
        edited = LineItem(
            name="Laminate flooring",
            quantity=Decimal("9"),
            unit="box",
            unit_price=Decimal("60.00"),
            total_price=Decimal("1.00"),
            edited_at=utcnow(),
        )
        [item] = enrich_line_items([edited])
        assert item.total_price == Decimal("540.00")

    def test_idempotent(self, laminate_item, drywall_item):
        once = enrich_line_items([laminate_item, drywall_item], template="flooring")
        twice = enrich_line_items(once, template="flooring")
        assert twice == once

    def test_idempotent_for_priced_item_without_quantity(self):
        items = [
            LineItem(name="Room widget", quantity=Decimal("100"), unit="sq ft"),
            LineItem(
                name="Paint",
                quantity=Decimal("0"),
                unit="sq ft",
                unit_price=Decimal("55"),
                total_price=Decimal("100"),
            ),
        ]

        once = enrich_line_items(items)
        twice = enrich_line_items(once)

        assert (once[1].quantity, once[1].unit, once[1].total_price) == (
            Decimal("0"),
            "sq ft",
            Decimal("0.00"),
        )
        assert twice == once


class TestCitations:
    def test_ids_follow_source_and_position(self, drywall_item):
        photo_item = LineItem(
            name="Widget",
            quantity=Decimal("1"),
            unit="boxes",
            citation_source=CitationSource.AI_PHOTO,
        )

        items = enrich_line_items([drywall_item, photo_item])

        assert items[0].citation_id == "[TMPL-001]"
        assert items[1].citation_id == "[AI-002]"

    def test_order_and_length_preserved(self, laminate_item, drywall_item):
        items = enrich_line_items([drywall_item, laminate_item])
        assert [item.id for item in items] == ["mat-drywall", "mat-laminate"]


class TestInferBaseArea:
    def test_largest_area_item(self, laminate_item):
        paint = LineItem(name="Paint", quantity=Decimal("700"), unit="sq ft")
        box = LineItem(name="Widget", quantity=Decimal("900"), unit="box")
        assert infer_base_area([laminate_item, paint, box]) == Decimal("700")

    def test_none_without_area_items(self, drywall_item):
        assert infer_base_area([drywall_item]) is None

    def test_metric_areas_are_compared_in_sq_ft(self):
        room = LineItem(name="Room area", quantity=Decimal("100"), unit="sq m")
        hall = LineItem(name="Hallway", quantity=Decimal("500"), unit="sq ft")
        assert infer_base_area([room, hall]) == Decimal("1076.39")

    def test_metric_base_area_resolves_in_sq_ft(self):
        room = LineItem(name="Room area", quantity=Decimal("100"), unit="sq m")
        laminate = LineItem(name="Laminate flooring", quantity=Decimal("0"), unit="sq ft")

        [_, item] = enrich_line_items([room, laminate])

        # 1076.39 sq ft / 35 per box = 30.75, +10% = 33.83
        assert (item.quantity, item.unit) == (Decimal("34"), "box")


class TestDiffEnrichment:
    def test_reports_quantity_and_price_changes(self, laminate_item):
        after = enrich_line_items([laminate_item])

        changes = diff_enrichment([laminate_item], after)

        assert [(c.field, c.previous_value, c.new_value) for c in changes] == [
            (ProvenanceField.QUANTITY, Decimal("250"), Decimal("8")),
            (ProvenanceField.UNIT_PRICE, Decimal("0"), Decimal("64.99")),
        ]

    def test_reports_new_items(self, drywall_item):
        changes = diff_enrichment([], [drywall_item])
        assert len(changes) == 1
        assert changes[0].field == ProvenanceField.ADDED
        assert changes[0].new_value == "Drywall sheets"

    def test_no_changes_for_priced_items(self, drywall_item):
        assert diff_enrichment([drywall_item], enrich_line_items([drywall_item])) == []
