"""Unit tests for BudgetCalc Pydantic models.

Tests data validation, field constraints, and model behavior.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from budgetcalc.errors import ValidationError
from budgetcalc.models import (
    Actor,
    ActorRole,
    ChangeStatus,
    LineItem,
    PendingBudgetChange,
    PricingState,
    ProvenanceEntry,
    as_utc,
    money,
    parse_line_items,
    utcnow,
)


class TestMoney:
    def test_rounds_half_up(self):
        assert money(Decimal("0.125")) == Decimal("0.13")
        assert money(Decimal("67.5896")) == Decimal("67.59")

    def test_accepts_floats_without_binary_noise(self):
        assert money(2.675) == Decimal("2.68")


class TestLineItem:
    """Test LineItem validation and derived state."""

    def test_defaults(self):
        item = LineItem(name="Laminate flooring")
        assert item.id.startswith("mat-")
        assert item.quantity == Decimal("0")
        assert item.pricing_state == PricingState.UNPRICED

    def test_negative_values_rejected(self):
        with pytest.raises(PydanticValidationError):
            LineItem(name="Laminate flooring", quantity=Decimal("-1"))
        with pytest.raises(PydanticValidationError):
            LineItem(name="Laminate flooring", unit_price=Decimal("-0.01"))

    def test_pricing_states(self, drywall_item):
        assert drywall_item.pricing_state == PricingState.PRICED
        unpriced_total = drywall_item.model_copy(update={"total_price": None})
        assert unpriced_total.pricing_state == PricingState.UNPRICED
        edited = drywall_item.model_copy(update={"edited_at": utcnow()})
        assert edited.pricing_state == PricingState.MANUALLY_OVERRIDDEN

    def test_zero_quantity_with_zero_total_is_priced(self, drywall_item):
        empty = drywall_item.model_copy(
            update={"quantity": Decimal("0"), "total_price": Decimal("0.00")}
        )
        assert empty.pricing_state == PricingState.PRICED
        stale = drywall_item.model_copy(update={"total_price": Decimal("0.00")})
        assert stale.pricing_state == PricingState.UNPRICED

    def test_computed_total(self, drywall_item):
        item = drywall_item.model_copy(update={"unit_price": Decimal("19.995")})
        assert item.computed_total == Decimal("199.95")


class TestParseLineItems:
    def test_name_aliases(self):
        items = parse_line_items(
            [
                {"item": "Primer", "quantity": "2", "unit": "gal"},
                {"description": "Paint", "quantity": 3, "unit": "gal"},
            ]
        )
        assert [item.name for item in items] == ["Primer", "Paint"]
        assert items[1].quantity == Decimal("3")

    def test_invalid_payload_reports_index(self):
        with pytest.raises(ValidationError, match="line item 1"):
            parse_line_items([{"name": "Primer"}, {"name": "Paint", "quantity": "-2"}])


class TestPendingBudgetChange:
    def test_delta(self):
        change = PendingBudgetChange(
            item_id="mat-1",
            item_name="Drywall",
            original_total=Decimal("200.00"),
            new_total=Decimal("150.00"),
            change_reason="Less wall",
            requested_by="foreman-1",
        )
        assert change.delta == Decimal("-50.00")
        assert change.status == ChangeStatus.PENDING
        assert not change.status.is_terminal

    def test_terminal_statuses(self):
        assert all(
            status.is_terminal
            for status in (ChangeStatus.APPROVED, ChangeStatus.REJECTED, ChangeStatus.CANCELLED)
        )


class TestImmutableRecords:
    def test_provenance_entry_is_frozen(self):
        entry = ProvenanceEntry(
            id="[MO-001]", line_item_id="mat-1", source="manual_override", field="quantity"
        )
        with pytest.raises(PydanticValidationError):
            entry.note = "changed"

    def test_actor(self):
        assert Actor(user_id="u1", role=ActorRole.OWNER).is_owner
        assert not Actor(user_id="u2", role="foreman").is_owner


def test_as_utc_marks_naive_datetimes():
    naive = datetime(2024, 5, 1, 12, 0)
    assert as_utc(naive).tzinfo is timezone.utc
    aware = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware) is aware
