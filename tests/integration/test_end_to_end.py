"""Integration tests for BudgetCalc end-to-end workflows.

Tests:
1. Photo estimate intake: area-measured laminate becomes priced boxes
2. Change approval: totals move only after the owner approves
3. Narrative check: AI narrative disagreeing with the confirmed area is flagged
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from budgetcalc.approvals.service import approve_change, submit_change
from budgetcalc.budget.project import ProjectBudget
from budgetcalc.budget.repository import (
    save_enriched_items,
    save_project_settings,
    save_raw_items,
    summarize_project,
)
from budgetcalc.conflicts.service import analyze_narrative
from budgetcalc.enrichment.engine import enrich_line_items
from budgetcalc.financials.aggregator import compute_financial_summary
from budgetcalc.models import ConflictSeverity, LineItem, parse_line_items, utcnow
from budgetcalc.pricing.default_prices import lookup_default_price


def test_photo_estimate_is_resolved_and_priced():
    """Area inferred from the item itself, 250 sq ft -> 8 boxes at table price."""
    raw = parse_line_items(
        [{"name": "Laminate flooring", "quantity": 250, "unit": "sq ft", "unit_price": 0}]
    )

    items = enrich_line_items(raw, template=None, confirmed_area=None, waste_percent=Decimal("10"))
    summary = compute_financial_summary(items)

    [laminate] = items
    box_price = lookup_default_price("Laminate flooring", "box")
    assert (laminate.quantity, laminate.unit) == (Decimal("8"), "box")
    assert laminate.unit_price == box_price
    assert summary.material_cost == 8 * box_price


def test_total_changes_only_after_approval(test_project_id, drywall_item, foreman, owner):
    budget = ProjectBudget(test_project_id, [drywall_item], notifier=lambda change: None)
    before = budget.summary().grand_total

    change = budget.submit_change("mat-drywall", Decimal("15"), None, "Extra closet", foreman)
    assert budget.summary().grand_total == before

    budget.workflow.approve_change(change.id, owner)

    assert budget.get_item("mat-drywall").quantity == Decimal("15")
    assert budget.summary().grand_total == Decimal("339.00")


@pytest.mark.asyncio
async def test_persisted_project_lifecycle(db_session, test_project_id, foreman, owner):
    """Raw intake -> enrichment -> proposal -> approval, all through the database."""
    raw = [
        LineItem(
            id="mat-laminate", name="Laminate flooring", quantity=Decimal("250"), unit="sq ft"
        ),
        LineItem(id="mat-strips", name="Transition strips", quantity=Decimal("4"), unit="pcs"),
    ]
    await save_project_settings(
        db_session, test_project_id, work_type="flooring", confirmed_area=Decimal("250")
    )
    await save_raw_items(db_session, test_project_id, raw)

    draft = await summarize_project(db_session, test_project_id)
    assert draft.data_source == "raw"

    read_at = utcnow()
    enriched = enrich_line_items(raw, template="flooring", confirmed_area=Decimal("250"))
    await save_enriched_items(db_session, test_project_id, enriched, read_at)

    summary = await summarize_project(db_session, test_project_id)
    assert summary.data_source == "persisted"
    # 8 boxes x 99.75 + 4 strips x 12.00
    assert summary.material_cost == Decimal("846.00")
    assert summary.grand_total == draft.grand_total

    change = await submit_change(
        db_session,
        test_project_id,
        "mat-strips",
        Decimal("6"),
        None,
        "Two more doorways",
        foreman,
        notifier=lambda c: None,
    )
    pending = await summarize_project(db_session, test_project_id)
    assert pending.grand_total == summary.grand_total
    assert pending.pending_change.delta == Decimal("24.00")

    await approve_change(db_session, change.id, owner, notifier=lambda c: None)

    approved = await summarize_project(db_session, test_project_id)
    assert approved.material_cost == Decimal("870.00")
    assert approved.grand_total == pending.pending_change.proposed_grand_total


@pytest.mark.asyncio
async def test_narrative_conflict_against_confirmed_area():
    async def narrative():
        return "This open-concept basement covers roughly 400 square feet."

    alerts = await analyze_narrative(narrative, {"confirmed_area": 250})

    assert [alert.severity for alert in alerts] == [ConflictSeverity.CRITICAL]
