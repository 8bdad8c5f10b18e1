"""Integration tests for budget persistence.

Tests enrichment writes against manual edits, raw intake, provenance
storage and project summaries on an in-memory SQLite database.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from budgetcalc.budget.repository import (
    append_provenance,
    fetch_budget_sources,
    fetch_line_items,
    fetch_provenance,
    finalize_project_budget,
    save_enriched_items,
    save_project_settings,
    save_raw_items,
    summarize_project,
    upsert_line_items,
)
from budgetcalc.db.models import LAYER_RAW
from budgetcalc.enrichment.engine import enrich_line_items
from budgetcalc.errors import PermissionDenied
from budgetcalc.models import CitationSource, ProvenanceField, utcnow
from budgetcalc.provenance.ledger import ProvenanceLedger, manual_edit


class TestSaveEnrichedItems:
    @pytest.mark.asyncio
    async def test_insert_and_fetch_in_order(
        self, db_session, test_project_id, laminate_item, drywall_item
    ):
        items = enrich_line_items([drywall_item, laminate_item])

        result = await save_enriched_items(db_session, test_project_id, items, utcnow())

        assert result.saved == ["mat-drywall", "mat-laminate"]
        assert result.conflicts == []
        stored = await fetch_line_items(db_session, test_project_id)
        assert [item.id for item in stored] == ["mat-drywall", "mat-laminate"]
        assert stored[1].quantity == Decimal("8")
        assert stored[1].total_price == Decimal("519.92")
        assert all(item.is_authoritative for item in stored)

    @pytest.mark.asyncio
    async def test_manual_edit_wins_over_stale_enrichment(
        self, db_session, test_project_id, laminate_item, owner
    ):
        items = enrich_line_items([laminate_item])
        await save_enriched_items(db_session, test_project_id, items, utcnow())

        # Owner edits after an enrichment pass has already read the items
        ledger = ProvenanceLedger(items=items)
        edited = manual_edit(
            items, "mat-laminate", ledger, quantity=Decimal("9"), actor=owner.user_id
        )
        await upsert_line_items(db_session, test_project_id, edited)
        stale_read = edited[0].edited_at - timedelta(seconds=1)

        result = await save_enriched_items(db_session, test_project_id, items, stale_read)

        assert result.saved == []
        [conflict] = result.conflicts
        assert conflict.current_status == "manually_overridden"
        [stored] = await fetch_line_items(db_session, test_project_id)
        assert stored.quantity == Decimal("9")
        assert stored.edited_at is not None
        assert stored.is_authoritative is False

    @pytest.mark.asyncio
    async def test_fresh_pass_keeps_manual_edit(self, db_session, test_project_id, laminate_item):
        items = enrich_line_items([laminate_item])
        await save_enriched_items(db_session, test_project_id, items, utcnow())
        edited = manual_edit(items, "mat-laminate", ProvenanceLedger(), quantity=Decimal("9"))
        await upsert_line_items(db_session, test_project_id, edited)

        read_at = utcnow()
        current = await fetch_line_items(db_session, test_project_id)
        result = await save_enriched_items(
            db_session, test_project_id, enrich_line_items(current), read_at
        )

        assert result.saved == ["mat-laminate"]
        [stored] = await fetch_line_items(db_session, test_project_id)
        assert stored.quantity == Decimal("9")
        assert stored.total_price == Decimal("584.91")


class TestRawIntake:
    @pytest.mark.asyncio
    async def test_raw_layer_is_replaced(
        self, db_session, test_project_id, laminate_item, drywall_item
    ):
        await save_raw_items(db_session, test_project_id, [laminate_item, drywall_item])
        await save_raw_items(db_session, test_project_id, [drywall_item])

        raw = await fetch_line_items(db_session, test_project_id, LAYER_RAW)

        assert [item.id for item in raw] == ["mat-drywall"]

    @pytest.mark.asyncio
    async def test_sources(self, db_session, test_project_id, laminate_item):
        await save_raw_items(db_session, test_project_id, [laminate_item])

        sources = await fetch_budget_sources(db_session, test_project_id)

        assert sources.persisted == []
        assert [item.id for item in sources.raw] == ["mat-laminate"]


class TestProvenanceStorage:
    @pytest.mark.asyncio
    async def test_round_trip(self, db_session, test_project_id, drywall_item):
        ledger = ProvenanceLedger(items=[drywall_item])
        manual_edit([drywall_item], "mat-drywall", ledger, quantity=Decimal("15"), actor="owner-1")
        ledger.record(
            "mat-drywall",
            CitationSource.MANUAL_OVERRIDE,
            ProvenanceField.ITEM,
            previous_value="Drywall sheets",
            new_value="Drywall 1/2in",
        )

        await append_provenance(db_session, test_project_id, ledger.entries)
        stored = await fetch_provenance(db_session, test_project_id, "mat-drywall")

        assert [entry.id for entry in stored] == ["[MO-001]", "[MO-002]"]
        assert stored[0].previous_value == Decimal("10")
        assert stored[0].new_value == Decimal("15")
        assert stored[0].actor == "owner-1"
        assert stored[1].new_value == "Drywall 1/2in"

        reloaded = ProvenanceLedger(stored)
        assert reloaded.next_citation_id(CitationSource.MANUAL_OVERRIDE) == "[MO-003]"


class TestProjectSummary:
    @pytest.mark.asyncio
    async def test_empty_project(self, db_session, test_project_id):
        summary = await summarize_project(db_session, test_project_id)
        assert summary.data_source == "empty"
        assert summary.grand_total == Decimal("0")

    @pytest.mark.asyncio
    async def test_raw_only_project_is_enriched_on_read(
        self, db_session, test_project_id, laminate_item
    ):
        await save_raw_items(db_session, test_project_id, [laminate_item])

        summary = await summarize_project(db_session, test_project_id)

        assert summary.data_source == "raw"
        assert summary.material_cost == Decimal("519.92")

    @pytest.mark.asyncio
    async def test_settings_and_finalize(
        self, db_session, test_project_id, drywall_item, owner, foreman
    ):
        await save_enriched_items(db_session, test_project_id, [drywall_item], utcnow())
        await save_project_settings(
            db_session,
            test_project_id,
            labor_cost=Decimal("100"),
            tax_rate=Decimal("0.05"),
        )

        summary = await summarize_project(db_session, test_project_id)
        assert summary.data_source == "persisted"
        assert summary.subtotal == Decimal("300.00")
        assert summary.grand_total == Decimal("315.00")
        assert summary.last_modified is not None

        with pytest.raises(PermissionDenied):
            await finalize_project_budget(db_session, test_project_id, foreman)

        final = await finalize_project_budget(db_session, test_project_id, owner)
        assert final.is_draft is False
        assert final.approved_grand_total == Decimal("315.00")
