"""Database queries for project budgets, line items and provenance."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from budgetcalc.approvals.repository import fetch_latest_pending_change
from budgetcalc.core.logging import bind_project
from budgetcalc.db.models import (
    LAYER_ENRICHED,
    LAYER_RAW,
    LineItemModel,
    ProjectBudgetModel,
    ProvenanceEntryModel,
)
from budgetcalc.errors import PermissionDenied, StateConflict
from budgetcalc.financials.aggregator import BudgetSources, summarize_budget
from budgetcalc.models import (
    ZERO,
    Actor,
    FinancialSummary,
    LineItem,
    ProvenanceEntry,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass
class SaveResult:
    """Outcome of an enrichment write: ids written and per-item conflicts."""

    saved: list[str] = field(default_factory=list)
    conflicts: list[StateConflict] = field(default_factory=list)


async def save_enriched_items(
    session: AsyncSession,
    project_id: str,
    items: Sequence[LineItem],
    read_at: datetime,
) -> SaveResult:
    """Persist an enrichment pass as the project's authoritative line items.

    Each row is written with a conditional UPDATE that only matches when the
    stored row has no manual edit newer than read_at (the moment the pass
    read its input). A row edited in the meantime is left alone and reported
    in SaveResult.conflicts; nothing is raised.
    """
    bind_project(project_id)
    result = SaveResult()
    for position, item in enumerate(items):
        values = _row_values(item, position, authoritative=True)
        stmt = (
            update(LineItemModel)
            .where(
                LineItemModel.project_id == project_id,
                LineItemModel.layer == LAYER_ENRICHED,
                LineItemModel.id == item.id,
                or_(LineItemModel.edited_at.is_(None), LineItemModel.edited_at <= read_at),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = await session.execute(stmt)
        if updated.rowcount:
            result.saved.append(item.id)
            continue

        existing = await session.get(LineItemModel, (project_id, LAYER_ENRICHED, item.id))
        if existing is None:
            session.add(
                LineItemModel(project_id=project_id, layer=LAYER_ENRICHED, id=item.id, **values)
            )
            result.saved.append(item.id)
        else:
            conflict = StateConflict(
                f"line item {item.id} was edited at {existing.edited_at} after this pass read it",
                current_status="manually_overridden",
            )
            logger.warning("enrichment_write_discarded: item=%s", item.id)
            result.conflicts.append(conflict)

    await session.flush()
    logger.info(
        "enriched_items_saved: saved=%d conflicts=%d", len(result.saved), len(result.conflicts)
    )
    return result


async def upsert_line_items(
    session: AsyncSession,
    project_id: str,
    items: Sequence[LineItem],
) -> None:
    """Unconditional write used for manual edits and approved changes."""
    for position, item in enumerate(items):
        values = _row_values(item, position, authoritative=item.is_authoritative)
        row = await session.get(LineItemModel, (project_id, LAYER_ENRICHED, item.id))
        if row is None:
            session.add(
                LineItemModel(project_id=project_id, layer=LAYER_ENRICHED, id=item.id, **values)
            )
        else:
            values.pop("position")  # keep the stored order
            for key, value in values.items():
                setattr(row, key, value)
    await session.flush()


async def save_raw_items(session: AsyncSession, project_id: str, items: Sequence[LineItem]) -> None:
    """Replace the project's raw intake with items, as received."""
    await session.execute(
        delete(LineItemModel).where(
            LineItemModel.project_id == project_id, LineItemModel.layer == LAYER_RAW
        )
    )
    for position, item in enumerate(items):
        session.add(
            LineItemModel(
                project_id=project_id,
                layer=LAYER_RAW,
                id=item.id,
                **_row_values(item, position, authoritative=False),
            )
        )
    await session.flush()


async def fetch_line_items(
    session: AsyncSession,
    project_id: str,
    layer: str = LAYER_ENRICHED,
) -> list[LineItem]:
    stmt = (
        select(LineItemModel)
        .where(LineItemModel.project_id == project_id, LineItemModel.layer == layer)
        .order_by(LineItemModel.position.asc())
        .execution_options(populate_existing=True)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [_to_line_item(row) for row in rows]


async def fetch_budget_sources(session: AsyncSession, project_id: str) -> BudgetSources:
    """Persisted (enriched) and raw copies of a project's items."""
    last_modified = (
        await session.execute(
            select(func.max(LineItemModel.updated_at)).where(LineItemModel.project_id == project_id)
        )
    ).scalar_one_or_none()
    return BudgetSources(
        persisted=await fetch_line_items(session, project_id, LAYER_ENRICHED),
        raw=await fetch_line_items(session, project_id, LAYER_RAW),
        last_modified=as_utc(last_modified) if last_modified else None,
    )


async def append_provenance(
    session: AsyncSession,
    project_id: str,
    entries: Iterable[ProvenanceEntry],
) -> None:
    session.add_all(
        ProvenanceEntryModel(
            project_id=project_id,
            id=entry.id,
            line_item_id=entry.line_item_id,
            source=entry.source.value,
            field=entry.field.value,
            timestamp=entry.timestamp,
            previous_value=_encode(entry.previous_value),
            new_value=_encode(entry.new_value),
            actor=entry.actor,
            note=entry.note,
        )
        for entry in entries
    )
    await session.flush()


async def fetch_provenance(
    session: AsyncSession,
    project_id: str,
    line_item_id: str | None = None,
) -> list[ProvenanceEntry]:
    stmt = select(ProvenanceEntryModel).where(ProvenanceEntryModel.project_id == project_id)
    if line_item_id is not None:
        stmt = stmt.where(ProvenanceEntryModel.line_item_id == line_item_id)
    stmt = stmt.order_by(ProvenanceEntryModel.timestamp.asc(), ProvenanceEntryModel.id.asc())

    rows = (await session.execute(stmt)).scalars().all()
    return [
        ProvenanceEntry(
            id=row.id,
            line_item_id=row.line_item_id,
            source=row.source,
            field=row.field,
            timestamp=as_utc(row.timestamp),
            previous_value=_decode(row.previous_value),
            new_value=_decode(row.new_value),
            actor=row.actor,
            note=row.note,
        )
        for row in rows
    ]


async def get_project_budget(session: AsyncSession, project_id: str) -> ProjectBudgetModel | None:
    return await session.get(ProjectBudgetModel, project_id)


async def save_project_settings(
    session: AsyncSession,
    project_id: str,
    **settings: Any,
) -> ProjectBudgetModel:
    """Create or update a project's budget settings (work_type, costs, tax_rate...)."""
    project = await session.get(ProjectBudgetModel, project_id)
    if project is None:
        project = ProjectBudgetModel(
            project_id=project_id, labor_cost=ZERO, other_cost=ZERO, is_draft=True
        )
        session.add(project)
    for key, value in settings.items():
        setattr(project, key, value)
    project.updated_at = utcnow()
    await session.flush()
    return project


async def summarize_project(
    session: AsyncSession,
    project_id: str,
    local: Sequence[LineItem] | None = None,
) -> FinancialSummary:
    """FinancialSummary from the best available source plus the pending change."""
    bind_project(project_id)
    project = await get_project_budget(session, project_id)
    sources = await fetch_budget_sources(session, project_id)
    if local:
        sources.local = list(local)

    return summarize_budget(
        sources,
        labor_cost=project.labor_cost if project else ZERO,
        other_cost=project.other_cost if project else ZERO,
        tax_rate=project.tax_rate if project else None,
        approved_grand_total=project.approved_grand_total if project else None,
        pending_change=await fetch_latest_pending_change(session, project_id),
        is_draft=project.is_draft if project else True,
        template=project.work_type if project else None,
        confirmed_area=project.confirmed_area if project else None,
    )


async def finalize_project_budget(
    session: AsyncSession,
    project_id: str,
    actor: Actor,
) -> FinancialSummary:
    """Record the current grand total as the approved budget (owner only)."""
    if not actor.is_owner:
        raise PermissionDenied("only the project owner may finalize the budget")
    summary = await summarize_project(session, project_id)
    await save_project_settings(
        session, project_id, approved_grand_total=summary.grand_total, is_draft=False
    )
    logger.info("budget_finalized: grand_total=%s by=%s", summary.grand_total, actor.user_id)
    return await summarize_project(session, project_id)


def _row_values(item: LineItem, position: int, authoritative: bool) -> dict[str, Any]:
    return {
        "position": position,
        "name": item.name,
        "quantity": item.quantity,
        "unit": item.unit,
        "unit_price": item.unit_price,
        "total_price": item.total_price,
        "category": item.category.value,
        "source": item.source.value,
        "citation_source": item.citation_source.value if item.citation_source else None,
        "citation_id": item.citation_id,
        "is_essential": item.is_essential,
        "is_authoritative": authoritative,
        "edited_at": item.edited_at,
        "original_value": item.original_value,
        "resolution_trace": item.resolution_trace,
        "updated_at": utcnow(),
    }


def _to_line_item(row: LineItemModel) -> LineItem:
    return LineItem(
        id=row.id,
        name=row.name,
        quantity=row.quantity,
        unit=row.unit,
        unit_price=row.unit_price,
        total_price=row.total_price,
        category=row.category,
        source=row.source,
        citation_source=row.citation_source,
        citation_id=row.citation_id,
        is_essential=row.is_essential,
        is_authoritative=row.is_authoritative,
        edited_at=as_utc(row.edited_at) if row.edited_at else None,
        original_value=row.original_value,
        resolution_trace=row.resolution_trace,
    )


def _encode(value: Decimal | str | None) -> str | None:
    return None if value is None else str(value)


def _decode(value: str | None) -> Decimal | str | None:
    if value is not None and _NUMERIC.match(value):
        return Decimal(value)
    return value
