"""Financial aggregation: line items -> FinancialSummary.

Totals are always derived from line items on read, so subtotal, tax and grand
total can never drift from the items they summarise. When several copies of
the same budget exist, the persisted authoritative copy wins over local
enrichment, which wins over raw producer intake.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from budgetcalc.config import get_config
from budgetcalc.enrichment.engine import enrich_line_items
from budgetcalc.errors import ValidationError
from budgetcalc.models import (
    ZERO,
    ChangeStatus,
    FinancialSummary,
    LineItem,
    LineItemCategory,
    PendingBudgetChange,
    PendingChangeView,
    money,
)
from budgetcalc.pricing.templates import WorkTypeTemplate

logger = logging.getLogger(__name__)


@dataclass
class BudgetSources:
    """Every copy of a project's line items the caller could find."""

    persisted: list[LineItem] = field(default_factory=list)
    local: list[LineItem] = field(default_factory=list)
    raw: list[LineItem] = field(default_factory=list)
    last_modified: datetime | None = None


def line_total(item: LineItem) -> Decimal:
    """Stored total for authoritative items, quantity x unit price otherwise."""
    if item.is_authoritative and item.total_price is not None:
        return item.total_price
    return money(item.quantity * item.unit_price)


def select_authoritative_source(
    persisted: Sequence[LineItem] | None,
    local: Sequence[LineItem] | None,
    raw: Sequence[LineItem] | None,
    template: WorkTypeTemplate | str | None = None,
    confirmed_area: Decimal | None = None,
) -> tuple[list[LineItem], str]:
    """Pick the first non-empty source: persisted, then local, then raw.

    Raw intake is enriched on the fly. Returns (items, source_name) where
    source_name is one of persisted / local / raw / empty.
    """
    if persisted:
        return list(persisted), "persisted"
    if local:
        return list(local), "local"
    if raw:
        return enrich_line_items(raw, template=template, confirmed_area=confirmed_area), "raw"
    return [], "empty"


def compute_financial_summary(
    items: Sequence[LineItem],
    labor_cost: Decimal = ZERO,
    other_cost: Decimal = ZERO,
    tax_rate: Decimal | None = None,
    approved_grand_total: Decimal | None = None,
    pending_change: PendingBudgetChange | None = None,
    is_draft: bool = True,
    data_source: str | None = None,
    last_modified: datetime | None = None,
) -> FinancialSummary:
    """Compute budget totals from line items.

    Labor and other line items add to the supplied labor_cost / other_cost.
    A pending change only produces a projection; grand_total is unaffected.

    Raises:
        ValidationError: If a cost or the tax rate is negative
    """
    if labor_cost < 0 or other_cost < 0:
        raise ValidationError("labor_cost and other_cost must be non-negative")
    if tax_rate is None:
        tax_rate = get_config().estimating.tax_rate
    if tax_rate < 0:
        raise ValidationError("tax_rate must be non-negative")

    buckets = {category: ZERO for category in LineItemCategory}
    for item in items:
        buckets[item.category] += line_total(item)

    material = money(buckets[LineItemCategory.MATERIAL])
    labor = money(labor_cost + buckets[LineItemCategory.LABOR])
    other = money(other_cost + buckets[LineItemCategory.OTHER])
    subtotal = material + labor + other
    tax_amount = money(subtotal * tax_rate)

    view = None
    if pending_change is not None and pending_change.status == ChangeStatus.PENDING:
        proposed_subtotal = subtotal + pending_change.delta
        view = PendingChangeView(
            change_id=pending_change.id,
            status=pending_change.status,
            item_name=pending_change.item_name,
            requested_by=pending_change.requested_by,
            delta=pending_change.delta,
            proposed_grand_total=proposed_subtotal + money(proposed_subtotal * tax_rate),
        )

    return FinancialSummary(
        material_cost=material,
        labor_cost=labor,
        other_cost=other,
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        grand_total=subtotal + tax_amount,
        approved_grand_total=approved_grand_total,
        is_draft=is_draft,
        pending_change=view,
        data_source=data_source or ("local" if items else "empty"),
        last_modified=last_modified,
    )


def summarize_budget(
    sources: BudgetSources,
    labor_cost: Decimal = ZERO,
    other_cost: Decimal = ZERO,
    tax_rate: Decimal | None = None,
    approved_grand_total: Decimal | None = None,
    pending_change: PendingBudgetChange | None = None,
    is_draft: bool = True,
    template: WorkTypeTemplate | str | None = None,
    confirmed_area: Decimal | None = None,
) -> FinancialSummary:
    """Source priority selection followed by summary computation."""
    items, source_name = select_authoritative_source(
        sources.persisted,
        sources.local,
        sources.raw,
        template=template,
        confirmed_area=confirmed_area,
    )
    logger.debug("budget_source_selected: source=%s items=%d", source_name, len(items))
    return compute_financial_summary(
        items,
        labor_cost=labor_cost,
        other_cost=other_cost,
        tax_rate=tax_rate,
        approved_grand_total=approved_grand_total,
        pending_change=pending_change,
        is_draft=is_draft,
        data_source=source_name,
        last_modified=sources.last_modified,
    )


def citation_stats(items: Sequence[LineItem]) -> dict[str, int]:
    """Number of items per citation source ("uncited" for none)."""
    counts = Counter(
        item.citation_source.value if item.citation_source else "uncited" for item in items
    )
    return dict(sorted(counts.items()))
