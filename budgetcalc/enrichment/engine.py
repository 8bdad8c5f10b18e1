"""Price & quantity enrichment for incoming line items.

Fills missing quantities and unit prices without clobbering human edits:

- manually overridden items keep quantity, unit and price; only the total is
  recomputed
- already priced items are left as they are (total recomputed)
- unpriced items are resolved to purchasable packages (essential, area-unit
  only) and then priced by the first strategy in PRICE_STRATEGIES that
  returns a value

The pass is pure and idempotent: enriching an enriched list changes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from budgetcalc.canonical.units import canonical_unit, is_area_unit
from budgetcalc.config import get_config
from budgetcalc.models import (
    CitationSource,
    LineItem,
    PricingState,
    ProvenanceField,
    ZERO,
    money,
)
from budgetcalc.pricing.default_prices import lookup_default_price, unit_fallback_price
from budgetcalc.pricing.templates import WorkTypeTemplate, get_template
from budgetcalc.provenance.ledger import CITATION_PREFIXES, FieldChange
from budgetcalc.quantity.resolver import package_price, resolve_quantity, to_square_feet

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnrichmentContext:
    template: WorkTypeTemplate | None
    base_area: Decimal | None
    base_area_inferred: bool
    waste_percent: Decimal


PriceStrategy = Callable[[LineItem, EnrichmentContext], Decimal | None]


def existing_price(item: LineItem, ctx: EnrichmentContext) -> Decimal | None:
    return item.unit_price if item.unit_price > 0 else None


def template_price(item: LineItem, ctx: EnrichmentContext) -> Decimal | None:
    """Price from the work-type template, converted to the item's package unit."""
    if ctx.template is None:
        return None
    material = ctx.template.find_material(item.name)
    if material is None:
        return None

    if canonical_unit(material.unit) == canonical_unit(item.unit):
        return material.unit_price
    # e.g. template laminate at 2.85/sq ft, item already resolved to boxes
    return package_price(item.name, material.unit, material.unit_price, item.unit)


def default_table_price(item: LineItem, ctx: EnrichmentContext) -> Decimal | None:
    return lookup_default_price(item.name, item.unit)


def unit_heuristic_price(item: LineItem, ctx: EnrichmentContext) -> Decimal | None:
    return unit_fallback_price(item.unit)


PRICE_STRATEGIES: tuple[PriceStrategy, ...] = (
    existing_price,
    template_price,
    default_table_price,
    unit_heuristic_price,
)


def infer_base_area(items: Iterable[LineItem]) -> Decimal | None:
    """Largest area-denominated quantity, in sq ft, or None."""
    areas = [
        to_square_feet(item.quantity, item.unit)
        for item in items
        if is_area_unit(item.unit) and item.quantity > 0
    ]
    areas = [area for area in areas if area is not None]
    return max(areas) if areas else None


def enrich_line_items(
    items: Sequence[LineItem],
    template: WorkTypeTemplate | str | None = None,
    confirmed_area: Decimal | None = None,
    waste_percent: Decimal | None = None,
    strategies: Sequence[PriceStrategy] = PRICE_STRATEGIES,
) -> list[LineItem]:
    """Fill quantities, prices, totals and citations.

    Args:
        items: Line items from any producer
        template: Work-type template (or work-type name) for template pricing
        confirmed_area: Project area in sq ft confirmed by a human
        waste_percent: Waste allowance; defaults to config
        strategies: Ordered price fallback ladder

    Returns:
        New list, same length and order as items
    """
    if isinstance(template, str):
        template = get_template(template)

    base_area = confirmed_area
    inferred = False
    if base_area is None:
        base_area = infer_base_area(items)
        inferred = base_area is not None
        if inferred:
            logger.warning(
                "enrichment_base_area_inferred: area=%s (largest area item, lower confidence)",
                base_area,
            )

    ctx = EnrichmentContext(
        template=template,
        base_area=base_area,
        base_area_inferred=inferred,
        waste_percent=(
            get_config().estimating.waste_percent if waste_percent is None else waste_percent
        ),
    )

    enriched: list[LineItem] = []
    for index, item in enumerate(items):
        state = item.pricing_state
        if state == PricingState.UNPRICED:
            item = _enrich_unpriced(item, ctx, strategies)
        item = item.model_copy(update={"total_price": money(item.quantity * item.unit_price)})
        enriched.append(_assign_citation(item, index))

    logger.info(
        "enrichment_complete: items=%d unpriced_before=%d",
        len(enriched),
        sum(1 for item in items if item.pricing_state == PricingState.UNPRICED),
    )
    return enriched


def diff_enrichment(before: Sequence[LineItem], after: Sequence[LineItem]) -> list[FieldChange]:
    """Quantity and unit-price differences between two passes, matched by id."""
    previous = {item.id: item for item in before}
    changes: list[FieldChange] = []
    for item in after:
        old = previous.get(item.id)
        if old is None:
            changes.append(FieldChange(item.id, ProvenanceField.ADDED, None, item.name))
            continue
        if old.quantity != item.quantity:
            changes.append(
                FieldChange(item.id, ProvenanceField.QUANTITY, old.quantity, item.quantity)
            )
        if old.unit_price != item.unit_price:
            changes.append(
                FieldChange(item.id, ProvenanceField.UNIT_PRICE, old.unit_price, item.unit_price)
            )
    return changes


def _enrich_unpriced(
    item: LineItem,
    ctx: EnrichmentContext,
    strategies: Sequence[PriceStrategy],
) -> LineItem:
    if item.is_essential and is_area_unit(item.unit):
        item = _resolve(item, ctx)

    for strategy in strategies:
        price = strategy(item, ctx)
        if price is not None:
            return item.model_copy(update={"unit_price": price})
    return item


def _resolve(item: LineItem, ctx: EnrichmentContext) -> LineItem:
    # base_area is always in sq ft
    if item.quantity > 0:
        input_value, input_unit = item.quantity, item.unit
    else:
        input_value, input_unit = ctx.base_area, "sq ft"
    if not input_value:
        return item

    result = resolve_quantity(item.name, input_unit, input_value, ctx.waste_percent)
    if not result.success:
        return item

    # A price given per sq ft must follow the quantity into packages
    carried_price = ZERO
    if item.unit_price > 0:
        carried_price = (
            package_price(item.name, item.unit, item.unit_price, result.resolved_unit) or ZERO
        )

    return item.model_copy(
        update={
            "quantity": result.gross_quantity,
            "unit": result.resolved_unit,
            "unit_price": carried_price,
            "resolution_trace": result.calculation_trace,
        }
    )


def _assign_citation(item: LineItem, index: int) -> LineItem:
    if item.citation_id:
        return item
    source = item.citation_source or CitationSource.TEMPLATE_PRESET
    return item.model_copy(
        update={
            "citation_source": source,
            "citation_id": f"[{CITATION_PREFIXES[source]}-{index + 1:03d}]",
        }
    )
