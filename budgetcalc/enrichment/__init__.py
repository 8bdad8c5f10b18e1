"""Price & quantity enrichment."""

from budgetcalc.enrichment.engine import (
    PRICE_STRATEGIES,
    diff_enrichment,
    enrich_line_items,
    infer_base_area,
)

__all__ = ["PRICE_STRATEGIES", "diff_enrichment", "enrich_line_items", "infer_base_area"]
