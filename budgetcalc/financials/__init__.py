"""Budget totals and source priority."""

from budgetcalc.financials.aggregator import (
    BudgetSources,
    citation_stats,
    compute_financial_summary,
    line_total,
    select_authoritative_source,
    summarize_budget,
)

__all__ = [
    "BudgetSources",
    "citation_stats",
    "compute_financial_summary",
    "line_total",
    "select_authoritative_source",
    "summarize_budget",
]
