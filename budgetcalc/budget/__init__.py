"""Project budget host and its persistence."""

from budgetcalc.budget.project import ProjectBudget
from budgetcalc.budget.repository import (
    SaveResult,
    fetch_budget_sources,
    fetch_line_items,
    save_enriched_items,
    summarize_project,
)

__all__ = [
    "ProjectBudget",
    "SaveResult",
    "fetch_budget_sources",
    "fetch_line_items",
    "save_enriched_items",
    "summarize_project",
]
