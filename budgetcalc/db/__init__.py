"""Database layer for BudgetCalc (async SQLAlchemy)."""

from budgetcalc.db.connection import close_db, get_engine, get_session, init_db
from budgetcalc.db.models import (
    Base,
    LineItemModel,
    PendingBudgetChangeModel,
    ProjectBudgetModel,
    ProvenanceEntryModel,
)

__all__ = [
    "Base",
    "LineItemModel",
    "PendingBudgetChangeModel",
    "ProjectBudgetModel",
    "ProvenanceEntryModel",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
]
