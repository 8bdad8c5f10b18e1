"""Budget change approval workflow and its database operations."""

from budgetcalc.approvals.workflow import ApprovalWorkflow
from budgetcalc.approvals.repository import fetch_change, fetch_changes
from budgetcalc.approvals.service import (
    approve_change,
    cancel_change,
    reject_change,
    submit_change,
)

__all__ = [
    "ApprovalWorkflow",
    "approve_change",
    "cancel_change",
    "fetch_change",
    "fetch_changes",
    "reject_change",
    "submit_change",
]
