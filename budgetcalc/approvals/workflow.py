"""Budget change approval state machine.

    pending --approve (owner)------> approved
    pending --reject (owner)-------> rejected
    pending --cancel (requester)---> cancelled

Terminal states are final. The module-level functions are pure transitions
over PendingBudgetChange; ApprovalWorkflow hosts them in memory for one
ProjectBudget and serialises every transition with a lock so a change can
never be decided twice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from budgetcalc.errors import ChangeNotFound, PermissionDenied, StateConflict, ValidationError
from budgetcalc.financials.aggregator import line_total
from budgetcalc.models import (
    Actor,
    ChangeItemType,
    ChangeStatus,
    CitationSource,
    LineItem,
    LineItemCategory,
    PendingBudgetChange,
    ProvenanceField,
    money,
    utcnow,
)
from budgetcalc.notifications.slack import dispatch_change_notification
from budgetcalc.provenance.ledger import ProvenanceLedger, manual_edit

if TYPE_CHECKING:
    from budgetcalc.budget.project import ProjectBudget

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_NOTE = "No reason provided"

Notifier = Callable[[PendingBudgetChange], None]

_ITEM_TYPES = {
    LineItemCategory.MATERIAL: ChangeItemType.MATERIAL,
    LineItemCategory.LABOR: ChangeItemType.LABOR,
    LineItemCategory.OTHER: ChangeItemType.OTHER,
}


def build_change(
    item: LineItem,
    new_quantity: Decimal | None,
    new_unit_price: Decimal | None,
    reason: str,
    requester: Actor,
    project_id: str | None = None,
) -> PendingBudgetChange:
    """Validate a proposal and return it in the pending state.

    Raises:
        PermissionDenied: If the requester is the owner (owners edit directly)
        ValidationError: If the reason is blank, a value is negative, or
            nothing would change
    """
    if requester.is_owner:
        raise PermissionDenied("owners edit the budget directly; proposals are for other roles")
    if not reason or not reason.strip():
        raise ValidationError("a change reason is required")
    if new_quantity is None and new_unit_price is None:
        raise ValidationError("a change must propose a new quantity or unit price")
    if (new_quantity is not None and new_quantity < 0) or (
        new_unit_price is not None and new_unit_price < 0
    ):
        raise ValidationError("proposed quantity and unit price must be non-negative")

    quantity = item.quantity if new_quantity is None else new_quantity
    unit_price = item.unit_price if new_unit_price is None else new_unit_price
    return PendingBudgetChange(
        project_id=project_id,
        item_id=item.id,
        item_name=item.name,
        item_type=_ITEM_TYPES[item.category],
        original_quantity=item.quantity,
        original_unit_price=item.unit_price,
        original_total=line_total(item),
        new_quantity=quantity,
        new_unit_price=unit_price,
        new_total=money(quantity * unit_price),
        change_reason=reason.strip(),
        requested_by=requester.user_id,
    )


def approve(
    change: PendingBudgetChange,
    reviewer: Actor,
    notes: str | None = None,
    now: datetime | None = None,
) -> PendingBudgetChange:
    _require_owner(reviewer, "approve")
    _require_pending(change)
    return change.model_copy(
        update={
            "status": ChangeStatus.APPROVED,
            "reviewed_by": reviewer.user_id,
            "reviewed_at": now or utcnow(),
            "review_notes": notes,
        }
    )


def reject(
    change: PendingBudgetChange,
    reviewer: Actor,
    notes: str | None = None,
    now: datetime | None = None,
) -> PendingBudgetChange:
    _require_owner(reviewer, "reject")
    _require_pending(change)
    return change.model_copy(
        update={
            "status": ChangeStatus.REJECTED,
            "reviewed_by": reviewer.user_id,
            "reviewed_at": now or utcnow(),
            "review_notes": notes or DEFAULT_REJECTION_NOTE,
        }
    )


def cancel(
    change: PendingBudgetChange,
    requester: Actor,
    now: datetime | None = None,
) -> PendingBudgetChange:
    if requester.user_id != change.requested_by:
        raise PermissionDenied("only the requester may cancel a change")
    _require_pending(change)
    return change.model_copy(
        update={"status": ChangeStatus.CANCELLED, "reviewed_at": now or utcnow()}
    )


def apply_change(
    items: list[LineItem],
    change: PendingBudgetChange,
    ledger: ProvenanceLedger,
) -> list[LineItem]:
    """Write an approved proposal onto its line item as a manual override."""
    return manual_edit(
        items,
        change.item_id,
        ledger,
        quantity=change.new_quantity,
        unit_price=change.new_unit_price,
        actor=change.requested_by,
        note=f"approved change {change.id}: {change.change_reason}",
        confirm=True,
    )


def record_decision(ledger: ProvenanceLedger, change: PendingBudgetChange) -> None:
    ledger.record(
        change.item_id,
        CitationSource.BUDGET_APPROVAL,
        ProvenanceField.ITEM,
        previous_value=change.original_total,
        new_value=change.new_total if change.status == ChangeStatus.APPROVED else change.original_total,
        actor=change.reviewed_by,
        note=f"{change.status.value}: {change.review_notes or change.change_reason}",
    )


class ApprovalWorkflow:
    """In-memory workflow host for one project budget."""

    def __init__(self, budget: ProjectBudget, notifier: Notifier | None = None) -> None:
        self._budget = budget
        self._notifier = notifier or dispatch_change_notification
        self._changes: dict[str, PendingBudgetChange] = {}
        self._lock = threading.Lock()

    def get_change(self, change_id: str) -> PendingBudgetChange:
        try:
            return self._changes[change_id]
        except KeyError:
            raise ChangeNotFound(f"no budget change with id {change_id!r}") from None

    def list_changes(self, status: ChangeStatus | None = None) -> list[PendingBudgetChange]:
        changes = sorted(self._changes.values(), key=lambda c: c.requested_at)
        if status is None:
            return changes
        return [change for change in changes if change.status == status]

    def latest_pending(self) -> PendingBudgetChange | None:
        pending = self.list_changes(ChangeStatus.PENDING)
        return pending[-1] if pending else None

    def submit_change(
        self,
        item_id: str,
        new_quantity: Decimal | None,
        new_unit_price: Decimal | None,
        reason: str,
        requester: Actor,
    ) -> PendingBudgetChange:
        item = self._budget.get_item(item_id)
        change = build_change(
            item, new_quantity, new_unit_price, reason, requester, self._budget.project_id
        )
        with self._lock:
            self._changes[change.id] = change
        logger.info(
            "budget_change_submitted: change=%s item=%s by=%s delta=%s",
            change.id,
            change.item_id,
            requester.user_id,
            change.delta,
        )
        self._notify(change)
        return change

    def approve_change(self, change_id: str, reviewer: Actor, notes: str | None = None) -> bool:
        with self._lock:
            change = approve(self.get_change(change_id), reviewer, notes)
            self._budget.apply_approved_change(change)
            self._changes[change_id] = change
        logger.info("budget_change_approved: change=%s by=%s", change_id, reviewer.user_id)
        self._notify(change)
        return True

    def reject_change(self, change_id: str, reviewer: Actor, notes: str | None = None) -> bool:
        with self._lock:
            change = reject(self.get_change(change_id), reviewer, notes)
            record_decision(self._budget.ledger, change)
            self._changes[change_id] = change
        logger.info("budget_change_rejected: change=%s by=%s", change_id, reviewer.user_id)
        self._notify(change)
        return True

    def cancel_change(self, change_id: str, requester: Actor) -> bool:
        with self._lock:
            change = cancel(self.get_change(change_id), requester)
            self._changes[change_id] = change
        logger.info("budget_change_cancelled: change=%s", change_id)
        self._notify(change)
        return True

    def _notify(self, change: PendingBudgetChange) -> None:
        try:
            self._notifier(change)
        except Exception:
            logger.exception("change_notifier_failed: change=%s", change.id)


def _require_owner(actor: Actor, action: str) -> None:
    if not actor.is_owner:
        raise PermissionDenied(f"only the project owner may {action} budget changes")


def _require_pending(change: PendingBudgetChange) -> None:
    if change.status.is_terminal:
        raise StateConflict(
            f"change {change.id} is already {change.status.value}",
            current_status=change.status.value,
        )
