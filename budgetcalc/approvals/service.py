"""Database-backed budget change operations (submit/approve/reject/cancel)."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from budgetcalc.approvals.repository import fetch_change, insert_change, transition_change
from budgetcalc.approvals.workflow import (
    Notifier,
    apply_change,
    approve,
    build_change,
    cancel,
    record_decision,
    reject,
)
from budgetcalc.budget.repository import (
    append_provenance,
    fetch_line_items,
    fetch_provenance,
    upsert_line_items,
)
from budgetcalc.core.logging import bind_project
from budgetcalc.errors import ValidationError
from budgetcalc.models import Actor, PendingBudgetChange
from budgetcalc.notifications.slack import dispatch_change_notification
from budgetcalc.provenance.ledger import ProvenanceLedger

logger = logging.getLogger(__name__)


async def submit_change(
    session: AsyncSession,
    project_id: str,
    item_id: str,
    new_quantity: Decimal | None,
    new_unit_price: Decimal | None,
    reason: str,
    requester: Actor,
    notifier: Notifier | None = None,
) -> PendingBudgetChange:
    """Record a non-owner's proposal; the line item is not touched."""
    bind_project(project_id)
    items = await fetch_line_items(session, project_id)
    item = next((candidate for candidate in items if candidate.id == item_id), None)
    if item is None:
        raise ValidationError(f"no line item with id {item_id!r}")

    change = build_change(item, new_quantity, new_unit_price, reason, requester, project_id)
    await insert_change(session, change)
    logger.info(
        "budget_change_submitted: change=%s item=%s by=%s", change.id, item_id, requester.user_id
    )
    _notify(notifier, change)
    return change


async def approve_change(
    session: AsyncSession,
    change_id: str,
    reviewer: Actor,
    notes: str | None = None,
    notifier: Notifier | None = None,
) -> bool:
    """Approve a pending change and apply it to its line item as a manual override.

    Raises:
        ChangeNotFound: If the change does not exist
        PermissionDenied: If the reviewer is not the owner
        StateConflict: If the change is no longer pending
    """
    change = approve(await fetch_change(session, change_id), reviewer, notes)
    project_id = change.project_id or ""
    bind_project(project_id)

    # Claim the transition first; a losing concurrent reviewer stops here
    await transition_change(session, change)

    items = await fetch_line_items(session, project_id)
    ledger = ProvenanceLedger(await fetch_provenance(session, project_id), items)
    recorded = len(ledger)
    updated = apply_change(items, change, ledger)
    record_decision(ledger, change)

    await upsert_line_items(
        session, project_id, [item for item in updated if item.id == change.item_id]
    )
    await append_provenance(session, project_id, ledger.entries[recorded:])
    logger.info("budget_change_approved: change=%s by=%s", change_id, reviewer.user_id)
    _notify(notifier, change)
    return True


async def reject_change(
    session: AsyncSession,
    change_id: str,
    reviewer: Actor,
    notes: str | None = None,
    notifier: Notifier | None = None,
) -> bool:
    """Reject a pending change; the line item is left untouched."""
    change = reject(await fetch_change(session, change_id), reviewer, notes)
    project_id = change.project_id or ""
    bind_project(project_id)
    await transition_change(session, change)

    ledger = ProvenanceLedger(await fetch_provenance(session, project_id))
    record_decision(ledger, change)
    await append_provenance(session, project_id, ledger.entries[-1:])
    logger.info("budget_change_rejected: change=%s by=%s", change_id, reviewer.user_id)
    _notify(notifier, change)
    return True


async def cancel_change(
    session: AsyncSession,
    change_id: str,
    requester: Actor,
    notifier: Notifier | None = None,
) -> bool:
    """Withdraw a pending change (original requester only)."""
    change = cancel(await fetch_change(session, change_id), requester)
    await transition_change(session, change)
    logger.info("budget_change_cancelled: change=%s", change_id)
    _notify(notifier, change)
    return True


def _notify(notifier: Notifier | None, change: PendingBudgetChange) -> None:
    try:
        (notifier or dispatch_change_notification)(change)
    except Exception:
        logger.exception("change_notifier_failed: change=%s", change.id)
