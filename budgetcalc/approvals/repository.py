"""Database queries for pending budget changes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from budgetcalc.db.models import PendingBudgetChangeModel
from budgetcalc.errors import ChangeNotFound, StateConflict
from budgetcalc.models import ChangeStatus, PendingBudgetChange, as_utc

_COLUMNS = (
    "project_id",
    "item_id",
    "item_name",
    "original_quantity",
    "original_unit_price",
    "original_total",
    "new_quantity",
    "new_unit_price",
    "new_total",
    "change_reason",
    "requested_by",
    "reviewed_by",
    "review_notes",
)


async def insert_change(session: AsyncSession, change: PendingBudgetChange) -> None:
    session.add(
        PendingBudgetChangeModel(
            id=change.id,
            item_type=change.item_type.value,
            status=change.status.value,
            requested_at=change.requested_at,
            reviewed_at=change.reviewed_at,
            **{name: getattr(change, name) for name in _COLUMNS},
        )
    )
    await session.flush()


async def fetch_change(session: AsyncSession, change_id: str) -> PendingBudgetChange:
    row = await session.get(PendingBudgetChangeModel, change_id, populate_existing=True)
    if row is None:
        raise ChangeNotFound(f"no budget change with id {change_id!r}")
    return _to_change(row)


async def fetch_changes(
    session: AsyncSession,
    project_id: str,
    status: ChangeStatus | None = None,
) -> list[PendingBudgetChange]:
    stmt = select(PendingBudgetChangeModel).where(PendingBudgetChangeModel.project_id == project_id)
    if status is not None:
        stmt = stmt.where(PendingBudgetChangeModel.status == status.value)
    stmt = stmt.order_by(PendingBudgetChangeModel.requested_at.asc()).execution_options(
        populate_existing=True
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [_to_change(row) for row in rows]


async def fetch_latest_pending_change(
    session: AsyncSession,
    project_id: str,
) -> PendingBudgetChange | None:
    pending = await fetch_changes(session, project_id, ChangeStatus.PENDING)
    return pending[-1] if pending else None


async def transition_change(
    session: AsyncSession,
    change: PendingBudgetChange,
) -> None:
    """Persist a transition out of pending.

    The UPDATE only matches while the stored row is still pending, so of two
    concurrent reviewers exactly one wins; the other gets StateConflict.

    Raises:
        ChangeNotFound: If the change does not exist
        StateConflict: If the stored change is no longer pending
    """
    stmt = (
        update(PendingBudgetChangeModel)
        .where(
            PendingBudgetChangeModel.id == change.id,
            PendingBudgetChangeModel.status == ChangeStatus.PENDING.value,
        )
        .values(
            status=change.status.value,
            reviewed_by=change.reviewed_by,
            reviewed_at=change.reviewed_at,
            review_notes=change.review_notes,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 1:
        return

    current = await fetch_change(session, change.id)
    raise StateConflict(
        f"change {change.id} is already {current.status.value}",
        current_status=current.status.value,
    )


def _to_change(row: PendingBudgetChangeModel) -> PendingBudgetChange:
    return PendingBudgetChange(
        id=row.id,
        item_type=row.item_type,
        status=row.status,
        requested_at=as_utc(row.requested_at),
        reviewed_at=_utc_or_none(row.reviewed_at),
        **{name: getattr(row, name) for name in _COLUMNS},
    )


def _utc_or_none(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None
