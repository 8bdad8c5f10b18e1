"""SQLAlchemy async database models for BudgetCalc.

Line items, provenance entries and pending budget changes are keyed by
(project_id, id); every write is a single-row statement so each operation is
atomic per record.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

LAYER_RAW = "raw"
LAYER_ENRICHED = "enriched"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProjectBudgetModel(Base):
    """Per-project budget settings and the approved snapshot."""

    __tablename__ = "project_budgets"

    project_id: Mapped[str] = mapped_column(Text, primary_key=True)
    work_type: Mapped[str | None] = mapped_column(Text)
    confirmed_area: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    labor_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    other_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_rate: Mapped[Decimal | None] = mapped_column(Numeric(6, 4))

    # Set when the owner finalizes; None while the budget is a draft
    approved_grand_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ProjectBudget(project_id={self.project_id!r}, draft={self.is_draft})>"


class LineItemModel(Base):
    """Persisted line item; layer separates raw intake from enriched rows."""

    __tablename__ = "line_items"

    project_id: Mapped[str] = mapped_column(Text, primary_key=True)
    layer: Mapped[str] = mapped_column(String(16), primary_key=True, default=LAYER_ENRICHED)
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    category: Mapped[str] = mapped_column(String(16), nullable=False, default="material")

    source: Mapped[str] = mapped_column(String(32), nullable=False)
    citation_source: Mapped[str | None] = mapped_column(String(32))
    citation_id: Mapped[str | None] = mapped_column(Text)

    is_essential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_authoritative: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    original_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    resolution_trace: Mapped[str | None] = mapped_column(Text)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="check_quantity_non_negative"),
        CheckConstraint("unit_price >= 0", name="check_unit_price_non_negative"),
        CheckConstraint("layer IN ('raw', 'enriched')", name="check_layer"),
        Index("idx_line_items_project_layer", "project_id", "layer", "position"),
    )

    def __repr__(self) -> str:
        return f"<LineItem(id={self.id!r}, name={self.name!r}, layer={self.layer!r})>"


class ProvenanceEntryModel(Base):
    """Append-only provenance ledger row."""

    __tablename__ = "provenance_entries"

    project_id: Mapped[str] = mapped_column(Text, primary_key=True)
    id: Mapped[str] = mapped_column(Text, primary_key=True)  # citation id
    line_item_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    field: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    previous_value: Mapped[str | None] = mapped_column(Text)
    new_value: Mapped[str | None] = mapped_column(Text)
    actor: Mapped[str | None] = mapped_column(Text)
    note: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "field IN ('quantity', 'unit_price', 'item', 'added', 'removed')",
            name="check_provenance_field",
        ),
        Index("idx_provenance_project_time", "project_id", "timestamp"),
    )


class PendingBudgetChangeModel(Base):
    """Budget change proposal and its review outcome."""

    __tablename__ = "pending_budget_changes"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    project_id: Mapped[str | None] = mapped_column(Text, index=True)
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    item_type: Mapped[str] = mapped_column(String(16), nullable=False, default="material")

    original_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    original_unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    original_total: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    new_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    new_unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    new_total: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    requested_by: Mapped[str] = mapped_column(Text, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    reviewed_by: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    review_notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="check_change_status",
        ),
        CheckConstraint("length(trim(change_reason)) > 0", name="check_reason_not_blank"),
        Index("idx_changes_project_status", "project_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<PendingBudgetChange(id={self.id!r}, status={self.status!r})>"
