"""BudgetCalc Pydantic models for type-safe data validation.

Money and quantities are Decimal throughout; money is rounded half-up to cents.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from budgetcalc.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def money(value: Decimal | int | float | str) -> Decimal:
    """Round a currency amount half-up to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def new_line_item_id() -> str:
    return f"mat-{uuid4().hex[:12]}"


class LineItemSource(str, Enum):
    """Coarse producer category of a line item."""

    PHOTO = "photo"
    CALCULATOR = "calculator"
    TEMPLATE = "template"
    BLUEPRINT = "blueprint"
    MANUAL = "manual"


class CitationSource(str, Enum):
    """Provenance kind recorded against a value."""

    AI_PHOTO = "ai_photo"
    AI_BLUEPRINT = "ai_blueprint"
    TEMPLATE_PRESET = "template_preset"
    MANUAL_OVERRIDE = "manual_override"
    CALCULATOR = "calculator"
    IMPORTED = "imported"
    BUDGET_APPROVAL = "budget_approval"  # owner decision on a pending change


class LineItemCategory(str, Enum):
    MATERIAL = "material"
    LABOR = "labor"
    OTHER = "other"


class PricingState(str, Enum):
    """Tagged state of a line item as seen by enrichment."""

    PRICED = "priced"
    UNPRICED = "unpriced"
    MANUALLY_OVERRIDDEN = "manually_overridden"


class ProvenanceField(str, Enum):
    QUANTITY = "quantity"
    UNIT_PRICE = "unit_price"
    ITEM = "item"
    ADDED = "added"
    REMOVED = "removed"


class ChangeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ChangeStatus.PENDING


class ChangeItemType(str, Enum):
    MATERIAL = "material"
    LABOR = "labor"
    TASK = "task"
    OTHER = "other"


class ActorRole(str, Enum):
    OWNER = "owner"
    FOREMAN = "foreman"
    WORKER = "worker"
    INSPECTOR = "inspector"
    SUBCONTRACTOR = "subcontractor"
    MEMBER = "member"


class ConflictSeverity(str, Enum):
    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"


class Actor(BaseModel):
    """Authenticated actor as supplied by the auth provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: ActorRole

    @property
    def is_owner(self) -> bool:
        return self.role == ActorRole.OWNER


class LineItem(BaseModel):
    """One priceable unit of work or material."""

    id: str = Field(default_factory=new_line_item_id)
    name: str
    quantity: Decimal = ZERO
    unit: str = ""
    unit_price: Decimal = ZERO
    total_price: Decimal | None = None
    category: LineItemCategory = LineItemCategory.MATERIAL

    source: LineItemSource = LineItemSource.TEMPLATE
    citation_source: CitationSource | None = None
    citation_id: str | None = None

    is_essential: bool = True
    is_authoritative: bool = False  # stored total_price is trusted as-is

    edited_at: datetime | None = None
    original_value: Decimal | None = None  # pre-edit quantity, set once
    resolution_trace: str | None = None

    @field_validator("quantity", "unit_price", "total_price")
    @classmethod
    def validate_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("quantities and prices must be non-negative")
        return v

    @property
    def pricing_state(self) -> PricingState:
        if self.edited_at is not None:
            return PricingState.MANUALLY_OVERRIDDEN
        if self.unit_price > 0 and self.total_price is not None:
            # a zero total is consistent for a zero quantity
            if self.total_price > 0 or self.quantity == 0:
                return PricingState.PRICED
        return PricingState.UNPRICED

    @property
    def computed_total(self) -> Decimal:
        return money(self.quantity * self.unit_price)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "mat-1f2e3d4c5b6a",
                "name": "Laminate Flooring",
                "quantity": "8",
                "unit": "box",
                "unit_price": "64.99",
                "total_price": "519.92",
                "source": "photo",
                "citation_source": "ai_photo",
                "citation_id": "[AI-001]",
                "is_essential": True,
            }
        }


class ProvenanceEntry(BaseModel):
    """Immutable record of who/what set or changed a line-item value."""

    model_config = ConfigDict(frozen=True)

    id: str  # citation id, e.g. "[MO-004]"
    line_item_id: str
    source: CitationSource
    field: ProvenanceField
    timestamp: datetime = Field(default_factory=utcnow)
    previous_value: Decimal | str | None = None
    new_value: Decimal | str | None = None
    actor: str | None = None
    note: str | None = None


class PendingBudgetChange(BaseModel):
    """Proposed quantity/price modification awaiting owner sign-off."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str | None = None
    item_id: str
    item_name: str
    item_type: ChangeItemType = ChangeItemType.MATERIAL

    original_quantity: Decimal | None = None
    original_unit_price: Decimal | None = None
    original_total: Decimal | None = None
    new_quantity: Decimal | None = None
    new_unit_price: Decimal | None = None
    new_total: Decimal | None = None

    change_reason: str
    requested_by: str
    requested_at: datetime = Field(default_factory=utcnow)

    status: ChangeStatus = ChangeStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None

    @property
    def delta(self) -> Decimal:
        """Change in line total if this proposal were applied."""
        return (self.new_total or ZERO) - (self.original_total or ZERO)


class PendingChangeView(BaseModel):
    """What collaborators see of an in-flight change on the dashboard."""

    change_id: str
    status: ChangeStatus
    item_name: str
    requested_by: str
    delta: Decimal
    proposed_grand_total: Decimal


class FinancialSummary(BaseModel):
    """Derived budget figures; recomputed on every read, never stored as truth."""

    material_cost: Decimal = ZERO
    labor_cost: Decimal = ZERO
    other_cost: Decimal = ZERO
    subtotal: Decimal = ZERO
    tax_rate: Decimal = ZERO
    tax_amount: Decimal = ZERO
    grand_total: Decimal = ZERO
    approved_grand_total: Decimal | None = None
    is_draft: bool = True
    pending_change: PendingChangeView | None = None
    data_source: str = "empty"
    last_modified: datetime | None = None

    @property
    def has_unapproved_drift(self) -> bool:
        return (
            self.approved_grand_total is not None
            and self.approved_grand_total != self.grand_total
        )


class ConflictAlert(BaseModel):
    """Advisory disagreement between a claim and stored ground truth."""

    model_config = ConfigDict(frozen=True)

    type: str
    claimed_value: float
    ground_truth_value: float
    deviation_percent: float
    source: str
    severity: ConflictSeverity


def parse_line_items(payloads: Iterable[Mapping[str, Any]]) -> list[LineItem]:
    """Validate raw producer payloads into LineItems.

    Raises:
        ValidationError: If any payload is malformed (nothing is returned)
    """
    items: list[LineItem] = []
    for index, payload in enumerate(payloads):
        data = dict(payload)
        # Producers disagree on the name key
        if "name" not in data:
            for alias in ("item", "description"):
                if alias in data:
                    data["name"] = data.pop(alias)
                    break
        try:
            items.append(LineItem.model_validate(data))
        except pydantic.ValidationError as exc:
            raise ValidationError(f"line item {index} is invalid: {exc}") from exc
    return items
