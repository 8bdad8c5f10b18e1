"""In-memory project budget host.

ProjectBudget owns the only mutable state of a budget: its line items, the
provenance ledger and the approval workflow. Every mutation goes through a
ledger reducer so nothing changes without a ProvenanceEntry. The database
repositories in budget.repository / approvals.service are the persistent
counterpart.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from budgetcalc.approvals.workflow import ApprovalWorkflow, Notifier, apply_change, record_decision
from budgetcalc.enrichment.engine import diff_enrichment, enrich_line_items
from budgetcalc.errors import PermissionDenied, ValidationError
from budgetcalc.financials.aggregator import compute_financial_summary
from budgetcalc.models import (
    ZERO,
    Actor,
    FinancialSummary,
    LineItem,
    PendingBudgetChange,
    utcnow,
)
from budgetcalc.pricing.templates import WorkTypeTemplate, get_template
from budgetcalc.provenance import ledger as reducers
from budgetcalc.provenance.ledger import FieldChange, ProvenanceLedger

logger = logging.getLogger(__name__)


class ProjectBudget:
    def __init__(
        self,
        project_id: str,
        items: Iterable[LineItem] = (),
        ledger: ProvenanceLedger | None = None,
        labor_cost: Decimal = ZERO,
        other_cost: Decimal = ZERO,
        tax_rate: Decimal | None = None,
        template: WorkTypeTemplate | str | None = None,
        confirmed_area: Decimal | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.project_id = project_id
        self._items: list[LineItem] = list(items)
        self.ledger = ledger if ledger is not None else ProvenanceLedger(items=self._items)
        self.labor_cost = labor_cost
        self.other_cost = other_cost
        self.tax_rate = tax_rate
        self.template = get_template(template) if isinstance(template, str) else template
        self.confirmed_area = confirmed_area
        self.approved_grand_total: Decimal | None = None
        self.is_draft = True
        self.last_modified = utcnow()
        self.workflow = ApprovalWorkflow(self, notifier)
        self._items_lock = threading.RLock()

    @property
    def items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    def get_item(self, item_id: str) -> LineItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise ValidationError(f"no line item with id {item_id!r}")

    def enrich(self) -> list[FieldChange]:
        """Run enrichment over the current items and record what it changed."""
        with self._items_lock:
            before = list(self._items)
            after = enrich_line_items(
                before, template=self.template, confirmed_area=self.confirmed_area
            )
            changes = diff_enrichment(before, after)
            self.ledger.record_changes(changes, after)
            self._set_items(after)
        logger.info("budget_enriched: project=%s changes=%d", self.project_id, len(changes))
        return changes

    def add_item(self, item: LineItem, actor: str | None = None) -> LineItem:
        with self._items_lock:
            self._set_items(reducers.add_item(self._items, item, self.ledger, actor))
            return self._items[-1]

    def manual_edit(self, item_id: str, actor: Actor, **values: Any) -> LineItem:
        """Owner-only direct edit; other roles go through submit_change()."""
        if not actor.is_owner:
            raise PermissionDenied("only the owner edits the budget directly; submit a change")
        with self._items_lock:
            self._set_items(
                reducers.manual_edit(self._items, item_id, self.ledger, actor=actor.user_id, **values)
            )
            return self.get_item(item_id)

    def remove_item(self, item_id: str, actor: str | None = None, note: str | None = None) -> None:
        with self._items_lock:
            self._set_items(reducers.remove_item(self._items, item_id, self.ledger, actor, note))

    def load_template(self, template: WorkTypeTemplate | str, actor: str | None = None) -> None:
        resolved = get_template(template) if isinstance(template, str) else template
        if resolved is None:
            raise ValidationError(f"unknown work type {template!r}")
        with self._items_lock:
            self.template = resolved
            self._set_items(
                reducers.load_from_template(
                    self._items, resolved, self.ledger, self.confirmed_area, actor
                )
            )

    def load_calculator(
        self, results: Iterable[LineItem | Mapping[str, Any]], actor: str | None = None
    ) -> None:
        with self._items_lock:
            self._set_items(reducers.load_from_calculator(self._items, results, self.ledger, actor))

    def submit_change(
        self,
        item_id: str,
        new_quantity: Decimal | None,
        new_unit_price: Decimal | None,
        reason: str,
        requester: Actor,
    ) -> PendingBudgetChange:
        return self.workflow.submit_change(item_id, new_quantity, new_unit_price, reason, requester)

    def apply_approved_change(self, change: PendingBudgetChange) -> None:
        """Called by the workflow, under its lock, for an approved change."""
        with self._items_lock:
            self._set_items(apply_change(self._items, change, self.ledger))
            record_decision(self.ledger, change)

    def finalize(self, actor: Actor) -> FinancialSummary:
        """Lock the current grand total in as the approved budget."""
        if not actor.is_owner:
            raise PermissionDenied("only the project owner may finalize the budget")
        summary = self.summary()
        self.approved_grand_total = summary.grand_total
        self.is_draft = False
        logger.info(
            "budget_finalized: project=%s grand_total=%s", self.project_id, summary.grand_total
        )
        return self.summary()

    def summary(self) -> FinancialSummary:
        return compute_financial_summary(
            self._items,
            labor_cost=self.labor_cost,
            other_cost=self.other_cost,
            tax_rate=self.tax_rate,
            approved_grand_total=self.approved_grand_total,
            pending_change=self.workflow.latest_pending(),
            is_draft=self.is_draft,
            data_source="local" if self._items else "empty",
            last_modified=self.last_modified,
        )

    def _set_items(self, items: list[LineItem]) -> None:
        self._items = items
        self.last_modified = utcnow()
