"""Provenance ledger: append-only citation registry.

Every value that lands on a line item gets a citation id such as "[MO-004]"
and a ProvenanceEntry saying which source set it, when, and what it replaced.
The edit reducers below are the only sanctioned way to change a line-item
list by hand; each returns a new list and records what it did.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from budgetcalc.errors import ValidationError
from budgetcalc.models import (
    CitationSource,
    LineItem,
    LineItemSource,
    ProvenanceEntry,
    ProvenanceField,
    money,
    parse_line_items,
    utcnow,
)
from budgetcalc.pricing.templates import WorkTypeTemplate, template_to_line_items

logger = logging.getLogger(__name__)

CITATION_PREFIXES: dict[CitationSource, str] = {
    CitationSource.AI_PHOTO: "AI",
    CitationSource.AI_BLUEPRINT: "BP",
    CitationSource.TEMPLATE_PRESET: "TMPL",
    CitationSource.MANUAL_OVERRIDE: "MO",
    CitationSource.CALCULATOR: "CALC",
    CitationSource.IMPORTED: "IMP",
    CitationSource.BUDGET_APPROVAL: "BA",
}

_CITATION_ID = re.compile(r"^\[([A-Z]+)-(\d+)\]$")


def format_citation_id(source: CitationSource, number: int) -> str:
    return f"[{CITATION_PREFIXES[source]}-{number:03d}]"


@dataclass(frozen=True, slots=True)
class FieldChange:
    """A single field difference produced by an automated pass."""

    line_item_id: str
    field: ProvenanceField
    previous_value: Decimal | str | None
    new_value: Decimal | str | None


class ProvenanceLedger:
    """Append-only registry of ProvenanceEntries for one project.

    Citation numbers are allocated per source prefix and never reused; the
    counters are seeded from existing entries and line-item citation ids so a
    reloaded ledger keeps ids unique.
    """

    def __init__(
        self,
        entries: Iterable[ProvenanceEntry] = (),
        items: Iterable[LineItem] = (),
    ) -> None:
        self._entries: list[ProvenanceEntry] = []
        self._counters: dict[str, int] = defaultdict(int)
        for entry in entries:
            self._seed(entry.id)
            self._entries.append(entry)
        for item in items:
            if item.citation_id:
                self._seed(item.citation_id)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProvenanceEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[ProvenanceEntry, ...]:
        return tuple(self._entries)

    def next_citation_id(self, source: CitationSource) -> str:
        prefix = CITATION_PREFIXES[source]
        self._counters[prefix] += 1
        return format_citation_id(source, self._counters[prefix])

    def record(
        self,
        line_item_id: str,
        source: CitationSource,
        field: ProvenanceField,
        previous_value: Decimal | str | None = None,
        new_value: Decimal | str | None = None,
        actor: str | None = None,
        note: str | None = None,
        timestamp: datetime | None = None,
    ) -> ProvenanceEntry:
        entry = ProvenanceEntry(
            id=self.next_citation_id(source),
            line_item_id=line_item_id,
            source=source,
            field=field,
            timestamp=timestamp or utcnow(),
            previous_value=previous_value,
            new_value=new_value,
            actor=actor,
            note=note,
        )
        self._entries.append(entry)
        logger.debug(
            "provenance_recorded: id=%s item=%s field=%s", entry.id, line_item_id, field.value
        )
        return entry

    def record_changes(
        self,
        changes: Iterable[FieldChange],
        items: Iterable[LineItem],
        actor: str | None = None,
    ) -> list[ProvenanceEntry]:
        """Record automated field changes under each item's citation source."""
        sources = {
            item.id: item.citation_source or CitationSource.TEMPLATE_PRESET for item in items
        }
        return [
            self.record(
                change.line_item_id,
                sources.get(change.line_item_id, CitationSource.TEMPLATE_PRESET),
                change.field,
                previous_value=change.previous_value,
                new_value=change.new_value,
                actor=actor,
            )
            for change in changes
        ]

    def history(self, line_item_id: str) -> list[ProvenanceEntry]:
        return [entry for entry in self._entries if entry.line_item_id == line_item_id]

    def latest(self, line_item_id: str, field: ProvenanceField) -> ProvenanceEntry | None:
        for entry in reversed(self._entries):
            if entry.line_item_id == line_item_id and entry.field == field:
                return entry
        return None

    def _seed(self, citation_id: str) -> None:
        match = _CITATION_ID.match(citation_id)
        if match:
            prefix, number = match.group(1), int(match.group(2))
            self._counters[prefix] = max(self._counters[prefix], number)


def add_item(
    items: list[LineItem],
    item: LineItem,
    ledger: ProvenanceLedger,
    actor: str | None = None,
) -> list[LineItem]:
    """Append a line item, logging an `added` entry."""
    if any(existing.id == item.id for existing in items):
        raise ValidationError(f"line item id {item.id!r} already exists")

    source = item.citation_source or CitationSource.MANUAL_OVERRIDE
    entry = ledger.record(item.id, source, ProvenanceField.ADDED, new_value=item.name, actor=actor)
    added = item.model_copy(
        update={
            "citation_source": source,
            "citation_id": item.citation_id or entry.id,
            "total_price": money(item.quantity * item.unit_price),
        }
    )
    return [*items, added]


def manual_edit(
    items: list[LineItem],
    item_id: str,
    ledger: ProvenanceLedger,
    *,
    quantity: Decimal | None = None,
    unit_price: Decimal | None = None,
    name: str | None = None,
    actor: str | None = None,
    note: str | None = None,
    confirm: bool = False,
) -> list[LineItem]:
    """Apply a human edit to one item and mark it manually overridden.

    The first edit captures the pre-edit quantity in original_value; later
    edits leave it alone. Every changed field gets a manual_override entry.
    With confirm=True an edit that changes nothing still marks the item,
    recorded as a quantity entry with equal previous and new values.

    Raises:
        ValidationError: If the item is unknown or a value is negative
    """
    index = _index_of(items, item_id)
    item = items[index]
    if (quantity is not None and quantity < 0) or (unit_price is not None and unit_price < 0):
        raise ValidationError("quantity and unit price must be non-negative")

    now = utcnow()
    updates: dict[str, Any] = {}
    last_entry: ProvenanceEntry | None = None
    for field, attr, value in (
        (ProvenanceField.QUANTITY, "quantity", quantity),
        (ProvenanceField.UNIT_PRICE, "unit_price", unit_price),
        (ProvenanceField.ITEM, "name", name),
    ):
        if value is None or value == getattr(item, attr):
            continue
        updates[attr] = value
        last_entry = ledger.record(
            item.id,
            CitationSource.MANUAL_OVERRIDE,
            field,
            previous_value=getattr(item, attr),
            new_value=value,
            actor=actor,
            note=note,
            timestamp=now,
        )

    if last_entry is None:
        if not confirm:
            return list(items)
        last_entry = ledger.record(
            item.id,
            CitationSource.MANUAL_OVERRIDE,
            ProvenanceField.QUANTITY,
            previous_value=item.quantity,
            new_value=item.quantity,
            actor=actor,
            note=note,
            timestamp=now,
        )

    new_quantity = updates.get("quantity", item.quantity)
    new_unit_price = updates.get("unit_price", item.unit_price)
    updates.update(
        edited_at=now,
        original_value=item.original_value if item.original_value is not None else item.quantity,
        total_price=money(new_quantity * new_unit_price),
        citation_source=CitationSource.MANUAL_OVERRIDE,
        citation_id=last_entry.id,
        is_authoritative=False,
    )

    edited = list(items)
    edited[index] = item.model_copy(update=updates)
    return edited


def remove_item(
    items: list[LineItem],
    item_id: str,
    ledger: ProvenanceLedger,
    actor: str | None = None,
    note: str | None = None,
) -> list[LineItem]:
    """Drop a line item; the removal itself stays on record."""
    index = _index_of(items, item_id)
    item = items[index]
    ledger.record(
        item.id,
        item.citation_source or CitationSource.MANUAL_OVERRIDE,
        ProvenanceField.REMOVED,
        previous_value=item.total_price if item.total_price is not None else item.computed_total,
        actor=actor,
        note=note or item.name,
    )
    return items[:index] + items[index + 1 :]


def load_from_template(
    items: list[LineItem],
    template: WorkTypeTemplate,
    ledger: ProvenanceLedger,
    confirmed_area: Decimal | None = None,
    actor: str | None = None,
) -> list[LineItem]:
    """Add a template's materials to the list without touching existing items.

    Template materials whose id is already present are skipped so reloading
    the same template is a no-op.
    """
    existing = {item.id for item in items}
    loaded = list(items)
    for item in template_to_line_items(template, confirmed_area):
        if item.id in existing:
            continue
        ledger.record(
            item.id,
            CitationSource.TEMPLATE_PRESET,
            ProvenanceField.ADDED,
            new_value=item.total_price,
            actor=actor,
            note=f"{template.name} template: {item.name}",
        )
        loaded.append(item)
    logger.info(
        "template_loaded: work_type=%s added=%d", template.work_type, len(loaded) - len(items)
    )
    return loaded


def load_from_calculator(
    items: list[LineItem],
    results: Iterable[LineItem | Mapping[str, Any]],
    ledger: ProvenanceLedger,
    actor: str | None = None,
) -> list[LineItem]:
    """Append parametric-calculator output as calculator-cited line items."""
    calculated = [
        result if isinstance(result, LineItem) else parse_line_items([result])[0]
        for result in results
    ]

    loaded = list(items)
    for item in calculated:
        cited = item.model_copy(
            update={
                "source": LineItemSource.CALCULATOR,
                "citation_source": CitationSource.CALCULATOR,
            }
        )
        loaded = add_item(loaded, cited, ledger, actor=actor)
    return loaded


def _index_of(items: list[LineItem], item_id: str) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    raise ValidationError(f"no line item with id {item_id!r}")
