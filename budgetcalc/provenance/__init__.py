"""Citation registry and line-item edit reducers."""

from budgetcalc.provenance.ledger import (
    CITATION_PREFIXES,
    FieldChange,
    ProvenanceLedger,
    add_item,
    load_from_calculator,
    load_from_template,
    manual_edit,
    remove_item,
)

__all__ = [
    "CITATION_PREFIXES",
    "FieldChange",
    "ProvenanceLedger",
    "add_item",
    "load_from_calculator",
    "load_from_template",
    "manual_edit",
    "remove_item",
]
