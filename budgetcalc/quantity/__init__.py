"""Area/length to purchasable package resolution."""

from budgetcalc.quantity.resolver import (
    PACKAGING_RULES,
    BatchResolution,
    PackagingRule,
    ResolutionMethod,
    ResolverResult,
    find_packaging_rule,
    resolve_materials_batch,
    resolve_quantity,
    to_square_feet,
)

__all__ = [
    "PACKAGING_RULES",
    "BatchResolution",
    "PackagingRule",
    "ResolutionMethod",
    "ResolverResult",
    "find_packaging_rule",
    "resolve_materials_batch",
    "resolve_quantity",
    "to_square_feet",
]
