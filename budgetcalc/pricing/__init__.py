"""Default prices and work-type templates."""

from budgetcalc.pricing.default_prices import (
    DEFAULT_UNIT_PRICES,
    lookup_default_price,
    unit_fallback_price,
)
from budgetcalc.pricing.templates import (
    WORK_TYPE_TEMPLATES,
    TemplateMaterial,
    WorkTypeTemplate,
    calculate_template_estimate,
    detect_work_type,
    get_template,
    template_to_line_items,
)

__all__ = [
    "DEFAULT_UNIT_PRICES",
    "WORK_TYPE_TEMPLATES",
    "TemplateMaterial",
    "WorkTypeTemplate",
    "calculate_template_estimate",
    "detect_work_type",
    "get_template",
    "lookup_default_price",
    "template_to_line_items",
    "unit_fallback_price",
]
