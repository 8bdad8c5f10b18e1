"""Quantity resolution: measured area/length -> purchasable packages.

Deterministic layer between AI/calculator measurements and the materials
table. A measurement such as "250 sq ft of laminate" becomes "8 boxes" using
manufacturer coverage rates; fractional packages are always rounded up.

A material with no packaging rule is a resolution miss: the result carries
success=False and the caller keeps the quantity as already purchasable.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from budgetcalc.canonical.units import UnitClass, canonical_unit, is_area_unit, pluralize, unit_class
from budgetcalc.config import get_config
from budgetcalc.errors import ValidationError
from budgetcalc.models import LineItem, PricingState
from budgetcalc.pricing.default_prices import lookup_default_price

logger = logging.getLogger(__name__)

# Area inputs are converted to sq ft before applying coverage
_TO_SQ_FT = {
    "sq ft": Decimal("1"),
    "sq yd": Decimal("9"),
    "sq m": Decimal("10.7639"),
}


class ResolutionMethod(str, Enum):
    AREA_TO_LIQUID = "area_to_liquid"
    AREA_TO_BOXES = "area_to_boxes"
    AREA_TO_SHEETS = "area_to_sheets"
    AREA_TO_ROLLS = "area_to_rolls"
    AREA_TO_BAGS = "area_to_bags"
    AREA_TO_AREA = "area_to_area"
    LINEAR_TO_PIECES = "linear_to_pieces"
    PASSTHROUGH = "passthrough"
    MANUAL_REQUIRED = "manual_required"


@dataclass(frozen=True, slots=True)
class PackagingRule:
    """Coverage of one purchasable package, e.g. 35 sq ft per box of laminate."""

    key: str
    keywords: tuple[str, ...]
    coverage: Decimal
    input_unit: str
    package_unit: str
    method: ResolutionMethod
    requires: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        if any(word in name for word in self.excludes):
            return False
        if self.requires and not all(word in name for word in self.requires):
            return False
        return any(word in name for word in self.keywords)


def _rule(
    key: str,
    keywords: tuple[str, ...],
    coverage: str,
    package_unit: str,
    method: ResolutionMethod,
    input_unit: str = "sq ft",
    requires: tuple[str, ...] = (),
    excludes: tuple[str, ...] = (),
) -> PackagingRule:
    return PackagingRule(
        key=key,
        keywords=keywords,
        coverage=Decimal(coverage),
        input_unit=input_unit,
        package_unit=package_unit,
        method=method,
        requires=requires,
        excludes=excludes,
    )


# Table order is match order: specific names before generic ones
PACKAGING_RULES: tuple[PackagingRule, ...] = (
    # Liquids (sq ft per gallon)
    _rule("primer", ("primer",), "400", "gallon", ResolutionMethod.AREA_TO_LIQUID),
    _rule("sealant", ("sealant", "sealer"), "200", "gallon", ResolutionMethod.AREA_TO_LIQUID),
    _rule("stain", ("stain",), "300", "gallon", ResolutionMethod.AREA_TO_LIQUID, excludes=("stainless",)),
    _rule(
        "paint",
        ("paint", "wall color"),
        "350",
        "gallon",
        ResolutionMethod.AREA_TO_LIQUID,
        excludes=("roller", "brush", "tape"),
    ),
    # Adhesives & grout
    _rule("thinset", ("thinset", "thin-set"), "50", "bag", ResolutionMethod.AREA_TO_BAGS),
    _rule("grout", ("grout",), "25", "bag", ResolutionMethod.AREA_TO_BAGS),
    _rule("adhesive", ("adhesive", "glue"), "40", "tube", ResolutionMethod.AREA_TO_BAGS),
    # Flooring (sq ft per box)
    _rule("laminate", ("laminate",), "35", "box", ResolutionMethod.AREA_TO_BOXES),
    _rule("hardwood", ("hardwood",), "20", "box", ResolutionMethod.AREA_TO_BOXES),
    _rule("vinyl_plank", ("vinyl plank", "vinyl floor", "lvp"), "24", "box", ResolutionMethod.AREA_TO_BOXES),
    _rule("carpet", ("carpet",), "9", "sq yd", ResolutionMethod.AREA_TO_AREA),
    _rule("tile", ("tile",), "10", "box", ResolutionMethod.AREA_TO_BOXES, excludes=("ceiling",)),
    # Sheets
    _rule(
        "drywall_4x12",
        ("4x12", "12 ft"),
        "48",
        "sheet",
        ResolutionMethod.AREA_TO_SHEETS,
        requires=("drywall",),
    ),
    _rule("drywall_4x8", ("drywall", "sheetrock", "gypsum"), "32", "sheet", ResolutionMethod.AREA_TO_SHEETS),
    _rule("plywood", ("plywood",), "32", "sheet", ResolutionMethod.AREA_TO_SHEETS),
    _rule("underlayment", ("underlayment", "underlay"), "100", "roll", ResolutionMethod.AREA_TO_ROLLS),
    # Insulation (sq ft per roll)
    _rule("insulation_r30", ("r-30", "r30"), "31", "roll", ResolutionMethod.AREA_TO_ROLLS),
    _rule("insulation_r19", ("r-19", "r19"), "48", "roll", ResolutionMethod.AREA_TO_ROLLS),
    _rule("insulation_r13", ("insulation", "batt"), "40", "roll", ResolutionMethod.AREA_TO_ROLLS),
    # Roofing
    _rule("shingles", ("shingle",), "33.3", "bundle", ResolutionMethod.AREA_TO_ROLLS),
    _rule("roofing_felt", ("roofing felt", "felt", "roofing"), "400", "roll", ResolutionMethod.AREA_TO_ROLLS),
    # Concrete (sq ft per bag at 4" depth)
    _rule("concrete", ("concrete", "cement"), "4", "bag", ResolutionMethod.AREA_TO_BAGS, excludes=("pvc",)),
    # Generic flooring falls back to laminate coverage
    _rule("flooring", ("flooring",), "35", "box", ResolutionMethod.AREA_TO_BOXES),
    # Linear materials (linear ft per piece)
    _rule("baseboard", ("baseboard", "base board"), "8", "piece", ResolutionMethod.LINEAR_TO_PIECES, input_unit="linear ft"),
    _rule("crown_molding", ("crown", "molding", "moulding"), "8", "piece", ResolutionMethod.LINEAR_TO_PIECES, input_unit="linear ft"),
    _rule("trim", ("trim", "casing"), "8", "piece", ResolutionMethod.LINEAR_TO_PIECES, input_unit="linear ft"),
    _rule("lumber", ("lumber", "2x4", "2x6"), "8", "piece", ResolutionMethod.LINEAR_TO_PIECES, input_unit="linear ft"),
)


@dataclass(frozen=True, slots=True)
class ResolverResult:
    success: bool
    method: ResolutionMethod
    resolved_unit: str | None = None
    resolved_quantity: Decimal | None = None  # net, no waste
    gross_quantity: Decimal | None = None  # with waste, whole packages
    calculation_trace: str | None = None
    rule_key: str | None = None
    fallback_unit_price: Decimal | None = None
    error_message: str | None = None


@dataclass(slots=True)
class BatchResolution:
    resolved: list[LineItem] = field(default_factory=list)
    failed: list[LineItem] = field(default_factory=list)

    @property
    def summary(self) -> str:
        total = len(self.resolved) + len(self.failed)
        return (
            f"Resolved {len(self.resolved)}/{total} materials. "
            f"{len(self.failed)} require manual input."
        )


def find_packaging_rule(material_name: str) -> PackagingRule | None:
    name = material_name.lower()
    for rule in PACKAGING_RULES:
        if rule.matches(name):
            return rule
    return None


def resolve_quantity(
    material_name: str,
    input_unit: str,
    input_value: Decimal | int | float | str,
    waste_percent: Decimal | int | float | str | None = None,
) -> ResolverResult:
    """Convert a measured quantity into whole purchasable packages.

    Args:
        material_name: Free-text material description
        input_unit: Unit of input_value ("sq ft", "m²", "linear ft", ...)
        input_value: Measured amount (>= 0)
        waste_percent: Extra fraction for cutting loss; defaults to config

    Returns:
        ResolverResult; success=False when no packaging rule applies

    Raises:
        ValidationError: If input_value or waste_percent is negative
    """
    value = _to_decimal(input_value, "input_value")
    waste = (
        get_config().estimating.waste_percent
        if waste_percent is None
        else _to_decimal(waste_percent, "waste_percent")
    )

    rule = find_packaging_rule(material_name)
    if rule is None:
        return _miss(material_name, input_unit, f"No packaging rule for '{material_name}'")

    source_unit = canonical_unit(input_unit)
    if unit_class(rule.input_unit) == UnitClass.AREA:
        if source_unit not in _TO_SQ_FT:
            return _miss(
                material_name,
                input_unit,
                f"'{rule.key}' is measured by area, got '{input_unit}'",
            )
        measured = value * _TO_SQ_FT[source_unit]
    elif source_unit == rule.input_unit:
        measured = value
    else:
        return _miss(
            material_name,
            input_unit,
            f"'{rule.key}' is measured in {rule.input_unit}, got '{input_unit}'",
        )

    net = measured / rule.coverage
    gross_before_rounding = net * (1 + waste / Decimal(100))
    gross = Decimal(math.ceil(gross_before_rounding))

    trace = _build_trace(value, source_unit, rule, net, waste, gross_before_rounding, gross)
    logger.debug("quantity_resolved: %s", trace)

    return ResolverResult(
        success=True,
        method=rule.method,
        resolved_unit=rule.package_unit,
        resolved_quantity=net.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        gross_quantity=gross,
        calculation_trace=trace,
        rule_key=rule.key,
        fallback_unit_price=lookup_default_price(material_name, rule.package_unit),
    )


def resolve_materials_batch(
    items: list[LineItem],
    base_area: Decimal | None,
    waste_percent: Decimal | None = None,
) -> BatchResolution:
    """Resolve every essential, area-measured item; others pass through.

    Manually overridden items are never re-resolved.
    """
    batch = BatchResolution()
    for item in items:
        if item.pricing_state == PricingState.MANUALLY_OVERRIDDEN:
            batch.resolved.append(item)
            continue
        if not item.is_essential or not is_area_unit(item.unit):
            batch.resolved.append(item)
            continue

        input_value = item.quantity if item.quantity > 0 else (base_area or Decimal("0"))
        result = resolve_quantity(item.name, item.unit, input_value, waste_percent)
        if result.success:
            batch.resolved.append(
                item.model_copy(
                    update={
                        "quantity": result.gross_quantity,
                        "unit": result.resolved_unit,
                        "resolution_trace": result.calculation_trace,
                    }
                )
            )
        else:
            batch.failed.append(item.model_copy(update={"resolution_trace": result.error_message}))

    logger.info("quantity_batch_resolved: %s", batch.summary)
    return batch


def _miss(material_name: str, input_unit: str, message: str) -> ResolverResult:
    # Logged so the rule table can be extended later
    logger.info("quantity_resolution_miss: material=%r unit=%r", material_name, input_unit)
    return ResolverResult(
        success=False,
        method=ResolutionMethod.MANUAL_REQUIRED,
        error_message=message,
    )


def _build_trace(
    value: Decimal,
    source_unit: str,
    rule: PackagingRule,
    net: Decimal,
    waste: Decimal,
    gross_before_rounding: Decimal,
    gross: Decimal,
) -> str:
    parts = [
        f"{_fmt(value)} {source_unit} / {_fmt(rule.coverage)} {rule.input_unit}/{rule.package_unit}"
        f" = {net:.2f}"
    ]
    if waste > 0:
        parts.append(f"+{_fmt(waste)}% waste = {gross_before_rounding:.2f}")
    parts.append(f"round up = {gross} {pluralize(rule.package_unit, float(gross))}")
    return " → ".join(parts)


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _to_decimal(value: Decimal | int | float | str, label: str) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (ArithmeticError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number, got {value!r}") from exc
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{label} must be a non-negative number, got {value!r}")
    return number


def package_price(
    material_name: str,
    input_unit: str,
    unit_price: Decimal,
    package_unit: str,
) -> Decimal | None:
    """Re-express a per-measure price (e.g. 2.85/sq ft) as a per-package price.

    Returns None unless the material's packaging rule sells in package_unit
    and is measured in a unit compatible with input_unit.
    """
    rule = find_packaging_rule(material_name)
    if rule is None or rule.package_unit != canonical_unit(package_unit):
        return None

    source_unit = canonical_unit(input_unit)
    if unit_class(rule.input_unit) == UnitClass.AREA:
        if source_unit not in _TO_SQ_FT:
            return None
        coverage = rule.coverage / _TO_SQ_FT[source_unit]
    elif source_unit == rule.input_unit:
        coverage = rule.coverage
    else:
        return None
    return (unit_price * coverage).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_square_feet(value: Decimal, unit: str | None) -> Decimal | None:
    """value in sq ft, or None when unit is not an area unit."""
    factor = _TO_SQ_FT.get(canonical_unit(unit))
    return value * factor if factor is not None else None
