"""Default unit prices for common materials (Toronto 2024, CAD).

Keys are lowercase substrings matched against the material name in table
order, so more specific keys must come before generic ones ("drywall tape"
before "drywall"). Each key lists a price per canonical unit; a name match
whose entry has no price for the item's unit is not a hit.
"""

from __future__ import annotations

from decimal import Decimal

from budgetcalc.canonical.units import UnitClass, canonical_unit, unit_class

DEFAULT_UNIT_PRICES: list[tuple[str, dict[str, Decimal]]] = [
    # Flooring
    ("laminate", {"sq ft": Decimal("2.85"), "box": Decimal("64.99")}),
    ("hardwood", {"sq ft": Decimal("6.50"), "box": Decimal("129.99")}),
    ("vinyl plank", {"sq ft": Decimal("3.25"), "box": Decimal("77.99")}),
    ("underlayment", {"sq ft": Decimal("0.35"), "roll": Decimal("34.99")}),
    ("baseboard", {"linear ft": Decimal("1.25"), "piece": Decimal("9.99")}),
    ("transition strip", {"piece": Decimal("12.00"), "each": Decimal("12.00")}),
    ("tile", {"sq ft": Decimal("4.50"), "box": Decimal("44.99")}),
    ("grout", {"bag": Decimal("24.99")}),
    ("thinset", {"bag": Decimal("21.99")}),
    # Painting
    ("primer", {"gallon": Decimal("38.00")}),
    ("painter's tape", {"roll": Decimal("7.50")}),
    ("paint", {"gallon": Decimal("55.00")}),
    # Drywall
    ("drywall tape", {"roll": Decimal("5.50")}),
    ("joint compound", {"box": Decimal("22.00"), "gallon": Decimal("22.00")}),
    ("drywall", {"sheet": Decimal("18.00"), "sq ft": Decimal("0.56")}),
    ("plywood", {"sheet": Decimal("45.00")}),
    # Insulation & roofing
    ("insulation", {"roll": Decimal("65.00"), "bag": Decimal("65.00"), "sq ft": Decimal("1.40")}),
    ("shingle", {"bundle": Decimal("42.00")}),
    ("roofing felt", {"roll": Decimal("29.99")}),
    ("concrete", {"bag": Decimal("8.50")}),
]

# Unit-type fallback ladder, used when no name key matches
_UNIT_FALLBACK: dict[str, Decimal] = {
    "box": Decimal("45.00"),
    "roll": Decimal("15.00"),
    "gallon": Decimal("45.00"),
    "linear ft": Decimal("1.50"),
    "sq ft": Decimal("2.50"),
    "sheet": Decimal("18.00"),
    "bag": Decimal("12.00"),
}
_CLASS_FALLBACK: dict[UnitClass, Decimal] = {
    UnitClass.PACKAGE: Decimal("20.00"),
    UnitClass.AREA: Decimal("2.50"),
    UnitClass.LINEAR: Decimal("1.50"),
    UnitClass.LIQUID: Decimal("45.00"),
}
GENERIC_UNIT_PRICE = Decimal("10.00")


def lookup_default_price(name: str, unit: str | None) -> Decimal | None:
    """Return the table price for the first key found in name, in the item's unit."""
    lowered = name.lower()
    canonical = canonical_unit(unit)
    for key, prices in DEFAULT_UNIT_PRICES:
        if key in lowered:
            return prices.get(canonical)
    return None


def unit_fallback_price(unit: str | None) -> Decimal:
    """Price bracket chosen from the unit alone (boxes, rolls, gallons, linear, generic)."""
    canonical = canonical_unit(unit)
    if canonical in _UNIT_FALLBACK:
        return _UNIT_FALLBACK[canonical]
    return _CLASS_FALLBACK.get(unit_class(canonical), GENERIC_UNIT_PRICE)
