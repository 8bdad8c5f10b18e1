"""Unit label canonicalisation.

Line items arrive with free-text units ("Boxes", "sqft", "ft²", "gal", "LF").
Everything that inspects a unit goes through canonical_unit() first so that
price lookups, packaging rules and the area heuristic agree on spelling.
"""

from __future__ import annotations

import re
from enum import Enum


class UnitClass(str, Enum):
    AREA = "area"
    LINEAR = "linear"
    LIQUID = "liquid"
    PACKAGE = "package"
    COUNT = "count"
    TIME = "time"
    OTHER = "other"


_ALIASES = {
    # area
    "sq ft": "sq ft",
    "sqft": "sq ft",
    "sq. ft": "sq ft",
    "sq feet": "sq ft",
    "square feet": "sq ft",
    "square foot": "sq ft",
    "sf": "sq ft",
    "ft²": "sq ft",
    "ft2": "sq ft",
    "sq yd": "sq yd",
    "sq yard": "sq yd",
    "square yard": "sq yd",
    "sq m": "sq m",
    "sqm": "sq m",
    "m²": "sq m",
    "m2": "sq m",
    # linear
    "ft": "linear ft",
    "feet": "linear ft",
    "foot": "linear ft",
    "lf": "linear ft",
    "lin ft": "linear ft",
    "linear ft": "linear ft",
    "linear feet": "linear ft",
    "linear foot": "linear ft",
    # liquid
    "gal": "gallon",
    "gallon": "gallon",
    "litre": "litre",
    "liter": "litre",
    # packages
    "box": "box",
    "roll": "roll",
    "sheet": "sheet",
    "bag": "bag",
    "tube": "tube",
    "bundle": "bundle",
    "can": "can",
    "set": "set",
    "pair": "pair",
    # counts
    "pc": "piece",
    "pcs": "piece",
    "piece": "piece",
    "ea": "each",
    "each": "each",
    "unit": "each",
    "item": "each",
    "lb": "lb",
    "lbs": "lb",
    # time
    "hr": "hour",
    "hour": "hour",
    "day": "day",
}

_CLASSES = {
    "sq ft": UnitClass.AREA,
    "sq yd": UnitClass.AREA,
    "sq m": UnitClass.AREA,
    "linear ft": UnitClass.LINEAR,
    "gallon": UnitClass.LIQUID,
    "litre": UnitClass.LIQUID,
    "box": UnitClass.PACKAGE,
    "roll": UnitClass.PACKAGE,
    "sheet": UnitClass.PACKAGE,
    "bag": UnitClass.PACKAGE,
    "tube": UnitClass.PACKAGE,
    "bundle": UnitClass.PACKAGE,
    "can": UnitClass.PACKAGE,
    "set": UnitClass.PACKAGE,
    "pair": UnitClass.COUNT,
    "piece": UnitClass.COUNT,
    "each": UnitClass.COUNT,
    "lb": UnitClass.COUNT,
    "hour": UnitClass.TIME,
    "day": UnitClass.TIME,
}

_PLURALS = {
    "box": "boxes",
    "inch": "inches",
    "foot": "feet",
}

_WHITESPACE = re.compile(r"\s+")


def canonical_unit(unit: str | None) -> str:
    """Return the canonical spelling for a unit label.

    Unknown labels are returned lowercased and whitespace-collapsed so that
    they still compare equal to themselves.
    """
    if not unit:
        return ""
    text = _WHITESPACE.sub(" ", unit.strip().lower()).rstrip(".")
    if text in _ALIASES:
        return _ALIASES[text]

    singular = _singularize(text)
    if singular in _ALIASES:
        return _ALIASES[singular]

    return text


def unit_class(unit: str | None) -> UnitClass:
    return _CLASSES.get(canonical_unit(unit), UnitClass.OTHER)


def is_area_unit(unit: str | None) -> bool:
    """True for area-denominated labels ("sq ft", "ft²", "m²", "sq yd")."""
    if unit_class(unit) == UnitClass.AREA:
        return True
    text = (unit or "").lower()
    return "sq" in text or "ft²" in text or "m²" in text


def pluralize(unit: str, count: float) -> str:
    """'box' -> 'boxes' when count != 1; area/linear tokens are left alone."""
    if count == 1 or unit_class(unit) in (UnitClass.AREA, UnitClass.LINEAR):
        return unit
    if unit in _PLURALS:
        return _PLURALS[unit]
    return f"{unit}s"


def _singularize(text: str) -> str:
    if text.endswith("xes"):
        return text[:-2]
    if text.endswith("s") and not text.endswith("ss"):
        return text[:-1]
    return text
