"""Work-type templates (Toronto pricing, CAD, 2024).

A template is the default bill of materials plus labour assumptions for one
kind of work. Templates seed new projects and act as the second rung of the
enrichment price ladder.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal

from budgetcalc.canonical.units import canonical_unit
from budgetcalc.models import CitationSource, LineItem, LineItemSource, money


@dataclass(frozen=True, slots=True)
class TemplateMaterial:
    item: str
    default_quantity: Decimal
    unit: str
    unit_price: Decimal
    is_essential: bool
    waste_percent: Decimal


@dataclass(frozen=True, slots=True)
class WorkTypeTemplate:
    work_type: str
    name: str
    labor_rate: Decimal  # per hour
    estimated_hours: Decimal
    keywords: tuple[str, ...] = ()
    materials: tuple[TemplateMaterial, ...] = field(default_factory=tuple)

    def find_material(self, item_name: str) -> TemplateMaterial | None:
        """First template material whose first word matches the item's first word.

        Matching is case-insensitive and checked both directions: the item's
        first word inside the template name, or the template's first word
        inside the item name.
        """
        item_lower = item_name.lower().strip()
        if not item_lower:
            return None
        item_first = item_lower.split()[0]
        for material in self.materials:
            template_lower = material.item.lower()
            template_first = template_lower.split()[0]
            if template_first in item_lower or item_first in template_lower:
                return material
        return None


def _m(
    item: str,
    quantity: str,
    unit: str,
    price: str,
    essential: bool = True,
    waste: str = "10",
) -> TemplateMaterial:
    return TemplateMaterial(
        item=item,
        default_quantity=Decimal(quantity),
        unit=unit,
        unit_price=Decimal(price),
        is_essential=essential,
        waste_percent=Decimal(waste),
    )


WORK_TYPE_TEMPLATES: dict[str, WorkTypeTemplate] = {
    "framing": WorkTypeTemplate(
        work_type="framing",
        name="Framing",
        labor_rate=Decimal("45"),
        estimated_hours=Decimal("40"),
        keywords=("frame", "stud", "lumber", "wall structure", "header"),
        materials=(
            _m("2x4 Studs (8ft)", "100", "pcs", "4.50"),
            _m("2x6 Studs (8ft)", "40", "pcs", "6.75"),
            _m("Plywood Sheathing (4x8)", "20", "sheets", "45.00"),
            _m('Framing Nails (3.5")', "10", "lbs", "8.50", waste="15"),
            _m("Construction Adhesive", "12", "tubes", "6.00", essential=False, waste="5"),
            _m("Joist Hangers", "24", "pcs", "3.50", waste="5"),
            _m("Metal Strapping", "100", "ft", "0.45", essential=False),
        ),
    ),
    "insulation": WorkTypeTemplate(
        work_type="insulation",
        name="Insulation",
        labor_rate=Decimal("40"),
        estimated_hours=Decimal("16"),
        keywords=("insulation", "batt", "spray foam", "thermal", "r-value"),
        materials=(
            _m("R-20 Batt Insulation", "10", "bags", "65.00"),
            _m("R-12 Batt Insulation", "8", "bags", "48.00"),
            _m("Vapor Barrier (6mil)", "500", "sq ft", "0.15", waste="15"),
            _m("Acoustic Sealant", "6", "tubes", "12.00", waste="5"),
            _m("Insulation Supports", "50", "pcs", "1.25", essential=False, waste="5"),
            _m("Spray Foam Can", "8", "cans", "9.50"),
        ),
    ),
    "taping": WorkTypeTemplate(
        work_type="taping",
        name="Taping & Mudding",
        labor_rate=Decimal("42"),
        estimated_hours=Decimal("24"),
        keywords=("tape", "mud", "drywall finish", "joint compound", "sanding"),
        materials=(
            _m("Joint Compound (Box)", "4", "boxes", "22.00", waste="15"),
            _m("Paper Drywall Tape", "10", "rolls", "5.50"),
            _m("Mesh Drywall Tape", "4", "rolls", "8.00"),
            _m("Corner Bead (Metal)", "20", "pcs", "3.75", waste="5"),
            _m("Sandpaper (150 grit)", "20", "sheets", "1.50", waste="20"),
            _m("Drywall Primer", "2", "gal", "35.00"),
        ),
    ),
    "painting": WorkTypeTemplate(
        work_type="painting",
        name="Painting",
        labor_rate=Decimal("38"),
        estimated_hours=Decimal("20"),
        keywords=("paint", "primer", "wall color", "trim paint", "ceiling"),
        materials=(
            _m("Primer (Interior)", "4", "gal", "38.00"),
            _m("Finish Paint (Interior)", "6", "gal", "55.00"),
            _m('Paint Rollers (9")', "12", "pcs", "4.50", waste="0"),
            _m("Painter's Tape (Blue)", "10", "rolls", "7.50", waste="5"),
            _m("Drop Cloths", "6", "pcs", "12.00", waste="0"),
            _m("Paint Brushes (Assorted)", "8", "pcs", "8.00", waste="0"),
            _m("Caulking (Paintable)", "6", "tubes", "5.50", essential=False),
        ),
    ),
    "flooring": WorkTypeTemplate(
        work_type="flooring",
        name="Flooring",
        labor_rate=Decimal("45"),
        estimated_hours=Decimal("24"),
        keywords=("floor", "laminate", "hardwood", "tile", "vinyl", "carpet"),
        materials=(
            _m("Laminate Flooring", "500", "sq ft", "2.85"),
            _m("Underlayment (Foam)", "500", "sq ft", "0.35"),
            _m("Baseboard Trim", "200", "ft", "1.25"),
            _m("Transition Strips", "10", "pcs", "12.00", waste="5"),
            _m("Flooring Adhesive", "4", "gal", "28.00", essential=False),
            _m("Finishing Nails", "2", "lbs", "12.00", waste="15"),
        ),
    ),
    "plumbing": WorkTypeTemplate(
        work_type="plumbing",
        name="Plumbing",
        labor_rate=Decimal("85"),
        estimated_hours=Decimal("12"),
        keywords=("plumb", "pipe", "drain", "faucet", "toilet", "sink"),
        materials=(
            _m('PEX Pipe (1/2")', "100", "ft", "0.85"),
            _m("PEX Fittings (Assorted)", "30", "pcs", "3.50"),
            _m('Copper Pipe (3/4")', "40", "ft", "4.25"),
            _m("Pipe Hangers", "25", "pcs", "2.00", waste="5"),
            _m("Teflon Tape", "10", "rolls", "2.50", waste="5"),
            _m("PVC Cement & Primer", "2", "sets", "18.00"),
            _m("Shut-off Valves", "6", "pcs", "15.00", waste="0"),
        ),
    ),
    "electrical": WorkTypeTemplate(
        work_type="electrical",
        name="Electrical",
        labor_rate=Decimal("90"),
        estimated_hours=Decimal("16"),
        keywords=("electric", "wire", "outlet", "panel", "lighting", "breaker"),
        materials=(
            _m("Romex Wire 14/2", "250", "ft", "0.65"),
            _m("Romex Wire 12/2", "150", "ft", "0.85"),
            _m("Electrical Boxes", "20", "pcs", "2.50", waste="5"),
            _m("Outlets (15A)", "15", "pcs", "3.00", waste="5"),
            _m("Light Switches", "8", "pcs", "4.00", waste="5"),
            _m("Wire Nuts (Assorted)", "100", "pcs", "0.15"),
            _m("Cover Plates", "25", "pcs", "1.50", waste="5"),
        ),
    ),
    "hvac": WorkTypeTemplate(
        work_type="hvac",
        name="HVAC",
        labor_rate=Decimal("95"),
        estimated_hours=Decimal("20"),
        keywords=("hvac", "furnace", "duct", "ventilation", "air conditioning"),
        materials=(
            _m('Flex Duct (6")', "50", "ft", "3.50"),
            _m("Sheet Metal Duct", "30", "ft", "8.00"),
            _m("Duct Tape (HVAC)", "6", "rolls", "12.00"),
            _m("Register Vents", "10", "pcs", "15.00", waste="0"),
            _m("Duct Insulation Wrap", "100", "sq ft", "0.85"),
            _m("HVAC Screws", "200", "pcs", "0.08", waste="15"),
            _m("Furnace Filters", "4", "pcs", "18.00", essential=False, waste="0"),
        ),
    ),
    "demolition": WorkTypeTemplate(
        work_type="demolition",
        name="Demolition",
        labor_rate=Decimal("35"),
        estimated_hours=Decimal("16"),
        keywords=("demo", "tear out", "remove", "gut"),
        materials=(
            _m("Dumpster Rental (10yd)", "1", "days", "450.00", waste="0"),
            _m("Heavy Duty Bags", "50", "pcs", "1.50"),
            _m("Plastic Sheeting", "500", "sq ft", "0.12", waste="15"),
            _m("Dust Masks (N95)", "20", "pcs", "2.50", waste="0"),
            _m("Safety Glasses", "4", "pcs", "8.00", waste="0"),
            _m("Work Gloves", "6", "pairs", "12.00", waste="0"),
        ),
    ),
    "other": WorkTypeTemplate(
        work_type="other",
        name="Other",
        labor_rate=Decimal("45"),
        estimated_hours=Decimal("8"),
    ),
}


def get_template(work_type: str | None) -> WorkTypeTemplate | None:
    if not work_type:
        return None
    return WORK_TYPE_TEMPLATES.get(work_type.strip().lower())


def detect_work_type(text: str) -> str | None:
    """Guess a work type from a project name or description by keyword."""
    lowered = text.lower()
    for template in WORK_TYPE_TEMPLATES.values():
        if any(keyword in lowered for keyword in template.keywords):
            return template.work_type
    return None


def template_to_line_items(
    template: WorkTypeTemplate,
    confirmed_area: Decimal | None = None,
) -> list[LineItem]:
    """Expand a template into priced line items tagged with template citations.

    Area-denominated materials are scaled to the confirmed area; essential
    materials carry their waste allowance in the quantity.
    """
    prefix = f"TMPL-{template.work_type.upper()[:3]}"
    items: list[LineItem] = []
    for index, material in enumerate(template.materials):
        quantity = material.default_quantity
        if confirmed_area and canonical_unit(material.unit) == "sq ft":
            quantity = Decimal(math.ceil(confirmed_area))

        trace = None
        if material.is_essential and material.waste_percent > 0:
            base_quantity = quantity
            quantity = Decimal(
                math.ceil(quantity * (1 + material.waste_percent / Decimal(100)))
            )
            trace = (
                f"{base_quantity} {material.unit} +{material.waste_percent}% waste"
                f" = {quantity} {material.unit}"
            )

        items.append(
            LineItem(
                id=f"{template.work_type}-{index}",
                name=material.item,
                quantity=quantity,
                unit=material.unit,
                unit_price=material.unit_price,
                total_price=money(quantity * material.unit_price),
                source=LineItemSource.TEMPLATE,
                citation_source=CitationSource.TEMPLATE_PRESET,
                citation_id=f"[{prefix}-{index + 1:03d}]",
                is_essential=material.is_essential,
                resolution_trace=trace,
            )
        )
    return items


def calculate_template_estimate(template: WorkTypeTemplate) -> dict[str, Decimal]:
    """Material, labour and total cost of a template at its default quantities."""
    material_cost = Decimal("0")
    for material in template.materials:
        quantity = material.default_quantity
        if material.is_essential:
            quantity = Decimal(
                math.ceil(quantity * (1 + material.waste_percent / Decimal(100)))
            )
        material_cost += quantity * material.unit_price

    labor_cost = template.labor_rate * template.estimated_hours
    return {
        "material_cost": money(material_cost),
        "labor_cost": money(labor_cost),
        "total_cost": money(material_cost + labor_cost),
    }
