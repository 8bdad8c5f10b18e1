"""Source-disagreement detection.

Compares figures claimed by AI narrative text (or a second estimate) against
stored ground truth and emits advisory ConflictAlerts. Nothing here blocks a
computation or mutates state.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from budgetcalc.config import ConflictConfig, get_config
from budgetcalc.models import ConflictAlert, ConflictSeverity

logger = logging.getLogger(__name__)

SQ_M_TO_SQ_FT = 10.7639

AREA_KEYS = ("area", "confirmed_area", "total_area")

# Number (optionally thousands-separated) followed by an area unit
_AREA_CLAIM = re.compile(
    r"(?<![\d.,])(\d{1,3}(?:,\d{3})+|\d{1,7})(\.\d{1,2})?\s*"
    r"(sq\.?\s*(?:ft|feet)\b|square\s+(?:feet|foot)\b|sf\b|ft²|"
    r"m²|sq\.?\s*m\b|square\s+met(?:er|re)s?\b)",
    re.IGNORECASE,
)


def classify_severity(deviation_percent: float, config: ConflictConfig | None = None) -> ConflictSeverity:
    config = config or get_config().conflicts
    if deviation_percent > config.critical_above:
        return ConflictSeverity.CRITICAL
    if deviation_percent >= config.moderate_above:
        return ConflictSeverity.MODERATE
    return ConflictSeverity.MINOR


def deviation_percent(claimed: float, truth: float) -> float:
    return abs(claimed - truth) / truth * 100


def extract_area_claims(narrative: str, config: ConflictConfig | None = None) -> list[float]:
    """Area figures (sq ft) mentioned in free text, implausible values dropped."""
    config = config or get_config().conflicts
    claims: list[float] = []
    for match in _AREA_CLAIM.finditer(narrative):
        value = float(match.group(1).replace(",", "") + (match.group(2) or ""))
        unit = match.group(3).lower()
        if _is_metric(unit):
            value *= SQ_M_TO_SQ_FT
        if config.min_plausible_area <= value <= config.max_plausible_area:
            claims.append(round(value, 2))
        else:
            logger.debug("conflict_claim_discarded: value=%s unit=%s", value, unit)
    return claims


def detect_conflicts(
    narrative: str | None,
    ground_truth: Mapping[str, Any] | None,
    config: ConflictConfig | None = None,
) -> list[ConflictAlert]:
    """Flag narrative area claims that deviate from the stored area.

    Args:
        narrative: AI-produced text, may be empty
        ground_truth: Stored facts; the area is read from "area",
            "confirmed_area" or "total_area" (sq ft)

    Returns:
        Alerts deduplicated by type (highest deviation kept), sorted by type
    """
    config = config or get_config().conflicts
    if not narrative or not ground_truth:
        return []

    truth = _area_truth(ground_truth)
    if not truth:
        return []

    alerts = []
    for claim in extract_area_claims(narrative, config):
        deviation = deviation_percent(claim, truth)
        if deviation > config.deviation_threshold:
            alerts.append(_alert("area", claim, truth, deviation, "ai_narrative", config))
    return dedupe_alerts(alerts)


def compare_estimates(
    photo: Mapping[str, Any] | None,
    blueprint: Mapping[str, Any] | None,
    config: ConflictConfig | None = None,
) -> list[ConflictAlert]:
    """Compare a photo estimate against a blueprint analysis.

    Both payloads may carry "total", "area" and "materials". Deviations are
    measured relative to the photo estimate.
    """
    config = config or get_config().conflicts
    if not photo or not blueprint:
        return []

    alerts: list[ConflictAlert] = []

    photo_total, blueprint_total = _number(photo.get("total")), _number(blueprint.get("total"))
    if photo_total and blueprint_total:
        deviation = deviation_percent(blueprint_total, photo_total)
        if deviation > config.cost_deviation_threshold:
            alerts.append(
                _alert("total_cost", blueprint_total, photo_total, deviation, "blueprint", config)
            )

    photo_area, blueprint_area = _number(photo.get("area")), _number(blueprint.get("area"))
    if photo_area and blueprint_area:
        deviation = deviation_percent(blueprint_area, photo_area)
        if deviation > config.deviation_threshold:
            alerts.append(_alert("area", blueprint_area, photo_area, deviation, "blueprint", config))

    photo_materials = photo.get("materials") or []
    blueprint_materials = blueprint.get("materials") or []
    if photo_materials and blueprint_materials:
        difference = abs(len(photo_materials) - len(blueprint_materials))
        if difference > config.material_count_tolerance:
            alerts.append(
                ConflictAlert(
                    type="material_count",
                    claimed_value=float(len(blueprint_materials)),
                    ground_truth_value=float(len(photo_materials)),
                    deviation_percent=round(difference / len(photo_materials) * 100, 2),
                    source="blueprint",
                    severity=ConflictSeverity.MINOR,
                )
            )

    return dedupe_alerts(alerts)


def dedupe_alerts(alerts: Iterable[ConflictAlert]) -> list[ConflictAlert]:
    """One alert per type, keeping the largest deviation; sorted by type."""
    best: dict[str, ConflictAlert] = {}
    for alert in alerts:
        current = best.get(alert.type)
        if current is None or (alert.deviation_percent, alert.claimed_value) > (
            current.deviation_percent,
            current.claimed_value,
        ):
            best[alert.type] = alert
    return [best[key] for key in sorted(best)]


def _alert(
    kind: str,
    claimed: float,
    truth: float,
    deviation: float,
    source: str,
    config: ConflictConfig,
) -> ConflictAlert:
    return ConflictAlert(
        type=kind,
        claimed_value=round(claimed, 2),
        ground_truth_value=round(truth, 2),
        deviation_percent=round(deviation, 2),
        source=source,
        severity=classify_severity(deviation, config),
    )


def _area_truth(ground_truth: Mapping[str, Any]) -> float | None:
    for key in AREA_KEYS:
        value = _number(ground_truth.get(key))
        if value:
            return value
    return None


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").replace("$", "").strip())
        except ValueError:
            return None
    return None


def _is_metric(unit: str) -> bool:
    return unit.endswith("m") or "m²" in unit or "met" in unit
