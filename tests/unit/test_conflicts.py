"""Unit tests for source-disagreement detection."""

from __future__ import annotations

from decimal import Decimal

import pytest

from budgetcalc.config import ConflictConfig
from budgetcalc.conflicts.detector import (
    classify_severity,
    compare_estimates,
    dedupe_alerts,
    detect_conflicts,
    extract_area_claims,
)
from budgetcalc.models import ConflictAlert, ConflictSeverity

TRUTH = {"area": 250}


class TestDetectConflicts:
    """Narrative area claims against the stored area."""

    def test_critical(self):
        [alert] = detect_conflicts("The basement measures 400 sq ft.", TRUTH)

        assert alert.type == "area"
        assert alert.claimed_value == 400
        assert alert.ground_truth_value == 250
        assert alert.deviation_percent == 60.0
        assert alert.severity == ConflictSeverity.CRITICAL
        assert alert.source == "ai_narrative"

    @pytest.mark.parametrize(
        "claim,severity",
        [
            ("325 sq ft", ConflictSeverity.MODERATE),
            ("290 square feet", ConflictSeverity.MINOR),
            ("100 sf", ConflictSeverity.CRITICAL),
        ],
    )
    def test_severity_bands(self, claim, severity):
        [alert] = detect_conflicts(f"Roughly {claim} of floor.", TRUTH)
        assert alert.severity == severity

    def test_within_threshold_is_silent(self):
        assert detect_conflicts("About 260 sq ft total.", TRUTH) == []

    def test_one_alert_per_type_keeps_largest_deviation(self):
        alerts = detect_conflicts("Living room 325 sq ft, whole floor 400 sq ft.", TRUTH)
        assert len(alerts) == 1
        assert alerts[0].claimed_value == 400

    def test_metric_claims_are_converted(self):
        [alert] = detect_conflicts("The room is 30 m².", TRUTH)
        assert alert.claimed_value == 322.92
        assert alert.severity == ConflictSeverity.MODERATE

    def test_truth_from_alternate_keys(self):
        assert detect_conflicts("400 sq ft", {"confirmed_area": "250"})
        assert detect_conflicts("400 sq ft", {"total_area": Decimal("250")})

    def test_missing_inputs(self):
        assert detect_conflicts(None, TRUTH) == []
        assert detect_conflicts("", TRUTH) == []
        assert detect_conflicts("400 sq ft", None) == []
        assert detect_conflicts("400 sq ft", {"area": 0}) == []
        assert detect_conflicts("400 sq ft", {"rooms": 3}) == []

    def test_custom_threshold(self):
        config = ConflictConfig(deviation_threshold=5.0)
        assert detect_conflicts("260 sq ft", TRUTH, config) == []
        [alert] = detect_conflicts("270 sq ft", TRUTH, config)
        assert alert.severity == ConflictSeverity.MINOR


class TestExtractAreaClaims:
    def test_thousands_separator(self):
        assert extract_area_claims("Total of 1,200 sq. ft. finished") == [1200.0]

    def test_implausible_values_dropped(self):
        assert extract_area_claims("A 5 sq ft closet in a 2,000,000 sq ft mall") == []

    def test_non_area_numbers_ignored(self):
        assert extract_area_claims("8 boxes, 12 feet of trim, 3 rooms") == []


class TestClassifySeverity:
    def test_boundaries(self):
        assert classify_severity(40.01) == ConflictSeverity.CRITICAL
        assert classify_severity(40.0) == ConflictSeverity.MODERATE
        assert classify_severity(20.0) == ConflictSeverity.MODERATE
        assert classify_severity(19.99) == ConflictSeverity.MINOR


class TestCompareEstimates:
    def test_cost_and_material_count(self):
        photo = {"total": 1000, "area": 250, "materials": ["a", "b", "c", "d", "e"]}
        blueprint = {"total": "$1,300", "area": 270, "materials": ["a"]}

        alerts = compare_estimates(photo, blueprint)

        assert [alert.type for alert in alerts] == ["material_count", "total_cost"]
        count, cost = alerts
        assert count.severity == ConflictSeverity.MINOR
        assert count.deviation_percent == 80.0
        assert cost.deviation_percent == 30.0
        assert cost.severity == ConflictSeverity.MODERATE
        assert cost.source == "blueprint"

    def test_area_disagreement(self):
        alerts = compare_estimates({"area": 250}, {"area": 350})
        assert [alert.type for alert in alerts] == ["area"]
        assert alerts[0].severity == ConflictSeverity.MODERATE

    def test_missing_payload(self):
        assert compare_estimates(None, {"total": 1}) == []
        assert compare_estimates({"total": 1000}, {}) == []


def test_dedupe_alerts_sorted_by_type():
    def alert(kind, deviation):
        return ConflictAlert(
            type=kind,
            claimed_value=1.0,
            ground_truth_value=1.0,
            deviation_percent=deviation,
            source="ai_narrative",
            severity=ConflictSeverity.MINOR,
        )

    alerts = dedupe_alerts([alert("total_cost", 25), alert("area", 16), alert("area", 50)])

    assert [(a.type, a.deviation_percent) for a in alerts] == [("area", 50), ("total_cost", 25)]


def test_output_is_order_independent():
    forward = detect_conflicts("Kitchen 325 sq ft. Whole floor 400 sq ft.", TRUTH)
    backward = detect_conflicts("Whole floor 400 sq ft. Kitchen 325 sq ft.", TRUTH)
    assert forward == backward
