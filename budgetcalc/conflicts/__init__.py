"""Advisory source-disagreement detection."""

from budgetcalc.conflicts.detector import compare_estimates, detect_conflicts
from budgetcalc.conflicts.service import analyze_narrative

__all__ = ["analyze_narrative", "compare_estimates", "detect_conflicts"]
