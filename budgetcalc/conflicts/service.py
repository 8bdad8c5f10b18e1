"""Async boundary around the narrative producer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from budgetcalc.config import get_config
from budgetcalc.conflicts.detector import detect_conflicts
from budgetcalc.core.logging import bind_project
from budgetcalc.errors import SourceUnavailable
from budgetcalc.models import ConflictAlert

logger = logging.getLogger(__name__)

NarrativeFetcher = Callable[[], Awaitable[str | None]]


async def fetch_narrative(fetch: NarrativeFetcher, timeout: float | None = None) -> str:
    """Await the producer, translating timeouts and failures to SourceUnavailable."""
    timeout = get_config().conflicts.narrative_timeout_seconds if timeout is None else timeout
    try:
        narrative = await asyncio.wait_for(fetch(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SourceUnavailable(f"narrative producer timed out after {timeout}s") from exc
    except SourceUnavailable:
        raise
    except Exception as exc:
        raise SourceUnavailable(f"narrative producer failed: {exc}") from exc

    if not narrative:
        raise SourceUnavailable("narrative producer returned no text")
    return narrative


async def analyze_narrative(
    fetch: NarrativeFetcher,
    ground_truth: Mapping[str, Any] | None,
    timeout: float | None = None,
    project_id: str | None = None,
) -> list[ConflictAlert]:
    """Fetch AI narrative and check it against ground truth.

    A missing or late narrative is treated as "no narrative": the failure is
    logged and an empty alert list returned.
    """
    if project_id:
        bind_project(project_id)

    try:
        narrative = await fetch_narrative(fetch, timeout)
    except SourceUnavailable as exc:
        logger.warning("narrative_unavailable: %s", exc)
        return []

    alerts = detect_conflicts(narrative, ground_truth)
    if alerts:
        logger.info(
            "conflicts_detected: count=%d worst=%s",
            len(alerts),
            max(alert.deviation_percent for alert in alerts),
        )
    return alerts
