"""Unit tests for the async narrative boundary."""

from __future__ import annotations

import asyncio

import pytest

from budgetcalc.conflicts.service import analyze_narrative, fetch_narrative
from budgetcalc.errors import SourceUnavailable
from budgetcalc.models import ConflictSeverity


def producer(text):
    async def fetch():
        return text

    return fetch


async def slow_producer():
    await asyncio.sleep(1)
    return "400 sq ft"


async def broken_producer():
    raise RuntimeError("upstream 502")


class TestFetchNarrative:
    @pytest.mark.asyncio
    async def test_returns_text(self):
        assert await fetch_narrative(producer("400 sq ft")) == "400 sq ft"

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(SourceUnavailable, match="timed out"):
            await fetch_narrative(slow_producer, timeout=0.01)

    @pytest.mark.asyncio
    async def test_failure(self):
        with pytest.raises(SourceUnavailable, match="upstream 502"):
            await fetch_narrative(broken_producer)

    @pytest.mark.asyncio
    async def test_empty_text(self):
        with pytest.raises(SourceUnavailable):
            await fetch_narrative(producer(None))


class TestAnalyzeNarrative:
    @pytest.mark.asyncio
    async def test_detects_conflict(self):
        alerts = await analyze_narrative(
            producer("The room is 400 sq ft."), {"area": 250}, project_id="test-project"
        )
        assert [alert.severity for alert in alerts] == [ConflictSeverity.CRITICAL]

    @pytest.mark.asyncio
    async def test_unavailable_narrative_means_no_alerts(self):
        assert await analyze_narrative(slow_producer, {"area": 250}, timeout=0.01) == []
        assert await analyze_narrative(broken_producer, {"area": 250}) == []
        assert await analyze_narrative(producer(""), {"area": 250}) == []
