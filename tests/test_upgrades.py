"""Upgrade Analyzer Test Suite.

This module contains tests for network upgrade analytics covering:
- Upgrade list ordering and per-upgrade stats
- Overall stats
- Current composition joined with proposal details
- Composition change log and day-by-day timeline
"""

from datetime import datetime, timezone

import pytest

from analyzers.upgrades import UpgradeAnalyzer
from errors import NotFoundError


@pytest.fixture
def analyzer(store):
    return UpgradeAnalyzer(store)


@pytest.mark.asyncio
async def test_list_upgrades_newest_first(analyzer):
    """Test ordering and stats of the upgrade list."""
    upgrades = await analyzer.list_upgrades()

    assert [item.slug for item in upgrades] == ["fusaka", "pectra"]
    pectra = upgrades[1]
    assert pectra.name == "Prague/Electra"
    assert (
        pectra.stats.total_proposals,
        pectra.stats.core_proposals,
        pectra.stats.execution_layer,
        pectra.stats.consensus_layer,
    ) == (1, 1, 1, 0)
    assert (upgrades[0].stats.execution_layer, upgrades[0].stats.consensus_layer) == (0, 1)


@pytest.mark.asyncio
async def test_overall_stats(analyzer):
    """Test totals across every upgrade."""
    stats = await analyzer.overall_stats()
    assert (
        stats.total_upgrades,
        stats.total_proposals,
        stats.execution_layer,
        stats.consensus_layer,
        stats.total_core_proposals,
    ) == (2, 2, 1, 1, 1)


@pytest.mark.asyncio
async def test_get_upgrade(analyzer):
    """Test single upgrade lookup and the not-found case."""
    upgrade = await analyzer.get_upgrade("pectra")
    assert upgrade.meta_eip == 7600

    with pytest.raises(NotFoundError) as exc_info:
        await analyzer.get_upgrade("nope")
    assert exc_info.value.entity == "upgrade"


@pytest.mark.asyncio
async def test_composition(analyzer):
    """Test the current composition after removals were applied."""
    entries = await analyzer.composition("pectra")
    assert [(entry.proposal_number, entry.bucket, entry.title, entry.status) for entry in entries] == [
        (100, "included", "Fee market change", "Final")
    ]

    declined = await analyzer.composition("fusaka")
    assert [(entry.proposal_number, entry.bucket, entry.status) for entry in declined] == [
        (300, "declined", "Stagnant")
    ]

    with pytest.raises(NotFoundError):
        await analyzer.composition("nope")


@pytest.mark.asyncio
async def test_composition_events(analyzer):
    """Test the composition change log of one upgrade."""
    events = await analyzer.composition_events("pectra")

    assert [(event.event_type, event.proposal_number) for event in events] == [
        ("added", 100),
        ("moved", 100),
        ("moved", 100),
        ("added", 200),
        ("removed", 200),
    ]
    assert events[0].bucket == "considered"


@pytest.mark.asyncio
async def test_composition_timeline(analyzer, now):
    """Test the replayed timeline with today's overlay."""
    points = await analyzer.composition_timeline("pectra", now=now)

    assert [point.date for point in points] == [
        "2024-02-01",
        "2024-03-01",
        "2024-04-01",
        "2024-05-05",
        "2024-06-01",
        "2024-06-15",
    ]
    assert points[0].considered == [100]
    assert points[1].scheduled == [100]
    assert points[3].proposed == [200]
    assert points[3].included == [100]
    assert points[4].proposed == []
    assert points[-1].included == [100]


@pytest.mark.asyncio
async def test_composition_timeline_same_day_overlay(analyzer):
    """Test that today's overlay replaces a replayed point of the same day."""
    points = await analyzer.composition_timeline("fusaka", now=datetime(2024, 5, 2, 18, tzinfo=timezone.utc))
    assert [(point.date, point.declined) for point in points] == [("2024-05-02", [300])]
