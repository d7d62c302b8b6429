"""Velocity Analyzer Test Suite.

This module contains tests for duration analytics covering:
- Status-pair medians over a trailing window
- Entry fallback to the creation time
- PR time to merge or close per repository
- PR time-to-outcome percentiles
"""

from datetime import datetime, timezone

import pytest

from analyzers.models import Outcome
from analyzers.proposals import ProposalAnalyzer
from analyzers.velocity import VelocityAnalyzer, pair_duration
from events.memory_store import InMemoryGovernanceStore
from events.models import Proposal, ProposalSnapshot, StatusEvent

EIPS = "ethereum/EIPs"


def at(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture
def analyzer(store):
    return VelocityAnalyzer(store)


def transitions_by_pair(velocity):
    return {(item.from_status, item.to_status): item for item in velocity.transitions}


@pytest.mark.asyncio
async def test_decision_velocity(analyzer, now):
    """Test medians for each lifecycle pair."""
    velocity = await analyzer.decision_velocity(now=now)
    pairs = transitions_by_pair(velocity)

    assert list(pairs) == [
        ("Draft", "Review"),
        ("Review", "Last Call"),
        ("Last Call", "Final"),
        ("Draft", "Final"),
        ("Draft", "Withdrawn"),
    ]
    assert pairs[("Draft", "Review")].median_days == 31.0
    assert pairs[("Draft", "Final")].median_days == 91.0
    assert velocity.draft_to_final_median == 91.0
    assert pairs[("Draft", "Withdrawn")].median_days is None
    assert pairs[("Draft", "Withdrawn")].count == 0


@pytest.mark.asyncio
async def test_velocity_falls_back_to_creation_time(analyzer, now):
    """Test that a skipped source status is measured from proposal creation."""
    pairs = transitions_by_pair(await analyzer.decision_velocity(now=now))

    assert pairs[("Review", "Last Call")].median_days == 40.0
    assert pairs[("Last Call", "Final")].median_days == 103.0


@pytest.mark.asyncio
async def test_velocity_window_excludes_old_exits(analyzer, now):
    """Test that exits before the window are not sampled."""
    pairs = transitions_by_pair(await analyzer.decision_velocity(now=now, window_days=30))

    assert pairs[("Draft", "Final")].count == 0
    assert pairs[("Review", "Last Call")].count == 1


def test_pair_duration_ignores_exit_before_entry():
    """Test that an arrival in the target before the entry yields no sample."""
    history = [
        StatusEvent(repository=EIPS, number=1, to_status="Final", changed_at=at(2024, 1, 1)),
        StatusEvent(repository=EIPS, number=1, to_status="Draft", changed_at=at(2024, 2, 1)),
    ]
    assert pair_duration(history, None, "Draft", "Final", at(2023, 1, 1), at(2025, 1, 1)) is None
    assert pair_duration(history, None, "Review", "Final", at(2023, 1, 1), at(2025, 1, 1)) is None


@pytest.mark.asyncio
async def test_velocity_after_backward_transition():
    """Test that a proposal moving back a stage is measured to its next arrival."""
    store = InMemoryGovernanceStore(
        proposals=[Proposal(repository=EIPS, number=7, created_at=at(2024, 1, 1))],
        status_events=[
            StatusEvent(repository=EIPS, number=7, to_status="Draft", changed_at=at(2024, 1, 1)),
            StatusEvent(repository=EIPS, number=7, from_status="Draft", to_status="Last Call", changed_at=at(2024, 2, 1)),
            StatusEvent(repository=EIPS, number=7, from_status="Last Call", to_status="Review", changed_at=at(2024, 3, 1)),
            StatusEvent(repository=EIPS, number=7, from_status="Review", to_status="Last Call", changed_at=at(2024, 3, 11)),
        ],
    )
    pairs = transitions_by_pair(await VelocityAnalyzer(store).decision_velocity(now=at(2024, 4, 1)))

    assert (pairs[("Review", "Last Call")].count, pairs[("Review", "Last Call")].median_days) == (1, 10.0)
    assert pairs[("Draft", "Review")].median_days == 60.0


def test_pair_duration_after_stagnant_revival():
    """Test a Stagnant proposal revived to Draft and then finalized."""
    history = [
        StatusEvent(repository=EIPS, number=1, to_status="Final", changed_at=at(2023, 1, 1)),
        StatusEvent(repository=EIPS, number=1, to_status="Stagnant", changed_at=at(2023, 6, 1)),
        StatusEvent(repository=EIPS, number=1, to_status="Draft", changed_at=at(2024, 1, 1)),
        StatusEvent(repository=EIPS, number=1, to_status="Final", changed_at=at(2024, 1, 11)),
    ]
    assert pair_duration(history, None, "Draft", "Final", at(2022, 1, 1), at(2025, 1, 1)) == 10.0

@pytest.mark.asyncio
async def test_time_to_decision(analyzer):
    """Test PR creation-to-outcome medians per repository."""
    rows = await analyzer.time_to_decision()

    assert [(row.repo, row.outcome, row.median_days, row.count) for row in rows] == [
        ("eips", Outcome.CLOSED, 2.0, 1),
        ("eips", Outcome.MERGED, 12.0, 1),
    ]
    assert await analyzer.time_to_decision(repo="ercs") == []


@pytest.mark.asyncio
async def test_pr_time_to_outcome(analyzer):
    """Test percentile summaries of PR milestones."""
    summaries = {item.metric: item for item in await analyzer.pr_time_to_outcome()}

    assert list(summaries) == ["first_review", "first_comment", "merge", "close"]
    assert summaries["first_review"].count == 2
    assert summaries["first_comment"].p50 == 11.0
    assert summaries["merge"].p50 == 12.0
    assert summaries["close"].p50 == 2.0


@pytest.mark.asyncio
async def test_pr_time_to_outcome_empty(empty_store):
    """Test that metrics without samples report null percentiles."""
    summaries = await VelocityAnalyzer(empty_store).pr_time_to_outcome()

    assert all(item.count == 0 and item.p50 is None for item in summaries)


@pytest.mark.asyncio
async def test_end_to_end_status_history_and_velocity():
    """Test a proposal moving from Draft through Review to Final."""
    store = InMemoryGovernanceStore(
        proposals=[Proposal(repository=EIPS, number=100, title="Fee market", created_at=at(2024, 1, 1))],
        status_events=[
            StatusEvent(repository=EIPS, number=100, to_status="Draft", changed_at=at(2024, 1, 1)),
            StatusEvent(repository=EIPS, number=100, from_status="Draft", to_status="Review", changed_at=at(2024, 2, 1)),
            StatusEvent(repository=EIPS, number=100, from_status="Review", to_status="Final", changed_at=at(2024, 4, 1)),
        ],
    )
    events = await ProposalAnalyzer(store).get_status_events(100)
    assert [(event.from_status, event.to_status) for event in events] == [
        (None, "Draft"),
        ("Draft", "Review"),
        ("Review", "Final"),
    ]

    velocity = await VelocityAnalyzer(store).decision_velocity(now=at(2024, 4, 2))
    assert velocity.draft_to_final_median == 91.0
    assert (await ProposalAnalyzer(store).get_proposal(100)).status == "Final"


@pytest.mark.asyncio
async def test_explicit_snapshot_is_served_as_is():
    """Test that supplied snapshots are read without being rebuilt."""
    store = InMemoryGovernanceStore(
        proposals=[Proposal(repository=EIPS, number=1, created_at=at(2024, 1, 1))],
        snapshots=[ProposalSnapshot(repository=EIPS, number=1, status="Review")],
        status_events=[StatusEvent(repository=EIPS, number=1, to_status="Final", changed_at=at(2024, 3, 1))],
    )
    assert (await ProposalAnalyzer(store).get_proposal(1)).status == "Review"
    assert len(store.snapshot_drift()) == 1
