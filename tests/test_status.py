"""Status Analyzer Test Suite.

This module contains tests for status and lifecycle analytics covering:
- Monthly status snapshot with deltas
- Lifecycle ordering and fallback bucket
- Transitions, momentum and dense monthly series
- Category matrix totals and standards composition
- Watchlist, recent changes, yearly growth and headline KPIs
- Filterable, sortable and paginated proposal table
"""

from datetime import date, datetime, timezone

import pytest

from analyzers.status import StatusAnalyzer, effective_category
from errors import InvalidFilterError
from events.memory_store import InMemoryGovernanceStore
from events.models import DeadlineEvent, ProposalSnapshot


@pytest.fixture
def analyzer(store):
    return StatusAnalyzer(store)


@pytest.mark.asyncio
async def test_monthly_status_snapshot(analyzer):
    """Test counts, deltas and derived previous counts for a month."""
    snapshot = await analyzer.monthly_status_snapshot("2024-06")

    assert snapshot.month == "2024-06"
    assert [(row.status, row.repo, row.count, row.delta, row.prev_count) for row in snapshot.rows] == [
        ("Draft", "ercs", 1, 0, 1),
        ("Last Call", "eips", 1, 1, 0),
        ("Final", "eips", 1, 0, 1),
        ("Stagnant", "eips", 1, 0, 1),
    ]
    for row in snapshot.rows:
        assert row.prev_count == row.count - row.delta


@pytest.mark.asyncio
async def test_monthly_status_snapshot_filters_and_validation(analyzer, empty_store):
    """Test repository filtering, invalid months and empty stores."""
    snapshot = await analyzer.monthly_status_snapshot("2024-06", repo="ercs")
    assert [row.status for row in snapshot.rows] == ["Draft"]

    with pytest.raises(InvalidFilterError):
        await analyzer.monthly_status_snapshot("June 2024")

    empty = await StatusAnalyzer(empty_store).monthly_status_snapshot("2024-06")
    assert empty.rows == []


@pytest.mark.asyncio
async def test_lifecycle_counts(analyzer):
    """Test canonical lifecycle order with zero-filled statuses."""
    counts = await analyzer.lifecycle_counts()

    assert [(item.label, item.count) for item in counts] == [
        ("Draft", 1),
        ("Review", 0),
        ("Last Call", 1),
        ("Final", 1),
        ("Stagnant", 1),
        ("Withdrawn", 0),
        ("Living", 0),
    ]
    assert counts[0].percentage == 25


@pytest.mark.asyncio
async def test_unknown_status_goes_to_fallback():
    """Test that a non-canonical status is counted under Other or appended by name."""
    store = InMemoryGovernanceStore(
        snapshots=[
            ProposalSnapshot(repository="ethereum/EIPs", number=1, status="Moved"),
            ProposalSnapshot(repository="ethereum/EIPs", number=2, status="Final"),
        ]
    )
    analyzer = StatusAnalyzer(store)

    lifecycle = await analyzer.lifecycle_counts()
    assert (lifecycle[-1].label, lifecycle[-1].count) == ("Other", 1)

    flow = await analyzer.status_flow()
    assert flow[-1].label == "Moved"
    assert [item.label for item in flow][:7] == [
        "Draft",
        "Review",
        "Last Call",
        "Final",
        "Living",
        "Stagnant",
        "Withdrawn",
    ]


@pytest.mark.asyncio
async def test_active_proposals(analyzer):
    """Test the counts of proposals in active statuses."""
    active = await analyzer.active_proposals()
    assert [(item.label, item.count) for item in active] == [("Draft", 1), ("Review", 0), ("Last Call", 1)]


@pytest.mark.asyncio
async def test_status_transitions(analyzer):
    """Test observed transitions, excluding initial events."""
    transitions = await analyzer.status_transitions()

    assert [(item.from_status, item.to_status, item.count) for item in transitions] == [
        ("Draft", "Last Call", 1),
        ("Draft", "Review", 1),
        ("Draft", "Stagnant", 1),
        ("Review", "Final", 1),
    ]
    windowed = await analyzer.status_transitions(start="2024-01-01", end="2024-03-31")
    assert [(item.from_status, item.to_status) for item in windowed] == [("Draft", "Review")]


@pytest.mark.asyncio
async def test_momentum_is_dense(analyzer, now):
    """Test that momentum reports exactly the requested months."""
    momentum = await analyzer.momentum(now=now, months=12)

    assert len(momentum) == 12
    assert momentum[0].month == "2023-07"
    assert momentum[-1].month == "2024-06"
    assert [point.count for point in momentum] == [0] * 6 + [1] * 6


@pytest.mark.asyncio
async def test_momentum_rejects_non_positive_months(analyzer, now):
    """Test validation of the series length."""
    with pytest.raises(InvalidFilterError):
        await analyzer.momentum(now=now, months=-1)


@pytest.mark.asyncio
async def test_throughput(analyzer, now):
    """Test monthly transitions into the throughput statuses."""
    rows = await analyzer.throughput(now=now, months=6)

    assert [row.month for row in rows] == ["2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06"]
    assert rows[3].counts == {"Draft": 0, "Review": 0, "Last Call": 0, "Final": 1}
    assert rows[5].counts["Last Call"] == 1
    assert all(row.total == 1 for row in rows)


@pytest.mark.asyncio
async def test_status_flow_over_time(analyzer, now):
    """Test the per-status monthly series over the configured window."""
    rows = await analyzer.status_flow_over_time(now=now)

    assert len(rows) == 36
    assert list(rows[0].counts) == ["Draft", "Review", "Last Call", "Final", "Stagnant"]
    assert sum(row.total for row in rows) == 8


@pytest.mark.asyncio
async def test_deadline_volatility():
    """Test monthly counts of deadline changes."""
    store = InMemoryGovernanceStore(
        deadline_events=[
            DeadlineEvent(
                repository="ethereum/EIPs",
                number=1,
                new_deadline=date(2024, 6, 1),
                changed_at=datetime(2024, 5, 2, tzinfo=timezone.utc),
            ),
            DeadlineEvent(
                repository="ethereum/EIPs",
                number=1,
                previous_deadline=date(2024, 6, 1),
                new_deadline=date(2024, 6, 20),
                changed_at=datetime(2024, 5, 20, tzinfo=timezone.utc),
            ),
        ]
    )
    points = await StatusAnalyzer(store).deadline_volatility(
        now=datetime(2024, 6, 15, tzinfo=timezone.utc), months=2
    )
    assert [(point.month, point.count) for point in points] == [("2024-05", 2), ("2024-06", 0)]


@pytest.mark.asyncio
async def test_category_status_matrix_reconciles(analyzer):
    """Test that matrix totals are consistent with the cells."""
    matrix = await analyzer.category_status_matrix()

    assert matrix.rows == ["Core", "ERC", "Meta", "Networking"]
    assert matrix.columns == ["Draft", "Last Call", "Final", "Stagnant"]
    assert matrix.cells["Meta"]["Last Call"] == 1
    assert matrix.grand_total == 4
    assert matrix.is_reconciled()


def test_effective_category():
    """Test the category shown for proposals without one."""
    assert effective_category(ProposalSnapshot(repository="ethereum/EIPs", number=1, status="Draft", type="Meta")) == "Meta"
    assert effective_category(ProposalSnapshot(repository="ethereum/EIPs", number=1, status="Draft")) == "Core"
    assert effective_category(None) == "Core"


@pytest.mark.asyncio
async def test_standards_composition(analyzer):
    """Test the share of each type and category pair."""
    rows = await analyzer.standards_composition()

    assert len(rows) == 4
    assert all(row.percentage == 25.0 for row in rows)
    assert (rows[0].type, rows[0].category) == ("Meta", "Meta")


@pytest.mark.asyncio
async def test_available_months(analyzer):
    """Test months with status events, newest first."""
    months = await analyzer.available_months()
    assert months == ["2024-06", "2024-05", "2024-04", "2024-03", "2024-02", "2024-01", "2023-01", "2022-01"]
    assert await analyzer.available_months(limit=2) == ["2024-06", "2024-05"]


@pytest.mark.asyncio
async def test_last_call_watchlist(analyzer, now):
    """Test days remaining until last-call deadlines."""
    watchlist = await analyzer.last_call_watchlist(now=now)

    assert [(entry.number, entry.days_remaining) for entry in watchlist] == [(200, 9)]
    assert watchlist[0].title == "Editorial process guide"


@pytest.mark.asyncio
async def test_recent_changes(analyzer, now):
    """Test status changes within the last week."""
    changes = await analyzer.recent_changes(now=now)

    assert [(change.number, change.to_status) for change in changes] == [(200, "Last Call")]
    wider = await analyzer.recent_changes(now=now, days=120)
    assert [change.changed_at.month for change in wider] == [6, 5, 4, 3]


@pytest.mark.asyncio
async def test_yearly_growth(analyzer):
    """Test proposals created per year by status and category."""
    by_status = await analyzer.yearly_growth("status")
    assert [(row.year, [item.label for item in row.breakdown]) for row in by_status] == [
        (2022, ["Stagnant"]),
        (2023, ["Final"]),
        (2024, ["Draft", "Last Call"]),
    ]

    by_category = await analyzer.yearly_growth()
    assert by_category[-1].total == 2
    assert [item.label for item in by_category[-1].breakdown] == ["ERC", "Meta"]

    with pytest.raises(InvalidFilterError):
        await analyzer.yearly_growth("author")


@pytest.mark.asyncio
async def test_hero_kpis(analyzer, now):
    """Test headline proposal counts for a period."""
    kpis = await analyzer.hero_kpis(period_start="2024-05-01", now=now)
    assert (kpis.active, kpis.new_drafts, kpis.finalized, kpis.stagnant) == (2, 0, 0, 1)

    since_march = await analyzer.hero_kpis(period_start="2024-03-01", now=now)
    assert since_march.new_drafts == 1
    assert since_march.finalized == 1


@pytest.mark.asyncio
async def test_proposal_table_defaults(analyzer, now):
    """Test the default table: every proposal, highest number first."""
    table = await analyzer.proposal_table(now=now)

    assert (table.total, table.page, table.page_size, table.total_pages) == (4, 1, 50, 1)
    assert [row.number for row in table.rows] == [300, 200, 100, 20]
    by_number = {row.number: row for row in table.rows}
    assert (by_number[100].days_in_status, by_number[100].linked_prs) == (75, 2)
    assert (by_number[20].repository, by_number[20].linked_prs) == ("ethereum/ERCs", 1)
    assert by_number[300].days_in_status == 531
    assert by_number[100].authors == ["Alice", "Bob"]


@pytest.mark.asyncio
async def test_proposal_table_filters(analyzer, now):
    """Test status, year, repository and text filters."""
    by_status = await analyzer.proposal_table(statuses=["Draft", "Final"], now=now)
    assert [row.number for row in by_status.rows] == [100, 20]

    assert [row.number for row in (await analyzer.proposal_table(year_from=2024, now=now)).rows] == [200, 20]
    assert [row.number for row in (await analyzer.proposal_table(year_to=2023, now=now)).rows] == [300, 100]
    assert [row.number for row in (await analyzer.proposal_table(repo="ercs", now=now)).rows] == [20]
    assert [row.number for row in (await analyzer.proposal_table(categories=["Core"], now=now)).rows] == [100]
    assert [row.number for row in (await analyzer.proposal_table(search="alice", now=now)).rows] == [100]
    assert [row.number for row in (await analyzer.proposal_table(search="20", now=now)).rows] == [200, 20]


@pytest.mark.asyncio
async def test_proposal_table_sorting(analyzer, now):
    """Test sort columns and directions with missing values last."""
    by_days = await analyzer.proposal_table(sort_by="days_in_status", sort_dir="asc", now=now)
    assert [row.number for row in by_days.rows] == [200, 100, 20, 300]

    by_links = await analyzer.proposal_table(sort_by="linked_prs", now=now)
    assert [row.number for row in by_links.rows] == [100, 200, 20, 300]

    by_title = await analyzer.proposal_table(sort_by="title", sort_dir="asc", now=now)
    assert [row.number for row in by_title.rows] == [200, 100, 300, 20]

    ascending = await analyzer.proposal_table(sort_by="category", sort_dir="asc", now=now)
    descending = await analyzer.proposal_table(sort_by="category", sort_dir="desc", now=now)
    assert [row.number for row in ascending.rows] == [100, 20, 300, 200]
    assert [row.number for row in descending.rows] == [300, 20, 100, 200]


@pytest.mark.asyncio
async def test_proposal_table_pagination(analyzer, now):
    """Test page slicing of the proposal table."""
    second = await analyzer.proposal_table(page=2, page_size=3, now=now)

    assert (second.total, second.total_pages) == (4, 2)
    assert [row.number for row in second.rows] == [20]
    assert (await analyzer.proposal_table(page=3, page_size=3, now=now)).rows == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"sort_by": "author"},
        {"sort_dir": "up"},
        {"page": 0},
        {"page_size": 0},
        {"year_from": "2020"},
        {"year_from": 2024, "year_to": 2023},
        {"repo": "foo"},
    ],
)
async def test_proposal_table_rejects_invalid_filters(analyzer, kwargs):
    """Test that invalid table filters are rejected."""
    with pytest.raises(InvalidFilterError):
        await analyzer.proposal_table(**kwargs)
