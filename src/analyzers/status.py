"""
Proposal Status Analysis Module.

Provides status-centred analytics over proposals including:
- Monthly status snapshot with month-over-month delta
- Lifecycle counts in canonical status order
- Status transitions and dense monthly trend lines
- Category by status cross-tabulation and standards composition
- Last-call watchlist, recent changes and yearly growth

Known limitation of the monthly snapshot: the previous count is derived as
``current count - transitions into the status during the month``. Proposals
that left a status during the month are not added back, so the previous
count of a status that lost members is under-reported.
"""

import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from config import logger, settings
from analyzers.aggregation import (
    ACTIVE_STATUSES,
    FLOW_ORDER,
    LIFECYCLE_ORDER,
    cross_tab,
    index_linked_prs,
    month_key,
    monthly_counts,
    monthly_pivot,
    order_statuses,
    parse_month,
    recent_window,
    resolve_now,
    round1,
    shift_months,
    trailing_months,
    whole_days,
)
from analyzers.models import (
    CrossTab,
    LabelCount,
    MonthlyBreakdown,
    MonthlyCount,
    MonthlyStatusSnapshot,
    ProposalHeroKPIs,
    ProposalTablePage,
    ProposalTableRow,
    RecentChange,
    StandardsCompositionRow,
    StatusSnapshotRow,
    StatusTransition,
    WatchlistEntry,
    YearlyGrowth,
)
from errors import InvalidFilterError
from events.base import GovernanceStore
from events.models import ProposalSnapshot, StreamKind, Table
from query.filters import QueryFilters, RepoFamily, parse_date_bound
from query.predicates import Eq, In, Not, Range

THROUGHPUT_STATUSES = ["Draft", "Review", "Last Call", "Final"]
NON_CORE_TYPES = {"Meta", "Informational"}
GROWTH_DIMENSIONS = ("category", "status")
MAX_AVAILABLE_MONTHS = 120
TABLE_PAGE_SIZE = 50
TABLE_SORT_FIELDS = [
    "number",
    "title",
    "status",
    "type",
    "category",
    "created_at",
    "updated_at",
    "days_in_status",
    "linked_prs",
]


def effective_category(snapshot: Optional[ProposalSnapshot]) -> str:
    """
    Category shown for a proposal.

    Falls back to the type for Meta and Informational proposals and to
    ``Core`` otherwise.
    """
    if snapshot is None:
        return "Core"
    if snapshot.category:
        return snapshot.category
    if snapshot.type in NON_CORE_TYPES:
        return snapshot.type
    return "Core"


def _status_rank(status: str) -> int:
    return LIFECYCLE_ORDER.index(status) if status in LIFECYCLE_ORDER else len(LIFECYCLE_ORDER)


def _grouped_counts(rows: List[Dict[str, str]], keys: List[str], name: str) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=keys + [name])
    frame = pd.DataFrame(rows, columns=keys)
    return frame.groupby(keys).size().rename(name).reset_index()


class StatusAnalyzer:
    """
    Status and lifecycle analytics over the proposal event log.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def monthly_status_snapshot(
        self, month: str, repo: Optional[str] = None
    ) -> MonthlyStatusSnapshot:
        """
        Current status counts per repository with their change during a month.

        Args:
            month (str): Month as ``YYYY-MM``
            repo (Optional[str]): Repository family filter

        Returns:
            MonthlyStatusSnapshot: One row per ``(status, repo)`` present in the
                current snapshots; ``prev_count = count - delta``

        Raises:
            InvalidFilterError: If the month or repository is invalid
        """
        filters = QueryFilters.build(repo=repo)
        start = parse_month(month)
        end = shift_months(start, 1)

        logger.info(
            {
                "message": "Computing monthly status snapshot",
                "month": month,
                "repo": filters.repo.value if filters.repo else None,
            }
        )
        try:
            snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
            arrivals = await self.store.list_events_in_window(
                StreamKind.STATUS, start, end, filters.repo
            )

            counts = _grouped_counts(
                [{"status": row.status, "repo": row.repo_short} for row in snapshots],
                ["status", "repo"],
                "count",
            )
            if counts.empty:
                return MonthlyStatusSnapshot(month=month, rows=[])

            deltas = _grouped_counts(
                [{"status": row.to_status, "repo": row.repo_short} for row in arrivals],
                ["status", "repo"],
                "delta",
            )
            merged = counts.merge(deltas, on=["status", "repo"], how="left")
            merged["delta"] = merged["delta"].fillna(0).astype(int)
            merged["count"] = merged["count"].astype(int)
            merged["prev_count"] = merged["count"] - merged["delta"]

            rows = [
                StatusSnapshotRow(
                    status=record["status"],
                    repo=record["repo"],
                    count=int(record["count"]),
                    prev_count=int(record["prev_count"]),
                    delta=int(record["delta"]),
                )
                for record in merged.to_dict("records")
            ]
            rows.sort(key=lambda row: (_status_rank(row.status), row.status, row.repo))
            return MonthlyStatusSnapshot(month=month, rows=rows)

        except Exception as e:
            logger.error(
                {
                    "message": "Monthly status snapshot failed",
                    "month": month,
                    "error": str(e),
                    "error_line": e.__traceback__.tb_lineno,
                }
            )
            raise e

    async def _status_counts(self, filters: QueryFilters) -> Dict[str, int]:
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        return Counter(row.status for row in snapshots)

    async def lifecycle_counts(self, repo: Optional[str] = None) -> List[LabelCount]:
        """Proposal counts per current status, unknown statuses under ``Other``."""
        filters = QueryFilters.build(repo=repo)
        return order_statuses(await self._status_counts(filters))

    async def status_flow(self, repo: Optional[str] = None) -> List[LabelCount]:
        """Proposal counts per current status, unknown statuses appended by name."""
        filters = QueryFilters.build(repo=repo)
        return order_statuses(await self._status_counts(filters), FLOW_ORDER, fallback=None)

    async def active_proposals(self, repo: Optional[str] = None) -> List[LabelCount]:
        filters = QueryFilters.build(repo=repo)
        counts = await self._status_counts(filters)
        return [LabelCount(label=status, count=counts.get(status, 0)) for status in ACTIVE_STATUSES]

    async def status_transitions(
        self,
        repo: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[StatusTransition]:
        """
        Observed ``(from, to)`` transition counts.

        Initial events without a previous status are excluded. Every observed
        transition is counted, legal or not.
        """
        filters = QueryFilters.build(repo=repo, start=start, end=end)
        events = await self.store.select(Table.STATUS_EVENTS, filters.where("changed_at"))
        counts = Counter(
            (event.from_status, event.to_status) for event in events if event.from_status
        )
        transitions = [
            StatusTransition(from_status=source, to_status=target, count=count)
            for (source, target), count in counts.items()
        ]
        transitions.sort(key=lambda item: (-item.count, item.from_status, item.to_status))
        return transitions

    async def _events_for_months(self, stream: StreamKind, months: List[str], repo: Optional[RepoFamily]):
        start = parse_month(months[0])
        end = shift_months(parse_month(months[-1]), 1)
        return await self.store.list_events_in_window(stream, start, end, repo)

    async def momentum(
        self,
        now: Optional[datetime] = None,
        months: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[MonthlyCount]:
        """
        Status events per month over the trailing months.

        Returns exactly ``months`` points, months without events included
        with a count of 0.
        """
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months or settings.momentum_months)
        events = await self._events_for_months(StreamKind.STATUS, keys, filters.repo)
        counts = monthly_counts((event.changed_at for event in events), keys)
        return [MonthlyCount(month=key, count=count) for key, count in zip(keys, counts)]

    async def throughput(
        self,
        now: Optional[datetime] = None,
        months: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[MonthlyBreakdown]:
        """Monthly transitions into Draft, Review, Last Call and Final."""
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months or settings.momentum_months)
        events = await self._events_for_months(StreamKind.STATUS, keys, filters.repo)
        series = monthly_pivot(
            ((event.changed_at, event.to_status) for event in events if event.to_status in THROUGHPUT_STATUSES),
            keys,
            THROUGHPUT_STATUSES,
        )
        return self._breakdowns(keys, series)

    async def status_flow_over_time(
        self,
        now: Optional[datetime] = None,
        months: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[MonthlyBreakdown]:
        """Monthly transitions per target status over the trailing months."""
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months or settings.flow_months)
        events = await self._events_for_months(StreamKind.STATUS, keys, filters.repo)
        statuses = sorted({event.to_status for event in events}, key=lambda s: (_status_rank(s), s))
        series = monthly_pivot(((event.changed_at, event.to_status) for event in events), keys, statuses)
        return self._breakdowns(keys, series)

    @staticmethod
    def _breakdowns(keys: List[str], series: Dict[str, List[int]]) -> List[MonthlyBreakdown]:
        breakdowns = []
        for index, key in enumerate(keys):
            counts = {group: values[index] for group, values in series.items()}
            breakdowns.append(MonthlyBreakdown(month=key, counts=counts, total=sum(counts.values())))
        return breakdowns

    async def deadline_volatility(
        self,
        now: Optional[datetime] = None,
        months: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[MonthlyCount]:
        """Deadline changes per month over the trailing months."""
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months or settings.momentum_months)
        events = await self._events_for_months(StreamKind.DEADLINE, keys, filters.repo)
        counts = monthly_counts((event.changed_at for event in events), keys)
        return [MonthlyCount(month=key, count=count) for key, count in zip(keys, counts)]

    async def category_status_matrix(self, repo: Optional[str] = None) -> CrossTab:
        """
        Category by status matrix of current proposals.

        Totals are summed from the cells and always reconcile with them.
        """
        filters = QueryFilters.build(repo=repo)
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        return cross_tab(
            ((effective_category(row), row.status) for row in snapshots),
            column_order=LIFECYCLE_ORDER,
        )

    async def standards_composition(self, repo: Optional[str] = None) -> List[StandardsCompositionRow]:
        """Share of each ``(type, category)`` pair among current proposals."""
        filters = QueryFilters.build(repo=repo)
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        counts = Counter((row.type or "Unknown", effective_category(row)) for row in snapshots)
        total = sum(counts.values())
        rows = [
            StandardsCompositionRow(
                type=kind,
                category=category,
                count=count,
                percentage=round1(count * 100 / total) if total else 0.0,
            )
            for (kind, category), count in counts.items()
        ]
        rows.sort(key=lambda row: (-row.count, row.type, row.category))
        return rows

    async def available_months(self, repo: Optional[str] = None, limit: Optional[int] = None) -> List[str]:
        """Months with at least one status event, newest first."""
        filters = QueryFilters.build(repo=repo, limit=limit, default_limit=MAX_AVAILABLE_MONTHS)
        events = await self.store.select(Table.STATUS_EVENTS, filters.where())
        months = sorted({month_key(event.changed_at) for event in events}, reverse=True)
        return filters.apply_limit(months)

    async def last_call_watchlist(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> List[WatchlistEntry]:
        """
        Proposals in Last Call with a deadline, soonest first.

        ``days_remaining`` is negative once the deadline has passed.
        """
        filters = QueryFilters.build(repo=repo)
        today = resolve_now(now).date()
        snapshots = await self.store.select(
            Table.SNAPSHOTS, filters.where(None, Eq("status", "Last Call"), Not(Eq("deadline", None)))
        )
        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        titles = {(row.repository, row.number): row.title for row in proposals}

        entries = [
            WatchlistEntry(
                repository=row.repository,
                number=row.number,
                title=titles.get((row.repository, row.number)),
                deadline=row.deadline,
                days_remaining=(row.deadline - today).days,
            )
            for row in snapshots
        ]
        entries.sort(key=lambda entry: (entry.deadline, entry.number))
        return entries

    async def recent_changes(
        self,
        now: Optional[datetime] = None,
        days: int = 7,
        limit: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[RecentChange]:
        """Status changes of the last ``days`` days, newest first."""
        filters = QueryFilters.build(repo=repo, limit=limit)
        now = resolve_now(now)
        events = await self.store.select(
            Table.STATUS_EVENTS, filters.where(None, recent_window("changed_at", now, days))
        )
        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        titles = {(row.repository, row.number): row.title for row in proposals}

        events = sorted(events, key=lambda event: (event.changed_at, event.number), reverse=True)
        return [
            RecentChange(
                repository=event.repository,
                number=event.number,
                title=titles.get((event.repository, event.number)),
                from_status=event.from_status,
                to_status=event.to_status,
                changed_at=event.changed_at,
            )
            for event in filters.apply_limit(events)
        ]

    async def yearly_growth(
        self, dimension: str = "category", include_rips: bool = True
    ) -> List[YearlyGrowth]:
        """
        Proposals created per year, split by category or status.

        RIPs are reported under the ``RIP`` category.

        Raises:
            InvalidFilterError: If the dimension is not category or status
        """
        if dimension not in GROWTH_DIMENSIONS:
            raise InvalidFilterError("dimension", dimension, "expected category or status")

        proposals = await self.store.select(Table.PROPOSALS, Not(Eq("created_at", None)))
        snapshots = await self.store.select(Table.SNAPSHOTS)
        by_key = {(row.repository, row.number): row for row in snapshots}

        observations = []
        for proposal in proposals:
            is_rip = proposal.repo_short == RepoFamily.RIPS.value
            if is_rip and not include_rips:
                continue
            snapshot = by_key.get((proposal.repository, proposal.number))
            if dimension == "category":
                key = "RIP" if is_rip else effective_category(snapshot)
            else:
                key = snapshot.status if snapshot else "Unknown"
            observations.append((proposal.created_at.year, key))

        per_year: Dict[int, Counter] = {}
        for year, key in observations:
            per_year.setdefault(year, Counter())[key] += 1

        growth = []
        for year in sorted(per_year):
            counts = per_year[year]
            breakdown = [
                LabelCount(label=key, count=count)
                for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            ]
            growth.append(YearlyGrowth(year=year, total=sum(counts.values()), breakdown=breakdown))
        return growth

    async def hero_kpis(
        self,
        period_start: Optional[str] = None,
        now: Optional[datetime] = None,
        repo: Optional[str] = None,
    ) -> ProposalHeroKPIs:
        """
        Headline proposal counts.

        Args:
            period_start (Optional[str]): ISO date opening the period for new
                drafts and finalizations, defaults to 30 days before ``now``
            now (Optional[datetime]): Reference time
            repo (Optional[str]): Repository family filter
        """
        filters = QueryFilters.build(repo=repo)
        start = parse_date_bound(period_start, "period_start") or (
            resolve_now(now) - timedelta(days=30)
        )
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        proposals = await self.store.select(
            Table.PROPOSALS, filters.where(None, Range("created_at", start))
        )
        finalized = await self.store.select(
            Table.STATUS_EVENTS,
            filters.where(None, Eq("to_status", "Final"), Range("changed_at", start)),
        )

        recent = {(row.repository, row.number) for row in proposals}
        return ProposalHeroKPIs(
            active=sum(1 for row in snapshots if row.status in ACTIVE_STATUSES),
            new_drafts=sum(
                1 for row in snapshots if row.status == "Draft" and (row.repository, row.number) in recent
            ),
            finalized=len({(row.repository, row.number) for row in finalized}),
            stagnant=sum(1 for row in snapshots if row.status == "Stagnant"),
        )

    async def proposal_table(
        self,
        repo: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        types: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
        search: Optional[str] = None,
        sort_by: str = "number",
        sort_dir: str = "desc",
        page: int = 1,
        page_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ProposalTablePage:
        """
        One page of the browsable proposal table.

        Args:
            repo (Optional[str]): Repository family filter
            statuses (Optional[List[str]]): Accepted statuses
            types (Optional[List[str]]): Accepted types
            categories (Optional[List[str]]): Accepted categories
            year_from (Optional[int]): Earliest creation year, inclusive
            year_to (Optional[int]): Latest creation year, inclusive
            search (Optional[str]): Substring of number, title or authors
            sort_by (str): One of number, title, status, type, category,
                created_at, updated_at, days_in_status, linked_prs
            sort_dir (str): ``asc`` or ``desc``
            page (int): 1-based page number
            page_size (Optional[int]): Rows per page, 50 by default
            now (Optional[datetime]): Reference time of days in status

        Returns:
            ProposalTablePage: Matching proposals; rows without a value in
                the sort column come last in either direction

        Raises:
            InvalidFilterError: If a filter, the sort or the pagination is invalid
        """
        filters = QueryFilters.build(
            repo=repo,
            limit=page_size,
            default_limit=TABLE_PAGE_SIZE,
            sort_by=sort_by,
            sort_dir=sort_dir,
            sort_fields=TABLE_SORT_FIELDS,
        )
        for name, year in (("year_from", year_from), ("year_to", year_to)):
            if year is not None and (isinstance(year, bool) or not isinstance(year, int)):
                raise InvalidFilterError(name, year, "expected a year")
        if year_from is not None and year_to is not None and year_from > year_to:
            raise InvalidFilterError("year_from", year_from, "must not be after year_to")
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidFilterError("page", page, "must be a positive integer")

        now = resolve_now(now)
        where = filters.where(
            None,
            In("status", statuses) if statuses else None,
            In("type", types) if types else None,
            In("category", categories) if categories else None,
        )
        snapshots = await self.store.select(Table.SNAPSHOTS, where)
        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())
        by_key = {(row.repository, row.number): row for row in proposals}
        linked = index_linked_prs(prs)
        text = (search or "").strip().lower()

        rows = []
        for snapshot in snapshots:
            key = (snapshot.repository, snapshot.number)
            proposal = by_key.get(key)
            if proposal is None:
                continue
            created = proposal.created_at
            if year_from is not None and (created is None or created.year < year_from):
                continue
            if year_to is not None and (created is None or created.year > year_to):
                continue
            if text and not (
                text in str(proposal.number)
                or text in (proposal.title or "").lower()
                or any(text in author.lower() for author in proposal.authors)
            ):
                continue
            rows.append(
                ProposalTableRow(
                    repository=snapshot.repository,
                    number=snapshot.number,
                    title=proposal.title,
                    authors=proposal.authors,
                    status=snapshot.status,
                    type=snapshot.type,
                    category=snapshot.category,
                    created_at=created,
                    updated_at=snapshot.updated_at,
                    days_in_status=max(whole_days(snapshot.updated_at, now), 0) if snapshot.updated_at else 0,
                    linked_prs=len(linked.get(key, [])),
                )
            )

        field = filters.sort_by or "number"
        rows.sort(key=lambda row: (row.number, row.repository))
        present = [row for row in rows if getattr(row, field) is not None]
        missing = [row for row in rows if getattr(row, field) is None]
        present.sort(key=lambda row: getattr(row, field), reverse=filters.descending)
        rows = present + missing

        total = len(rows)
        offset = (page - 1) * filters.limit
        logger.debug({"message": "proposal table page", "total": total, "page": page})
        return ProposalTablePage(
            total=total,
            page=page,
            page_size=filters.limit,
            total_pages=max(math.ceil(total / filters.limit), 1),
            rows=rows[offset : offset + filters.limit],
        )
