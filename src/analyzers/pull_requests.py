"""
Pull Request Analysis Module.

Activity and backlog metrics over pull requests:
- Open PR list with governance state, waiting days and process type
- Dense monthly activity and month KPIs
- Open backlog state, age bands and lifecycle funnel
- Review cycles and process classification
- Paginated open PR board
"""

import math
from collections import Counter
from datetime import datetime
from typing import List, Optional, Tuple

from config import logger
from analyzers.aggregation import (
    fractional_days,
    median,
    parse_month,
    percentage,
    resolve_now,
    round1,
    shift_months,
    trailing_months,
    whole_days,
)
from analyzers.models import (
    LabelCount,
    OpenPRBoardPage,
    OpenPullRequest,
    PRFunnel,
    PRMonthKPIs,
    PRMonthlyActivity,
    PROpenState,
    ReviewCycleBucket,
)
from errors import InvalidFilterError
from events.base import GovernanceStore
from events.models import (
    ActivityAction,
    GovernanceState,
    GovernanceStateKind,
    PullRequest,
    PullRequestState,
    Table,
)
from query.filters import QueryFilters
from query.predicates import Eq
from scoring.bottleneck import BottleneckClassifier, ProcessType
from scoring.waiting import BUCKET_LABELS, waiting_bucket

DEFAULT_PAGE_SIZE = 25

OpenRow = Tuple[PullRequest, Optional[GovernanceState]]


async def open_with_state(store: GovernanceStore, filters: QueryFilters) -> List[OpenRow]:
    """Open pull requests joined with their current governance state."""
    prs = await store.select(
        Table.PULL_REQUESTS, filters.where(None, Eq("state", PullRequestState.OPEN.value))
    )
    states = await store.select(Table.GOVERNANCE_STATES, filters.where())
    by_key = {(row.repository, row.pr_number): row for row in states}
    return [(pr, by_key.get((pr.repository, pr.pr_number))) for pr in prs]


def waiting_since(pr: PullRequest, state: Optional[GovernanceState]) -> datetime:
    """First of the state's waiting time, the PR's last update, or its creation."""
    if state is not None and state.waiting_since is not None:
        return state.waiting_since
    return pr.updated_at or pr.created_at


def days_waiting(pr: PullRequest, state: Optional[GovernanceState], now: datetime) -> int:
    return max(whole_days(waiting_since(pr, state), now), 0)


def closed_at(pr: PullRequest) -> Optional[datetime]:
    """Time the PR left the open state, merged or not."""
    return pr.merged_at or pr.closed_at


def is_open_at(pr: PullRequest, instant: datetime) -> bool:
    ended = closed_at(pr)
    return pr.created_at < instant and (ended is None or ended >= instant)


class PullRequestAnalyzer:
    """
    Pull request activity and backlog analytics.

    Attributes:
        store (GovernanceStore): Event store to read from
        classifier (BottleneckClassifier): Process type classifier
    """

    def __init__(self, store: GovernanceStore, classifier: Optional[BottleneckClassifier] = None):
        self.store = store
        self.classifier = classifier or BottleneckClassifier()

    def _to_open_pr(self, pr: PullRequest, state: Optional[GovernanceState], now: datetime) -> OpenPullRequest:
        return OpenPullRequest(
            repository=pr.repository,
            pr_number=pr.pr_number,
            title=pr.title,
            author=pr.author,
            created_at=pr.created_at,
            governance_state=state.current_state if state else GovernanceStateKind.NO_STATE.value,
            days_waiting=days_waiting(pr, state, now),
            labels=pr.labels,
            process_type=self.classifier.classify_pull_request(pr),
        )

    async def _open_rows(self, filters: QueryFilters, now: datetime) -> List[OpenPullRequest]:
        rows = [self._to_open_pr(pr, state, now) for pr, state in await open_with_state(self.store, filters)]
        rows.sort(key=lambda row: (-row.days_waiting, row.pr_number, row.repository))
        return rows

    async def open_prs(
        self, now: Optional[datetime] = None, repo: Optional[str] = None, limit: Optional[int] = None
    ) -> List[OpenPullRequest]:
        """
        Open pull requests, longest waiting first.

        Days waiting count from the governance state's waiting time, falling
        back to the PR's last update and then its creation.
        """
        filters = QueryFilters.build(repo=repo, limit=limit)
        return filters.apply_limit(await self._open_rows(filters, resolve_now(now)))

    async def monthly_activity(
        self, now: Optional[datetime] = None, months: int = 12, repo: Optional[str] = None
    ) -> List[PRMonthlyActivity]:
        """
        Created, merged and closed-unmerged PRs per month, with the open
        backlog at each month end. Every month of the window is present.
        """
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())

        activity = []
        for key in keys:
            start = parse_month(key)
            end = shift_months(start, 1)
            activity.append(
                PRMonthlyActivity(
                    month=key,
                    created=sum(1 for pr in prs if start <= pr.created_at < end),
                    merged=sum(1 for pr in prs if pr.merged_at and start <= pr.merged_at < end),
                    closed_unmerged=sum(
                        1
                        for pr in prs
                        if pr.merged_at is None and pr.closed_at and start <= pr.closed_at < end
                    ),
                    open_at_month_end=sum(1 for pr in prs if is_open_at(pr, end)),
                )
            )
        return activity

    async def month_hero_kpis(self, month: str, repo: Optional[str] = None) -> PRMonthKPIs:
        """
        Headline PR numbers of one month.

        ``net_delta`` is new PRs minus merged minus closed unmerged.
        """
        filters = QueryFilters.build(repo=repo)
        start = parse_month(month)
        end = shift_months(start, 1)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())

        new_prs = sum(1 for pr in prs if start <= pr.created_at < end)
        merged = sum(1 for pr in prs if pr.merged_at and start <= pr.merged_at < end)
        closed_unmerged = sum(
            1 for pr in prs if pr.merged_at is None and pr.closed_at and start <= pr.closed_at < end
        )
        return PRMonthKPIs(
            month=month,
            open_prs=sum(1 for pr in prs if is_open_at(pr, end)),
            new_prs=new_prs,
            merged_prs=merged,
            closed_unmerged=closed_unmerged,
            net_delta=new_prs - merged - closed_unmerged,
        )

    async def open_state(self, now: Optional[datetime] = None, repo: Optional[str] = None) -> PROpenState:
        """Open backlog size, median age in days and the oldest open PR."""
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        rows = await self._open_rows(filters, now)
        if not rows:
            return PROpenState(total_open=0, median_age_days=None, oldest=None)

        ages = [fractional_days(row.created_at, now) for row in rows]
        oldest = min(rows, key=lambda row: (row.created_at, row.pr_number))
        return PROpenState(total_open=len(rows), median_age_days=round1(median(ages)), oldest=oldest)

    async def staleness(self, now: Optional[datetime] = None, repo: Optional[str] = None) -> List[LabelCount]:
        """Open PRs per age band, every band present."""
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        pairs = await open_with_state(self.store, filters)
        counts = Counter(waiting_bucket(whole_days(pr.created_at, now)) for pr, _ in pairs)
        total = sum(counts.values())
        return [
            LabelCount(
                label=label,
                count=counts.get(label, 0),
                percentage=percentage(counts.get(label, 0), total),
            )
            for label in BUCKET_LABELS
        ]

    async def lifecycle_funnel(
        self, repo: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None
    ) -> PRFunnel:
        """
        Opened, reviewed, merged and closed-unmerged counts for PRs created
        in the window. A PR counts as reviewed when it has a review count or a
        recorded review.
        """
        filters = QueryFilters.build(repo=repo, start=start, end=end)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where("created_at"))
        reviews = await self.store.select(
            Table.CONTRIBUTOR_ACTIVITY,
            filters.where(None, Eq("action_type", ActivityAction.REVIEWED.value)),
        )
        reviewed = {(row.repository, row.pr_number) for row in reviews}

        return PRFunnel(
            opened=len(prs),
            reviewed=sum(
                1 for pr in prs if pr.num_reviews > 0 or (pr.repository, pr.pr_number) in reviewed
            ),
            merged=sum(1 for pr in prs if pr.merged_at is not None),
            closed_unmerged=sum(
                1
                for pr in prs
                if pr.merged_at is None and pr.state == PullRequestState.CLOSED.value
            ),
        )

    async def review_cycles(self, repo: Optional[str] = None) -> List[ReviewCycleBucket]:
        """Histogram of distinct reviewers per reviewed PR."""
        filters = QueryFilters.build(repo=repo)
        reviews = await self.store.select(
            Table.CONTRIBUTOR_ACTIVITY,
            filters.where(None, Eq("action_type", ActivityAction.REVIEWED.value)),
        )
        reviewers = {}
        for row in reviews:
            if row.pr_number is None:
                continue
            reviewers.setdefault((row.repository, row.pr_number), set()).add(row.actor)

        histogram = Counter(len(actors) for actors in reviewers.values())
        return [
            ReviewCycleBucket(reviewers=count, pr_count=histogram[count])
            for count in sorted(histogram)
        ]

    async def process_classification(self, repo: Optional[str] = None) -> List[LabelCount]:
        """Open PRs per process type, in rule order with ``Other`` last."""
        filters = QueryFilters.build(repo=repo)
        pairs = await open_with_state(self.store, filters)
        counts = Counter(self.classifier.classify_pull_request(pr) for pr, _ in pairs)
        total = sum(counts.values())
        return [
            LabelCount(
                label=kind.value,
                count=counts.get(kind.value, 0),
                percentage=percentage(counts.get(kind.value, 0), total),
            )
            for kind in ProcessType
        ]

    async def open_pr_board(
        self,
        repo: Optional[str] = None,
        gov_state: Optional[str] = None,
        process_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        now: Optional[datetime] = None,
    ) -> OpenPRBoardPage:
        """
        One page of the open PR board.

        Args:
            repo (Optional[str]): Repository family filter
            gov_state (Optional[str]): Governance state filter
            process_type (Optional[str]): Process type filter
            search (Optional[str]): Substring of title, author or PR number
            page (int): 1-based page number
            page_size (int): Rows per page
            now (Optional[datetime]): Reference time of waiting days

        Returns:
            OpenPRBoardPage: Rows sorted by waiting days, longest first;
                ``total_pages`` is at least 1

        Raises:
            InvalidFilterError: If a filter or the pagination is invalid
        """
        filters = QueryFilters.build(repo=repo, limit=page_size)
        if gov_state is not None and gov_state not in {kind.value for kind in GovernanceStateKind}:
            raise InvalidFilterError("gov_state", gov_state, "unknown governance state")
        if process_type is not None and process_type not in {kind.value for kind in ProcessType}:
            raise InvalidFilterError("process_type", process_type, "unknown process type")
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidFilterError("page", page, "must be a positive integer")

        rows = await self._open_rows(filters, resolve_now(now))
        if gov_state is not None:
            rows = [row for row in rows if row.governance_state == gov_state]
        if process_type is not None:
            rows = [row for row in rows if row.process_type == process_type]
        text = (search or "").strip().lower()
        if text:
            rows = [
                row
                for row in rows
                if text in (row.title or "").lower()
                or text in (row.author or "").lower()
                or text in str(row.pr_number)
            ]

        total = len(rows)
        offset = (page - 1) * filters.limit
        logger.debug({"message": "open PR board page", "total": total, "page": page})
        return OpenPRBoardPage(
            total=total,
            page=page,
            page_size=filters.limit,
            total_pages=max(math.ceil(total / filters.limit), 1),
            rows=rows[offset : offset + filters.limit],
        )
