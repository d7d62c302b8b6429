"""
Governance State Analysis Module.

Who is blocking open pull requests, and for how long:
- Counts per governance state with display labels
- Waiting summaries and waiting-band timeline
- Needs-attention and longest-waiting lists
- Editor versus author responsibility
- Monthly bottleneck heatmap and governance states over time
"""

from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from config import logger
from analyzers.aggregation import (
    median,
    month_key,
    parse_month,
    percentage,
    resolve_now,
    round1,
    round_half_up,
    shift_months,
    trailing_months,
)
from analyzers.models import (
    AttentionItem,
    GovernanceStateCount,
    GovernanceWaitingSummary,
    HeatmapCell,
    MonthlyBreakdown,
    ResponsibilityMetrics,
    ResponsibilityShare,
    WaitingTimelineRow,
)
from analyzers.pull_requests import days_waiting, is_open_at, open_with_state, waiting_since
from errors import InvalidFilterError
from events.base import GovernanceStore
from events.models import GovernanceStateKind, Table
from query.filters import QueryFilters
from scoring.waiting import BUCKET_LABELS, waiting_bucket

STATE_LABELS = {
    GovernanceStateKind.WAITING_ON_EDITOR.value: "waiting for editors review",
    GovernanceStateKind.WAITING_ON_AUTHOR.value: "author review",
    GovernanceStateKind.STALLED.value: "stalled",
    GovernanceStateKind.DRAFT.value: "draft",
    GovernanceStateKind.NO_STATE.value: "uncategorized",
}

WAITING_LABELS = {
    GovernanceStateKind.WAITING_ON_EDITOR.value: "Waiting on Editor",
    GovernanceStateKind.WAITING_ON_AUTHOR.value: "Waiting on Author",
    GovernanceStateKind.STALLED.value: "Stalled",
    GovernanceStateKind.DRAFT.value: "Draft",
    GovernanceStateKind.NO_STATE.value: "No State",
}

RESPONSIBLE_PARTY = {
    GovernanceStateKind.WAITING_ON_EDITOR.value: "Editor",
    GovernanceStateKind.WAITING_ON_AUTHOR.value: "Author",
}

ATTENTION_STATES = [
    GovernanceStateKind.WAITING_ON_EDITOR.value,
    GovernanceStateKind.WAITING_ON_AUTHOR.value,
]

PULL_URL = "https://github.com/{repository}/pull/{number}"


def _state_of(state) -> str:
    return state.current_state if state is not None else GovernanceStateKind.NO_STATE.value


class GovernanceAnalyzer:
    """
    Governance state analytics over open pull requests.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def governance_states(self, repo: Optional[str] = None) -> List[GovernanceStateCount]:
        """
        Open PRs per governance state.

        PRs without a state row count as ``NO_STATE``. Every state is listed.
        """
        filters = QueryFilters.build(repo=repo)
        pairs = await open_with_state(self.store, filters)
        counts = Counter(_state_of(state) for _, state in pairs)
        total = sum(counts.values())
        return [
            GovernanceStateCount(
                state=kind.value,
                label=STATE_LABELS[kind.value],
                count=counts.get(kind.value, 0),
                percentage=percentage(counts.get(kind.value, 0), total),
            )
            for kind in GovernanceStateKind
        ]

    async def governance_waiting_states(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> List[GovernanceWaitingSummary]:
        """Per state: PR count, median waiting days and the longest waiting PR."""
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        pairs = await open_with_state(self.store, filters)

        waits: Dict[str, List] = defaultdict(list)
        for pr, state in pairs:
            waits[_state_of(state)].append((days_waiting(pr, state, now), pr.pr_number))

        summaries = []
        for kind in GovernanceStateKind:
            rows = waits.get(kind.value, [])
            oldest = max(rows, key=lambda item: (item[0], -item[1])) if rows else None
            summaries.append(
                GovernanceWaitingSummary(
                    state=kind.value,
                    label=WAITING_LABELS[kind.value],
                    count=len(rows),
                    median_wait_days=round1(median(days for days, _ in rows)),
                    oldest_pr_number=oldest[1] if oldest else None,
                    oldest_wait_days=oldest[0] if oldest else None,
                )
            )
        return summaries

    async def waiting_timeline(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> List[WaitingTimelineRow]:
        """PRs waiting on the author or an editor per waiting band."""
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        pairs = await open_with_state(self.store, filters)

        counts: Counter = Counter()
        for pr, state in pairs:
            kind = _state_of(state)
            if kind in ATTENTION_STATES:
                counts[(waiting_bucket(days_waiting(pr, state, now)), kind)] += 1

        return [
            WaitingTimelineRow(
                bucket=bucket,
                waiting_on_author=counts[(bucket, GovernanceStateKind.WAITING_ON_AUTHOR.value)],
                waiting_on_editor=counts[(bucket, GovernanceStateKind.WAITING_ON_EDITOR.value)],
            )
            for bucket in BUCKET_LABELS
        ]

    async def needs_attention(
        self,
        now: Optional[datetime] = None,
        min_days: int = 7,
        state: Optional[str] = None,
        limit: Optional[int] = 50,
        repo: Optional[str] = None,
    ) -> List[AttentionItem]:
        """
        PRs waiting on an editor or the author for at least ``min_days``.

        Args:
            now (Optional[datetime]): Reference time
            min_days (int): Minimum waiting days
            state (Optional[str]): Restrict to one governance state
            limit (Optional[int]): Maximum number of PRs
            repo (Optional[str]): Repository family filter

        Returns:
            List[AttentionItem]: Longest waiting first

        Raises:
            InvalidFilterError: If the state or minimum is invalid
        """
        filters = QueryFilters.build(repo=repo, limit=limit)
        if state is not None and state not in STATE_LABELS:
            raise InvalidFilterError("state", state, "unknown governance state")
        if min_days < 0:
            raise InvalidFilterError("min_days", min_days, "must not be negative")

        wanted = [state] if state is not None else ATTENTION_STATES
        items = await self._waiting_items(filters, resolve_now(now), wanted)
        return filters.apply_limit([item for item in items if item.days_waiting >= min_days])

    async def longest_waiting(
        self, now: Optional[datetime] = None, limit: Optional[int] = 10, repo: Optional[str] = None
    ) -> List[AttentionItem]:
        """Open PRs in any governance state, longest waiting first."""
        filters = QueryFilters.build(repo=repo, limit=limit)
        items = await self._waiting_items(filters, resolve_now(now), list(STATE_LABELS))
        return filters.apply_limit(items)

    async def _waiting_items(self, filters: QueryFilters, now: datetime, states: List[str]) -> List[AttentionItem]:
        pairs = await open_with_state(self.store, filters)
        items = []
        for pr, state in pairs:
            kind = _state_of(state)
            if kind not in states:
                continue
            items.append(
                AttentionItem(
                    repository=pr.repository,
                    pr_number=pr.pr_number,
                    current_state=kind,
                    waiting_since=waiting_since(pr, state),
                    days_waiting=days_waiting(pr, state, now),
                    responsible_party=RESPONSIBLE_PARTY.get(kind, "Unknown"),
                    last_event=(state.last_event_type if state else None) or "unknown",
                    url=PULL_URL.format(repository=pr.repository, number=pr.pr_number),
                )
            )
        items.sort(key=lambda item: (-item.days_waiting, item.pr_number, item.repository))
        return items

    async def responsibility_metrics(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> ResponsibilityMetrics:
        """
        Share of PRs blocked on editors versus authors.

        Percentages are over PRs waiting on either party; median waits are
        whole days, 0 when no PR waits on that party.
        """
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        pairs = await open_with_state(self.store, filters)

        waits: Dict[str, List[int]] = {kind: [] for kind in ATTENTION_STATES}
        for pr, state in pairs:
            kind = _state_of(state)
            if kind in waits:
                waits[kind].append(days_waiting(pr, state, now))

        total = sum(len(values) for values in waits.values())

        def share(kind: str) -> ResponsibilityShare:
            values = waits[kind]
            return ResponsibilityShare(
                count=len(values),
                percentage=percentage(len(values), total),
                median_wait_days=round_half_up(median(values)) or 0,
            )

        return ResponsibilityMetrics(
            editor=share(GovernanceStateKind.WAITING_ON_EDITOR.value),
            author=share(GovernanceStateKind.WAITING_ON_AUTHOR.value),
        )

    async def bottleneck_heatmap(
        self, now: Optional[datetime] = None, months: int = 12, repo: Optional[str] = None
    ) -> List[HeatmapCell]:
        """
        Open PRs per month of their last state update and governance state.

        Dense over the trailing months and every state.
        """
        filters = QueryFilters.build(repo=repo)
        keys = trailing_months(resolve_now(now), months)
        pairs = await open_with_state(self.store, filters)

        counts: Counter = Counter()
        for pr, state in pairs:
            updated = (state.updated_at if state else None) or pr.updated_at or pr.created_at
            counts[(month_key(updated), _state_of(state))] += 1

        logger.debug({"message": "bottleneck heatmap", "months": len(keys), "prs": len(pairs)})
        return [
            HeatmapCell(month=key, state=kind.value, count=counts[(key, kind.value)])
            for key in keys
            for kind in GovernanceStateKind
        ]

    async def governance_states_over_time(
        self, now: Optional[datetime] = None, months: int = 12, repo: Optional[str] = None
    ) -> List[MonthlyBreakdown]:
        """
        Governance states of the PRs open at each month end.

        The state of a PR is the last state observed before the month ends,
        ``NO_STATE`` when none was observed. The current month ends at
        ``now``. Every month and every state is present.
        """
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        keys = trailing_months(now, months)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())
        events = await self.store.select(Table.GOVERNANCE_EVENTS, filters.where())

        history: Dict[Tuple[str, int], List] = defaultdict(list)
        for event in sorted(events, key=lambda event: event.changed_at):
            history[(event.repository, event.pr_number)].append(event)

        series = []
        for key in keys:
            boundary = min(shift_months(parse_month(key), 1), now)
            counts = Counter()
            for pr in prs:
                if not is_open_at(pr, boundary):
                    continue
                observed = [
                    event.state
                    for event in history.get((pr.repository, pr.pr_number), [])
                    if event.changed_at < boundary
                ]
                counts[observed[-1] if observed else GovernanceStateKind.NO_STATE.value] += 1
            series.append(
                MonthlyBreakdown(
                    month=key,
                    counts={kind.value: counts[kind.value] for kind in GovernanceStateKind},
                    total=sum(counts.values()),
                )
            )
        return series
