"""
Decision Velocity Analysis Module.

Median and percentile durations between lifecycle milestones:
- Status-pair velocity (e.g. Draft to Final) over a trailing window
- Time from PR creation to merge or close, per repository
- PR time to first review, first comment, merge and close

Durations are expressed in fractional days and percentiles use linear
interpolation.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from config import logger, settings
from analyzers.aggregation import fractional_days, mean, median, percentile, resolve_now, round1
from analyzers.models import (
    DecisionVelocity,
    Outcome,
    PercentileSummary,
    TimeToDecision,
    TransitionVelocity,
)
from events.base import GovernanceStore
from events.models import ActivityAction, PullRequestState, Table
from query.filters import QueryFilters
from query.predicates import Eq, In

VELOCITY_PAIRS: List[Tuple[str, str]] = [
    ("Draft", "Review"),
    ("Review", "Last Call"),
    ("Last Call", "Final"),
    ("Draft", "Final"),
    ("Draft", "Withdrawn"),
]
OUTCOME_METRICS = ["first_review", "first_comment", "merge", "close"]


def pair_duration(
    history: List, created_at: Optional[datetime], source: str, target: str, start: datetime, end: datetime
) -> Optional[float]:
    """
    Days from entering ``source`` to entering ``target`` for one proposal.

    The entry time is the earliest transition into ``source``, or the creation
    time when the proposal never transitioned into it. The exit is the first
    transition into ``target`` at or after the entry that falls within
    ``[start, end]``; earlier arrivals in ``target`` are history a backward
    move left behind.

    Returns:
        Optional[float]: Duration, None when there is no exit in the window
    """
    entries = [event.changed_at for event in history if event.to_status == source]
    entry = min(entries) if entries else created_at
    if entry is None:
        return None
    exits = [
        event.changed_at
        for event in history
        if event.to_status == target and event.changed_at >= entry and start <= event.changed_at <= end
    ]
    if not exits:
        return None
    return fractional_days(entry, min(exits))


class VelocityAnalyzer:
    """
    Duration analytics over status events and pull requests.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def decision_velocity(
        self,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> DecisionVelocity:
        """
        Median days between lifecycle milestones.

        Args:
            now (Optional[datetime]): End of the window
            window_days (Optional[int]): Window length, defaults to settings
            repo (Optional[str]): Repository family filter

        Returns:
            DecisionVelocity: One entry per status pair, in fixed order; the
                median is None for a pair without samples
        """
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        start = now - timedelta(days=window_days or settings.velocity_window_days)

        try:
            events = await self.store.select(Table.STATUS_EVENTS, filters.where())
            proposals = await self.store.select(Table.PROPOSALS, filters.where())
            created = {(row.repository, row.number): row.created_at for row in proposals}

            histories: Dict[Tuple[str, int], List] = defaultdict(list)
            for event in events:
                histories[(event.repository, event.number)].append(event)

            transitions = []
            for source, target in VELOCITY_PAIRS:
                samples = []
                for key, history in histories.items():
                    days = pair_duration(history, created.get(key), source, target, start, now)
                    if days is not None:
                        samples.append(days)
                transitions.append(
                    TransitionVelocity(
                        from_status=source,
                        to_status=target,
                        median_days=round1(median(samples)),
                        count=len(samples),
                    )
                )

            draft_to_final = next(
                item for item in transitions if (item.from_status, item.to_status) == ("Draft", "Final")
            )
            return DecisionVelocity(
                transitions=transitions, draft_to_final_median=draft_to_final.median_days
            )

        except Exception as e:
            logger.error(
                {
                    "message": "Decision velocity failed",
                    "error": str(e),
                    "error_line": e.__traceback__.tb_lineno,
                }
            )
            raise e

    async def time_to_decision(
        self, repo: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None
    ) -> List[TimeToDecision]:
        """
        Days from PR creation to merge or close, per repository and outcome.

        Only closed pull requests are counted; a PR with a merge time is
        ``merged``, any other closed PR is ``closed``.
        """
        filters = QueryFilters.build(repo=repo, start=start, end=end)
        prs = await self.store.select(
            Table.PULL_REQUESTS,
            filters.where("created_at", Eq("state", PullRequestState.CLOSED.value)),
        )

        samples: Dict[Tuple[str, Outcome], List[float]] = defaultdict(list)
        for pr in prs:
            if pr.merged_at is not None:
                samples[(pr.repo_short, Outcome.MERGED)].append(fractional_days(pr.created_at, pr.merged_at))
            elif pr.closed_at is not None:
                samples[(pr.repo_short, Outcome.CLOSED)].append(fractional_days(pr.created_at, pr.closed_at))

        return [
            TimeToDecision(
                repo=repo_short,
                outcome=outcome,
                median_days=round1(median(values)),
                average_days=round1(mean(values)),
                count=len(values),
            )
            for (repo_short, outcome), values in sorted(
                samples.items(), key=lambda item: (item[0][0], item[0][1].value)
            )
        ]

    async def pr_time_to_outcome(
        self, repo: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None
    ) -> List[PercentileSummary]:
        """
        p50, p75 and p90 of the days from PR creation to each milestone.

        First review and first comment come from the contributor activity
        log; merge and close come from the pull requests themselves. Close
        only counts PRs closed without merging.
        """
        filters = QueryFilters.build(repo=repo, start=start, end=end)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where("created_at"))
        activity = await self.store.select(
            Table.CONTRIBUTOR_ACTIVITY,
            filters.where(
                None,
                In("action_type", [ActivityAction.REVIEWED.value, ActivityAction.COMMENTED.value]),
            ),
        )

        first_seen: Dict[Tuple[str, str, int], datetime] = {}
        for row in activity:
            if row.pr_number is None:
                continue
            key = (row.action_type, row.repository, row.pr_number)
            if key not in first_seen or row.occurred_at < first_seen[key]:
                first_seen[key] = row.occurred_at

        samples: Dict[str, List[float]] = {metric: [] for metric in OUTCOME_METRICS}
        for pr in prs:
            reviewed = first_seen.get((ActivityAction.REVIEWED.value, pr.repository, pr.pr_number))
            commented = first_seen.get((ActivityAction.COMMENTED.value, pr.repository, pr.pr_number))
            milestones = {
                "first_review": reviewed,
                "first_comment": commented,
                "merge": pr.merged_at,
                "close": pr.closed_at if pr.merged_at is None else None,
            }
            for metric, reached in milestones.items():
                if reached is None:
                    continue
                days = fractional_days(pr.created_at, reached)
                if days >= 0:
                    samples[metric].append(days)

        return [
            PercentileSummary(
                metric=metric,
                count=len(samples[metric]),
                p50=round1(percentile(samples[metric], 0.5)),
                p75=round1(percentile(samples[metric], 0.75)),
                p90=round1(percentile(samples[metric], 0.9)),
            )
            for metric in OUTCOME_METRICS
        ]
