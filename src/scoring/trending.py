"""
Trending Proposal Scoring Module.

Ranks proposals by recent activity:

    score = recent PR events * 2 + comments on linked PRs + 10 if the status
            changed within the window

Proposals scoring 0 are left out of trending lists. Equal scores are ordered
by proposal number, then repository.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional

from config import logger, settings
from analyzers.aggregation import (
    day_start,
    index_linked_prs,
    proposal_label,
    recent_window,
    resolve_now,
    trailing_days,
)
from analyzers.models import DailyCount, TrendingHeatmapRow, TrendingProposal
from events.base import GovernanceStore
from events.models import Table
from query.filters import QueryFilters
from query.predicates import IsNull, Not, Range

STATUS_CHANGE_BONUS = 10
PR_EVENT_WEIGHT = 2


def trending_score(pr_event_count: int, comment_count: int, had_status_change: bool) -> int:
    """Weighted activity score of a proposal."""
    return (
        pr_event_count * PR_EVENT_WEIGHT
        + comment_count
        + (STATUS_CHANGE_BONUS if had_status_change else 0)
    )


def trending_reason(
    pr_event_count: int, comment_count: int, had_status_change: bool, window_days: int
) -> str:
    period = "this week" if window_days == 7 else f"in the last {window_days} days"
    reasons = []
    if pr_event_count > 0:
        reasons.append(f"{pr_event_count} PR events {period}")
    if had_status_change:
        reasons.append(f"Status changed {period}")
    if comment_count > 0:
        reasons.append(f"{comment_count} comments")
    return ", ".join(reasons) or "Recent activity"


class TrendingScorer:
    """
    Computes trending lists and activity heatmaps.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def trending(
        self,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
        limit: Optional[int] = None,
        repo: Optional[str] = None,
    ) -> List[TrendingProposal]:
        """
        Rank proposals by their trending score.

        Args:
            now (Optional[datetime]): Reference time of the window
            window_days (Optional[int]): Window length, defaults to settings
            limit (Optional[int]): Maximum number of proposals
            repo (Optional[str]): Repository family filter

        Returns:
            List[TrendingProposal]: Proposals with a positive score, best first;
                empty when nothing happened in the window

        Raises:
            InvalidFilterError: If a filter value is invalid
        """
        filters = QueryFilters.build(repo=repo, limit=limit)
        now = resolve_now(now)
        window_days = window_days or settings.trending_window_days

        logger.info(
            {
                "message": "Computing trending proposals",
                "repo": filters.repo.value if filters.repo else None,
                "window_days": window_days,
            }
        )
        try:
            proposals = await self.store.select(Table.PROPOSALS, filters.where())
            snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
            pull_requests = await self.store.select(Table.PULL_REQUESTS, filters.where())
            activity = await self.store.select(
                Table.CONTRIBUTOR_ACTIVITY,
                filters.where(
                    None,
                    recent_window("occurred_at", now, window_days),
                    Not(IsNull("pr_number")),
                ),
            )
            status_events = await self.store.select(
                Table.STATUS_EVENTS,
                filters.where(None, recent_window("changed_at", now, window_days)),
            )

            pr_events = Counter((row.repository, row.pr_number) for row in activity)
            changed = {(row.repository, row.number) for row in status_events}
            snapshot_by_key = {(row.repository, row.number): row for row in snapshots}
            linked = index_linked_prs(pull_requests)

            results = []
            for proposal in proposals:
                key = (proposal.repository, proposal.number)
                prs = linked.get(key, [])
                pr_event_count = sum(pr_events[(pr.repository, pr.pr_number)] for pr in prs)
                comment_count = sum(pr.num_comments for pr in prs)
                had_status_change = key in changed

                score = trending_score(pr_event_count, comment_count, had_status_change)
                if score <= 0:
                    continue

                snapshot = snapshot_by_key.get(key)
                results.append(
                    TrendingProposal(
                        repository=proposal.repository,
                        number=proposal.number,
                        title=proposal.title
                        or proposal_label(proposal.repo_short, proposal.number),
                        status=snapshot.status if snapshot else "Unknown",
                        score=score,
                        pr_event_count=pr_event_count,
                        comment_count=comment_count,
                        had_status_change=had_status_change,
                        reason=trending_reason(
                            pr_event_count, comment_count, had_status_change, window_days
                        ),
                        last_activity=(snapshot.updated_at if snapshot else None)
                        or proposal.created_at,
                    )
                )

            results.sort(key=lambda item: (-item.score, item.number, item.repository))
            return filters.apply_limit(results)

        except Exception as e:
            logger.error(
                {
                    "message": "Trending computation failed",
                    "error": str(e),
                    "error_line": e.__traceback__.tb_lineno,
                }
            )
            raise e

    async def trending_heatmap(
        self,
        now: Optional[datetime] = None,
        top_n: int = 10,
        days: int = 30,
        repo: Optional[str] = None,
    ) -> List[TrendingHeatmapRow]:
        """
        Daily status activity of the most active proposals.

        Args:
            now (Optional[datetime]): Reference time of the window
            top_n (int): Number of proposals
            days (int): Window length, one point per day
            repo (Optional[str]): Repository family filter

        Returns:
            List[TrendingHeatmapRow]: Proposals with activity in the window,
                most active first, each with a dense daily series
        """
        filters = QueryFilters.build(repo=repo, limit=top_n)
        now = resolve_now(now)

        first_day = day_start(now) - timedelta(days=days - 1)
        events = await self.store.select(
            Table.STATUS_EVENTS,
            filters.where(None, Range("changed_at", first_day, now, include_end=True)),
        )
        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        titles = {(row.repository, row.number): row.title for row in proposals}

        per_proposal = Counter((row.repository, row.number) for row in events)
        ranked = sorted(per_proposal.items(), key=lambda item: (-item[1], item[0][1], item[0][0]))
        dates = trailing_days(now, days)

        rows = []
        for (repository, number), total in filters.apply_limit(ranked):
            daily = Counter(
                row.changed_at.date().isoformat()
                for row in events
                if row.repository == repository and row.number == number
            )
            rows.append(
                TrendingHeatmapRow(
                    number=number,
                    title=titles.get((repository, number))
                    or proposal_label(repository.split("/")[-1].lower(), number),
                    total_activity=total,
                    daily=[DailyCount(date=day, count=daily.get(day, 0)) for day in dates],
                )
            )
        return rows
