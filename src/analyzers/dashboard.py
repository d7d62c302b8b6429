"""
Dashboard Composition Module.

Builds combined dashboard views from several analyzer queries. The
sub-queries of a dashboard are issued concurrently and combined once all of
them have completed:

- Overview dashboard (lifecycle, momentum, trending, open PR state)
- Proposals dashboard (status views and decision velocity)
- Pull request dashboard (activity, governance states, bottlenecks)
- Contributors dashboard (KPIs, rankings, leaderboards)

A dashboard either succeeds as a whole or fails as a whole; the first failing
sub-query is logged and re-raised and no partial view is returned.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Dict, Optional

from config import logger
from analyzers.aggregation import month_key, resolve_now
from analyzers.contributors import ContributorAnalyzer
from analyzers.governance import GovernanceAnalyzer
from analyzers.models import DashboardView
from analyzers.pull_requests import PullRequestAnalyzer
from analyzers.status import StatusAnalyzer
from analyzers.velocity import VelocityAnalyzer
from events.base import GovernanceStore
from query.filters import QueryFilters
from scoring.trending import TrendingScorer


class DashboardComposer:
    """
    Coordinates the queries behind each dashboard.

    Attributes:
        status (StatusAnalyzer): Proposal status analytics
        velocity (VelocityAnalyzer): Duration analytics
        pull_requests (PullRequestAnalyzer): PR activity analytics
        governance (GovernanceAnalyzer): Governance state analytics
        contributors (ContributorAnalyzer): Contributor analytics
        trending (TrendingScorer): Trending proposals
    """

    def __init__(self, store: GovernanceStore):
        """
        Initialize the composer.

        Args:
            store (GovernanceStore): Event store shared by every analyzer
        """
        self.status = StatusAnalyzer(store)
        self.velocity = VelocityAnalyzer(store)
        self.pull_requests = PullRequestAnalyzer(store)
        self.governance = GovernanceAnalyzer(store)
        self.contributors = ContributorAnalyzer(store)
        self.trending = TrendingScorer(store)

    async def compose(self, name: str, queries: Dict[str, Awaitable[Any]], now: datetime) -> DashboardView:
        """
        Run the sub-queries of a dashboard concurrently.

        Args:
            name (str): Dashboard name
            queries (Dict[str, Awaitable[Any]]): Section name to pending query
            now (datetime): Reference time recorded on the view

        Returns:
            DashboardView: Every section, in the order given

        Raises:
            Exception: The first sub-query failure, unchanged; the sub-queries
                still running are cancelled
        """
        logger.info({"message": "Composing dashboard", "dashboard": name, "sections": len(queries)})
        tasks = [asyncio.ensure_future(query) for query in queries.values()]
        try:
            results = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # retrieve sibling results and failures
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(
                {
                    "message": "Failed to compose dashboard",
                    "dashboard": name,
                    "error": str(e),
                    "error_line": e.__traceback__.tb_lineno,
                }
            )
            raise e

        return DashboardView(name=name, generated_at=now, sections=dict(zip(queries.keys(), results)))

    async def overview(self, now: Optional[datetime] = None, repo: Optional[str] = None) -> DashboardView:
        """Landing dashboard: lifecycle, momentum, trending and open PR backlog."""
        QueryFilters.build(repo=repo)
        now = resolve_now(now)
        return await self.compose(
            "overview",
            {
                "lifecycle": self.status.lifecycle_counts(repo=repo),
                "active": self.status.active_proposals(repo=repo),
                "momentum": self.status.momentum(now=now, repo=repo),
                "trending": self.trending.trending(now=now, repo=repo),
                "recent_changes": self.status.recent_changes(now=now, repo=repo),
                "open_prs": self.pull_requests.open_state(now=now, repo=repo),
                "governance": self.governance.governance_states(repo=repo),
            },
            now,
        )

    async def proposals(self, now: Optional[datetime] = None, repo: Optional[str] = None) -> DashboardView:
        QueryFilters.build(repo=repo)
        now = resolve_now(now)
        return await self.compose(
            "proposals",
            {
                "snapshot": self.status.monthly_status_snapshot(month_key(now), repo=repo),
                "status_flow": self.status.status_flow(repo=repo),
                "transitions": self.status.status_transitions(repo=repo),
                "throughput": self.status.throughput(now=now, repo=repo),
                "matrix": self.status.category_status_matrix(repo=repo),
                "composition": self.status.standards_composition(repo=repo),
                "watchlist": self.status.last_call_watchlist(now=now, repo=repo),
                "velocity": self.velocity.decision_velocity(now=now, repo=repo),
                "kpis": self.status.hero_kpis(now=now, repo=repo),
            },
            now,
        )

    async def pull_request_activity(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> DashboardView:
        QueryFilters.build(repo=repo)
        now = resolve_now(now)
        return await self.compose(
            "pull_requests",
            {
                "monthly": self.pull_requests.monthly_activity(now=now, repo=repo),
                "month_kpis": self.pull_requests.month_hero_kpis(month_key(now), repo=repo),
                "staleness": self.pull_requests.staleness(now=now, repo=repo),
                "funnel": self.pull_requests.lifecycle_funnel(repo=repo),
                "time_to_outcome": self.velocity.pr_time_to_outcome(repo=repo),
                "waiting": self.governance.governance_waiting_states(now=now, repo=repo),
                "attention": self.governance.needs_attention(now=now, repo=repo),
                "responsibility": self.governance.responsibility_metrics(now=now, repo=repo),
                "classification": self.pull_requests.process_classification(repo=repo),
            },
            now,
        )

    async def contributor_activity(
        self, now: Optional[datetime] = None, repo: Optional[str] = None
    ) -> DashboardView:
        QueryFilters.build(repo=repo)
        now = resolve_now(now)
        return await self.compose(
            "contributors",
            {
                "kpis": self.contributors.kpis(now=now),
                "by_type": self.contributors.activity_by_type(repo=repo),
                "rankings": self.contributors.rankings(repo=repo),
                "editors": self.contributors.editors_leaderboard(repo=repo),
                "reviewers": self.contributors.reviewers_leaderboard(repo=repo),
                "trend": self.contributors.monthly_review_trend(now=now, repo=repo),
            },
            now,
        )
