"""
Contributor Analysis Module.

Aggregates the contributor activity log:
- Headline KPIs and activity splits by type and repository
- Sortable contributor rankings and single-actor profiles
- Editor and reviewer leaderboards with median response days
- Editors per proposal category
- Role leaderboards without bot accounts
- Monthly review trend, author success rates and the live feed
- Role counts, role activity timeline and sparkline
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from config import logger
from analyzers.aggregation import (
    median,
    monthly_counts,
    percentage,
    resolve_now,
    round_half_up,
    trailing_months,
    whole_days,
)
from analyzers.models import (
    ActorMonthlyTrend,
    AuthorSuccessRate,
    ContributorKPIs,
    ContributorProfile,
    ContributorRanking,
    EditorCategory,
    LabelCount,
    LeaderboardEntry,
    MonthlyCount,
    RoleCount,
    RoleLeaderboardEntry,
)
from errors import InvalidFilterError, NotFoundError
from events.base import GovernanceStore
from events.models import ActivityAction, ContributorActivity, ContributorRole, PullRequestState, Table
from query.filters import QueryFilters
from query.predicates import Eq, Not, Predicate, Range

RANKING_FIELDS = ["total", "reviews", "status_changes", "prs_authored", "prs_reviewed"]
CATEGORY_ORDER = ["governance", "core", "erc", "networking", "interface", "meta", "informational"]
MIN_AUTHOR_PRS = 3
TREND_ACTORS = 10
PROFILE_RECENT = 20
ROLE_TIMELINE_MAX = 50

OFFICIAL_EDITORS_BY_CATEGORY: Dict[str, List[str]] = {
    "governance": ["lightclient", "SamWilsn", "xinbenlv", "g11tech", "jochem-brouwer"],
    "core": ["lightclient", "SamWilsn", "g11tech", "jochem-brouwer"],
    "erc": ["SamWilsn", "xinbenlv"],
    "networking": ["lightclient", "SamWilsn", "g11tech", "jochem-brouwer"],
    "interface": ["lightclient", "SamWilsn", "g11tech", "jochem-brouwer"],
    "meta": ["lightclient", "SamWilsn", "xinbenlv", "g11tech", "jochem-brouwer"],
    "informational": ["lightclient", "SamWilsn", "xinbenlv", "g11tech", "jochem-brouwer"],
}

KNOWN_BOTS = {"dependabot", "github-actions", "codecov", "renovate", "eth-bot", "ethereum-bot"}

EDITOR_ACTIVITY: Predicate = Eq("role", ContributorRole.EDITOR.value)
REVIEWER_ACTIVITY: Predicate = Eq("role", ContributorRole.REVIEWER.value) | (
    Eq("action_type", ActivityAction.REVIEWED.value) & Not(EDITOR_ACTIVITY)
)
REVIEW_ACTIVITY: Predicate = EDITOR_ACTIVITY | Eq("action_type", ActivityAction.REVIEWED.value)


def is_bot(actor: str) -> bool:
    """True for automation accounts such as ``dependabot[bot]``."""
    name = actor.lower()
    return "[bot]" in name or name.endswith("bot") or name in KNOWN_BOTS


def latest_role(rows: List[ContributorActivity]) -> str:
    return max(rows, key=lambda row: row.occurred_at).role


class ContributorAnalyzer:
    """
    Contributor analytics over the activity log.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def _activity(self, filters: QueryFilters, *extra: Optional[Predicate]) -> List[ContributorActivity]:
        return await self.store.select(
            Table.CONTRIBUTOR_ACTIVITY, filters.where("occurred_at", *extra)
        )

    async def kpis(self, now: Optional[datetime] = None) -> ContributorKPIs:
        """Distinct contributors, those active in 30 days, and activity volume."""
        now = resolve_now(now)
        activity = await self.store.select(Table.CONTRIBUTOR_ACTIVITY)
        month = Range("occurred_at", now - timedelta(days=30), now, include_end=True)
        day = Range("occurred_at", now - timedelta(hours=24), now, include_end=True)
        return ContributorKPIs(
            total_contributors=len({row.actor for row in activity}),
            active_30d=len({row.actor for row in activity if month.matches(row)}),
            total_activities=len(activity),
            last_24h=sum(1 for row in activity if day.matches(row)),
        )

    async def activity_by_type(
        self, repo: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None
    ) -> List[LabelCount]:
        filters = QueryFilters.build(repo=repo, start=start, end=end)
        counts = Counter(row.action_type for row in await self._activity(filters))
        return [
            LabelCount(label=label, count=count)
            for label, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]

    async def activity_by_repo(
        self, start: Optional[str] = None, end: Optional[str] = None
    ) -> List[LabelCount]:
        filters = QueryFilters.build(start=start, end=end)
        counts = Counter(row.repository or "Unknown" for row in await self._activity(filters))
        return [
            LabelCount(label=label, count=count)
            for label, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]

    async def rankings(
        self,
        sort_by: str = "total",
        sort_dir: str = "desc",
        limit: Optional[int] = 50,
        repo: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[ContributorRanking]:
        """
        Rank contributors by one activity measure.

        Args:
            sort_by (str): One of total, reviews, status_changes,
                prs_authored, prs_reviewed
            sort_dir (str): ``asc`` or ``desc``
            limit (Optional[int]): Maximum number of contributors
            repo (Optional[str]): Repository family filter
            start (Optional[str]): Inclusive lower time bound
            end (Optional[str]): Upper time bound

        Returns:
            List[ContributorRanking]: Sorted rankings, ties broken by actor

        Raises:
            InvalidFilterError: If a filter value is invalid
        """
        filters = QueryFilters.build(
            repo=repo,
            start=start,
            end=end,
            limit=limit,
            sort_by=sort_by,
            sort_dir=sort_dir,
            sort_fields=RANKING_FIELDS,
        )
        by_actor: Dict[str, List[ContributorActivity]] = defaultdict(list)
        for row in await self._activity(filters):
            by_actor[row.actor].append(row)

        rankings = []
        for actor, rows in by_actor.items():
            rankings.append(
                ContributorRanking(
                    actor=actor,
                    role=latest_role(rows),
                    total=len(rows),
                    reviews=sum(1 for row in rows if row.action_type == ActivityAction.REVIEWED.value),
                    status_changes=sum(
                        1 for row in rows if row.action_type == ActivityAction.STATUS_CHANGE.value
                    ),
                    prs_authored=len(
                        {row.pr_number for row in rows if row.action_type == ActivityAction.OPENED.value}
                        - {None}
                    ),
                    prs_reviewed=len(
                        {row.pr_number for row in rows if row.action_type == ActivityAction.REVIEWED.value}
                        - {None}
                    ),
                    last_activity=max(row.occurred_at for row in rows),
                )
            )

        sign = -1 if filters.descending else 1
        rankings.sort(key=lambda item: (sign * getattr(item, filters.sort_by or "total"), item.actor))
        return filters.apply_limit(rankings)

    async def profile(self, actor: str, repo: Optional[str] = None) -> ContributorProfile:
        """
        Activity profile of one actor.

        Raises:
            NotFoundError: If the actor has no recorded activity
        """
        filters = QueryFilters.build(repo=repo)
        rows = await self._activity(filters, Eq("actor", actor))
        if not rows:
            logger.warning({"message": "Contributor not found", "actor": actor})
            raise NotFoundError("contributor", actor)

        rows.sort(key=lambda row: row.occurred_at)
        return ContributorProfile(
            actor=actor,
            role=latest_role(rows),
            total=len(rows),
            by_action=dict(Counter(row.action_type for row in rows)),
            by_repo=dict(Counter(row.repository for row in rows)),
            first_activity=rows[0].occurred_at,
            last_activity=rows[-1].occurred_at,
            recent=list(reversed(rows[-PROFILE_RECENT:])),
        )

    async def _leaderboard(
        self, filters: QueryFilters, who: Predicate
    ) -> List[LeaderboardEntry]:
        rows = await self._activity(filters, who)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())
        opened = {(pr.repository, pr.pr_number): pr.created_at for pr in prs}

        by_actor: Dict[str, List[ContributorActivity]] = defaultdict(list)
        for row in rows:
            by_actor[row.actor].append(row)

        entries = []
        for actor, actions in by_actor.items():
            first_touch: Dict[Tuple[str, int], datetime] = {}
            for row in actions:
                if row.pr_number is None:
                    continue
                key = (row.repository, row.pr_number)
                if key not in first_touch or row.occurred_at < first_touch[key]:
                    first_touch[key] = row.occurred_at
            # activity recorded before the PR was opened is not a response
            response_days = [
                whole_days(opened[key], first)
                for key, first in first_touch.items()
                if key in opened and first >= opened[key]
            ]
            median_days = round_half_up(median(response_days))
            entries.append(
                LeaderboardEntry(
                    actor=actor,
                    total_reviews=len(actions),
                    prs_touched=len(first_touch),
                    median_response_days=float(median_days) if median_days is not None else None,
                    last_activity=max(row.occurred_at for row in actions),
                )
            )
        entries.sort(key=lambda entry: (-entry.total_reviews, entry.actor))
        return filters.apply_limit(entries)

    async def editors_leaderboard(
        self,
        repo: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = 30,
    ) -> List[LeaderboardEntry]:
        """
        Editors by number of actions.

        Median response days are whole days from PR creation to the editor's
        first action on it.
        """
        filters = QueryFilters.build(repo=repo, start=start, end=end, limit=limit)
        return await self._leaderboard(filters, EDITOR_ACTIVITY)

    async def reviewers_leaderboard(
        self,
        repo: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = 30,
    ) -> List[LeaderboardEntry]:
        """Reviewers, or non-editors who reviewed, by number of actions."""
        filters = QueryFilters.build(repo=repo, start=start, end=end, limit=limit)
        return await self._leaderboard(filters, REVIEWER_ACTIVITY)

    async def editors_by_category(self, repo: Optional[str] = None) -> List[EditorCategory]:
        """
        Most active reviewers per proposal category.

        Uses the categories of the proposals linked to reviewed PRs. When no
        such activity exists, the official editor assignments are returned.
        """
        filters = QueryFilters.build(repo=repo)
        rows = await self._activity(filters, REVIEW_ACTIVITY)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        linked = {(pr.repository, pr.pr_number): pr.proposal_numbers for pr in prs}
        categories = {
            (row.repository, row.number): (row.category or "informational").strip().lower()
            for row in snapshots
        }

        counts: Dict[str, Counter] = defaultdict(Counter)
        for row in rows:
            for number in linked.get((row.repository, row.pr_number), []):
                category = categories.get((row.repository, number))
                if category is not None:
                    counts[category][row.actor] += 1

        if any(counts.values()):
            source = "activity"
            editors = {
                category: [
                    actor
                    for actor, _ in sorted(counter.items(), key=lambda item: (-item[1], item[0]))[:20]
                ]
                for category, counter in counts.items()
            }
        else:
            source = "official"
            editors = OFFICIAL_EDITORS_BY_CATEGORY

        return [
            EditorCategory(category=category, editors=editors.get(category, []), source=source)
            for category in CATEGORY_ORDER
        ]

    async def role_leaderboard(
        self, role: Optional[str] = None, limit: Optional[int] = 20
    ) -> List[RoleLeaderboardEntry]:
        """
        Actors by number of actions, bot accounts excluded.

        Without a role, each actor is reported under their most recent role.

        Raises:
            InvalidFilterError: If the role is unknown
        """
        filters = QueryFilters.build(limit=limit)
        self._check_role(role)

        rows = await self._activity(filters, Eq("role", role) if role is not None else None)
        by_actor: Dict[str, List[ContributorActivity]] = defaultdict(list)
        for row in rows:
            if not is_bot(row.actor):
                by_actor[row.actor].append(row)

        ranked = sorted(by_actor.items(), key=lambda item: (-len(item[1]), item[0]))
        return [
            RoleLeaderboardEntry(
                rank=index,
                actor=actor,
                role=role or latest_role(actions),
                total_actions=len(actions),
                prs_touched=len({row.pr_number for row in actions} - {None}),
                last_activity=max(row.occurred_at for row in actions),
            )
            for index, (actor, actions) in enumerate(filters.apply_limit(ranked), start=1)
        ]

    async def monthly_review_trend(
        self,
        now: Optional[datetime] = None,
        months: int = 12,
        actor: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> List[ActorMonthlyTrend]:
        """
        Monthly review activity of the most active reviewers.

        Every actor gets a dense series over the trailing months.
        """
        filters = QueryFilters.build(repo=repo, limit=TREND_ACTORS)
        keys = trailing_months(resolve_now(now), months)
        rows = await self._activity(
            filters, REVIEW_ACTIVITY, Eq("actor", actor) if actor is not None else None
        )

        by_actor: Dict[str, List[datetime]] = defaultdict(list)
        for row in rows:
            by_actor[row.actor].append(row.occurred_at)
        top = sorted(by_actor.items(), key=lambda item: (-len(item[1]), item[0]))

        trends = []
        for name, timestamps in filters.apply_limit(top):
            counts = monthly_counts(timestamps, keys)
            trends.append(
                ActorMonthlyTrend(
                    actor=name,
                    points=[MonthlyCount(month=key, count=count) for key, count in zip(keys, counts)],
                )
            )
        return trends

    async def author_success_rates(
        self, repo: Optional[str] = None, limit: Optional[int] = 20
    ) -> List[AuthorSuccessRate]:
        """
        Merge and close rates of authors with at least three PRs.

        Rates are whole percentages of the author's PRs; the median days to
        merge only counts merged PRs.
        """
        filters = QueryFilters.build(repo=repo, limit=limit)
        prs = await self.store.select(Table.PULL_REQUESTS, filters.where())

        by_author: Dict[str, List] = defaultdict(list)
        for pr in prs:
            if pr.author:
                by_author[pr.author].append(pr)

        rates = []
        for author, authored in by_author.items():
            if len(authored) < MIN_AUTHOR_PRS:
                continue
            merged = [pr for pr in authored if pr.merged_at is not None]
            closed = [
                pr for pr in authored
                if pr.merged_at is None and pr.state == PullRequestState.CLOSED.value
            ]
            days_to_merge = round_half_up(
                median(whole_days(pr.created_at, pr.merged_at) for pr in merged)
            )
            rates.append(
                AuthorSuccessRate(
                    author=author,
                    total_prs=len(authored),
                    merged=len(merged),
                    closed_unmerged=len(closed),
                    open=len(authored) - len(merged) - len(closed),
                    merge_rate=percentage(len(merged), len(authored)),
                    close_rate=percentage(len(closed), len(authored)),
                    median_days_to_merge=float(days_to_merge) if days_to_merge is not None else None,
                )
            )
        rates.sort(key=lambda rate: (-rate.total_prs, rate.author))
        return filters.apply_limit(rates)

    async def live_feed(
        self, now: Optional[datetime] = None, hours: int = 48, limit: Optional[int] = 50
    ) -> List[ContributorActivity]:
        """Activity of the last ``hours`` hours, newest first."""
        filters = QueryFilters.build(limit=limit)
        now = resolve_now(now)
        rows = await self._activity(
            filters, Range("occurred_at", now - timedelta(hours=hours), now, include_end=True)
        )
        rows.sort(key=lambda row: (row.occurred_at, row.actor), reverse=True)
        return filters.apply_limit(rows)

    async def role_counts(self, repo: Optional[str] = None) -> List[RoleCount]:
        """Distinct actors and actions per role, every role listed."""
        filters = QueryFilters.build(repo=repo)
        rows = await self._activity(filters)
        return [
            RoleCount(
                role=kind.value,
                unique_actors=len({row.actor for row in rows if row.role == kind.value}),
                total_actions=sum(1 for row in rows if row.role == kind.value),
            )
            for kind in ContributorRole
        ]

    def _check_role(self, role: Optional[str]) -> None:
        if role is not None and role not in {kind.value for kind in ContributorRole}:
            raise InvalidFilterError("role", role, "expected EDITOR, REVIEWER or CONTRIBUTOR")

    async def role_activity_timeline(
        self, role: Optional[str] = None, limit: Optional[int] = 20
    ) -> List[ContributorActivity]:
        """
        Most recent actions of one role, bot accounts excluded.

        Raises:
            InvalidFilterError: If the role or the limit is invalid
        """
        filters = QueryFilters.build(limit=limit)
        self._check_role(role)
        if filters.limit > ROLE_TIMELINE_MAX:
            raise InvalidFilterError("limit", limit, f"must not exceed {ROLE_TIMELINE_MAX}")

        rows = await self._activity(filters, Eq("role", role) if role is not None else None)
        rows = [row for row in rows if not is_bot(row.actor)]
        rows.sort(key=lambda row: (row.occurred_at, row.actor), reverse=True)
        return filters.apply_limit(rows)

    async def role_activity_sparkline(
        self, now: Optional[datetime] = None, months: int = 6, role: Optional[str] = None
    ) -> List[MonthlyCount]:
        """Actions per month over the trailing months, dense."""
        self._check_role(role)
        keys = trailing_months(resolve_now(now), months)
        rows = await self._activity(
            QueryFilters.build(), Eq("role", role) if role is not None else None
        )
        counts = monthly_counts((row.occurred_at for row in rows), keys)
        return [MonthlyCount(month=key, count=count) for key, count in zip(keys, counts)]
