"""
Proposal Analysis Module.

Single-proposal views: overview, event histories, merged timelines, upgrade
membership, governance state of linked pull requests, and search.

Detail views (overview, full timeline) fail with ``NotFoundError`` for an
unknown proposal; history views return an empty list instead.
"""

from datetime import datetime
from typing import List, Optional

from config import logger
from analyzers.aggregation import resolve_now, whole_days
from analyzers.models import (
    LinkedPullRequest,
    ProposalFullTimeline,
    ProposalGovernance,
    ProposalOverview,
    ProposalSearchResult,
    ProposalUpgrade,
    TimelineEntry,
)
from errors import NotFoundError
from events.base import GovernanceStore
from events.models import (
    CategoryEvent,
    DeadlineEvent,
    GovernanceStateKind,
    Proposal,
    StatusEvent,
    StreamKind,
    Table,
)
from query.filters import QueryFilters, RepoFamily
from query.predicates import Contains, Eq, In, Predicate


class ProposalAnalyzer:
    """
    Read-side views over a single proposal.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def _require_proposal(self, number: int, repo: Optional[RepoFamily]) -> Proposal:
        proposal = await self.store.get_proposal(number, repo)
        if proposal is None:
            logger.warning({"message": "Proposal not found", "number": number})
            raise NotFoundError("proposal", number)
        return proposal

    async def _overview(self, proposal: Proposal) -> ProposalOverview:
        snapshots = await self.store.select(
            Table.SNAPSHOTS,
            Eq("repository", proposal.repository) & Eq("number", proposal.number),
        )
        snapshot = snapshots[0] if snapshots else None
        return ProposalOverview(
            repository=proposal.repository,
            repo=proposal.repo_short,
            number=proposal.number,
            title=proposal.title,
            authors=proposal.authors,
            created_at=proposal.created_at,
            status=snapshot.status if snapshot else "Unknown",
            type=snapshot.type if snapshot else None,
            category=snapshot.category if snapshot else None,
            last_call_deadline=snapshot.deadline if snapshot else None,
            updated_at=snapshot.updated_at if snapshot else None,
        )

    async def _history(self, table: Table, where: Predicate) -> List:
        rows = await self.store.select(table, where)
        return sorted(rows, key=lambda row: row.changed_at)

    async def get_proposal(self, number: int, repo: Optional[str] = None) -> ProposalOverview:
        """
        Get a proposal with its current snapshot.

        Args:
            number (int): Proposal number
            repo (Optional[str]): Repository family

        Returns:
            ProposalOverview: Proposal details, status ``Unknown`` when no
                snapshot exists

        Raises:
            NotFoundError: If the proposal does not exist
            InvalidFilterError: If the repository filter is invalid
        """
        filters = QueryFilters.build(repo=repo)
        proposal = await self._require_proposal(number, filters.repo)
        return await self._overview(proposal)

    async def get_status_events(self, number: int, repo: Optional[str] = None) -> List[StatusEvent]:
        """Status transitions of a proposal, oldest first."""
        filters = QueryFilters.build(repo=repo)
        return await self.store.list_status_events(number, filters.repo)

    async def get_category_events(
        self, number: int, repo: Optional[str] = None
    ) -> List[CategoryEvent]:
        filters = QueryFilters.build(repo=repo)
        return await self.store.list_proposal_events(StreamKind.CATEGORY, number, filters.repo)

    async def get_deadline_events(
        self, number: int, repo: Optional[str] = None
    ) -> List[DeadlineEvent]:
        filters = QueryFilters.build(repo=repo)
        return await self.store.list_proposal_events(StreamKind.DEADLINE, number, filters.repo)

    async def get_upgrades(self, number: int) -> List[ProposalUpgrade]:
        """
        Current upgrade membership of a proposal.

        Read from the current composition table; the log is only used for
        historical reconstructions.
        """
        rows = await self.store.select(Table.COMPOSITION_CURRENT, Eq("proposal_number", number))
        upgrades = await self.store.select(
            Table.UPGRADES, In("slug", [row.upgrade_slug for row in rows])
        )
        names = {upgrade.slug: upgrade.name for upgrade in upgrades}
        return [
            ProposalUpgrade(
                upgrade_slug=row.upgrade_slug,
                upgrade_name=names.get(row.upgrade_slug),
                bucket=row.bucket,
                updated_at=row.updated_at,
            )
            for row in sorted(rows, key=lambda row: row.upgrade_slug)
        ]

    async def get_governance_state(
        self, number: int, repo: Optional[str] = None, now: Optional[datetime] = None
    ) -> Optional[ProposalGovernance]:
        """
        Governance state of the most recently active PR linked to a proposal.

        Returns:
            Optional[ProposalGovernance]: None when no PR is linked
        """
        filters = QueryFilters.build(repo=repo)
        now = resolve_now(now)
        prs = await self.store.select(
            Table.PULL_REQUESTS, filters.where(None, Contains("proposal_numbers", number))
        )
        if not prs:
            return None

        latest = max(prs, key=lambda pr: (pr.updated_at or pr.created_at, pr.pr_number))
        states = await self.store.select(
            Table.GOVERNANCE_STATES,
            Eq("repository", latest.repository) & Eq("pr_number", latest.pr_number),
        )
        state = states[0] if states else None
        last_action = (state.updated_at if state else None) or latest.updated_at or latest.created_at
        return ProposalGovernance(
            repository=latest.repository,
            pr_number=latest.pr_number,
            waiting_on=state.current_state if state else GovernanceStateKind.NO_STATE.value,
            waiting_since=state.waiting_since if state else None,
            days_since_last_action=max(whole_days(last_action, now), 0),
        )

    async def get_timeline(self, number: int, repo: Optional[str] = None) -> List[TimelineEntry]:
        """
        Status, category and deadline changes of a proposal merged in time order.

        Returns an empty list for an unknown proposal.
        """
        status_events = await self.get_status_events(number, repo)
        category_events = await self.get_category_events(number, repo)
        deadline_events = await self.get_deadline_events(number, repo)

        entries = [
            TimelineEntry(
                kind="status",
                changed_at=event.changed_at,
                from_value=event.from_status,
                to_value=event.to_status,
                pr_number=event.pr_number,
                commit_sha=event.commit_sha,
            )
            for event in status_events
        ]
        entries.extend(
            TimelineEntry(
                kind="category",
                changed_at=event.changed_at,
                from_value=event.from_category,
                to_value=event.to_category,
            )
            for event in category_events
        )
        entries.extend(
            TimelineEntry(
                kind="deadline",
                changed_at=event.changed_at,
                from_value=event.previous_deadline.isoformat() if event.previous_deadline else None,
                to_value=event.new_deadline.isoformat() if event.new_deadline else None,
            )
            for event in deadline_events
        )
        # stable sort keeps status before category before deadline on ties
        entries.sort(key=lambda entry: entry.changed_at)
        return entries

    async def get_full_timeline(self, number: int, repo: Optional[str] = None) -> ProposalFullTimeline:
        """
        Complete history of a proposal with its linked pull requests.

        Raises:
            NotFoundError: If the proposal does not exist
        """
        filters = QueryFilters.build(repo=repo)
        proposal = await self._require_proposal(number, filters.repo)
        owned = Eq("repository", proposal.repository) & Eq("number", number)

        prs = await self.store.select(
            Table.PULL_REQUESTS,
            Eq("repository", proposal.repository) & Contains("proposal_numbers", number),
        )
        return ProposalFullTimeline(
            overview=await self._overview(proposal),
            status_events=await self._history(Table.STATUS_EVENTS, owned),
            category_events=await self._history(Table.CATEGORY_EVENTS, owned),
            deadline_events=await self._history(Table.DEADLINE_EVENTS, owned),
            linked_prs=[
                LinkedPullRequest(
                    repository=pr.repository,
                    pr_number=pr.pr_number,
                    title=pr.title,
                    author=pr.author,
                    state=pr.state,
                    created_at=pr.created_at,
                    merged_at=pr.merged_at,
                    commits=pr.num_commits,
                    files=pr.num_files,
                )
                for pr in sorted(prs, key=lambda pr: pr.created_at)
            ],
        )

    async def search_proposals(
        self, query: str, repo: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ProposalSearchResult]:
        """
        Find proposals by number, title or author.

        A numeric query matches numbers containing it; any other query is a
        case-insensitive substring match on title and authors.
        """
        filters = QueryFilters.build(repo=repo, limit=limit)
        text = (query or "").strip().lower()
        if not text:
            return []

        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        statuses = {(row.repository, row.number): row.status for row in snapshots}

        def matches(proposal: Proposal) -> bool:
            if text.isdigit():
                return text in str(proposal.number)
            if text in (proposal.title or "").lower():
                return True
            return any(text in author.lower() for author in proposal.authors)

        found = sorted(
            (proposal for proposal in proposals if matches(proposal)),
            key=lambda proposal: (proposal.number, proposal.repository),
        )
        return [
            ProposalSearchResult(
                repository=proposal.repository,
                number=proposal.number,
                title=proposal.title,
                status=statuses.get((proposal.repository, proposal.number), "Unknown"),
                authors=proposal.authors,
            )
            for proposal in filters.apply_limit(found)
        ]
