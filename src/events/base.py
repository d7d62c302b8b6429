"""
Abstract Base Class for Governance Event Stores.

Defines the read-only interface the analyzers query. Implementations may keep
the data in memory, read an export from disk or query a database.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from events.models import (
    Proposal,
    StatusEvent,
    StreamKind,
    Table,
    Upgrade,
)
from query.filters import RepoFamily
from query.predicates import Eq, Predicate, Range, all_of

STREAM_TABLES = {
    StreamKind.STATUS: Table.STATUS_EVENTS,
    StreamKind.CATEGORY: Table.CATEGORY_EVENTS,
    StreamKind.DEADLINE: Table.DEADLINE_EVENTS,
}


def _repo_predicate(repo: Optional[RepoFamily]) -> Optional[Predicate]:
    return Eq("repo_short", repo.value) if repo is not None else None


class GovernanceStore(ABC):
    """
    Abstract base class for governance event stores.

    Defines the contract for reading the event logs and current-state tables.
    Implementations should handle:
    - Connection to the underlying data source
    - Filtering rows with predicate trees
    - Reporting an unreachable source as ``UpstreamUnavailableError``
    """

    @abstractmethod
    async def select(self, table: Table, where: Optional[Predicate] = None) -> List[Any]:
        """
        Read the rows of a table matching a predicate.

        Event tables are returned in log order, current-state tables in key order.

        Args:
            table (Table): Table to read
            where (Optional[Predicate]): Row filter, all rows when omitted

        Returns:
            List[Any]: Matching rows

        Raises:
            UpstreamUnavailableError: If the data source cannot be reached
        """
        pass

    async def get_proposal(
        self, number: int, repo: Optional[RepoFamily] = None
    ) -> Optional[Proposal]:
        """
        Fetch a single proposal.

        Args:
            number (int): Proposal number
            repo (Optional[RepoFamily]): Repository family, any when omitted

        Returns:
            Optional[Proposal]: The proposal, None when it does not exist
        """
        rows = await self.select(
            Table.PROPOSALS, all_of(Eq("number", number), _repo_predicate(repo))
        )
        if not rows:
            return None
        return sorted(rows, key=lambda row: row.repository)[0]

    async def list_proposal_events(
        self, stream: StreamKind, number: int, repo: Optional[RepoFamily] = None
    ) -> List[Any]:
        """
        List the events of one proposal stream in ascending time order.

        A proposal is keyed by repository and number. Without a repository
        filter the events are scoped to the repository ``get_proposal``
        resolves, or to the first repository holding events when the proposal
        row is missing.

        Args:
            stream (StreamKind): Status, category or deadline stream
            number (int): Proposal number
            repo (Optional[RepoFamily]): Repository family, resolved when omitted

        Returns:
            List[Any]: Events of a single proposal, empty when it is unknown
        """
        rows = await self.select(
            STREAM_TABLES[StreamKind(stream)],
            all_of(Eq("number", number), _repo_predicate(repo)),
        )
        if rows:
            proposal = await self.get_proposal(number, repo)
            owner = proposal.repository if proposal is not None else min(row.repository for row in rows)
            rows = [row for row in rows if row.repository == owner]
        return sorted(rows, key=lambda row: row.changed_at)

    async def list_status_events(
        self, number: int, repo: Optional[RepoFamily] = None
    ) -> List[StatusEvent]:
        """
        List the status transitions of a proposal in ascending time order.

        A missing proposal yields an empty list.
        """
        return await self.list_proposal_events(StreamKind.STATUS, number, repo)

    async def list_events_in_window(
        self,
        stream: StreamKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        repo: Optional[RepoFamily] = None,
    ) -> List[Any]:
        """
        List events of a stream with ``start <= changed_at < end``.

        Args:
            stream (StreamKind): Status, category or deadline stream
            start (Optional[datetime]): Inclusive lower bound
            end (Optional[datetime]): Exclusive upper bound
            repo (Optional[RepoFamily]): Repository family filter

        Returns:
            List[Any]: Events in ascending time order
        """
        rows = await self.select(
            STREAM_TABLES[StreamKind(stream)],
            all_of(Range("changed_at", start, end), _repo_predicate(repo)),
        )
        return sorted(rows, key=lambda row: row.changed_at)

    async def get_upgrade(self, slug: str) -> Optional[Upgrade]:
        rows = await self.select(Table.UPGRADES, Eq("slug", slug))
        return rows[0] if rows else None
