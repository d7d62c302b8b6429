"""
Proposal dependency graph built from shared pull requests.

Two proposals are joined when at least one pull request touches both. The
graph is an adjacency list of undirected edges with ``source < target``.
"""

from collections import Counter
from itertools import combinations
from typing import Optional

from config import logger
from analyzers.models import DependencyGraph, GraphEdge, GraphNode
from events.base import GovernanceStore
from events.models import Table
from query.filters import QueryFilters
from query.predicates import Contains

MAX_NODES = 500


class DependencyGraphBuilder:
    """Builds the proposal graph of a repository family."""

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def build(self, repo: Optional[str] = None, number: Optional[int] = None) -> DependencyGraph:
        """
        Build the dependency graph.

        Args:
            repo (Optional[str]): Repository family filter
            number (Optional[int]): Restrict to one proposal and its neighbours

        Returns:
            DependencyGraph: Nodes ordered by number, edges weighted by the
                number of shared pull requests
        """
        filters = QueryFilters.build(repo=repo)
        prs = await self.store.select(
            Table.PULL_REQUESTS,
            filters.where(None, Contains("proposal_numbers", number) if number is not None else None),
        )

        weights: Counter = Counter()
        for pr in prs:
            linked = sorted(set(pr.proposal_numbers))
            for source, target in combinations(linked, 2):
                weights[(pr.repository, source, target)] += 1

        snapshots = await self.store.select(Table.SNAPSHOTS, filters.where())
        proposals = await self.store.select(Table.PROPOSALS, filters.where())
        titles = {(row.repository, row.number): row.title for row in proposals}

        if number is not None:
            keys = {(row.repository, row.number) for row in snapshots if row.number == number}
            keys |= {(repository, source) for repository, source, _ in weights}
            keys |= {(repository, target) for repository, _, target in weights}
            snapshots = [row for row in snapshots if (row.repository, row.number) in keys]

        snapshots = sorted(snapshots, key=lambda row: (row.number, row.repository))[:MAX_NODES]
        nodes = [
            GraphNode(
                number=row.number,
                repository=row.repository,
                title=titles.get((row.repository, row.number)),
                status=row.status,
            )
            for row in snapshots
        ]
        present = {(node.repository, node.number) for node in nodes}
        edges = [
            GraphEdge(source=source, target=target, weight=weight)
            for (repository, source, target), weight in sorted(weights.items())
            if (repository, source) in present and (repository, target) in present
        ]

        logger.debug(
            {"message": "dependency graph built", "nodes": len(nodes), "edges": len(edges)}
        )
        return DependencyGraph(nodes=nodes, edges=edges)
