"""
Network Upgrade Analysis Module.

Views over network upgrades and the proposals they bundle:
- Upgrade list with per-upgrade stats and overall stats
- Current composition, read from the materialized table
- Composition change log and a day-by-day composition timeline replayed
  from the log
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from config import logger
from analyzers.aggregation import resolve_now
from analyzers.models import (
    CompositionEntry,
    CompositionTimelinePoint,
    UpgradeOverallStats,
    UpgradeStats,
    UpgradeSummary,
)
from errors import NotFoundError
from events.base import GovernanceStore
from events.log import apply_composition_event
from events.models import CompositionBucket, Table, Upgrade, UpgradeCompositionEvent
from query.filters import RepoFamily
from query.predicates import Eq, In

BUCKET_ORDER = [
    CompositionBucket.INCLUDED.value,
    CompositionBucket.SCHEDULED.value,
    CompositionBucket.CONSIDERED.value,
    CompositionBucket.PROPOSED.value,
    CompositionBucket.DECLINED.value,
]


def _timeline_point(day: str, state: Dict[int, str]) -> CompositionTimelinePoint:
    members: Dict[str, List[int]] = {bucket: [] for bucket in BUCKET_ORDER}
    for number, bucket in state.items():
        members.setdefault(bucket, []).append(number)
    return CompositionTimelinePoint(date=day, **{bucket: sorted(members[bucket]) for bucket in BUCKET_ORDER})


class UpgradeAnalyzer:
    """
    Upgrade composition analytics.

    Attributes:
        store (GovernanceStore): Event store to read from
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    async def _require_upgrade(self, slug: str) -> Upgrade:
        upgrade = await self.store.get_upgrade(slug)
        if upgrade is None:
            logger.warning({"message": "Upgrade not found", "slug": slug})
            raise NotFoundError("upgrade", slug)
        return upgrade

    async def _core_numbers(self) -> set:
        snapshots = await self.store.select(
            Table.SNAPSHOTS,
            Eq("repository", RepoFamily.EIPS.repository_name) & Eq("category", "Core"),
        )
        return {row.number for row in snapshots}

    async def list_upgrades(self) -> List[UpgradeSummary]:
        """
        Every upgrade with its stats, newest first.

        An upgrade counts as an execution layer upgrade when it has a meta
        proposal, and as a consensus layer upgrade otherwise.
        """
        upgrades = await self.store.select(Table.UPGRADES)
        current = await self.store.select(Table.COMPOSITION_CURRENT)
        core = await self._core_numbers()

        members: Dict[str, set] = defaultdict(set)
        for row in current:
            members[row.upgrade_slug].add(row.proposal_number)

        summaries = [
            UpgradeSummary(
                slug=upgrade.slug,
                name=upgrade.name or upgrade.slug,
                meta_eip=upgrade.meta_eip,
                created_at=upgrade.created_at,
                stats=UpgradeStats(
                    total_proposals=len(members[upgrade.slug]),
                    core_proposals=len(members[upgrade.slug] & core),
                    execution_layer=1 if upgrade.meta_eip is not None else 0,
                    consensus_layer=0 if upgrade.meta_eip is not None else 1,
                ),
            )
            for upgrade in upgrades
        ]
        # upgrades without a creation time sort last
        summaries.sort(
            key=lambda item: (
                item.created_at is None,
                -item.created_at.timestamp() if item.created_at else 0.0,
                item.slug,
            )
        )
        return summaries

    async def overall_stats(self) -> UpgradeOverallStats:
        summaries = await self.list_upgrades()
        current = await self.store.select(Table.COMPOSITION_CURRENT)
        core = await self._core_numbers()
        proposals = {row.proposal_number for row in current}
        return UpgradeOverallStats(
            total_upgrades=len(summaries),
            total_proposals=len(proposals),
            execution_layer=sum(item.stats.execution_layer for item in summaries),
            consensus_layer=sum(item.stats.consensus_layer for item in summaries),
            total_core_proposals=len(proposals & core),
        )

    async def get_upgrade(self, slug: str) -> UpgradeSummary:
        """
        One upgrade with its stats.

        Raises:
            NotFoundError: If the upgrade does not exist
        """
        await self._require_upgrade(slug)
        summaries = await self.list_upgrades()
        return next(item for item in summaries if item.slug == slug)

    async def composition(self, slug: str) -> List[CompositionEntry]:
        """
        Current proposals of an upgrade, by bucket then proposal number.

        Raises:
            NotFoundError: If the upgrade does not exist
        """
        await self._require_upgrade(slug)
        rows = await self.store.select(Table.COMPOSITION_CURRENT, Eq("upgrade_slug", slug))
        numbers = [row.proposal_number for row in rows]
        scope = Eq("repository", RepoFamily.EIPS.repository_name) & In("number", numbers)
        proposals = {row.number: row for row in await self.store.select(Table.PROPOSALS, scope)}
        snapshots = {row.number: row for row in await self.store.select(Table.SNAPSHOTS, scope)}

        entries = [
            CompositionEntry(
                proposal_number=row.proposal_number,
                bucket=row.bucket,
                title=proposals[row.proposal_number].title if row.proposal_number in proposals else None,
                status=snapshots[row.proposal_number].status if row.proposal_number in snapshots else None,
                updated_at=row.updated_at,
            )
            for row in rows
        ]
        entries.sort(
            key=lambda entry: (
                BUCKET_ORDER.index(entry.bucket) if entry.bucket in BUCKET_ORDER else len(BUCKET_ORDER),
                entry.proposal_number,
            )
        )
        return entries

    async def composition_events(self, slug: str) -> List[UpgradeCompositionEvent]:
        """
        Composition changes of an upgrade, oldest first.

        Raises:
            NotFoundError: If the upgrade does not exist
        """
        await self._require_upgrade(slug)
        rows = await self.store.select(Table.COMPOSITION_EVENTS, Eq("upgrade_slug", slug))
        return sorted(rows, key=lambda row: row.occurred_at)

    async def composition_timeline(
        self, slug: str, now: Optional[datetime] = None
    ) -> List[CompositionTimelinePoint]:
        """
        Cumulative composition at the end of every day with a change.

        The log is replayed in order: ``added`` and ``moved`` set a proposal's
        bucket and ``removed`` drops it. The current composition is then
        overlaid as the point for the day of ``now``, replacing a replayed
        point of the same day.

        Raises:
            NotFoundError: If the upgrade does not exist
        """
        events = await self.composition_events(slug)
        today = resolve_now(now).date().isoformat()

        state: Dict[int, str] = {}
        points: List[CompositionTimelinePoint] = []
        for event in events:
            apply_composition_event(state, event)
            day = event.occurred_at.date().isoformat()
            point = _timeline_point(day, state)
            if points and points[-1].date == day:
                points[-1] = point
            else:
                points.append(point)

        current = await self.store.select(Table.COMPOSITION_CURRENT, Eq("upgrade_slug", slug))
        if current or points:
            overlay = _timeline_point(today, {row.proposal_number: row.bucket for row in current})
            points = [point for point in points if point.date < today]
            points.append(overlay)

        logger.debug({"message": "composition timeline", "slug": slug, "points": len(points)})
        return points
