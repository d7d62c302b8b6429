"""
In-Memory Governance Store.

Holds the event logs and current-state tables in process memory. Current
tables that are not supplied are derived from the logs by reconciliation.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from config import logger
from events.base import GovernanceStore
from events.log import (
    CurrentTable,
    EventLog,
    composition_key,
    find_snapshot_drift,
    proposal_key,
    pull_request_key,
    reconcile_governance_states,
    reconcile_snapshots,
    reconcile_upgrade_composition,
)
from events.models import (
    CategoryEvent,
    ContributorActivity,
    DeadlineEvent,
    GovernanceState,
    GovernanceStateEvent,
    Proposal,
    ProposalSnapshot,
    PullRequest,
    SnapshotDrift,
    StatusEvent,
    Table,
    Upgrade,
    UpgradeCompositionCurrent,
    UpgradeCompositionEvent,
)
from query.predicates import Predicate


class InMemoryGovernanceStore(GovernanceStore):
    """
    Governance store backed by Python collections.

    Attributes:
        status_log (EventLog[StatusEvent]): Proposal status transitions
        category_log (EventLog[CategoryEvent]): Proposal category changes
        deadline_log (EventLog[DeadlineEvent]): Last-call deadline changes
        governance_log (EventLog[GovernanceStateEvent]): PR state observations
        activity_log (EventLog[ContributorActivity]): Actor actions
        composition_log (EventLog[UpgradeCompositionEvent]): Upgrade changes
        snapshots (CurrentTable): Current proposal state
        governance_states (CurrentTable): Current PR governance state
        composition (CurrentTable): Current upgrade composition
    """

    def __init__(
        self,
        proposals: Iterable[Proposal] = (),
        snapshots: Optional[Iterable[ProposalSnapshot]] = None,
        status_events: Iterable[StatusEvent] = (),
        category_events: Iterable[CategoryEvent] = (),
        deadline_events: Iterable[DeadlineEvent] = (),
        pull_requests: Iterable[PullRequest] = (),
        governance_events: Iterable[GovernanceStateEvent] = (),
        governance_states: Optional[Iterable[GovernanceState]] = None,
        activity: Iterable[ContributorActivity] = (),
        upgrades: Iterable[Upgrade] = (),
        composition_events: Iterable[UpgradeCompositionEvent] = (),
        composition_current: Optional[Iterable[UpgradeCompositionCurrent]] = None,
    ):
        """
        Initialize the store.

        Args:
            proposals (Iterable[Proposal]): Proposal rows
            snapshots (Optional[Iterable[ProposalSnapshot]]): Snapshot rows;
                rebuilt from the logs when omitted
            status_events (Iterable[StatusEvent]): Status log
            category_events (Iterable[CategoryEvent]): Category log
            deadline_events (Iterable[DeadlineEvent]): Deadline log
            pull_requests (Iterable[PullRequest]): Pull request rows
            governance_events (Iterable[GovernanceStateEvent]): PR state log
            governance_states (Optional[Iterable[GovernanceState]]): Current PR
                state rows; rebuilt from the log when omitted
            activity (Iterable[ContributorActivity]): Activity log
            upgrades (Iterable[Upgrade]): Upgrade rows
            composition_events (Iterable[UpgradeCompositionEvent]): Composition log
            composition_current (Optional[Iterable[UpgradeCompositionCurrent]]):
                Current composition rows; rebuilt from the log when omitted
        """
        self.proposals = CurrentTable(proposal_key, proposals)
        self.pull_requests = CurrentTable(pull_request_key, pull_requests)
        self.upgrades = CurrentTable(lambda row: row.slug, upgrades)

        self.status_log = EventLog(proposal_key, lambda e: e.changed_at, status_events)
        self.category_log = EventLog(
            proposal_key, lambda e: e.changed_at, category_events
        )
        self.deadline_log = EventLog(
            proposal_key, lambda e: e.changed_at, deadline_events
        )
        self.governance_log = EventLog(
            pull_request_key, lambda e: e.changed_at, governance_events
        )
        self.activity_log = EventLog(lambda e: e.actor, lambda e: e.occurred_at, activity)
        self.composition_log = EventLog(
            composition_key, lambda e: e.occurred_at, composition_events
        )

        if snapshots is None:
            self.snapshots = reconcile_snapshots(
                self.status_log, self.category_log, self.deadline_log
            )
        else:
            self.snapshots = CurrentTable(proposal_key, snapshots)

        if governance_states is None:
            self.governance_states = reconcile_governance_states(self.governance_log)
        else:
            self.governance_states = CurrentTable(pull_request_key, governance_states)

        if composition_current is None:
            self.composition = reconcile_upgrade_composition(self.composition_log)
        else:
            self.composition = CurrentTable(composition_key, composition_current)

        self._tables: Dict[Table, Callable[[], List[Any]]] = {
            Table.PROPOSALS: self.proposals.rows,
            Table.SNAPSHOTS: self.snapshots.rows,
            Table.STATUS_EVENTS: lambda: list(self.status_log),
            Table.CATEGORY_EVENTS: lambda: list(self.category_log),
            Table.DEADLINE_EVENTS: lambda: list(self.deadline_log),
            Table.PULL_REQUESTS: self.pull_requests.rows,
            Table.GOVERNANCE_EVENTS: lambda: list(self.governance_log),
            Table.GOVERNANCE_STATES: self.governance_states.rows,
            Table.CONTRIBUTOR_ACTIVITY: lambda: list(self.activity_log),
            Table.UPGRADES: self.upgrades.rows,
            Table.COMPOSITION_EVENTS: lambda: list(self.composition_log),
            Table.COMPOSITION_CURRENT: self.composition.rows,
        }

        logger.debug(
            {
                "message": "in-memory governance store loaded",
                "proposals": len(self.proposals),
                "status_events": len(self.status_log),
                "pull_requests": len(self.pull_requests),
                "activity": len(self.activity_log),
            }
        )

    async def select(self, table: Table, where: Optional[Predicate] = None) -> List[Any]:
        rows = self._tables[Table(table)]()
        if where is None:
            return rows
        return [row for row in rows if where.matches(row)]

    def rebuild_snapshots(self) -> None:
        """Replace the snapshot table with one replayed from the logs."""
        self.snapshots = reconcile_snapshots(
            self.status_log, self.category_log, self.deadline_log, self.snapshots.rows()
        )
        self._tables[Table.SNAPSHOTS] = self.snapshots.rows

    def snapshot_drift(self) -> List[SnapshotDrift]:
        """Proposals whose snapshot disagrees with the status log."""
        return find_snapshot_drift(self.snapshots.rows(), self.status_log)
