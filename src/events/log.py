"""
Event Log and Current-State Table Module.

The append-only event logs are the source of truth for history. The keyed
current-state tables are read caches derived from them and can always be
rebuilt by replaying the logs in order.

Features:
- Insert-only, time-ordered event log with per-entity ordering checks
- Upsert-only current-state table with one row per key
- Reconciliation of proposal snapshots, PR governance states and upgrade
  composition from their logs
- Drift detection between snapshots and the status log
"""

from datetime import datetime
from typing import (
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from errors import EventOrderError
from events.models import (
    CategoryEvent,
    CompositionEventType,
    DeadlineEvent,
    GovernanceState,
    GovernanceStateEvent,
    ProposalSnapshot,
    SnapshotDrift,
    StatusEvent,
    UpgradeCompositionCurrent,
    UpgradeCompositionEvent,
)

E = TypeVar("E")
K = TypeVar("K")
V = TypeVar("V")


class EventLog(Generic[E]):
    """
    Append-only log of immutable events.

    Events are kept in insertion order. An event older than the latest event
    already logged for the same entity key is rejected. Events handed to the
    constructor are loaded in timestamp order.

    Attributes:
        key (Callable): Extracts the entity key of an event
        timestamp (Callable): Extracts the event time
    """

    def __init__(
        self,
        key: Callable[[E], Hashable],
        timestamp: Callable[[E], datetime],
        events: Iterable[E] = (),
    ):
        self.key = key
        self.timestamp = timestamp
        self._events: List[E] = []
        self._latest: Dict[Hashable, datetime] = {}
        for event in sorted(events, key=timestamp):
            self.append(event)

    def append(self, event: E) -> None:
        """
        Append an event to the log.

        Raises:
            EventOrderError: If the event predates the entity's latest event
        """
        entity = self.key(event)
        at = self.timestamp(event)
        latest = self._latest.get(entity)
        if latest is not None and at < latest:
            raise EventOrderError(entity, latest, at)
        self._events.append(event)
        self._latest[entity] = at

    def for_key(self, key: Hashable) -> List[E]:
        """Events of one entity in log order."""
        return [event for event in self._events if self.key(event) == key]

    @property
    def events(self) -> Tuple[E, ...]:
        return tuple(self._events)

    def __iter__(self) -> Iterator[E]:
        return iter(tuple(self._events))

    def __len__(self) -> int:
        return len(self._events)


class CurrentTable(Generic[K, V]):
    """Keyed current-state cache holding one row per entity."""

    def __init__(self, key: Callable[[V], K], rows: Iterable[V] = ()):
        self.key = key
        self._rows: Dict[K, V] = {}
        for row in rows:
            self.upsert(row)

    def upsert(self, row: V) -> None:
        self._rows[self.key(row)] = row

    def get(self, key: K) -> Optional[V]:
        return self._rows.get(key)

    def rows(self) -> List[V]:
        return list(self._rows.values())

    def __contains__(self, key: K) -> bool:
        return key in self._rows

    def __len__(self) -> int:
        return len(self._rows)


def proposal_key(row) -> Tuple[str, int]:
    return (row.repository, row.number)


def pull_request_key(row) -> Tuple[str, int]:
    return (row.repository, row.pr_number)


def composition_key(row) -> Tuple[str, int]:
    return (row.upgrade_slug, row.proposal_number)


def _latest_by_key(log: Optional[EventLog]) -> Dict[Hashable, object]:
    latest = {}
    if log is None:
        return latest
    for event in log:
        latest[log.key(event)] = event
    return latest


def reconcile_snapshots(
    status_log: EventLog[StatusEvent],
    category_log: Optional[EventLog[CategoryEvent]] = None,
    deadline_log: Optional[EventLog[DeadlineEvent]] = None,
    seed: Iterable[ProposalSnapshot] = (),
) -> CurrentTable[Tuple[str, int], ProposalSnapshot]:
    """
    Rebuild the proposal snapshot table from the event logs.

    Status, category and deadline come from the latest event of each stream.
    Attributes without a stream (type) are taken from the seed rows.

    Args:
        status_log (EventLog[StatusEvent]): Status transitions
        category_log (Optional[EventLog[CategoryEvent]]): Category changes
        deadline_log (Optional[EventLog[DeadlineEvent]]): Deadline changes
        seed (Iterable[ProposalSnapshot]): Existing snapshot rows

    Returns:
        CurrentTable: One snapshot per proposal
    """
    base = {proposal_key(row): row for row in seed}
    latest_status = _latest_by_key(status_log)
    latest_category = _latest_by_key(category_log)
    latest_deadline = _latest_by_key(deadline_log)

    table: CurrentTable[Tuple[str, int], ProposalSnapshot] = CurrentTable(proposal_key)
    keys = set(base) | set(latest_status) | set(latest_category) | set(latest_deadline)
    for key in sorted(keys):
        current = base.get(key)
        if current is not None:
            fields = current.model_dump()
            touched = [current.updated_at] if current.updated_at else []
        else:
            fields = {"repository": key[0], "number": key[1], "status": "Unknown"}
            touched = []

        if key in latest_status:
            event = latest_status[key]
            fields["status"] = event.to_status
            touched.append(event.changed_at)
        if key in latest_category:
            event = latest_category[key]
            fields["category"] = event.to_category
            touched.append(event.changed_at)
        if key in latest_deadline:
            event = latest_deadline[key]
            fields["deadline"] = event.new_deadline
            touched.append(event.changed_at)

        fields["updated_at"] = max(touched) if touched else None
        table.upsert(ProposalSnapshot(**fields))
    return table


def find_snapshot_drift(
    snapshots: Iterable[ProposalSnapshot], status_log: EventLog[StatusEvent]
) -> List[SnapshotDrift]:
    """
    List proposals whose snapshot status differs from their latest status event.

    Drift indicates a sync bug upstream. It is reported, never corrected here.
    """
    latest_status = _latest_by_key(status_log)
    by_key = {proposal_key(row): row for row in snapshots}
    drift = []
    for key in sorted(set(by_key) | set(latest_status)):
        event = latest_status.get(key)
        if event is None:
            continue
        snapshot = by_key.get(key)
        snapshot_status = snapshot.status if snapshot else None
        if snapshot_status != event.to_status:
            drift.append(
                SnapshotDrift(
                    repository=key[0],
                    number=key[1],
                    snapshot_status=snapshot_status,
                    event_status=event.to_status,
                )
            )
    return drift


def reconcile_governance_states(
    governance_log: EventLog[GovernanceStateEvent],
    seed: Iterable[GovernanceState] = (),
) -> CurrentTable[Tuple[str, int], GovernanceState]:
    """
    Rebuild the PR governance state table by replaying state observations.

    ``waiting_since`` is the time the PR entered its current state; repeated
    observations of the same state keep it unchanged.
    """
    table: CurrentTable[Tuple[str, int], GovernanceState] = CurrentTable(
        pull_request_key, seed
    )
    for event in governance_log:
        key = pull_request_key(event)
        current = table.get(key)
        if current is not None and current.current_state == event.state:
            waiting_since = current.waiting_since or event.changed_at
        else:
            waiting_since = event.changed_at
        table.upsert(
            GovernanceState(
                repository=event.repository,
                pr_number=event.pr_number,
                current_state=event.state,
                waiting_since=waiting_since,
                updated_at=event.changed_at,
                last_actor=event.actor,
                last_event_type=event.event_type,
            )
        )
    return table


def apply_composition_event(state: Dict[int, str], event: UpgradeCompositionEvent) -> None:
    """Apply one composition change to a ``proposal -> bucket`` mapping."""
    if event.event_type == CompositionEventType.REMOVED.value:
        state.pop(event.proposal_number, None)
    elif event.bucket:
        state[event.proposal_number] = event.bucket


def reconcile_upgrade_composition(
    composition_log: EventLog[UpgradeCompositionEvent],
) -> CurrentTable[Tuple[str, int], UpgradeCompositionCurrent]:
    """Rebuild the current upgrade composition by replaying the log."""
    buckets: Dict[str, Dict[int, str]] = {}
    touched: Dict[Tuple[str, int], datetime] = {}
    for event in composition_log:
        apply_composition_event(buckets.setdefault(event.upgrade_slug, {}), event)
        touched[composition_key(event)] = event.occurred_at

    table: CurrentTable[Tuple[str, int], UpgradeCompositionCurrent] = CurrentTable(
        composition_key
    )
    for slug in sorted(buckets):
        for number, bucket in sorted(buckets[slug].items()):
            table.upsert(
                UpgradeCompositionCurrent(
                    upgrade_slug=slug,
                    proposal_number=number,
                    bucket=bucket,
                    updated_at=touched.get((slug, number)),
                )
            )
    return table
