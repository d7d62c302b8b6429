"""Shared fixtures: a small governance event log across the EIPs and ERCs repositories."""

from datetime import date, datetime, timezone

import pytest

from events.memory_store import InMemoryGovernanceStore
from events.models import (
    ContributorActivity,
    GovernanceStateEvent,
    Proposal,
    ProposalSnapshot,
    PullRequest,
    StatusEvent,
    Upgrade,
    UpgradeCompositionEvent,
)

EIPS = "ethereum/EIPs"
ERCS = "ethereum/ERCs"


def at(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Reference time used by every windowed query."""
    return at(2024, 6, 15, 12)


@pytest.fixture
def proposals():
    return [
        Proposal(repository=EIPS, number=100, title="Fee market change", authors="Alice, Bob", created_at=at(2023, 12, 20)),
        Proposal(repository=EIPS, number=200, title="Editorial process guide", authors="Carol", created_at=at(2024, 5, 1)),
        Proposal(repository=EIPS, number=300, title="Old idea", authors="Dave", created_at=at(2022, 1, 1)),
        Proposal(repository=ERCS, number=20, title="Token standard", authors="Erin", created_at=at(2024, 3, 1)),
    ]


@pytest.fixture
def snapshots():
    return [
        ProposalSnapshot(repository=EIPS, number=100, status="Final", type="Standards Track", category="Core", updated_at=at(2024, 4, 1)),
        ProposalSnapshot(
            repository=EIPS,
            number=200,
            status="Last Call",
            type="Meta",
            deadline=date(2024, 6, 24),
            updated_at=at(2024, 6, 10),
        ),
        ProposalSnapshot(repository=EIPS, number=300, status="Stagnant", type="Standards Track", category="Networking", updated_at=at(2023, 1, 1)),
        ProposalSnapshot(repository=ERCS, number=20, status="Draft", type="Standards Track", category="ERC", updated_at=at(2024, 3, 1)),
    ]


@pytest.fixture
def status_events():
    return [
        StatusEvent(repository=EIPS, number=100, to_status="Draft", changed_at=at(2024, 1, 1)),
        StatusEvent(repository=EIPS, number=100, from_status="Draft", to_status="Review", changed_at=at(2024, 2, 1)),
        StatusEvent(repository=EIPS, number=100, from_status="Review", to_status="Final", changed_at=at(2024, 4, 1), pr_number=1),
        StatusEvent(repository=EIPS, number=200, to_status="Draft", changed_at=at(2024, 5, 1)),
        StatusEvent(repository=EIPS, number=200, from_status="Draft", to_status="Last Call", changed_at=at(2024, 6, 10)),
        StatusEvent(repository=EIPS, number=300, to_status="Draft", changed_at=at(2022, 1, 1)),
        StatusEvent(repository=EIPS, number=300, from_status="Draft", to_status="Stagnant", changed_at=at(2023, 1, 1)),
        StatusEvent(repository=ERCS, number=20, to_status="Draft", changed_at=at(2024, 3, 1)),
    ]


@pytest.fixture
def pull_requests():
    return [
        PullRequest(
            repository=EIPS,
            pr_number=1,
            title="Update EIP-100: move to Final",
            author="alice",
            state="closed",
            created_at=at(2024, 3, 20),
            merged_at=at(2024, 4, 1),
            closed_at=at(2024, 4, 1),
            num_comments=4,
            labels=["c-status"],
            proposal_numbers=[100],
        ),
        PullRequest(
            repository=EIPS,
            pr_number=2,
            title="Add EIP-200",
            author="carol",
            state="open",
            created_at=at(2024, 5, 1),
            updated_at=at(2024, 6, 12),
            num_comments=3,
            labels=["c-new"],
            proposal_numbers=[200],
        ),
        PullRequest(
            repository=EIPS,
            pr_number=3,
            title="Fix typo in EIP-100 and EIP-200",
            author="dave",
            state="open",
            created_at=at(2024, 6, 1),
            updated_at=at(2024, 6, 5),
            proposal_numbers=[100, 200],
        ),
        PullRequest(
            repository=EIPS,
            pr_number=4,
            title="Bump lodash from 1.0 to 1.1",
            author="dependabot[bot]",
            state="closed",
            created_at=at(2024, 2, 10),
            closed_at=at(2024, 2, 12),
            labels=["dependencies"],
        ),
        PullRequest(
            repository=ERCS,
            pr_number=10,
            title="Add ERC-20",
            author="erin",
            state="open",
            created_at=at(2024, 3, 1),
            updated_at=at(2024, 3, 5),
            labels=["c-new"],
            proposal_numbers=[20],
        ),
    ]


@pytest.fixture
def governance_events():
    return [
        GovernanceStateEvent(repository=EIPS, pr_number=2, state="WAITING_ON_EDITOR", changed_at=at(2024, 5, 1), actor="carol", event_type="opened"),
        GovernanceStateEvent(repository=EIPS, pr_number=2, state="WAITING_ON_AUTHOR", changed_at=at(2024, 6, 1), actor="SamWilsn", event_type="reviewed"),
        GovernanceStateEvent(repository=EIPS, pr_number=3, state="WAITING_ON_EDITOR", changed_at=at(2024, 6, 5), actor="dave", event_type="opened"),
    ]


@pytest.fixture
def activity():
    return [
        ContributorActivity(repository=EIPS, actor="dependabot[bot]", action_type="opened", pr_number=4, occurred_at=at(2024, 2, 10)),
        ContributorActivity(repository=ERCS, actor="erin", action_type="opened", pr_number=10, occurred_at=at(2024, 3, 1)),
        ContributorActivity(repository=EIPS, actor="SamWilsn", role="EDITOR", action_type="reviewed", pr_number=1, occurred_at=at(2024, 3, 25)),
        ContributorActivity(repository=EIPS, actor="alice", action_type="status_change", pr_number=1, occurred_at=at(2024, 4, 1)),
        ContributorActivity(repository=EIPS, actor="carol", action_type="opened", pr_number=2, occurred_at=at(2024, 5, 1)),
        ContributorActivity(repository=EIPS, actor="SamWilsn", role="EDITOR", action_type="reviewed", pr_number=2, occurred_at=at(2024, 6, 1, 10)),
        ContributorActivity(repository=EIPS, actor="frank", role="REVIEWER", action_type="reviewed", pr_number=2, occurred_at=at(2024, 6, 11, 15)),
        ContributorActivity(repository=EIPS, actor="lightclient", role="EDITOR", action_type="commented", pr_number=3, occurred_at=at(2024, 6, 12)),
    ]


@pytest.fixture
def upgrades():
    return [
        Upgrade(slug="pectra", name="Prague/Electra", meta_eip=7600, created_at=at(2024, 1, 15)),
        Upgrade(slug="fusaka", name="Fusaka", created_at=at(2024, 5, 1)),
    ]


@pytest.fixture
def composition_events():
    return [
        UpgradeCompositionEvent(upgrade_slug="pectra", proposal_number=100, event_type="added", bucket="Considered", occurred_at=at(2024, 2, 1)),
        UpgradeCompositionEvent(upgrade_slug="pectra", proposal_number=100, event_type="moved", bucket="scheduled", occurred_at=at(2024, 3, 1)),
        UpgradeCompositionEvent(upgrade_slug="pectra", proposal_number=100, event_type="moved", bucket="included", occurred_at=at(2024, 4, 1)),
        UpgradeCompositionEvent(upgrade_slug="pectra", proposal_number=200, event_type="added", bucket="proposed", occurred_at=at(2024, 5, 5)),
        UpgradeCompositionEvent(upgrade_slug="fusaka", proposal_number=300, event_type="added", bucket="declined", occurred_at=at(2024, 5, 2)),
        UpgradeCompositionEvent(upgrade_slug="pectra", proposal_number=200, event_type="removed", occurred_at=at(2024, 6, 1)),
    ]


@pytest.fixture
def store(
    proposals,
    snapshots,
    status_events,
    pull_requests,
    governance_events,
    activity,
    upgrades,
    composition_events,
):
    """In-memory store over the sample event log; current tables other than snapshots are reconciled."""
    return InMemoryGovernanceStore(
        proposals=proposals,
        snapshots=snapshots,
        status_events=status_events,
        pull_requests=pull_requests,
        governance_events=governance_events,
        activity=activity,
        upgrades=upgrades,
        composition_events=composition_events,
    )


@pytest.fixture
def empty_store():
    return InMemoryGovernanceStore()
