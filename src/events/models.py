"""
Governance Event Store Data Models.

Defines the entities read by the analytics engine: proposals and their
current snapshot, the append-only event streams, pull requests with their
governance state, contributor activity and network upgrades.
Uses Pydantic for validation and serialization.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PullRequestState(str, Enum):
    """Lifecycle state of a pull request."""

    OPEN = "open"
    CLOSED = "closed"


class GovernanceStateKind(str, Enum):
    """
    Blocking status of an open pull request.

    Attributes:
        WAITING_ON_EDITOR: An editor has to act next
        WAITING_ON_AUTHOR: The author has to act next
        STALLED: No one acted for a long time
        DRAFT: The pull request is still a draft
        NO_STATE: Not classified
    """

    WAITING_ON_EDITOR = "WAITING_ON_EDITOR"
    WAITING_ON_AUTHOR = "WAITING_ON_AUTHOR"
    STALLED = "STALLED"
    DRAFT = "DRAFT"
    NO_STATE = "NO_STATE"


class ContributorRole(str, Enum):
    """Role inferred for an actor."""

    EDITOR = "EDITOR"
    REVIEWER = "REVIEWER"
    CONTRIBUTOR = "CONTRIBUTOR"


class ActivityAction(str, Enum):
    """Kind of action recorded in the contributor activity log."""

    REVIEWED = "reviewed"
    COMMENTED = "commented"
    COMMITTED = "committed"
    OPENED = "opened"
    STATUS_CHANGE = "status_change"


class CompositionBucket(str, Enum):
    """Relationship between a proposal and a network upgrade."""

    PROPOSED = "proposed"
    CONSIDERED = "considered"
    SCHEDULED = "scheduled"
    INCLUDED = "included"
    DECLINED = "declined"


class CompositionEventType(str, Enum):
    """Change recorded in the upgrade composition log."""

    ADDED = "added"
    MOVED = "moved"
    REMOVED = "removed"


class StreamKind(str, Enum):
    """Proposal event streams that can be queried by time window."""

    STATUS = "status"
    CATEGORY = "category"
    DEADLINE = "deadline"


class Table(str, Enum):
    """Tables exposed by a governance store."""

    PROPOSALS = "proposals"
    SNAPSHOTS = "snapshots"
    STATUS_EVENTS = "status_events"
    CATEGORY_EVENTS = "category_events"
    DEADLINE_EVENTS = "deadline_events"
    PULL_REQUESTS = "pull_requests"
    GOVERNANCE_EVENTS = "governance_events"
    GOVERNANCE_STATES = "governance_states"
    CONTRIBUTOR_ACTIVITY = "contributor_activity"
    UPGRADES = "upgrades"
    COMPOSITION_EVENTS = "composition_events"
    COMPOSITION_CURRENT = "composition_current"


class GovernanceRecord(BaseModel):
    """Base model for stored rows. Timestamps are normalised to UTC."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator("*")
    @classmethod
    def normalize_timestamps(cls, v):
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=timezone.utc)
            return v.astimezone(timezone.utc)
        return v


class RepositoryRecord(GovernanceRecord):
    """Row owned by a repository such as ``ethereum/EIPs``."""

    repository: str

    @property
    def repo_short(self) -> str:
        """Lower-cased repository name without the organisation."""
        parts = self.repository.split("/")
        if len(parts) < 2 or not parts[1]:
            return "unknown"
        return parts[1].lower()


class Proposal(RepositoryRecord):
    """A governance document (EIP, ERC or RIP)."""

    number: int
    title: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("authors", mode="before")
    @classmethod
    def split_authors(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [author.strip() for author in v.split(",") if author.strip()]
        return v


class ProposalSnapshot(RepositoryRecord):
    """Current derived state of a proposal, overwritten as events are applied."""

    number: int
    status: str
    type: Optional[str] = None
    category: Optional[str] = None
    deadline: Optional[date] = None
    updated_at: Optional[datetime] = None


class StatusEvent(RepositoryRecord):
    """Immutable status transition of a proposal."""

    number: int
    from_status: Optional[str] = None
    to_status: str
    changed_at: datetime
    commit_sha: Optional[str] = None
    pr_number: Optional[int] = None

    @field_validator("commit_sha", "from_status", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CategoryEvent(RepositoryRecord):
    """Immutable category change of a proposal."""

    number: int
    from_category: Optional[str] = None
    to_category: str
    changed_at: datetime


class DeadlineEvent(RepositoryRecord):
    """Immutable last-call deadline change of a proposal."""

    number: int
    previous_deadline: Optional[date] = None
    new_deadline: Optional[date] = None
    changed_at: datetime


class PullRequest(RepositoryRecord):
    """A pull request, linked to the proposals it touches."""

    pr_number: int
    title: Optional[str] = None
    author: Optional[str] = None
    state: PullRequestState
    created_at: datetime
    updated_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    num_comments: int = 0
    num_reviews: int = 0
    num_commits: int = 0
    num_files: int = 0
    labels: List[str] = Field(default_factory=list)
    proposal_numbers: List[int] = Field(default_factory=list)


class GovernanceStateEvent(RepositoryRecord):
    """Observed change of a pull request's blocking status."""

    pr_number: int
    state: GovernanceStateKind
    changed_at: datetime
    actor: Optional[str] = None
    event_type: Optional[str] = None


class GovernanceState(RepositoryRecord):
    """Current blocking status of a pull request, one row per PR."""

    pr_number: int
    current_state: GovernanceStateKind = GovernanceStateKind.NO_STATE
    waiting_since: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_actor: Optional[str] = None
    last_event_type: Optional[str] = None


class ContributorActivity(RepositoryRecord):
    """Single action performed by an actor on a pull request."""

    actor: str
    role: ContributorRole = ContributorRole.CONTRIBUTOR
    action_type: ActivityAction
    pr_number: Optional[int] = None
    occurred_at: datetime


class Upgrade(GovernanceRecord):
    """A named network upgrade (hard fork)."""

    slug: str
    name: Optional[str] = None
    meta_eip: Optional[int] = None
    created_at: Optional[datetime] = None


class UpgradeCompositionEvent(GovernanceRecord):
    """Immutable change of a proposal's bucket within an upgrade."""

    upgrade_slug: str
    proposal_number: int
    event_type: CompositionEventType = CompositionEventType.ADDED
    bucket: Optional[CompositionBucket] = None
    occurred_at: datetime
    commit_sha: Optional[str] = None

    @field_validator("bucket", mode="before")
    @classmethod
    def lower_bucket(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


class UpgradeCompositionCurrent(GovernanceRecord):
    """Current bucket of a proposal within an upgrade, one row per pair."""

    upgrade_slug: str
    proposal_number: int
    bucket: CompositionBucket
    updated_at: Optional[datetime] = None


class SnapshotDrift(BaseModel):
    """A proposal whose snapshot disagrees with its latest status event."""

    repository: str
    number: int
    snapshot_status: Optional[str]
    event_status: Optional[str]
