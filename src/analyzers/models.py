"""
Analytics Result Models.

Plain records returned by the analyzers: numbers, strings and nested lists,
ready for a presentation layer. Uses Pydantic for validation and serialization.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from events.models import CategoryEvent, DeadlineEvent, StatusEvent


class Outcome(str, Enum):
    """Final outcome of a closed pull request."""

    MERGED = "merged"
    CLOSED = "closed"


class LabelCount(BaseModel):
    """Count for one label, with its share of the total."""

    label: str
    count: int
    percentage: Optional[int] = None


class MonthlyCount(BaseModel):
    month: str
    count: int


class MonthlyBreakdown(BaseModel):
    """Counts of one month split by a dimension."""

    month: str
    counts: Dict[str, int]
    total: int


class DailyCount(BaseModel):
    date: str
    count: int


class CrossTab(BaseModel):
    """Two-key count matrix with totals summed from its cells."""

    rows: List[str]
    columns: List[str]
    cells: Dict[str, Dict[str, int]]
    row_totals: Dict[str, int]
    column_totals: Dict[str, int]
    grand_total: int

    def is_reconciled(self) -> bool:
        """True when every total equals the sum of the cells it covers."""
        for row in self.rows:
            if sum(self.cells[row].values()) != self.row_totals[row]:
                return False
        for column in self.columns:
            if sum(self.cells[row][column] for row in self.rows) != self.column_totals[column]:
                return False
        return sum(sum(cells.values()) for cells in self.cells.values()) == self.grand_total


# Proposals


class ProposalOverview(BaseModel):
    """Single proposal with its current snapshot."""

    repository: str
    repo: str
    number: int
    title: Optional[str]
    authors: List[str]
    created_at: Optional[datetime]
    status: str
    type: Optional[str]
    category: Optional[str]
    last_call_deadline: Optional[date]
    updated_at: Optional[datetime]


class ProposalUpgrade(BaseModel):
    upgrade_slug: str
    upgrade_name: Optional[str]
    bucket: str
    updated_at: Optional[datetime]


class ProposalGovernance(BaseModel):
    """Blocking status of the most recent PR linked to a proposal."""

    repository: str
    pr_number: int
    waiting_on: str
    waiting_since: Optional[datetime]
    days_since_last_action: Optional[int]


class TimelineEntry(BaseModel):
    """One entry of a merged proposal timeline."""

    kind: str
    changed_at: datetime
    from_value: Optional[str] = None
    to_value: Optional[str] = None
    pr_number: Optional[int] = None
    commit_sha: Optional[str] = None


class LinkedPullRequest(BaseModel):
    repository: str
    pr_number: int
    title: Optional[str]
    author: Optional[str]
    state: str
    created_at: datetime
    merged_at: Optional[datetime]
    commits: int
    files: int


class ProposalFullTimeline(BaseModel):
    overview: ProposalOverview
    status_events: List[StatusEvent]
    category_events: List[CategoryEvent]
    deadline_events: List[DeadlineEvent]
    linked_prs: List[LinkedPullRequest]


class ProposalSearchResult(BaseModel):
    repository: str
    number: int
    title: Optional[str]
    status: str
    authors: List[str]


class GraphNode(BaseModel):
    number: int
    repository: str
    title: Optional[str]
    status: str


class GraphEdge(BaseModel):
    source: int
    target: int
    weight: int


class DependencyGraph(BaseModel):
    """Proposals joined by the pull requests they share."""

    nodes: List[GraphNode]
    edges: List[GraphEdge]


# Status and lifecycle


class StatusSnapshotRow(BaseModel):
    """
    Status count of a repository with its month-over-month delta.

    ``prev_count`` is ``count - delta`` where ``delta`` counts the transitions
    into the status during the month. Proposals that left the status during
    the month are not added back.
    """

    status: str
    repo: str
    count: int
    prev_count: int
    delta: int


class MonthlyStatusSnapshot(BaseModel):
    month: str
    rows: List[StatusSnapshotRow]


class StatusTransition(BaseModel):
    from_status: str
    to_status: str
    count: int


class StandardsCompositionRow(BaseModel):
    type: str
    category: str
    count: int
    percentage: float


class WatchlistEntry(BaseModel):
    repository: str
    number: int
    title: Optional[str]
    deadline: date
    days_remaining: int


class RecentChange(BaseModel):
    repository: str
    number: int
    title: Optional[str]
    from_status: Optional[str]
    to_status: str
    changed_at: datetime


class YearlyGrowth(BaseModel):
    year: int
    total: int
    breakdown: List[LabelCount]


class ProposalHeroKPIs(BaseModel):
    active: int
    new_drafts: int
    finalized: int
    stagnant: int


class ProposalTableRow(BaseModel):
    """One proposal in the browsable proposal table."""

    repository: str
    number: int
    title: Optional[str]
    authors: List[str] = Field(default_factory=list)
    status: str
    type: Optional[str]
    category: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    days_in_status: int
    linked_prs: int


class ProposalTablePage(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    rows: List[ProposalTableRow]


# Velocity


class TransitionVelocity(BaseModel):
    from_status: str
    to_status: str
    median_days: Optional[float]
    count: int


class DecisionVelocity(BaseModel):
    transitions: List[TransitionVelocity]
    draft_to_final_median: Optional[float]


class TimeToDecision(BaseModel):
    repo: str
    outcome: Outcome
    median_days: Optional[float]
    average_days: Optional[float]
    count: int


class PercentileSummary(BaseModel):
    """p50/p75/p90 of a duration metric, in days."""

    metric: str
    count: int
    p50: Optional[float]
    p75: Optional[float]
    p90: Optional[float]


# Pull requests and governance


class OpenPullRequest(BaseModel):
    repository: str
    pr_number: int
    title: Optional[str]
    author: Optional[str]
    created_at: datetime
    governance_state: str
    days_waiting: int
    labels: List[str]
    process_type: str


class PRMonthlyActivity(BaseModel):
    month: str
    created: int
    merged: int
    closed_unmerged: int
    open_at_month_end: int


class PRMonthKPIs(BaseModel):
    month: str
    open_prs: int
    new_prs: int
    merged_prs: int
    closed_unmerged: int
    net_delta: int


class PROpenState(BaseModel):
    total_open: int
    median_age_days: Optional[float]
    oldest: Optional[OpenPullRequest]


class PRFunnel(BaseModel):
    opened: int
    reviewed: int
    merged: int
    closed_unmerged: int


class GovernanceStateCount(BaseModel):
    state: str
    label: str
    count: int
    percentage: int


class GovernanceWaitingSummary(BaseModel):
    state: str
    label: str
    count: int
    median_wait_days: Optional[float]
    oldest_pr_number: Optional[int]
    oldest_wait_days: Optional[int]


class WaitingTimelineRow(BaseModel):
    bucket: str
    waiting_on_author: int
    waiting_on_editor: int


class AttentionItem(BaseModel):
    repository: str
    pr_number: int
    current_state: str
    waiting_since: Optional[datetime]
    days_waiting: int
    responsible_party: str
    last_event: str
    url: str


class ResponsibilityShare(BaseModel):
    count: int
    percentage: int
    median_wait_days: int


class ResponsibilityMetrics(BaseModel):
    editor: ResponsibilityShare
    author: ResponsibilityShare


class HeatmapCell(BaseModel):
    month: str
    state: str
    count: int


class ReviewCycleBucket(BaseModel):
    reviewers: int
    pr_count: int


class OpenPRBoardPage(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    rows: List[OpenPullRequest]


# Contributors


class ContributorKPIs(BaseModel):
    total_contributors: int
    active_30d: int
    total_activities: int
    last_24h: int


class ContributorRanking(BaseModel):
    actor: str
    role: str
    total: int
    reviews: int
    status_changes: int
    prs_authored: int
    prs_reviewed: int
    last_activity: Optional[datetime]


class ContributorProfile(BaseModel):
    actor: str
    role: str
    total: int
    by_action: Dict[str, int]
    by_repo: Dict[str, int]
    first_activity: datetime
    last_activity: datetime
    recent: List[Any] = Field(default_factory=list)


class LeaderboardEntry(BaseModel):
    actor: str
    total_reviews: int
    prs_touched: int
    median_response_days: Optional[float]
    last_activity: Optional[datetime]


class EditorCategory(BaseModel):
    category: str
    editors: List[str]
    source: str


class AuthorSuccessRate(BaseModel):
    author: str
    total_prs: int
    merged: int
    closed_unmerged: int
    open: int
    merge_rate: int
    close_rate: int
    median_days_to_merge: Optional[float]


class RoleLeaderboardEntry(BaseModel):
    rank: int
    actor: str
    role: str
    total_actions: int
    prs_touched: int
    last_activity: Optional[datetime]


class ActorMonthlyTrend(BaseModel):
    actor: str
    points: List[MonthlyCount]


class RoleCount(BaseModel):
    role: str
    unique_actors: int
    total_actions: int


# Trending


class TrendingProposal(BaseModel):
    repository: str
    number: int
    title: str
    status: str
    score: int
    pr_event_count: int
    comment_count: int
    had_status_change: bool
    reason: str
    last_activity: Optional[datetime]


class TrendingHeatmapRow(BaseModel):
    number: int
    title: str
    total_activity: int
    daily: List[DailyCount]


# Upgrades


class UpgradeStats(BaseModel):
    total_proposals: int
    core_proposals: int
    execution_layer: int
    consensus_layer: int


class UpgradeSummary(BaseModel):
    slug: str
    name: str
    meta_eip: Optional[int]
    created_at: Optional[datetime]
    stats: UpgradeStats


class UpgradeOverallStats(BaseModel):
    total_upgrades: int
    total_proposals: int
    execution_layer: int
    consensus_layer: int
    total_core_proposals: int


class CompositionEntry(BaseModel):
    proposal_number: int
    bucket: str
    title: Optional[str]
    status: Optional[str]
    updated_at: Optional[datetime]


class CompositionTimelinePoint(BaseModel):
    """Cumulative upgrade composition at the end of one day."""

    date: str
    included: List[int]
    scheduled: List[int]
    considered: List[int]
    declined: List[int]
    proposed: List[int]


# Dashboards


class DashboardView(BaseModel):
    """Combined result of the sub-queries of one dashboard."""

    name: str
    generated_at: datetime
    sections: Dict[str, Any]
