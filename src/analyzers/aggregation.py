"""
Aggregation Helpers.

Shared building blocks for the analyzers:
- UTC month bucketing and dense monthly series
- Linear-interpolation percentiles (PERCENTILE_CONT semantics)
- Day arithmetic between timestamps
- Canonical status ordering with a fallback bucket
- Cross-tabulation with row, column and grand totals
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from analyzers.models import CrossTab, LabelCount
from errors import InvalidFilterError
from query.predicates import Range

LIFECYCLE_ORDER = ["Draft", "Review", "Last Call", "Final", "Stagnant", "Withdrawn", "Living"]
FLOW_ORDER = ["Draft", "Review", "Last Call", "Final", "Living", "Stagnant", "Withdrawn"]
ACTIVE_STATUSES = ["Draft", "Review", "Last Call"]
FALLBACK_STATUS = "Other"

SECONDS_PER_DAY = 86400
MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """Reference time of a query, the wall clock only when none is given."""
    if now is None:
        return datetime.now(timezone.utc)
    return to_utc(now)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_start(value: datetime) -> datetime:
    value = to_utc(value)
    return datetime(value.year, value.month, 1, tzinfo=timezone.utc)


def shift_months(start: datetime, months: int) -> datetime:
    index = start.year * 12 + (start.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=timezone.utc)


def month_key(value: datetime) -> str:
    value = to_utc(value)
    return f"{value.year:04d}-{value.month:02d}"


def parse_month(text: str) -> datetime:
    """
    Parse a ``YYYY-MM`` month into its first instant.

    Raises:
        InvalidFilterError: If the text is not a valid month
    """
    match = MONTH_PATTERN.match(text or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise InvalidFilterError("month", text, "expected YYYY-MM")
    return datetime(int(match.group(1)), int(match.group(2)), 1, tzinfo=timezone.utc)


def trailing_months(now: datetime, count: int) -> List[str]:
    """Keys of the ``count`` months ending with the month of ``now``."""
    if count < 1:
        raise InvalidFilterError("months", count, "must be positive")
    last = month_start(now)
    return [month_key(shift_months(last, offset)) for offset in range(1 - count, 1)]


def month_span(first: datetime, last: datetime) -> List[str]:
    """Keys of every month from ``first`` to ``last``, both included."""
    current = month_start(first)
    end = month_start(last)
    months = []
    while current <= end:
        months.append(month_key(current))
        current = shift_months(current, 1)
    return months


def monthly_counts(timestamps: Iterable[Optional[datetime]], months: Sequence[str]) -> List[int]:
    """
    Count timestamps per month, aligned to ``months``.

    Months without a timestamp are reported as 0; timestamps outside the
    given months are ignored.
    """
    keys = pd.Series([month_key(ts) for ts in timestamps if ts is not None], dtype="object")
    counts = keys.value_counts().reindex(list(months), fill_value=0)
    return [int(count) for count in counts.tolist()]


def monthly_pivot(
    pairs: Iterable[Tuple[Optional[datetime], str]],
    months: Sequence[str],
    groups: Optional[Sequence[str]] = None,
) -> Dict[str, List[int]]:
    """
    Count ``(timestamp, group)`` pairs per month and group.

    Returns:
        Dict[str, List[int]]: Dense monthly series per group
    """
    frame = pd.DataFrame(
        [(month_key(ts), group) for ts, group in pairs if ts is not None],
        columns=["month", "group"],
    )
    if groups is None:
        groups = sorted(frame["group"].unique().tolist())
    if frame.empty:
        return {group: [0] * len(months) for group in groups}

    table = (
        frame.groupby(["month", "group"])
        .size()
        .unstack(fill_value=0)
        .reindex(index=list(months), columns=list(groups), fill_value=0)
    )
    return {group: [int(v) for v in table[group].tolist()] for group in groups}


def percentile(values: Iterable[float], q: float) -> Optional[float]:
    """Linearly interpolated percentile, None for an empty sample."""
    series = pd.Series(list(values), dtype="float64").dropna()
    if series.empty:
        return None
    return float(series.quantile(q))


def median(values: Iterable[float]) -> Optional[float]:
    return percentile(values, 0.5)


def mean(values: Iterable[float]) -> Optional[float]:
    series = pd.Series(list(values), dtype="float64").dropna()
    if series.empty:
        return None
    return float(series.mean())


def fractional_days(start: datetime, end: datetime) -> float:
    return (to_utc(end) - to_utc(start)).total_seconds() / SECONDS_PER_DAY


def whole_days(start: datetime, end: datetime) -> int:
    """Whole days between two instants, truncated toward zero."""
    return int(fractional_days(start, end))


def round1(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(value, 1)


def round_half_up(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(math.floor(value + 0.5))


def percentage(part: int, total: int) -> int:
    """Share of ``total`` in whole percent, 0 when the total is 0."""
    if total <= 0:
        return 0
    return round_half_up(part * 100 / total)


def day_start(value: datetime) -> datetime:
    value = to_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def trailing_days(now: datetime, count: int) -> List[str]:
    """ISO dates of the ``count`` days ending with the day of ``now``."""
    last = day_start(now)
    return [
        (last - timedelta(days=offset)).date().isoformat()
        for offset in range(count - 1, -1, -1)
    ]


def order_statuses(
    counts: Dict[str, int],
    order: Sequence[str] = LIFECYCLE_ORDER,
    fallback: Optional[str] = FALLBACK_STATUS,
) -> List[LabelCount]:
    """
    Order status counts canonically.

    Statuses outside ``order`` are summed under ``fallback``, or appended in
    alphabetical order when no fallback is given. Canonical statuses are
    always present, with 0 when absent.
    """
    ordered = [LabelCount(label=status, count=int(counts.get(status, 0))) for status in order]
    extras = {status: count for status, count in counts.items() if status not in order}
    if fallback is not None:
        if extras:
            ordered.append(LabelCount(label=fallback, count=int(sum(extras.values()))))
    else:
        ordered.extend(
            LabelCount(label=status, count=int(extras[status])) for status in sorted(extras)
        )
    total = sum(item.count for item in ordered)
    for item in ordered:
        item.percentage = percentage(item.count, total)
    return ordered


def cross_tab(
    pairs: Iterable[Tuple[str, str]],
    row_order: Optional[Sequence[str]] = None,
    column_order: Optional[Sequence[str]] = None,
) -> CrossTab:
    """
    Two-key grouped count with totals.

    Row, column and grand totals are summed from the cells so that they
    always reconcile with the matrix.

    Args:
        pairs (Iterable[Tuple[str, str]]): ``(row, column)`` observations
        row_order (Optional[Sequence[str]]): Preferred row order
        column_order (Optional[Sequence[str]]): Preferred column order

    Returns:
        CrossTab: Matrix with totals
    """
    frame = pd.DataFrame(list(pairs), columns=["row", "column"])
    if frame.empty:
        return CrossTab(
            rows=[], columns=[], cells={}, row_totals={}, column_totals={}, grand_total=0
        )

    matrix = frame.groupby(["row", "column"]).size().unstack(fill_value=0)
    rows = _ordered_keys(matrix.index.tolist(), row_order)
    columns = _ordered_keys(matrix.columns.tolist(), column_order)
    matrix = matrix.reindex(index=rows, columns=columns, fill_value=0)

    cells = {
        row: {column: int(matrix.at[row, column]) for column in columns} for row in rows
    }
    row_totals = {row: sum(cells[row].values()) for row in rows}
    column_totals = {column: sum(cells[row][column] for row in rows) for column in columns}
    return CrossTab(
        rows=rows,
        columns=columns,
        cells=cells,
        row_totals=row_totals,
        column_totals=column_totals,
        grand_total=sum(row_totals.values()),
    )


def _ordered_keys(present: List[str], preferred: Optional[Sequence[str]]) -> List[str]:
    if not preferred:
        return sorted(present)
    head = [key for key in preferred if key in present]
    return head + sorted(key for key in present if key not in preferred)


def recent_window(field: str, now: datetime, days: int) -> Range:
    """Rows whose ``field`` lies within the ``days`` before ``now``, both ends included."""
    return Range(field, now - timedelta(days=days), now, include_end=True)


def index_linked_prs(pull_requests: Iterable) -> Dict[Tuple[str, int], List]:
    """Map ``(repository, proposal number)`` to the pull requests touching it."""
    linked: Dict[Tuple[str, int], List] = {}
    for pull_request in pull_requests:
        for number in pull_request.proposal_numbers:
            linked.setdefault((pull_request.repository, number), []).append(pull_request)
    return linked


PROPOSAL_PREFIXES = {"eips": "EIP", "ercs": "ERC", "rips": "RIP"}


def proposal_label(repo_short: str, number: int) -> str:
    """Display name such as ``EIP-1559``."""
    return f"{PROPOSAL_PREFIXES.get(repo_short, 'EIP')}-{number}"
