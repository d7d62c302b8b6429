"""
Query Filter Module.

Validates the filters accepted by every aggregation entry point and turns them
into predicate trees. Invalid values are rejected with ``InvalidFilterError``
before any store access.

Recognised filters:
- repo: repository family (eips, ercs, rips) or absent for all repositories
- start/end: ISO dates bounding event time, absent means unbounded
- limit: positive integer capping the result size
- sort_by/sort_dir: enumerated column plus asc or desc
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

from config import settings
from errors import InvalidFilterError
from query.predicates import Eq, Predicate, Range, all_of


class RepoFamily(str, Enum):
    """Repository families holding governance proposals."""

    EIPS = "eips"
    ERCS = "ercs"
    RIPS = "rips"

    @property
    def repository_name(self) -> str:
        """Full repository name, e.g. ``ethereum/EIPs``."""
        return f"{settings.github_org}/{self.value[:-1].upper()}s"


REPO_ALIASES = {
    "eip": RepoFamily.EIPS,
    "eips": RepoFamily.EIPS,
    "erc": RepoFamily.ERCS,
    "ercs": RepoFamily.ERCS,
    "rip": RepoFamily.RIPS,
    "rips": RepoFamily.RIPS,
}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def resolve_repo(value: Any) -> Optional[RepoFamily]:
    """
    Resolve a repository filter value.

    Args:
        value (Any): Family code in any letter case, singular or plural,
            or None for all repositories

    Returns:
        Optional[RepoFamily]: Resolved family, None when absent

    Raises:
        InvalidFilterError: If the value is not a known family
    """
    if value is None or value == "":
        return None
    if isinstance(value, RepoFamily):
        return value
    if not isinstance(value, str):
        raise InvalidFilterError("repo", value, "expected a string")
    family = REPO_ALIASES.get(value.strip().lower())
    if family is None:
        raise InvalidFilterError("repo", value, "expected one of eips, ercs, rips")
    return family


def parse_date_bound(value: Any, field: str, inclusive_end: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or timestamp filter into an aware UTC datetime.

    A date-only upper bound covers the whole day when ``inclusive_end`` is set.

    Raises:
        InvalidFilterError: If the value is not an ISO date or timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
        if inclusive_end:
            parsed += timedelta(days=1)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidFilterError(field, value, "expected an ISO date")
        if inclusive_end and len(text) == 10:
            parsed += timedelta(days=1)
    else:
        raise InvalidFilterError(field, value, "expected an ISO date")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def check_limit(limit: Any, default: Optional[int] = None) -> int:
    """
    Validate a result-size limit.

    Raises:
        InvalidFilterError: If the limit is not a positive integer within
            the configured maximum
    """
    if limit is None:
        return default if default is not None else settings.default_limit
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidFilterError("limit", limit, "expected an integer")
    if limit < 1:
        raise InvalidFilterError("limit", limit, "must be positive")
    if limit > settings.max_limit:
        raise InvalidFilterError("limit", limit, f"must not exceed {settings.max_limit}")
    return limit


class QueryFilters(BaseModel):
    """Validated filter bundle shared by the analyzers."""

    repo: Optional[RepoFamily] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = 20
    sort_by: Optional[str] = None
    sort_dir: SortDirection = SortDirection.DESC

    @classmethod
    def build(
        cls,
        repo: Any = None,
        start: Any = None,
        end: Any = None,
        limit: Any = None,
        sort_by: Optional[str] = None,
        sort_dir: Any = None,
        default_limit: Optional[int] = None,
        sort_fields: Optional[Iterable[str]] = None,
    ) -> "QueryFilters":
        """
        Validate raw filter values.

        Args:
            repo (Any): Repository family
            start (Any): Inclusive lower time bound
            end (Any): Upper time bound, a bare date covers the whole day
            limit (Any): Result size, defaults to ``default_limit``
            sort_by (Optional[str]): Sort column
            sort_dir (Any): ``asc`` or ``desc``
            default_limit (Optional[int]): Limit used when none is given
            sort_fields (Optional[Iterable[str]]): Accepted sort columns

        Returns:
            QueryFilters: Validated filters

        Raises:
            InvalidFilterError: If any value is outside its accepted domain
        """
        start_at = parse_date_bound(start, "start")
        end_at = parse_date_bound(end, "end", inclusive_end=True)
        if start_at and end_at and start_at > end_at:
            raise InvalidFilterError("start", start, "must not be after end")

        if sort_fields is not None and sort_by is not None:
            allowed = list(sort_fields)
            if sort_by not in allowed:
                raise InvalidFilterError(
                    "sort_by", sort_by, f"expected one of {', '.join(allowed)}"
                )

        direction = SortDirection.DESC
        if sort_dir is not None:
            try:
                direction = SortDirection(str(sort_dir).lower())
            except ValueError:
                raise InvalidFilterError("sort_dir", sort_dir, "expected asc or desc")

        return cls(
            repo=resolve_repo(repo),
            start=start_at,
            end=end_at,
            limit=check_limit(limit, default_limit),
            sort_by=sort_by,
            sort_dir=direction,
        )

    @property
    def descending(self) -> bool:
        return self.sort_dir == SortDirection.DESC

    def repo_predicate(self) -> Optional[Predicate]:
        if self.repo is None:
            return None
        return Eq("repo_short", self.repo.value)

    def time_predicate(self, field: str) -> Optional[Predicate]:
        if self.start is None and self.end is None:
            return None
        return Range(field, self.start, self.end)

    def where(self, time_field: Optional[str] = None, *extra: Optional[Predicate]) -> Predicate:
        """Compose the repository and time filters with extra predicates."""
        time_filter = self.time_predicate(time_field) if time_field else None
        return all_of(self.repo_predicate(), time_filter, *extra)

    def apply_limit(self, rows: List[Any]) -> List[Any]:
        return rows[: self.limit]
