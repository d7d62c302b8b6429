"""Query Filter Test Suite.

This module contains tests for filter validation and predicate trees covering:
- Repository family resolution and aliases
- Date bounds, limits and sort validation
- Predicate evaluation and composition
"""

from datetime import datetime, timezone

import pytest

from errors import InvalidFilterError
from query.filters import QueryFilters, RepoFamily, check_limit, parse_date_bound, resolve_repo
from query.predicates import Always, And, Contains, Eq, In, IsNull, Range, all_of


def test_resolve_repo_accepts_aliases():
    """Test singular, plural and mixed-case repository codes."""
    assert resolve_repo("eips") == RepoFamily.EIPS
    assert resolve_repo("ERC") == RepoFamily.ERCS
    assert resolve_repo(" Rips ") == RepoFamily.RIPS
    assert resolve_repo(None) is None


def test_resolve_repo_rejects_unknown_family():
    """Test that an unknown repository code is rejected, not ignored."""
    with pytest.raises(InvalidFilterError) as exc_info:
        resolve_repo("foo")
    assert exc_info.value.field == "repo"


def test_repository_name():
    """Test the mapping of families to repository names."""
    assert RepoFamily.EIPS.repository_name == "ethereum/EIPs"
    assert RepoFamily.ERCS.repository_name == "ethereum/ERCs"
    assert RepoFamily.RIPS.repository_name == "ethereum/RIPs"


def test_date_only_end_covers_whole_day():
    """Test that a bare end date includes the entire day."""
    filters = QueryFilters.build(start="2024-01-01", end="2024-01-31")
    assert filters.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert filters.end == datetime(2024, 2, 1, tzinfo=timezone.utc)


def test_parse_date_bound_handles_zulu_suffix():
    """Test parsing of an ISO timestamp with a Z suffix."""
    parsed = parse_date_bound("2024-03-01T10:00:00Z", "start")
    assert parsed == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)


def test_invalid_dates_are_rejected():
    """Test malformed dates and inverted ranges."""
    with pytest.raises(InvalidFilterError):
        QueryFilters.build(start="yesterday")
    with pytest.raises(InvalidFilterError):
        QueryFilters.build(start="2024-02-01", end="2024-01-01")


@pytest.mark.parametrize("limit", [0, -5, 201, "10", True])
def test_invalid_limits_are_rejected(limit):
    """Test limits outside the accepted range or of the wrong type."""
    with pytest.raises(InvalidFilterError):
        check_limit(limit)


def test_limit_defaults():
    """Test the configured and per-view default limits."""
    assert check_limit(None) == 20
    assert check_limit(None, default=50) == 50
    assert QueryFilters.build(limit=200).limit == 200


def test_sort_validation():
    """Test sort field and direction validation."""
    filters = QueryFilters.build(sort_by="reviews", sort_dir="ASC", sort_fields=["total", "reviews"])
    assert filters.sort_by == "reviews"
    assert not filters.descending

    with pytest.raises(InvalidFilterError):
        QueryFilters.build(sort_by="karma", sort_fields=["total", "reviews"])
    with pytest.raises(InvalidFilterError):
        QueryFilters.build(sort_dir="sideways")


def test_where_combines_repo_and_time():
    """Test the predicate built from repository and time filters."""
    filters = QueryFilters.build(repo="eips", start="2024-01-01", end="2024-01-31")
    predicate = filters.where("changed_at")

    assert predicate.matches({"repo_short": "eips", "changed_at": datetime(2024, 1, 31, 23, tzinfo=timezone.utc)})
    assert not predicate.matches({"repo_short": "ercs", "changed_at": datetime(2024, 1, 15, tzinfo=timezone.utc)})
    assert not predicate.matches({"repo_short": "eips", "changed_at": datetime(2024, 2, 1, tzinfo=timezone.utc)})


def test_range_is_half_open():
    """Test inclusive start, exclusive end and null handling."""
    predicate = Range("value", 1, 5)
    assert predicate.matches({"value": 1})
    assert not predicate.matches({"value": 5})
    assert not predicate.matches({"value": None})
    assert Range("value", 1, 5, include_end=True).matches({"value": 5})
    assert Range("value", end=5).matches({"value": -100})


def test_predicate_composition():
    """Test operator composition of predicates."""
    predicate = (Eq("status", "Draft") | Eq("status", "Review")) & ~IsNull("number")
    assert predicate.matches({"status": "Review", "number": 1})
    assert not predicate.matches({"status": "Final", "number": 1})
    assert not predicate.matches({"status": "Draft", "number": None})

    assert In("status", ["Final", "Living"]).matches({"status": "Living"})
    assert Contains("numbers", 7).matches({"numbers": [1, 7]})
    assert not Contains("numbers", 7).matches({"numbers": None})


def test_all_of_skips_missing_predicates():
    """Test that absent predicates are skipped when combining."""
    assert isinstance(all_of(None, None), Always)
    single = Eq("a", 1)
    assert all_of(None, single) is single
    assert isinstance(all_of(single, Eq("b", 2)), And)


def test_user_input_is_bound_not_interpreted():
    """Test that filter values are compared literally."""
    predicate = Eq("title", "x' OR '1'='1")
    assert not predicate.matches({"title": "anything"})
    assert predicate.matches({"title": "x' OR '1'='1"})
