"""
Predicate expressions used to filter store rows.

Filters are composed as a small expression tree whose leaves carry bound
values. Stores evaluate the tree against their rows; no filter is ever turned
into query text.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional


def _field_value(record: Any, field: str) -> Any:
    if isinstance(record, dict):
        return record.get(field)
    return getattr(record, field, None)


class Predicate(ABC):
    """Boolean condition over a single row."""

    @abstractmethod
    def matches(self, record: Any) -> bool:
        """Return True when the row satisfies the condition."""
        pass

    def __and__(self, other: "Predicate") -> "Predicate":
        return And(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return Or(self, other)

    def __invert__(self) -> "Predicate":
        return Not(self)


class Always(Predicate):
    """Matches every row."""

    def matches(self, record: Any) -> bool:
        return True

    def __repr__(self) -> str:
        return "Always()"


class Eq(Predicate):
    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value

    def matches(self, record: Any) -> bool:
        return _field_value(record, self.field) == self.value

    def __repr__(self) -> str:
        return f"Eq({self.field!r}, {self.value!r})"


class In(Predicate):
    def __init__(self, field: str, values: Iterable[Any]):
        self.field = field
        self.values = frozenset(values)

    def matches(self, record: Any) -> bool:
        return _field_value(record, self.field) in self.values

    def __repr__(self) -> str:
        return f"In({self.field!r}, {sorted(self.values, key=str)!r})"


class Contains(Predicate):
    """Matches rows whose list-valued field holds the given value."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value

    def matches(self, record: Any) -> bool:
        values = _field_value(record, self.field) or ()
        return self.value in values

    def __repr__(self) -> str:
        return f"Contains({self.field!r}, {self.value!r})"


class Range(Predicate):
    """
    Half-open range ``start <= value < end``.

    Either bound may be omitted. With ``include_end`` the upper bound is
    closed. Rows where the field is null never match.
    """

    def __init__(
        self,
        field: str,
        start: Optional[Any] = None,
        end: Optional[Any] = None,
        include_end: bool = False,
    ):
        self.field = field
        self.start = start
        self.end = end
        self.include_end = include_end

    def matches(self, record: Any) -> bool:
        value = _field_value(record, self.field)
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        if self.end is not None:
            if value > self.end or (value == self.end and not self.include_end):
                return False
        return True

    def __repr__(self) -> str:
        return f"Range({self.field!r}, {self.start!r}, {self.end!r})"


class IsNull(Predicate):
    def __init__(self, field: str):
        self.field = field

    def matches(self, record: Any) -> bool:
        return _field_value(record, self.field) is None

    def __repr__(self) -> str:
        return f"IsNull({self.field!r})"


class And(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def matches(self, record: Any) -> bool:
        return all(predicate.matches(record) for predicate in self.predicates)

    def __repr__(self) -> str:
        return f"And{self.predicates!r}"


class Or(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def matches(self, record: Any) -> bool:
        return any(predicate.matches(record) for predicate in self.predicates)

    def __repr__(self) -> str:
        return f"Or{self.predicates!r}"


class Not(Predicate):
    def __init__(self, predicate: Predicate):
        self.predicate = predicate

    def matches(self, record: Any) -> bool:
        return not self.predicate.matches(record)

    def __repr__(self) -> str:
        return f"Not({self.predicate!r})"


def all_of(*predicates: Optional[Predicate]) -> Predicate:
    """Combine the given predicates with AND, skipping missing ones."""
    present = [predicate for predicate in predicates if predicate is not None]
    if not present:
        return Always()
    if len(present) == 1:
        return present[0]
    return And(*present)
