from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


# Typed filter expressions understood by every record store client.
# Each expression can evaluate itself against a plain record dict; the SQL
# client compiles the same tree into a WHERE clause instead.


class Filter:
    def matches(self, record: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Filter") -> "And":
        return And(self, other)

    def __or__(self, other: "Filter") -> "Or":
        return Or(self, other)


@dataclass(frozen=True)
class Eq(Filter):
    field: str
    value: Any

    def matches(self, record: Dict[str, Any]) -> bool:
        return record.get(self.field) == self.value


@dataclass(frozen=True)
class Contains(Filter):
    """Case-insensitive substring match."""

    field: str
    value: str

    def matches(self, record: Dict[str, Any]) -> bool:
        current = record.get(self.field)
        if current is None:
            return False
        return self.value.lower() in str(current).lower()


@dataclass(frozen=True)
class IsEmpty(Filter):
    field: str

    def matches(self, record: Dict[str, Any]) -> bool:
        return record.get(self.field) in (None, "")


@dataclass(frozen=True, init=False)
class And(Filter):
    clauses: Tuple[Filter, ...]

    def __init__(self, *clauses: Filter) -> None:
        object.__setattr__(self, "clauses", tuple(clauses))

    def matches(self, record: Dict[str, Any]) -> bool:
        return all(c.matches(record) for c in self.clauses)


@dataclass(frozen=True, init=False)
class Or(Filter):
    clauses: Tuple[Filter, ...]

    def __init__(self, *clauses: Filter) -> None:
        object.__setattr__(self, "clauses", tuple(clauses))

    def matches(self, record: Dict[str, Any]) -> bool:
        return any(c.matches(record) for c in self.clauses)


def parse_sort(sort: str | None) -> Tuple[str, bool]:
    """Return ``(field, descending)`` for "created" / "-created" style keys."""
    if not sort:
        return "created", False
    if sort.startswith("-"):
        return sort[1:], True
    return sort.lstrip("+"), False
