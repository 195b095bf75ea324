"""Listing query engine: parse raw prefix/limit/sort, then filter, sort and limit file listings."""
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, TypeVar

from ent.errors import InvalidQuery

_LIMIT_RE = re.compile(r"[0-9]+")


class SortField(str, Enum):
    KEY = "key"
    LAST_MODIFIED = "lastModified"


class SortDirection(str, Enum):
    ASCENDING = "+"
    DESCENDING = "-"


@dataclass(frozen=True)
class SortStrategy:
    field: SortField = SortField.KEY
    direction: SortDirection = SortDirection.ASCENDING

    @classmethod
    def parse(cls, token: str) -> "SortStrategy":
        """Parse '<sign><field>', e.g. '+key' or '-lastModified'. Anything else is rejected whole."""
        if len(token) < 2:
            raise InvalidQuery("sort", f"expected <+|-><field>, got {token!r}")
        try:
            direction = SortDirection(token[0])
        except ValueError:
            raise InvalidQuery("sort", f"unknown direction {token[0]!r}, expected '+' or '-'") from None
        try:
            sort_field = SortField(token[1:])
        except ValueError:
            known = ", ".join(f.value for f in SortField)
            raise InvalidQuery("sort", f"unknown field {token[1:]!r}, expected one of {known}") from None
        return cls(field=sort_field, direction=direction)

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESCENDING

    def __str__(self) -> str:
        return f"{self.direction.value}{self.field.value}"


DEFAULT_SORT = SortStrategy()


@dataclass(frozen=True)
class ListQuery:
    prefix: str = ""
    limit: int | None = None
    sort: SortStrategy = field(default_factory=SortStrategy)


def parse_limit(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    if not _LIMIT_RE.fullmatch(raw):
        raise InvalidQuery("limit", f"expected a positive integer, got {raw!r}")
    limit = int(raw)
    if limit <= 0:
        raise InvalidQuery("limit", f"must be greater than zero, got {raw!r}")
    return limit


def parse_sort(raw: str | None) -> SortStrategy:
    if raw is None or raw == "":
        return DEFAULT_SORT
    return SortStrategy.parse(raw)


def parse_list_query(prefix: str | None = None, limit: str | None = None, sort: str | None = None) -> ListQuery:
    """Validate raw query parameters. Raises InvalidQuery naming the first bad parameter."""
    return ListQuery(prefix=prefix or "", limit=parse_limit(limit), sort=parse_sort(sort))


class Listable(Protocol):
    @property
    def key(self) -> str: ...

    @property
    def last_modified(self) -> datetime: ...


T = TypeVar("T", bound=Listable)


def apply_query(entries: Iterable[T], query: ListQuery) -> list[T]:
    """Filter by prefix, sort (ties by ascending key), truncate to limit."""
    matched = [e for e in entries if e.key.startswith(query.prefix)]
    # Key order first; the stable second pass keeps it for equal values in either direction.
    matched.sort(key=lambda e: e.key)
    if query.sort.field is SortField.LAST_MODIFIED:
        matched.sort(key=lambda e: e.last_modified, reverse=query.sort.descending)
    elif query.sort.descending:
        matched.reverse()
    if query.limit is not None:
        matched = matched[: query.limit]
    return matched
