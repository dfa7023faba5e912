"""Core types for the swrq query cache."""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

QueryKey = Hashable
Fetcher = Callable[[Any], Awaitable[Any]]


class QueryStatus(str, enum.Enum):
    """Lifecycle status of a cache entry."""

    ABSENT = "absent"
    LOADING = "loading"
    RESOLVED = "resolved"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """Immutable snapshot of an entry's value.

    ``data`` keeps the last successfully resolved value across refetches and
    failures. ``updated_at`` is the time of the last successful resolution and
    is the reference point for staleness; ``invalidated`` forces staleness
    regardless of ``stale_time``.
    """

    status: QueryStatus = QueryStatus.ABSENT
    data: T | None = None
    has_data: bool = False
    error: BaseException | None = None
    updated_at: int | None = None  # Unix timestamp ms
    error_at: int | None = None
    invalidated: bool = False

    @property
    def is_fetching(self) -> bool:
        return self.status is QueryStatus.LOADING

    @property
    def is_loading(self) -> bool:
        return self.status is QueryStatus.LOADING and not self.has_data

    def start_fetch(self) -> QueryState[T]:
        return replace(self, status=QueryStatus.LOADING)

    def resolve(self, data: T, now: int) -> QueryState[T]:
        return QueryState(
            status=QueryStatus.RESOLVED,
            data=data,
            has_data=True,
            updated_at=now,
        )

    def fail(self, error: BaseException, now: int) -> QueryState[T]:
        # Last good data is kept alongside the error.
        return replace(self, status=QueryStatus.ERRORED, error=error, error_at=now)

    def invalidate(self) -> QueryState[T]:
        return replace(self, invalidated=True)


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
    """Read model pushed to observers."""

    key: Any
    data: T | None
    error: BaseException | None
    status: QueryStatus
    updated_at: int | None
    is_loading: bool
    is_fetching: bool
    is_stale: bool
    is_invalidated: bool = False

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.RESOLVED

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERRORED


@dataclass(frozen=True, slots=True)
class DehydratedQuery(Generic[T]):
    """A resolved entry handed across a serialization boundary."""

    key: Any
    data: T
    updated_at: int  # Unix timestamp ms


@dataclass(frozen=True, slots=True)
class PersistedQuery(Generic[T]):
    """A resolved value as stored by a persister."""

    data: T
    updated_at: int  # Unix timestamp ms
