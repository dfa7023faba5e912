"""Cache entry - one per distinct query key.

An entry owns the latest QueryState for its key, the options and fetcher it
was last registered with, the observers currently subscribed to it and the
handle of the in-flight fetch, if any. All state transitions go through
``set_state`` which fans the new read model out to every observer before
returning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from swrq.options import QueryOptions
from swrq.types import Fetcher, QueryKey, QueryResult, QueryState, QueryStatus

if TYPE_CHECKING:
    from swrq.observer import QueryObserver
    from swrq.tracker import FetchInvocation

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CacheEntry(Generic[T]):
    """Entry lifecycle, staleness and observer fan-out for one key."""

    __slots__ = (
        "_clock",
        "_on_change",
        "created_at",
        "fetcher",
        "in_flight",
        "key",
        "next_refetch_at",
        "observers",
        "options",
        "state",
        "touched_at",
    )

    def __init__(
        self,
        key: QueryKey,
        options: QueryOptions,
        fetcher: Fetcher | None,
        *,
        clock: Callable[[], int],
        on_change: Callable[[CacheEntry[Any]], None] | None = None,
    ) -> None:
        self.key = key
        self.options = options
        self.fetcher = fetcher
        self.state: QueryState[T] = QueryState()
        self.observers: dict[int, QueryObserver] = {}
        self.in_flight: FetchInvocation | None = None
        self.next_refetch_at: int | None = None
        self._clock = clock
        self._on_change = on_change
        self.created_at = clock()
        self.touched_at = self.created_at

    def __repr__(self) -> str:
        return (
            f"CacheEntry(key={self.key!r}, status={self.state.status.value}, "
            f"observers={len(self.observers)}, fetching={self.in_flight is not None})"
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def set_state(self, state: QueryState[T]) -> None:
        """Apply a transition and notify every observer, then the cache.

        A listener may apply another transition while this one is being
        delivered. The nested call delivers the newer state to everyone, so
        the rest of this delivery is dropped and no observer ends on a
        superseded state.
        """
        self.state = state
        self.touched_at = self._clock()
        result = self.result()
        for observer in list(self.observers.values()):
            if self.state is not state:
                return
            observer._notify(result)
        if self.state is not state:
            return
        if self._on_change is not None:
            self._on_change(self)

    def is_stale(self, now: int | None = None) -> bool:
        """Derived staleness: invalidated, never resolved, or past stale_time."""
        state = self.state
        if state.invalidated or state.updated_at is None:
            return True
        stale_ms = self.options.stale_ms
        if stale_ms is None:
            return False
        if now is None:
            now = self._clock()
        return now - state.updated_at >= stale_ms

    def needs_fetch(self, now: int | None = None) -> bool:
        """Whether a subscriber arriving now should trigger a fetch."""
        if self.in_flight is not None:
            return False
        if self.state.status is QueryStatus.ABSENT:
            return True
        return self.is_stale(now)

    def result(self, now: int | None = None) -> QueryResult[T]:
        state = self.state
        data = state.data
        if not state.has_data and self.options.has_default:
            data = self.options.default_value
        return QueryResult(
            key=self.key,
            data=data,
            error=state.error,
            status=state.status,
            updated_at=state.updated_at,
            is_loading=state.is_loading,
            is_fetching=state.is_fetching,
            is_stale=self.is_stale(now),
            is_invalidated=state.invalidated,
        )

    # -------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------

    def update_options(self, options: QueryOptions, fetcher: Fetcher | None) -> None:
        """Last registration wins for both options and fetcher."""
        if options != self.options:
            if self.observers:
                logger.warning(
                    "Query %r registered with options %r differing from %r; "
                    "the latest registration wins",
                    self.key,
                    options,
                    self.options,
                )
            interval_changed = (
                options.refetch_interval_ms != self.options.refetch_interval_ms
            )
            self.options = options
            if interval_changed:
                self._schedule_interval()
        if fetcher is not None:
            self.fetcher = fetcher

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_observer(self, observer: QueryObserver) -> bool:
        """Subscribe an observer. Returns False if it was already subscribed."""
        if observer.id in self.observers:
            return False
        self.observers[observer.id] = observer
        if len(self.observers) == 1:
            self._schedule_interval()
        return True

    def remove_observer(self, observer: QueryObserver) -> bool:
        """Unsubscribe an observer. The entry itself is left for the GC sweep."""
        if self.observers.pop(observer.id, None) is None:
            return False
        if not self.observers:
            self.next_refetch_at = None
            # Unresolved entries age from the moment they lost their last observer.
            self.touched_at = max(self.touched_at, self._clock())
        return True

    def _schedule_interval(self) -> None:
        interval = self.options.refetch_interval_ms
        if interval is None or not self.observers:
            self.next_refetch_at = None
        else:
            self.next_refetch_at = self._clock() + interval

    # -------------------------------------------------------------------------
    # Scheduling predicates
    # -------------------------------------------------------------------------

    def gc_due(self, now: int) -> bool:
        """Unobserved and older than cache_time.

        Age is measured from the last successful resolution; entries that never
        resolved (or whose value was invalidated) age from their last activity
        instead: a state change or the last observer detaching.
        """
        if self.observers or self.in_flight is not None:
            return False
        cache_ms = self.options.cache_ms
        if cache_ms is None:
            return False
        state = self.state
        if state.updated_at is not None and not state.invalidated:
            reference = state.updated_at
        else:
            reference = self.touched_at
        return now - reference >= cache_ms

    def refetch_due(self, now: int) -> bool:
        return (
            bool(self.observers)
            and self.next_refetch_at is not None
            and now >= self.next_refetch_at
        )


__all__ = ["CacheEntry"]
