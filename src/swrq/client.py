"""QueryClient - the public facade over cache, tracker and scheduler."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from swrq.cache import CacheEvent, CacheEventType, QueryCache
from swrq.duration import parse_optional_duration
from swrq.errors import ClientClosedError
from swrq.keys import serialize_key
from swrq.observer import QueryObserver
from swrq.options import QueryOptions
from swrq.persisters.base import AsyncQueryPersister
from swrq.scheduler import Scheduler
from swrq.tracker import FetchInvocation, FetchTracker
from swrq.types import (
    DehydratedQuery,
    Duration,
    Fetcher,
    PersistedQuery,
    QueryKey,
    QueryState,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueryClient:
    """Async query cache client.

    Usage:
        async with QueryClient(default_options=QueryOptions(stale_time="10s")) as client:
            observer = client.register_query(("user", 1), fetch_user)
            observer.add_listener(render)
            ...
            client.invalidate(("user", 1))
    """

    def __init__(
        self,
        *,
        default_options: QueryOptions | None = None,
        tick_interval: Duration | None = "1s",
        clock: Callable[[], int] | None = None,
        persister: AsyncQueryPersister | None = None,
    ) -> None:
        self._clock = clock or _now_ms
        self._default_options = default_options or QueryOptions()
        self._tracker = FetchTracker(self._clock)
        self._cache = QueryCache(
            tracker=self._tracker,
            clock=self._clock,
            default_options=self._default_options,
        )
        self._scheduler = Scheduler(
            self._cache,
            self._tracker,
            clock=self._clock,
            tick_interval=parse_optional_duration(tick_interval),
        )
        self._persister = persister
        self._unsubscribe_persister: Callable[[], None] | None = None
        if persister is not None:
            self._unsubscribe_persister = self._cache.subscribe(self._on_cache_event)
        self._observers: dict[int, QueryObserver[Any]] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._persisted: dict[QueryKey, tuple[int, Any]] = {}
        self._closed = False

    async def __aenter__(self) -> QueryClient:
        self._scheduler.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def tracker(self) -> FetchTracker:
        return self._tracker

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ClientClosedError("QueryClient is closed")

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def register_query(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> QueryObserver[Any]:
        """Subscribe a new observer to ``key``, fetching if the entry needs it."""
        self._check_open()
        self._scheduler.start()
        observer: QueryObserver[Any] = QueryObserver(self, key, fetcher, options)
        self._observers[observer.id] = observer
        observer.subscribe()
        return observer

    def unregister(self, observer: QueryObserver[Any]) -> None:
        """Detach an observer. The entry stays cached until its cache_time elapses."""
        if observer.id in self._observers:
            observer.close()

    def _forget(self, observer: QueryObserver[Any]) -> None:
        self._observers.pop(observer.id, None)

    # -------------------------------------------------------------------------
    # Cache operations
    # -------------------------------------------------------------------------

    def invalidate(self, key: QueryKey) -> bool:
        """Mark ``key`` stale now; refetch in the background if observed."""
        self._check_open()
        return self._cache.invalidate(key)

    def invalidate_matching(self, predicate: Callable[[QueryKey], bool]) -> list[QueryKey]:
        """Invalidate every cached key for which ``predicate`` is true.

        Usage:
            client.invalidate_matching(key_prefix("user"))
        """
        self._check_open()
        return self._cache.invalidate_all(predicate)

    def invalidate_all(self) -> list[QueryKey]:
        self._check_open()
        return self._cache.invalidate_all()

    def set_data(self, key: QueryKey, data: Any) -> None:
        """Resolve ``key`` with ``data`` without fetching and notify observers."""
        self._check_open()
        self._cache.set_data(key, data)

    def update_query_data(self, key: QueryKey, updater: Callable[[Any], Any]) -> Any:
        """Resolve ``key`` with ``updater(current_data)`` in one step.

        ``updater`` gets None when there is no data yet; returning None leaves
        the entry untouched.

        Usage:
            client.update_query_data("todos", lambda todos: [*(todos or []), new_todo])
        """
        self._check_open()
        return self._cache.update_data(key, updater)

    def get_query_data(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._cache.get(key)
        if entry is None or not entry.state.has_data:
            return default
        return entry.state.data

    def get_query_state(self, key: QueryKey) -> QueryState[Any] | None:
        entry = self._cache.get(key)
        return entry.state if entry is not None else None

    def remove(self, key: QueryKey) -> bool:
        """Remove ``key`` immediately, bypassing GC. Absent keys are ignored."""
        self._check_open()
        return self._cache.remove(key) is not None

    def refetch(self, key: QueryKey) -> FetchInvocation[Any] | None:
        """Fetch ``key`` now regardless of staleness.

        Joins a fetch already in flight. Returns None for keys that are not
        cached or have no fetcher.
        """
        self._check_open()
        entry = self._cache.get(key)
        if entry is None:
            return None
        return self._tracker.ensure_fetch(entry)

    def clear(self) -> None:
        """Remove every entry and clear the persister."""
        self._check_open()
        self._cache.clear()
        if self._persister is not None:
            self._spawn(self._persister.clear())

    # -------------------------------------------------------------------------
    # Imperative fetching
    # -------------------------------------------------------------------------

    async def fetch_query(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> Any:
        """Return fresh cached data for ``key``, fetching (deduplicated) if needed.

        Raises:
            FetchError: if the fetch fails.
            ValueError: if there is no fetcher to run.
        """
        self._check_open()
        entry = self._cache.get_or_create(key, options, fetcher)
        if entry.state.has_data and not entry.is_stale():
            return entry.state.data
        invocation = self._tracker.ensure_fetch(entry)
        if invocation is None:
            raise ValueError(f"No fetcher registered for {key!r}")
        return await invocation

    def prefetch_query(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> FetchInvocation[Any] | None:
        """Start fetching ``key`` in the background unless it is fresh."""
        self._check_open()
        entry = self._cache.get_or_create(key, options, fetcher)
        if not entry.needs_fetch():
            return entry.in_flight
        return self._tracker.ensure_fetch(entry)

    # -------------------------------------------------------------------------
    # Serialization boundary
    # -------------------------------------------------------------------------

    def dehydrate(self) -> list[DehydratedQuery[Any]]:
        """Export every resolved entry for seeding another client."""
        records = []
        for entry in self._cache:
            state = entry.state
            if state.has_data and state.updated_at is not None:
                records.append(DehydratedQuery(entry.key, state.data, state.updated_at))
        return records

    def hydrate(self, records: Iterable[DehydratedQuery[Any]]) -> int:
        """Seed entries resolved elsewhere, without fetching.

        A seeded entry still within its stale_time will not be refetched when
        observers subscribe. Returns the number of entries seeded.
        """
        self._check_open()
        return sum(
            self._cache.seed(record.key, record.data, record.updated_at)
            for record in records
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait for pending persister operations."""
        while self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def close(self) -> None:
        """Stop the scheduler, cancel fetches, detach observers, drop entries."""
        if self._closed:
            return
        self._closed = True
        await self._scheduler.stop()

        for observer in list(self._observers.values()):
            observer.close()
        self._observers.clear()

        in_flight = [e.in_flight.task for e in self._cache if e.in_flight is not None]
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        # Dropping entries on close must not wipe persisted values.
        if self._unsubscribe_persister is not None:
            self._unsubscribe_persister()
            self._unsubscribe_persister = None
        self._cache.clear()

        await self.flush()
        if self._persister is not None:
            await self._persister.disconnect()
        logger.debug("QueryClient closed")

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _on_cache_event(self, event: CacheEvent) -> None:
        persister = self._persister
        if persister is None:
            return
        key = event.key
        if event.type is CacheEventType.CREATED:
            self._spawn(self._restore(persister, key))
        elif event.type is CacheEventType.UPDATED:
            state = event.state
            if (
                state is not None
                and state.has_data
                and not state.invalidated
                and state.updated_at is not None
                and not self._already_persisted(key, state.updated_at, state.data)
            ):
                self._persisted[key] = (state.updated_at, state.data)
                self._spawn(self._persist(persister, key, state.data, state.updated_at))
        elif event.type is CacheEventType.REMOVED:
            self._persisted.pop(key, None)
            self._spawn(persister.remove(serialize_key(key)))

    def _already_persisted(self, key: QueryKey, updated_at: int, data: Any) -> bool:
        # Loading, failing and restoring keep the same resolved value.
        last = self._persisted.get(key)
        return last is not None and last[0] == updated_at and last[1] is data

    async def _restore(self, persister: AsyncQueryPersister, key: QueryKey) -> None:
        persisted = await persister.retrieve(serialize_key(key))
        if persisted is None or key not in self._cache:
            return
        # The persister already holds this value; do not write it back.
        previous = self._persisted.get(key)
        self._persisted[key] = (persisted.updated_at, persisted.data)
        if self._cache.seed(key, persisted.data, persisted.updated_at):
            logger.debug("Restored %r from persister", key)
        elif previous is None:
            del self._persisted[key]
        else:
            self._persisted[key] = previous

    async def _persist(
        self, persister: AsyncQueryPersister, key: QueryKey, data: Any, updated_at: int
    ) -> None:
        await persister.persist(
            serialize_key(key), PersistedQuery(data=data, updated_at=updated_at)
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run persister I/O in a tracked background task."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; skipping persister operation")
            return

        async def guarded() -> None:
            try:
                await coro
            except Exception:
                logger.exception("Persister operation failed")

        task = loop.create_task(guarded())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)


__all__ = ["QueryClient"]
