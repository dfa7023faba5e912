"""QueryCache - mapping from query key to cache entry.

Provides:
- get_or_create(): lookup-or-insert, never fetches
- invalidate() / invalidate_all(): mark entries stale, refetch observed ones
- set_data() / update_data(): manual resolution without a fetch
- remove() / clear(): immediate removal bypassing GC
- subscribe(): cache-level event stream for introspection and persistence
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from swrq.entry import CacheEntry
from swrq.options import QueryOptions
from swrq.tracker import FetchTracker
from swrq.types import Fetcher, QueryKey, QueryState

logger = logging.getLogger(__name__)


class CacheEventType(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"
    OBSERVER_ADDED = "observer_added"
    OBSERVER_REMOVED = "observer_removed"


@dataclass(frozen=True, slots=True)
class CacheEvent:
    """A change to the cache, delivered to cache subscribers."""

    type: CacheEventType
    key: QueryKey
    state: QueryState[Any] | None = None
    observer_count: int = 0


CacheListener = Callable[[CacheEvent], None]


class QueryCache:
    """Owns every CacheEntry, keyed by query key."""

    def __init__(
        self,
        *,
        tracker: FetchTracker,
        clock: Callable[[], int],
        default_options: QueryOptions,
    ) -> None:
        self._entries: dict[QueryKey, CacheEntry[Any]] = {}
        self._listeners: dict[int, CacheListener] = {}
        self._next_listener_id = 0
        self._tracker = tracker
        self._clock = clock
        self._default_options = default_options

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[CacheEntry[Any]]:
        return iter(list(self._entries.values()))

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def get(self, key: QueryKey) -> CacheEntry[Any] | None:
        return self._entries.get(key)

    def get_or_create(
        self,
        key: QueryKey,
        options: QueryOptions | None = None,
        fetcher: Fetcher | None = None,
    ) -> CacheEntry[Any]:
        """Return the entry for ``key``, creating an ABSENT one if needed.

        An existing entry takes the given options and fetcher (last
        registration wins). Does not fetch.
        """
        entry = self._entries.get(key)
        if entry is not None:
            if options is not None or fetcher is not None:
                entry.update_options(options or entry.options, fetcher)
            return entry

        entry = CacheEntry(
            key,
            options or self._default_options,
            fetcher,
            clock=self._clock,
            on_change=self._entry_changed,
        )
        self._entries[key] = entry
        logger.debug("Created cache entry for %r", key)
        self._emit(CacheEvent(CacheEventType.CREATED, key, entry.state))
        return entry

    def invalidate(self, key: QueryKey) -> bool:
        """Mark an entry stale; observed entries refetch in the background.

        Returns False (and does nothing) when the key is not cached.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.set_state(entry.state.invalidate())
        if entry.observers:
            self._tracker.ensure_fetch(entry)
        return True

    def invalidate_all(
        self, predicate: Callable[[QueryKey], bool] | None = None
    ) -> list[QueryKey]:
        """Invalidate every entry whose key matches ``predicate`` (all if None)."""
        invalidated = []
        for key in list(self._entries):
            if predicate is None or predicate(key):
                if self.invalidate(key):
                    invalidated.append(key)
        return invalidated

    def set_data(self, key: QueryKey, data: Any) -> CacheEntry[Any]:
        """Resolve an entry with a manually supplied value, without fetching.

        An absent key gets a new entry with the default options and no fetcher.
        """
        entry = self.get_or_create(key)
        state = entry.state
        resolved = state.resolve(data, self._clock())
        if state.is_fetching:
            resolved = resolved.start_fetch()
        entry.set_state(resolved)
        return entry

    def update_data(self, key: QueryKey, updater: Callable[[Any], Any]) -> Any:
        """Resolve an entry with ``updater(current_data)``.

        ``updater`` receives None when the entry holds no data. Returning None
        leaves the entry untouched. Returns the new data, or None.
        """
        entry = self._entries.get(key)
        current = entry.state.data if entry is not None and entry.state.has_data else None
        data = updater(current)
        if data is None:
            return None
        self.set_data(key, data)
        return data

    def seed(self, key: QueryKey, data: Any, updated_at: int) -> bool:
        """Resolve an entry with data resolved at ``updated_at`` elsewhere.

        Entries that already hold data at least as new are left untouched.
        A fetch in flight keeps running; its result supersedes the seed.
        """
        entry = self.get_or_create(key)
        state = entry.state
        if state.updated_at is not None and state.updated_at >= updated_at:
            return False
        seeded = state.resolve(data, updated_at)
        if state.is_fetching:
            seeded = seeded.start_fetch()
        entry.set_state(seeded)
        return True

    def remove(self, key: QueryKey) -> CacheEntry[Any] | None:
        """Remove an entry immediately. Absent keys are ignored."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        logger.debug("Removed cache entry for %r", key)
        self._emit(CacheEvent(CacheEventType.REMOVED, key, entry.state))
        return entry

    def clear(self) -> list[CacheEntry[Any]]:
        """Remove every entry."""
        return [e for e in map(self.remove, list(self._entries)) if e is not None]

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Register a cache listener. Returns a function that unregisters it.

        The listener immediately receives a CREATED event for every entry
        already in the cache.
        """
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        for entry in list(self._entries.values()):
            listener(CacheEvent(CacheEventType.CREATED, entry.key, entry.state))
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def observer_added(self, entry: CacheEntry[Any]) -> None:
        self._emit(
            CacheEvent(
                CacheEventType.OBSERVER_ADDED,
                entry.key,
                observer_count=len(entry.observers),
            )
        )

    def observer_removed(self, entry: CacheEntry[Any]) -> None:
        self._emit(
            CacheEvent(
                CacheEventType.OBSERVER_REMOVED,
                entry.key,
                observer_count=len(entry.observers),
            )
        )

    def _entry_changed(self, entry: CacheEntry[Any]) -> None:
        if self._entries.get(entry.key) is not entry:
            # Detached entry finishing a fetch after removal.
            return
        self._emit(
            CacheEvent(
                CacheEventType.UPDATED,
                entry.key,
                entry.state,
                observer_count=len(entry.observers),
            )
        )

    def _emit(self, event: CacheEvent) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:
                logger.exception("Cache listener failed on %s", event.type.value)


__all__ = ["CacheEvent", "CacheEventType", "CacheListener", "QueryCache"]
