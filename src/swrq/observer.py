"""QueryObserver - one consumer's subscription to one query key.

An observer stores the key it watches and looks the entry up through the
client's cache; it never owns the entry. Entry state changes arrive via
``_notify`` and are forwarded to listeners in mutation order.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from swrq.options import QueryOptions
from swrq.types import Fetcher, QueryKey, QueryResult, QueryStatus

if TYPE_CHECKING:
    from swrq.client import QueryClient
    from swrq.entry import CacheEntry
    from swrq.tracker import FetchInvocation

T = TypeVar("T")

logger = logging.getLogger(__name__)

_ids = itertools.count(1)

Listener = Callable[[QueryResult[Any]], None]


class QueryObserver(Generic[T]):
    """A live subscription to a query.

    Usage:
        observer = client.register_query(("user", 1), fetch_user)
        observer.add_listener(lambda result: print(result.data))
        ...
        client.unregister(observer)
    """

    def __init__(
        self,
        client: QueryClient,
        key: QueryKey,
        fetcher: Fetcher | None,
        options: QueryOptions | None = None,
    ) -> None:
        self.id = next(_ids)
        self._client = client
        self._key: QueryKey | None = key
        self._fetcher = fetcher
        self._options = options
        self._listeners: dict[int, Listener] = {}
        self._next_listener_id = 0
        self._last: QueryResult[T] | None = None

    def __repr__(self) -> str:
        return f"QueryObserver(id={self.id}, key={self._key!r})"

    @property
    def key(self) -> QueryKey | None:
        return self._key

    @property
    def is_active(self) -> bool:
        return self._key is not None

    @property
    def result(self) -> QueryResult[T]:
        """Current read model, without side effects."""
        entry = self._entry()
        if entry is None:
            if self._last is not None:
                return self._last
            return QueryResult(
                key=self._key,
                data=None,
                error=None,
                status=QueryStatus.ABSENT,
                updated_at=None,
                is_loading=False,
                is_fetching=False,
                is_stale=True,
            )
        return entry.result()

    def read(self) -> QueryResult[T]:
        """Current read model; triggers a background refetch if it is stale."""
        entry = self._entry()
        if self._key is not None and (entry is None or self.id not in entry.observers):
            # Entry was removed out from under us; attach to a fresh one.
            self.subscribe()
        elif entry is not None and entry.needs_fetch():
            self._client.tracker.ensure_fetch(entry)
        return self.result

    def refetch(self) -> FetchInvocation[T] | None:
        """Fetch now regardless of staleness (joins a fetch in flight)."""
        entry = self._entry()
        if entry is None:
            return None
        return self._client.tracker.ensure_fetch(entry)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> int:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener
        return listener_id

    def remove_listener(self, listener_id: int) -> bool:
        return self._listeners.pop(listener_id, None) is not None

    def _notify(self, result: QueryResult[T]) -> None:
        self._last = result
        for listener in list(self._listeners.values()):
            try:
                listener(result)
            except Exception:
                logger.exception("Listener for %r failed", self._key)

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self) -> None:
        """Attach to the entry for the current key, fetching if it needs it."""
        if self._key is None:
            return
        cache = self._client.cache
        entry = cache.get_or_create(self._key, self._options, self._fetcher)
        if entry.add_observer(self):
            cache.observer_added(entry)
        if entry.needs_fetch():
            self._client.tracker.ensure_fetch(entry)

    def set_key(
        self,
        key: QueryKey,
        fetcher: Fetcher | None = None,
        options: QueryOptions | None = None,
    ) -> None:
        """Move this observer to another key. Same key is a no-op."""
        if key == self._key:
            return
        self._detach()
        self._key = key
        if fetcher is not None:
            self._fetcher = fetcher
        if options is not None:
            self._options = options
        self._last = None
        self.subscribe()
        self._notify(self.result)

    def close(self) -> None:
        """Detach from the entry. The entry stays cached until GC."""
        self._detach()
        self._key = None
        self._client._forget(self)
        if self._listeners:
            logger.debug("Observer %d closed with listeners attached", self.id)
        self._listeners.clear()

    def _detach(self) -> None:
        entry = self._entry()
        if entry is not None and entry.remove_observer(self):
            self._client.cache.observer_removed(entry)

    def _entry(self) -> CacheEntry[T] | None:
        if self._key is None:
            return None
        return self._client.cache.get(self._key)


__all__ = ["QueryObserver"]
