"""In-memory persister."""

import asyncio
from collections import OrderedDict

from swrq.types import PersistedQuery


class MemoryPersister:
    """Async in-memory persister with optional LRU eviction."""

    def __init__(self, max_items: int | None = None) -> None:
        self._store: OrderedDict[str, PersistedQuery[object]] = OrderedDict()
        self._max_items = max_items
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def retrieve(self, key: str) -> PersistedQuery[object] | None:
        """Get a persisted value by key."""
        async with self._lock:
            query = self._store.get(key)
            if query is not None:
                self._store.move_to_end(key)  # LRU touch
            return query

    async def persist(self, key: str, query: PersistedQuery[object]) -> None:
        """Store a resolved value."""
        async with self._lock:
            self._store[key] = query
            self._store.move_to_end(key)
            if self._max_items and len(self._store) > self._max_items:
                self._store.popitem(last=False)

    async def remove(self, key: str) -> None:
        """Delete a persisted value."""
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        """Delete all persisted values."""
        async with self._lock:
            self._store.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass
