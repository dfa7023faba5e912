"""Base persister protocol for storage backends."""

from typing import Protocol, runtime_checkable

from swrq.types import PersistedQuery


@runtime_checkable
class AsyncQueryPersister(Protocol):
    """Async storage for resolved query values.

    Keys are strings produced by ``swrq.keys.serialize_key``.
    """

    async def retrieve(self, key: str) -> PersistedQuery[object] | None:
        """Get a persisted value by key."""
        ...

    async def persist(self, key: str, query: PersistedQuery[object]) -> None:
        """Store a resolved value."""
        ...

    async def remove(self, key: str) -> None:
        """Delete a persisted value."""
        ...

    async def clear(self) -> None:
        """Delete all persisted values."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...
