"""Persisters for swrq query values."""

from contextlib import suppress

from swrq.persisters.base import AsyncQueryPersister
from swrq.persisters.memory import MemoryPersister

# Optional persisters - only available when dependencies are installed
with suppress(ImportError):
    from swrq.persisters.redis import RedisPersister

__all__ = [
    "AsyncQueryPersister",
    "MemoryPersister",
    "RedisPersister",
]
