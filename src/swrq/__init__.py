"""swrq - stale-while-revalidate query cache for asyncio."""

from contextlib import suppress

from swrq.cache import CacheEvent, CacheEventType, QueryCache
from swrq.client import QueryClient

# Duration parsing
from swrq.duration import parse_duration, parse_optional_duration
from swrq.entry import CacheEntry
from swrq.errors import ClientClosedError, FetchError, SwrqError
from swrq.keys import is_key_prefix, key_prefix, serialize_key
from swrq.observer import QueryObserver
from swrq.options import UNSET, QueryOptions

# Persisters
from swrq.persisters import AsyncQueryPersister, MemoryPersister
from swrq.scheduler import Scheduler, TickReport
from swrq.tracker import FetchInvocation, FetchTracker

# Core types
from swrq.types import (
    DehydratedQuery,
    Duration,
    PersistedQuery,
    QueryResult,
    QueryState,
    QueryStatus,
)

# Optional persister imports - only available when dependencies are installed
with suppress(ImportError):
    from swrq.persisters import RedisPersister

__version__ = "0.1.0"

__all__ = [
    "UNSET",
    "AsyncQueryPersister",
    "CacheEntry",
    "CacheEvent",
    "CacheEventType",
    "ClientClosedError",
    "DehydratedQuery",
    "Duration",
    "FetchError",
    "FetchInvocation",
    "FetchTracker",
    "MemoryPersister",
    "PersistedQuery",
    "QueryCache",
    "QueryClient",
    "QueryObserver",
    "QueryOptions",
    "QueryResult",
    "QueryState",
    "QueryStatus",
    "RedisPersister",
    "Scheduler",
    "SwrqError",
    "TickReport",
    "is_key_prefix",
    "key_prefix",
    "parse_duration",
    "parse_optional_duration",
    "serialize_key",
]
