"""Fetch deduplication - at most one in-flight fetch per entry.

``FetchTracker.ensure_fetch`` either joins the entry's current invocation or
starts a new one. The fetcher runs exactly once per invocation; the result is
written into the entry (which notifies observers) and every joined waiter
receives the same value or the same FetchError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from dataclasses import replace
from typing import Any, Generic, TypeVar

from swrq.entry import CacheEntry
from swrq.errors import FetchError
from swrq.types import QueryState, QueryStatus

T = TypeVar("T")

logger = logging.getLogger(__name__)


class FetchInvocation(Generic[T]):
    """An awaitable handle on one outstanding fetch.

    Usage:
        invocation = tracker.ensure_fetch(entry)
        data = await invocation   # T, or raises FetchError
    """

    __slots__ = ("_task", "key")

    def __init__(self, key: Any, task: asyncio.Task[T]) -> None:
        self.key = key
        self._task = task

    def __await__(self) -> Generator[Any, None, T]:
        # Shielded so a cancelled waiter does not cancel the shared fetch.
        return asyncio.shield(self._task).__await__()

    def __repr__(self) -> str:
        return f"FetchInvocation(key={self.key!r}, done={self.done()})"

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        return self._task.cancel()

    @property
    def task(self) -> asyncio.Task[T]:
        return self._task


class FetchTracker:
    """Starts and joins fetch invocations for cache entries."""

    def __init__(self, clock: Callable[[], int]) -> None:
        self._clock = clock
        self._started = 0

    @property
    def started(self) -> int:
        """Number of fetcher invocations started so far."""
        return self._started

    def ensure_fetch(self, entry: CacheEntry[T]) -> FetchInvocation[T] | None:
        """Join the in-flight fetch for ``entry`` or start a new one.

        Returns None when the entry has no fetcher to run.
        """
        if entry.in_flight is not None:
            return entry.in_flight

        fetcher = entry.fetcher
        if fetcher is None:
            logger.debug("No fetcher registered for %r, skipping fetch", entry.key)
            return None

        previous = entry.state
        loop = asyncio.get_running_loop()
        task: asyncio.Task[T] = loop.create_task(self._run(entry, fetcher, previous))
        task.add_done_callback(_retrieve_exception)
        invocation: FetchInvocation[T] = FetchInvocation(entry.key, task)
        entry.in_flight = invocation
        self._started += 1

        logger.debug("Fetch started for %r", entry.key)
        entry.set_state(previous.start_fetch())
        return invocation

    async def _run(
        self,
        entry: CacheEntry[T],
        fetcher: Callable[[Any], Any],
        previous: QueryState[T],
    ) -> T:
        try:
            data: T = await fetcher(entry.key)
        except asyncio.CancelledError:
            entry.in_flight = None
            state = entry.state
            if state.is_fetching:
                status = previous.status
                if state.updated_at != previous.updated_at:
                    # Resolved manually while the fetch was running.
                    status = QueryStatus.RESOLVED
                entry.set_state(replace(state, status=status))
            raise
        except Exception as e:
            error = FetchError(entry.key, e)
            entry.in_flight = None
            logger.debug("Fetch failed for %r: %r", entry.key, e)
            entry.set_state(entry.state.fail(error, self._clock()))
            raise error from e

        entry.in_flight = None
        logger.debug("Fetch finished for %r", entry.key)
        entry.set_state(entry.state.resolve(data, self._clock()))
        return data


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    # The error already lives in the entry; fire-and-forget callers never await.
    if not task.cancelled():
        task.exception()


__all__ = ["FetchInvocation", "FetchTracker"]
